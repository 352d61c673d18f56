"""Tests for EffectivenessScorer -- per-record scores and aggregates."""
from __future__ import annotations

from datetime import timedelta

import pytest

from src.resolution.scoring import (
    EffectivenessScorer,
    days_between,
    recurrences_since_resolution,
)
from src.shared.config import TrackerConfig
from src.shared.models.resolution import (
    EffectivenessFilter,
    HistoryAction,
    HistoryEntry,
)
from tests.conftest import FakeClock, make_record


@pytest.fixture
def scorer(clock: FakeClock) -> EffectivenessScorer:
    return EffectivenessScorer(TrackerConfig(), clock=clock)


class TestScore:
    def test_no_recurrence_scores_one(self, scorer: EffectivenessScorer) -> None:
        record = make_record("E1")
        assert scorer.score(record) == 1.0
        assert scorer.is_effective(record) is True

    def test_single_recurrence_is_ineffective(self, scorer: EffectivenessScorer) -> None:
        record = make_record("E1", recurrences=1)
        assert scorer.score(record) == pytest.approx(0.5)
        assert scorer.is_effective(record) is False

    def test_score_strictly_decreases_with_recurrences(self, scorer: EffectivenessScorer) -> None:
        scores = [scorer.score(make_record("E1", recurrences=n)) for n in range(6)]
        assert all(a > b for a, b in zip(scores, scores[1:]))
        assert all(0.0 <= s <= 1.0 for s in scores)

    def test_late_recurrence_weighs_half(self, scorer: EffectivenessScorer) -> None:
        record = make_record("E1", recurrences=1)
        record.resolution_history[-1].time_since_resolution = timedelta(days=30).total_seconds()

        assert scorer.recurrence_weight(record) == pytest.approx(0.5)
        assert scorer.score(record) == pytest.approx(1 / 1.5)
        assert scorer.is_effective(record) is False

    def test_missing_history_counts_in_full(self, scorer: EffectivenessScorer) -> None:
        record = make_record("E1")
        record.recurrence_count = 2  # e.g. loaded from an older snapshot
        assert scorer.recurrence_weight(record) == pytest.approx(2.0)

    def test_custom_threshold(self, clock: FakeClock) -> None:
        lenient = EffectivenessScorer(TrackerConfig(effectiveness_threshold=0.5), clock=clock)
        assert lenient.is_effective(make_record("E1", recurrences=1)) is True
        assert lenient.is_effective(make_record("E1", recurrences=2)) is False

    def test_only_recurrences_after_last_resolution_count(self) -> None:
        record = make_record("E1", recurrences=2)
        record.resolution_history.append(
            HistoryEntry(action=HistoryAction.RE_RESOLVED, timestamp=record.resolved_at + timedelta(hours=5))
        )
        assert recurrences_since_resolution(record) == []


class TestDaysBetween:
    def test_floors_partial_days(self, clock: FakeClock) -> None:
        assert days_between(clock() - timedelta(hours=47), clock()) == 1
        assert days_between(clock(), clock()) == 0


class TestAggregate:
    def test_empty_store(self, scorer: EffectivenessScorer) -> None:
        report = scorer.aggregate([])
        assert report.total_fixes == 0
        assert report.effectiveness_rate == 0.0
        assert report.average_effectiveness == 0.0
        assert report.fix_type_breakdown == {}
        assert report.top_performing_fixes == []

    def test_single_effective_fix(self, scorer: EffectivenessScorer) -> None:
        report = scorer.aggregate([make_record("E1")])

        assert report.total_fixes == 1
        assert report.effective_fixes == 1
        assert report.effectiveness_rate == 1.0
        assert report.average_effectiveness == 1.0
        assert report.fix_type_breakdown["CODE_FIX"].count == 1
        assert report.fix_type_breakdown["CODE_FIX"].effective_count == 1

    def test_recurred_fix_drops_rate(self, scorer: EffectivenessScorer) -> None:
        report = scorer.aggregate([make_record("E1", recurrences=1)])

        assert report.effective_fixes == 0
        assert report.effectiveness_rate == 0.0
        assert report.average_effectiveness <= 0.8

    def test_filter_by_fix_type(self, scorer: EffectivenessScorer) -> None:
        records = [
            make_record("error-001", fix_type="CODE_FIX"),
            make_record("error-002", fix_type="CONFIG_CHANGE"),
        ]

        report = scorer.aggregate(records, EffectivenessFilter(fix_type="CODE_FIX"))

        assert report.total_fixes == 1
        assert "CODE_FIX" in report.fix_type_breakdown
        assert "CONFIG_CHANGE" not in report.fix_type_breakdown

    def test_filter_by_developer(self, scorer: EffectivenessScorer) -> None:
        records = [
            make_record("dev-error-001", developer_id="dev-999"),
            make_record("dev-error-002", developer_id="other-dev"),
        ]

        report = scorer.aggregate(records, EffectivenessFilter(developer_id="dev-999"))

        assert report.total_fixes == 1
        assert report.top_performing_fixes[0].error_signature == "dev-error-001"
        assert report.top_performing_fixes[0].resolution_id == "id-dev-error-001"

    def test_filter_by_time_range(self, scorer: EffectivenessScorer, clock: FakeClock) -> None:
        records = [
            make_record("old", resolved_at=clock() - timedelta(days=40)),
            make_record("new", resolved_at=clock() - timedelta(days=2)),
        ]

        report = scorer.aggregate(
            records, EffectivenessFilter(resolved_after=clock() - timedelta(days=7))
        )

        assert report.total_fixes == 1
        assert report.top_performing_fixes[0].days_since_applied == 2

    def test_untyped_fixes_are_grouped(self, scorer: EffectivenessScorer) -> None:
        report = scorer.aggregate([make_record("E1", fix_type=None)])
        assert report.fix_type_breakdown["UNSPECIFIED"].count == 1

    def test_top_fixes_sorted_and_capped(self, clock: FakeClock) -> None:
        scorer = EffectivenessScorer(TrackerConfig(max_top_fixes=3), clock=clock)
        records = [make_record(f"E{n}", recurrences=n) for n in range(5)]

        report = scorer.aggregate(list(reversed(records)))

        top = report.top_performing_fixes
        assert [t.error_signature for t in top] == ["E0", "E1", "E2"]
        assert [t.recurrence_count for t in top] == [0, 1, 2]
        assert report.fix_type_breakdown["CODE_FIX"].average_effectiveness == pytest.approx(
            sum(1 / (1 + n) for n in range(5)) / 5
        )

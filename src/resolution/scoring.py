"""Effectiveness scoring for resolution records.

A fix is scored by how often its error came back::

    score = 1 / (1 + W)

where ``W`` is the weighted number of recurrences since the record was last
(re-)resolved.  A recurrence seen within ``recurrence_window`` of the fix
weighs 1.0; one seen after the window elapsed weighs
``LATE_RECURRENCE_WEIGHT`` (0.5).  Every recurrence therefore lowers the
score, and a single recurrence caps it at 2/3, below the default 0.8
threshold.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from src.shared.config import TrackerConfig
from src.shared.constants import (
    LATE_RECURRENCE_WEIGHT,
    SECONDS_PER_DAY,
    UNSPECIFIED_FIX_TYPE,
)
from src.shared.models.resolution import (
    AggregateEffectiveness,
    EffectivenessFilter,
    FixTypeBreakdown,
    HistoryAction,
    HistoryEntry,
    ResolutionRecord,
    TopFix,
)
from src.shared.utils import utc_now

logger = logging.getLogger(__name__)


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed from *earlier* to *later* (floored)."""
    return int((later - earlier).total_seconds() // SECONDS_PER_DAY)


def recurrences_since_resolution(record: ResolutionRecord) -> list[HistoryEntry]:
    """Return RECURRED entries logged after the latest (re-)resolution."""
    entries: list[HistoryEntry] = []
    for entry in reversed(record.resolution_history):
        if entry.action != HistoryAction.RECURRED:
            break
        entries.append(entry)
    entries.reverse()
    return entries


class EffectivenessScorer:
    """Computes per-record effectiveness and aggregate statistics.

    Args:
        config: Tracker configuration (threshold, window, top-N cap).
        clock: Callable returning the current aware datetime.
    """

    def __init__(
        self,
        config: TrackerConfig,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._threshold = config.effectiveness_threshold
        self._window = config.recurrence_window
        self._max_top_fixes = config.max_top_fixes
        self._clock = clock or utc_now

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def recurrence_window(self) -> timedelta:
        return self._window

    # ------------------------------------------------------------------
    # Per-record
    # ------------------------------------------------------------------

    def recurrence_weight(self, record: ResolutionRecord) -> float:
        """Weighted recurrence count since the latest resolution.

        Recurrences without a recorded elapsed time count in full.
        """
        count = record.recurrence_count
        if count <= 0:
            return 0.0
        window_seconds = self._window.total_seconds()
        entries = recurrences_since_resolution(record)[-count:]
        weight = float(count - len(entries))
        for entry in entries:
            elapsed = entry.time_since_resolution
            if elapsed is not None and elapsed > window_seconds:
                weight += LATE_RECURRENCE_WEIGHT
            else:
                weight += 1.0
        return weight

    def score(self, record: ResolutionRecord) -> float:
        """Effectiveness in [0, 1]; 1.0 when the error never came back."""
        return 1.0 / (1.0 + self.recurrence_weight(record))

    def is_effective(self, record: ResolutionRecord) -> bool:
        return self.score(record) >= self._threshold

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def aggregate(
        self,
        records: Iterable[ResolutionRecord],
        filters: EffectivenessFilter | None = None,
        recent_recurrences: int = 0,
    ) -> AggregateEffectiveness:
        """Compute aggregate effectiveness over *records*.

        Args:
            records: A stable copy of the store's records.
            filters: Optional fix type / developer / time-range filter.
            recent_recurrences: Windowed recurrence count, computed by the
                recurrence evaluator over the same filtered records.

        Returns:
            The populated :class:`AggregateEffectiveness`.  Rates and
            averages are 0.0 when no record matches.
        """
        filters = filters or EffectivenessFilter()
        matching = [r for r in records if filters.matches(r)]
        total = len(matching)
        if total == 0:
            return AggregateEffectiveness(recent_recurrences=recent_recurrences)

        now = self._clock()
        scored = [(r, self.score(r)) for r in matching]
        effective = sum(1 for _, s in scored if s >= self._threshold)

        breakdown: dict[str, FixTypeBreakdown] = {}
        score_sums: dict[str, float] = {}
        for record, score in scored:
            key = record.fix_type or UNSPECIFIED_FIX_TYPE
            entry = breakdown.setdefault(key, FixTypeBreakdown())
            entry.count += 1
            if score >= self._threshold:
                entry.effective_count += 1
            score_sums[key] = score_sums.get(key, 0.0) + score
        for key, entry in breakdown.items():
            entry.average_effectiveness = score_sums[key] / entry.count

        logger.debug("Aggregated %d records, %d effective", total, effective)
        ranked = sorted(scored, key=lambda pair: (-pair[1], pair[0].error_signature))
        top = [
            TopFix(
                resolution_id=record.id,
                error_signature=record.error_signature,
                fix_type=record.fix_type,
                effectiveness_score=score,
                recurrence_count=record.recurrence_count,
                days_since_applied=days_between(record.resolved_at, now),
            )
            for record, score in ranked[: self._max_top_fixes]
        ]

        return AggregateEffectiveness(
            total_fixes=total,
            effective_fixes=effective,
            effectiveness_rate=effective / total,
            average_effectiveness=sum(s for _, s in scored) / total,
            fix_type_breakdown=breakdown,
            top_performing_fixes=top,
            recent_recurrences=recent_recurrences,
        )

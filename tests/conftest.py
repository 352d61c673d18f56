"""Shared test fixtures for the resolution tracker test suite."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from src.shared.config import TrackerConfig
from src.shared.models.resolution import (
    HistoryAction,
    HistoryEntry,
    ResolutionRecord,
    ResolutionStatus,
)

START = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock; call it for the current time, advance it by hand."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


def make_record(
    error_signature: str,
    fix_type: str | None = "CODE_FIX",
    recurrences: int = 0,
    resolved_at: datetime = START,
    developer_id: str | None = "dev-1",
    **fields: Any,
) -> ResolutionRecord:
    """Build a record with *recurrences* RECURRED entries one hour apart."""
    history = [
        HistoryEntry(action=HistoryAction.RESOLVED, timestamp=resolved_at, developer_id=developer_id)
    ]
    for i in range(1, recurrences + 1):
        history.append(
            HistoryEntry(
                action=HistoryAction.RECURRED,
                timestamp=resolved_at + timedelta(hours=i),
                time_since_resolution=3600.0 * i,
                within_window=True,
            )
        )
    return ResolutionRecord(
        id=f"id-{error_signature}",
        error_signature=error_signature,
        status=ResolutionStatus.RECURRED if recurrences else ResolutionStatus.RESOLVED,
        resolved_at=resolved_at,
        fix_type=fix_type,
        developer_id=developer_id,
        recurrence_count=recurrences,
        resolution_history=history,
        **fields,
    )


@pytest.fixture
def clock() -> FakeClock:
    """Provide a fake clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    """Provide a temporary snapshot directory."""
    return tmp_path / "resolution"


@pytest.fixture
def tracker_config(storage_dir: Path) -> TrackerConfig:
    """Provide a tracker config with the periodic snapshot disabled."""
    return TrackerConfig(storage_dir=str(storage_dir), persist_interval=0)


@pytest.fixture
def resolution_data() -> dict[str, Any]:
    """Provide a full set of resolution metadata."""
    return {
        "resolution_notes": "Fixed null pointer exception by adding validation",
        "fix_description": "Added null check before accessing user.profile",
        "fix_type": "CODE_FIX",
        "developer_id": "dev-123",
        "estimated_effort": 2,
        "root_cause": "Missing null validation",
        "prevention_measures": "Add comprehensive input validation",
        "related_issues": ["ISSUE-456"],
        "tags": ["validation", "null-check"],
    }

"""Error resolution Pydantic v2 data models."""
from __future__ import annotations

import hashlib
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ResolutionStatus(str, Enum):
    """Stored status of a resolution record.

    There is no UNRESOLVED member: a signature without a record is
    unresolved.
    """
    RESOLVED = "RESOLVED"
    RECURRED = "RECURRED"


class HistoryAction(str, Enum):
    """Kinds of events recorded in a resolution history."""
    RESOLVED = "RESOLVED"
    RECURRED = "RECURRED"
    RE_RESOLVED = "RE_RESOLVED"


class HistoryEntry(BaseModel):
    """One event in a record's resolution history."""
    action: HistoryAction
    timestamp: datetime
    developer_id: str | None = None
    notes: str | None = None
    context: dict[str, Any] | None = None
    time_since_resolution: float | None = None
    within_window: bool | None = None
    previous_recurrence_count: int | None = None

    model_config = {"from_attributes": True}


class ResolutionData(BaseModel):
    """Resolution metadata supplied by the error-handling layer.

    All fields are optional; missing data never fails an operation.
    """
    resolution_notes: str | None = None
    fix_description: str | None = None
    fix_type: str | None = None
    developer_id: str | None = None
    estimated_effort: float | None = None
    root_cause: str | None = None
    prevention_measures: str | None = None
    related_issues: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    model_config = {"extra": "ignore"}


# Descriptive fields copied from ResolutionData onto a record.
DESCRIPTIVE_FIELDS: tuple[str, ...] = (
    "resolution_notes",
    "fix_description",
    "fix_type",
    "developer_id",
    "estimated_effort",
    "root_cause",
    "prevention_measures",
)


def make_resolution_id(error_signature: str, created_at: datetime) -> str:
    """Return a short id for a resolution created at *created_at*."""
    seed = f"{error_signature}-{created_at.isoformat()}"
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()[:12]


class ResolutionRecord(BaseModel):
    """Tracked fix history for one error signature."""
    id: str
    error_signature: str
    status: ResolutionStatus = ResolutionStatus.RESOLVED
    resolved_at: datetime
    last_recurrence: datetime | None = None
    resolution_notes: str | None = None
    fix_description: str | None = None
    fix_type: str | None = None
    developer_id: str | None = None
    estimated_effort: float | None = None
    root_cause: str | None = None
    prevention_measures: str | None = None
    related_issues: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    recurrence_count: int = Field(default=0, ge=0)
    resolution_history: list[HistoryEntry] = Field(default_factory=list, min_length=1)

    model_config = {"from_attributes": True}


class RecurrenceResult(BaseModel):
    """Outcome of tracking a recurrence of a resolved error."""
    error_signature: str
    recurrence_count: int
    time_since_resolution: float
    within_window: bool
    effectiveness_score: float


class ResolutionStatusView(BaseModel):
    """Read-only status projection for one error signature.

    Only ``has_resolution`` and ``status`` are populated for a signature
    that was never resolved.
    """
    has_resolution: bool
    status: str
    id: str | None = None
    error_signature: str | None = None
    resolved_at: datetime | None = None
    last_recurrence: datetime | None = None
    resolution_notes: str | None = None
    fix_description: str | None = None
    fix_type: str | None = None
    developer_id: str | None = None
    estimated_effort: float | None = None
    root_cause: str | None = None
    prevention_measures: str | None = None
    related_issues: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    recurrence_count: int = 0
    resolution_history: list[HistoryEntry] = Field(default_factory=list)
    days_since_resolution: int | None = None
    effectiveness_score: float | None = None
    is_effective: bool | None = None


class EffectivenessFilter(BaseModel):
    """Filter applied before computing aggregate effectiveness."""
    fix_type: str | None = None
    developer_id: str | None = None
    resolved_after: datetime | None = None
    resolved_before: datetime | None = None

    def matches(self, record: ResolutionRecord) -> bool:
        if self.fix_type is not None and record.fix_type != self.fix_type:
            return False
        if self.developer_id is not None and record.developer_id != self.developer_id:
            return False
        if self.resolved_after is not None and record.resolved_at < self.resolved_after:
            return False
        if self.resolved_before is not None and record.resolved_at > self.resolved_before:
            return False
        return True


class FixTypeBreakdown(BaseModel):
    """Per-fix-type counts inside an aggregate report."""
    count: int = 0
    effective_count: int = 0
    average_effectiveness: float = 0.0


class TopFix(BaseModel):
    """A record ranked by effectiveness, with its identifying keys."""
    resolution_id: str
    error_signature: str
    fix_type: str | None = None
    effectiveness_score: float
    recurrence_count: int
    days_since_applied: int


class AggregateEffectiveness(BaseModel):
    """Aggregate fix-effectiveness statistics."""
    total_fixes: int = 0
    effective_fixes: int = 0
    effectiveness_rate: float = 0.0
    average_effectiveness: float = 0.0
    fix_type_breakdown: dict[str, FixTypeBreakdown] = Field(default_factory=dict)
    top_performing_fixes: list[TopFix] = Field(default_factory=list)
    recent_recurrences: int = 0


class SuggestionOptions(BaseModel):
    """Options for fix suggestion lookups."""
    min_success_rate: float = Field(default=0.8, ge=0.0, le=1.0)
    include_ineffective: bool = False
    max_results: int = Field(default=10, ge=1)


class FixSuggestion(BaseModel):
    """Aggregate over every record sharing a fix type."""
    fix_type: str
    application_count: int
    success_count: int
    success_rate: float
    confidence: float
    average_effectiveness: float
    error_signatures: list[str] = Field(default_factory=list)
    fix_description: str | None = None
    root_cause: str | None = None
    prevention_measures: str | None = None

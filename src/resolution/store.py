"""Resolution store -- in-memory keyed collection of resolution records."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any, TypeVar

from pydantic import ValidationError as PydanticValidationError

from src.shared.errors import ResolutionNotFoundError, ValidationError
from src.shared.models.resolution import (
    DESCRIPTIVE_FIELDS,
    HistoryAction,
    HistoryEntry,
    ResolutionData,
    ResolutionRecord,
    ResolutionStatus,
    make_resolution_id,
)
from src.shared.utils import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime]


def validate_signature(error_signature: Any) -> str:
    """Reject a missing, blank or non-string error signature.

    Raises:
        ValidationError: If the signature cannot identify a record.
    """
    if not isinstance(error_signature, str) or not error_signature.strip():
        raise ValidationError(detail="error_signature must be a non-empty string")
    return error_signature


def coerce_resolution_data(
    data: ResolutionData | Mapping[str, Any] | None,
) -> ResolutionData:
    """Normalise caller input into :class:`ResolutionData`.

    ``None`` and empty mappings are accepted; only values of the wrong type
    are rejected.
    """
    if data is None:
        return ResolutionData()
    if isinstance(data, ResolutionData):
        return data
    try:
        return ResolutionData.model_validate(dict(data))
    except (PydanticValidationError, TypeError, ValueError) as exc:
        raise ValidationError(detail=f"Invalid resolution data: {exc}") from exc


def _merge_unique(existing: Iterable[str], extra: Iterable[str]) -> list[str]:
    merged = list(existing)
    for item in extra:
        if item not in merged:
            merged.append(item)
    return merged


class ResolutionStore:
    """Keyed collection of :class:`ResolutionRecord` objects.

    All mutations run under a single ``asyncio.Lock`` so that updates to
    ``recurrence_count`` and ``resolution_history`` are never lost.  Reads
    return deep copies taken without yielding to the event loop, so callers
    always see a consistent state.

    Args:
        clock: Callable returning the current aware datetime.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._records: dict[str, ResolutionRecord] = {}
        self._lock = asyncio.Lock()
        self._clock = clock or utc_now
        self._version = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def lock(self) -> asyncio.Lock:
        """The writer lock shared with snapshotting and cleanup."""
        return self._lock

    @property
    def version(self) -> int:
        """Counter bumped on every mutation."""
        return self._version

    def now(self) -> datetime:
        return self._clock()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, error_signature: object) -> bool:
        return error_signature in self._records

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def lookup(self, error_signature: str) -> ResolutionRecord | None:
        """Return a copy of the record for *error_signature*, if any."""
        record = self._records.get(error_signature)
        return record.model_copy(deep=True) if record is not None else None

    def records(self) -> list[ResolutionRecord]:
        """Return a stable copy of every record."""
        return [r.model_copy(deep=True) for r in self._records.values()]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def mark_resolved(
        self,
        error_signature: str,
        data: ResolutionData | Mapping[str, Any] | None = None,
    ) -> ResolutionRecord:
        """Create (or overwrite) the record for *error_signature*.

        Returns:
            A copy of the new record.
        """
        validate_signature(error_signature)
        payload = coerce_resolution_data(data)
        if payload.resolution_notes is None:
            logger.warning("Resolution for %s recorded without notes", error_signature)

        async with self._lock:
            now = self._clock()
            record = ResolutionRecord(
                id=make_resolution_id(error_signature, now),
                error_signature=error_signature,
                status=ResolutionStatus.RESOLVED,
                resolved_at=now,
                related_issues=list(payload.related_issues),
                tags=list(payload.tags),
                recurrence_count=0,
                resolution_history=[
                    HistoryEntry(
                        action=HistoryAction.RESOLVED,
                        timestamp=now,
                        developer_id=payload.developer_id,
                        notes=payload.resolution_notes,
                    )
                ],
                **{name: getattr(payload, name) for name in DESCRIPTIVE_FIELDS},
            )
            if error_signature in self._records:
                logger.info("Overwriting existing resolution for %s", error_signature)
            self._records[error_signature] = record
            self._version += 1
            logger.debug("Marked %s resolved (id=%s)", error_signature, record.id)
            return record.model_copy(deep=True)

    async def re_resolve(
        self,
        error_signature: str,
        data: ResolutionData | Mapping[str, Any] | None = None,
    ) -> ResolutionRecord:
        """Apply a new fix to an existing record.

        Supplied descriptive fields replace the stored ones; tags and
        related issues are appended.  The recurrence count is reset.

        Raises:
            ResolutionNotFoundError: If no record exists.
        """
        validate_signature(error_signature)
        payload = coerce_resolution_data(data)

        async with self._lock:
            record = self._records.get(error_signature)
            if record is None:
                raise ResolutionNotFoundError(error_signature)

            now = max(
                self._clock(),
                record.resolved_at,
                record.resolution_history[-1].timestamp,
            )
            for name in DESCRIPTIVE_FIELDS:
                value = getattr(payload, name)
                if value is not None:
                    setattr(record, name, value)
            record.tags = _merge_unique(record.tags, payload.tags)
            record.related_issues = _merge_unique(
                record.related_issues, payload.related_issues
            )
            record.resolution_history.append(
                HistoryEntry(
                    action=HistoryAction.RE_RESOLVED,
                    timestamp=now,
                    developer_id=payload.developer_id,
                    notes=payload.resolution_notes,
                    previous_recurrence_count=record.recurrence_count,
                )
            )
            record.recurrence_count = 0
            record.last_recurrence = None
            record.status = ResolutionStatus.RESOLVED
            record.resolved_at = now
            self._version += 1
            logger.info("Re-resolved %s", error_signature)
            return record.model_copy(deep=True)

    async def update(
        self,
        error_signature: str,
        mutator: Callable[[ResolutionRecord, datetime], T],
    ) -> T | None:
        """Apply *mutator* to the live record under the writer lock.

        The mutator receives the record and the current time.

        Returns:
            The mutator's result, or ``None`` if no record exists.
        """
        async with self._lock:
            record = self._records.get(error_signature)
            if record is None:
                return None
            result = mutator(record, self._clock())
            self._version += 1
            return result

    async def remove_where(
        self, predicate: Callable[[ResolutionRecord], bool]
    ) -> list[str]:
        """Delete every record matching *predicate*.

        Returns:
            The removed error signatures.
        """
        async with self._lock:
            removed = [sig for sig, rec in self._records.items() if predicate(rec)]
            for sig in removed:
                del self._records[sig]
            if removed:
                self._version += 1
            return removed

    async def replace_all(self, records: Iterable[ResolutionRecord]) -> None:
        """Replace the whole collection, e.g. after loading a snapshot."""
        async with self._lock:
            self._records = {r.error_signature: r for r in records}
            self._version += 1

    async def clear(self) -> None:
        """Drop every record, e.g. when the tracker shuts down."""
        async with self._lock:
            self._records.clear()
            self._version += 1

    # ------------------------------------------------------------------
    # Test-only seam
    # ------------------------------------------------------------------

    def set_resolved_at_for_testing(self, error_signature: str, when: datetime) -> None:
        """TEST ONLY: overwrite ``resolved_at`` of an existing record.

        Raises:
            ResolutionNotFoundError: If no record exists.
        """
        record = self._records.get(error_signature)
        if record is None:
            raise ResolutionNotFoundError(error_signature)
        record.resolved_at = when

"""Recurrence evaluator -- records errors that come back after a fix."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any

from src.resolution.scoring import EffectivenessScorer
from src.resolution.store import ResolutionStore, validate_signature
from src.shared.errors import ValidationError
from src.shared.models.resolution import (
    HistoryAction,
    HistoryEntry,
    RecurrenceResult,
    ResolutionRecord,
    ResolutionStatus,
)
from src.shared.utils import json_safe

logger = logging.getLogger(__name__)

# Floor for elapsed time so a recurrence is never reported at zero
# seconds on clocks with coarse resolution.
_MIN_ELAPSED_SECONDS = 1e-6


def _normalise_context(context: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Copy *context* into plain JSON values so every snapshot can store it."""
    if not context:
        return None
    if not isinstance(context, Mapping):
        raise ValidationError(detail="occurrence context must be a mapping")
    try:
        return json_safe(dict(context))
    except ValueError as exc:
        raise ValidationError(detail=f"occurrence context is not serialisable: {exc}") from exc


def count_recent_recurrences(
    records: Iterable[ResolutionRecord], now: datetime, window: timedelta
) -> int:
    """Count RECURRED history events timestamped within *window* before *now*."""
    cutoff = now - window
    return sum(
        1
        for record in records
        for entry in record.resolution_history
        if entry.action == HistoryAction.RECURRED and entry.timestamp >= cutoff
    )


class RecurrenceEvaluator:
    """Detects and records recurrence of previously resolved errors.

    The recurrence window only classifies a recurrence as early or late
    (see :mod:`src.resolution.scoring`); it never decides whether the
    recurrence is recorded.

    Args:
        store: The shared resolution store.
        scorer: Scorer used to report the post-recurrence effectiveness.
    """

    def __init__(self, store: ResolutionStore, scorer: EffectivenessScorer) -> None:
        self._store = store
        self._scorer = scorer

    async def track(
        self,
        error_signature: str,
        context: dict[str, Any] | None = None,
    ) -> RecurrenceResult | None:
        """Record that *error_signature* was observed again.

        Returns:
            The recurrence summary, or ``None`` when the signature was never
            resolved (a normal event, not an error).

        Raises:
            ValidationError: If *context* is not a mapping or cannot be
                stored as JSON.
        """
        validate_signature(error_signature)
        stored_context = _normalise_context(context)
        window_seconds = self._scorer.recurrence_window.total_seconds()

        def _apply(record: ResolutionRecord, now: datetime) -> RecurrenceResult:
            now = max(now, record.resolution_history[-1].timestamp)
            elapsed = max(
                (now - record.resolved_at).total_seconds(), _MIN_ELAPSED_SECONDS
            )
            within_window = elapsed <= window_seconds
            record.recurrence_count += 1
            record.status = ResolutionStatus.RECURRED
            record.last_recurrence = now
            record.resolution_history.append(
                HistoryEntry(
                    action=HistoryAction.RECURRED,
                    timestamp=now,
                    context=stored_context,
                    time_since_resolution=elapsed,
                    within_window=within_window,
                    notes=f"Error recurred after {round(elapsed / 3600)} hours",
                )
            )
            return RecurrenceResult(
                error_signature=error_signature,
                recurrence_count=record.recurrence_count,
                time_since_resolution=elapsed,
                within_window=within_window,
                effectiveness_score=self._scorer.score(record),
            )

        result = await self._store.update(error_signature, _apply)
        if result is None:
            logger.debug("Recurrence of untracked signature %s ignored", error_signature)
            return None
        logger.info(
            "Recurrence #%d of %s (%.0fs after fix)",
            result.recurrence_count,
            error_signature,
            result.time_since_resolution,
        )
        return result

    def recent_recurrences(
        self, records: Iterable[ResolutionRecord], now: datetime
    ) -> int:
        """Count RECURRED events within the recurrence window before *now*."""
        return count_recent_recurrences(records, now, self._scorer.recurrence_window)

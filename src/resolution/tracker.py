"""Error resolution tracker -- lifecycle owner and public operation surface.

Usage::

    async with ResolutionTracker(TrackerConfig(storage_dir="./data")) as tracker:
        await tracker.mark_resolved("E1", {"resolution_notes": "fix A"})
        await tracker.track_recurrence("E1", {"component": "api"})
        status = await tracker.get_status("E1")

The tracker is an explicitly constructed instance; the error-handling layer
that owns it is responsible for calling :meth:`ResolutionTracker.shutdown`
(or using it as an async context manager).
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from src.resolution.recurrence import RecurrenceEvaluator
from src.resolution.scoring import EffectivenessScorer, days_between
from src.resolution.snapshot import SnapshotStore
from src.resolution.store import ResolutionStore, validate_signature
from src.resolution.suggestions import FixSuggestionEngine
from src.shared.config import TrackerConfig
from src.shared.constants import UNRESOLVED_STATUS
from src.shared.errors import PersistenceError, TrackerShutdownError, ValidationError
from src.shared.logging import signature_context
from src.shared.models.resolution import (
    AggregateEffectiveness,
    EffectivenessFilter,
    FixSuggestion,
    RecurrenceResult,
    ResolutionData,
    ResolutionRecord,
    ResolutionStatusView,
    SuggestionOptions,
)
from src.shared.utils import utc_now

logger = logging.getLogger(__name__)


def _coerce_model(model: type, value: Any) -> Any:
    if value is None:
        return model()
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(dict(value))
    except (PydanticValidationError, TypeError, ValueError) as exc:
        raise ValidationError(detail=f"Invalid {model.__name__}: {exc}") from exc


class ResolutionTracker:
    """Tracks how errors get fixed and whether the fixes hold.

    On construction inside a running event loop the snapshot load is
    scheduled immediately; otherwise it starts with the first operation.
    Every operation waits for the load to finish before touching the store.

    Args:
        config: Tracker configuration.  Defaults to :class:`TrackerConfig`
            (environment overrides apply).
        clock: Callable returning the current aware datetime.
    """

    def __init__(
        self,
        config: TrackerConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or TrackerConfig()
        self._clock = clock or utc_now
        self._store = ResolutionStore(clock=self._clock)
        self._scorer = EffectivenessScorer(self._config, clock=self._clock)
        self._recurrence = RecurrenceEvaluator(self._store, self._scorer)
        self._suggestions = FixSuggestionEngine(self._scorer, self._config.confidence_z)
        self._snapshots = SnapshotStore(self._config.storage_dir)

        self._load_task: asyncio.Task[None] | None = None
        self._persist_task: asyncio.Task[None] | None = None
        self._persist_lock = asyncio.Lock()
        self._persisted_version = 0
        self._loaded = False
        self._closed = False

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # No running loop -- defer loading to the first operation
            pass
        else:
            self.start()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def config(self) -> TrackerConfig:
        return self._config

    @property
    def is_ready(self) -> bool:
        """Whether the snapshot has been loaded."""
        return self._loaded and not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    def start(self) -> asyncio.Task[None]:
        """Schedule the snapshot load.  Safe to call more than once.

        Must be called from a running event loop.

        Returns:
            The load task shared by every caller.
        """
        self._check_open()
        if self._load_task is None:
            self._load_task = asyncio.get_running_loop().create_task(self._initialize())
        return self._load_task

    async def wait_ready(self) -> None:
        """Start the tracker if needed and wait for the load to complete.

        Raises:
            TrackerShutdownError: If the tracker is, or gets, shut down
                before the load completes.
        """
        load_task = self.start()
        try:
            await asyncio.shield(load_task)
        except asyncio.CancelledError:
            # Load cancelled by shutdown, not the caller's own task
            if self._closed and load_task.cancelled():
                raise TrackerShutdownError() from None
            raise
        self._check_open()

    async def _initialize(self) -> None:
        records = await self._snapshots.load()
        await self._store.replace_all(records)
        self._persisted_version = self._store.version
        self._loaded = True

        interval = self._config.persist_interval
        if interval > 0:
            self._persist_task = asyncio.get_running_loop().create_task(
                self._persist_periodically(interval)
            )
        logger.info(
            "Resolution tracker ready with %d records (storage=%s)",
            len(self._store),
            self._snapshots.path,
        )

    async def _persist_periodically(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            if self._store.version != self._persisted_version:
                # Shielded so shutdown never interrupts a write in progress
                await asyncio.shield(self._persist())

    async def shutdown(self) -> None:
        """Stop the timer, flush a final snapshot and release the store.

        Idempotent.  When the initial load never completed no snapshot is
        written, so an existing file is never overwritten with an empty store.
        """
        if self._closed:
            return
        self._closed = True

        if self._persist_task is not None:
            self._persist_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._persist_task
            self._persist_task = None

        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._load_task

        if self._loaded:
            await self._persist()
        await self._store.clear()
        logger.info("Resolution tracker shut down")

    async def __aenter__(self) -> ResolutionTracker:
        await self.wait_ready()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    def _check_open(self) -> None:
        if self._closed:
            raise TrackerShutdownError()

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def mark_resolved(
        self,
        error_signature: str,
        data: ResolutionData | Mapping[str, Any] | None = None,
    ) -> ResolutionRecord:
        """Record that *error_signature* was fixed."""
        validate_signature(error_signature)
        await self.wait_ready()
        with signature_context(error_signature):
            return await self._store.mark_resolved(error_signature, data)

    async def track_recurrence(
        self,
        error_signature: str,
        context: dict[str, Any] | None = None,
    ) -> RecurrenceResult | None:
        """Record that a resolved error was observed again.

        Returns ``None`` for a signature that was never resolved.
        """
        validate_signature(error_signature)
        await self.wait_ready()
        with signature_context(error_signature):
            return await self._recurrence.track(error_signature, context)

    async def re_resolve(
        self,
        error_signature: str,
        data: ResolutionData | Mapping[str, Any] | None = None,
    ) -> ResolutionRecord:
        """Apply a new fix to a tracked error.

        Raises:
            ResolutionNotFoundError: If the error was never resolved.
        """
        validate_signature(error_signature)
        await self.wait_ready()
        with signature_context(error_signature):
            return await self._store.re_resolve(error_signature, data)

    async def cleanup(self, retention_days: int | None = None) -> list[str]:
        """Delete records resolved more than *retention_days* ago.

        Defaults to ``config.retention_days``.  The removal and the
        following snapshot run under the persist lock so no concurrent
        snapshot can resurrect deleted records.

        Returns:
            The removed error signatures.
        """
        days = self._config.retention_days if retention_days is None else retention_days
        if days < 0:
            raise ValidationError(detail="retention_days must be >= 0")
        await self.wait_ready()

        cutoff = self._clock() - timedelta(days=days)
        async with self._persist_lock:
            removed = await self._store.remove_where(lambda r: r.resolved_at < cutoff)
            await self._write_snapshot()
        logger.info("Cleanup removed %d resolutions older than %d days", len(removed), days)
        return removed

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def get_status(self, error_signature: str) -> ResolutionStatusView:
        """Return the resolution status projection for *error_signature*."""
        validate_signature(error_signature)
        await self.wait_ready()
        record = self._store.lookup(error_signature)
        if record is None:
            return ResolutionStatusView(has_resolution=False, status=UNRESOLVED_STATUS)

        score = self._scorer.score(record)
        return ResolutionStatusView(
            has_resolution=True,
            status=record.status.value,
            days_since_resolution=days_between(record.resolved_at, self._clock()),
            effectiveness_score=score,
            is_effective=score >= self._scorer.threshold,
            **record.model_dump(exclude={"status"}),
        )

    async def get_suggested_fixes(
        self,
        error_signature: str,
        options: SuggestionOptions | Mapping[str, Any] | None = None,
    ) -> list[FixSuggestion]:
        """Recommend fix types that worked for errors like this one."""
        validate_signature(error_signature)
        opts = _coerce_model(SuggestionOptions, options)
        await self.wait_ready()
        return self._suggestions.suggest(
            self._store.lookup(error_signature), self._store.records(), opts
        )

    async def get_aggregate_effectiveness(
        self,
        filters: EffectivenessFilter | Mapping[str, Any] | None = None,
    ) -> AggregateEffectiveness:
        """Aggregate fix effectiveness, optionally filtered."""
        flt = _coerce_model(EffectivenessFilter, filters)
        await self.wait_ready()
        records = [r for r in self._store.records() if flt.matches(r)]
        recent = self._recurrence.recent_recurrences(records, self._clock())
        return self._scorer.aggregate(records, recent_recurrences=recent)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def persist_to_disk(self) -> bool:
        """Write a snapshot now.

        Returns:
            ``True`` on success.  Failures are logged and never raised; the
            in-memory store stays authoritative and a later attempt may
            succeed.
        """
        await self.wait_ready()
        return await self._persist()

    async def _persist(self) -> bool:
        async with self._persist_lock:
            return await self._write_snapshot()

    async def _write_snapshot(self) -> bool:
        # Caller holds the persist lock
        async with self._store.lock:
            records = self._store.records()
            version = self._store.version
        try:
            path = await self._snapshots.save(records)
        except PersistenceError as exc:
            logger.warning("Resolution snapshot failed (non-blocking): %s", exc.detail)
            return False
        self._persisted_version = version
        logger.debug("Persisted %d resolutions to %s", len(records), path)
        return True

    # ------------------------------------------------------------------
    # Test-only seam
    # ------------------------------------------------------------------

    def set_resolved_at_for_testing(self, error_signature: str, when: datetime) -> None:
        """TEST ONLY: backdate a record's ``resolved_at``."""
        self._store.set_resolved_at_for_testing(error_signature, when)

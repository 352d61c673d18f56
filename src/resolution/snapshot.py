"""Snapshot persistence -- whole-store JSON snapshots with atomic writes."""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from src.shared.constants import SNAPSHOT_FILENAME, SNAPSHOT_SCHEMA_VERSION
from src.shared.errors import PersistenceError
from src.shared.models.resolution import ResolutionRecord
from src.shared.utils import atomic_write_json, now_iso, read_json

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Reads and writes the full record set as one JSON document.

    Layout::

        {"schema_version": 1, "saved_at": "...", "records": [...]}

    Writes go to a temp file that is fsynced and then renamed over the
    snapshot, so a crash mid-write leaves the previous snapshot intact.
    File I/O runs in a worker thread to keep the event loop free.

    Args:
        storage_dir: Directory holding the snapshot file.
    """

    def __init__(self, storage_dir: str | Path) -> None:
        self._dir = Path(storage_dir)
        self._path = self._dir / SNAPSHOT_FILENAME

    @property
    def path(self) -> Path:
        """Return the snapshot file path."""
        return self._path

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    async def load(self) -> list[ResolutionRecord]:
        """Load every valid record from the snapshot.

        A missing, unreadable or corrupt snapshot yields an empty list;
        records that fail validation are skipped.  Never raises.
        """
        try:
            raw = await asyncio.to_thread(read_json, self._path)
        except FileNotFoundError:
            logger.info("No existing resolution snapshot at %s, starting fresh", self._path)
            return []
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as exc:
            logger.warning("Resolution snapshot %s unreadable, starting fresh: %s", self._path, exc)
            return []
        return self._parse(raw)

    def _parse(self, raw: Any) -> list[ResolutionRecord]:
        if not isinstance(raw, dict) or not isinstance(raw.get("records"), list):
            logger.warning("Resolution snapshot %s has unexpected layout, ignoring", self._path)
            return []

        version = raw.get("schema_version")
        if version != SNAPSHOT_SCHEMA_VERSION:
            logger.warning(
                "Resolution snapshot schema %s differs from %s, loading best effort",
                version,
                SNAPSHOT_SCHEMA_VERSION,
            )

        records: list[ResolutionRecord] = []
        seen: set[str] = set()
        for item in raw["records"]:
            try:
                record = ResolutionRecord.model_validate(item)
            except PydanticValidationError as exc:
                logger.warning("Skipping invalid resolution record: %s", exc)
                continue
            if record.error_signature in seen:
                logger.warning("Duplicate record for %s in snapshot, keeping last", record.error_signature)
                records = [r for r in records if r.error_signature != record.error_signature]
            seen.add(record.error_signature)
            records.append(record)
        logger.info("Loaded %d resolution records from %s", len(records), self._path)
        return records

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    async def save(self, records: list[ResolutionRecord]) -> Path:
        """Atomically write *records* as the new snapshot.

        Raises:
            PersistenceError: If the snapshot could not be written.
        """
        try:
            document = {
                "schema_version": SNAPSHOT_SCHEMA_VERSION,
                "saved_at": now_iso(),
                "records": [r.model_dump(mode="json") for r in records],
            }
            await asyncio.to_thread(atomic_write_json, self._path, document)
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(
                detail=f"Failed to write resolution snapshot {self._path}: {exc}"
            ) from exc
        return self._path

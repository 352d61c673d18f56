"""Shared utility functions."""
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return utc_now().isoformat()


def json_safe(data: Any) -> Any:
    """Return a copy of *data* holding only JSON types.

    Values ``json`` cannot encode are replaced by their ``str()``, the same
    fallback :func:`atomic_write_json` uses; keys that are not strings,
    numbers, booleans or ``None`` are dropped.

    Raises:
        ValueError: If *data* contains a circular reference.
    """
    return json.loads(json.dumps(data, default=str, skipkeys=True))


def atomic_write_json(path: Path | str, data: Any) -> None:
    """Write JSON data atomically by writing to a temp file then renaming.

    Args:
        path: Target file path.
        data: JSON-serialisable data to write.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
            f.flush()
            os.fsync(f.fileno())
        os.replace(str(tmp_path), str(path))
    except BaseException:
        # Clean up temp file on any failure
        if tmp_path.exists():
            tmp_path.unlink()
        raise


def read_json(path: Path | str) -> Any:
    """Read JSON data from a file.

    Unlike a lenient loader this propagates ``FileNotFoundError``,
    ``json.JSONDecodeError`` and ``OSError`` so callers can tell a
    missing snapshot from a corrupt one.
    """
    with open(Path(path), "r", encoding="utf-8") as f:
        return json.load(f)

"""Tracker configuration using pydantic-settings, with an optional YAML loader."""
from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings


class TrackerConfig(BaseSettings):
    """Configuration for the error resolution tracker.

    Every field can be overridden from the environment through its
    validation alias, or passed by name.
    """
    storage_dir: str = Field(
        default="./data/resolution", validation_alias="RESOLUTION_STORAGE_DIR"
    )
    recurrence_window: timedelta = Field(
        default=timedelta(days=7), validation_alias="RECURRENCE_WINDOW"
    )
    effectiveness_threshold: float = Field(
        default=0.8, ge=0.0, le=1.0, validation_alias="EFFECTIVENESS_THRESHOLD"
    )
    # Seconds between periodic snapshots; 0 disables the timer.
    persist_interval: float = Field(
        default=300.0, ge=0.0, validation_alias="PERSIST_INTERVAL"
    )
    retention_days: int = Field(default=90, ge=0, validation_alias="RETENTION_DAYS")
    confidence_z: float = Field(default=0.4, gt=0.0, validation_alias="CONFIDENCE_Z")
    max_top_fixes: int = Field(default=10, ge=1, validation_alias="MAX_TOP_FIXES")
    log_level: str = Field(default="info", validation_alias="LOG_LEVEL")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }

    @property
    def storage_path(self) -> Path:
        """Return ``storage_dir`` as a :class:`~pathlib.Path`."""
        return Path(self.storage_dir)


def load_tracker_config(path: Path | str | None = None) -> TrackerConfig:
    """Load tracker configuration from a YAML file.

    Settings may live at the top level or under a ``resolution_tracker``
    section.  Unknown keys are silently ignored so that forward-compatible
    config files work.

    Args:
        path: Path to config YAML.  If ``None`` or the file does not
              exist, returns defaults (still subject to env overrides).

    Returns:
        Populated configuration.
    """
    if path is None:
        return TrackerConfig()

    path = Path(path)
    if not path.exists():
        return TrackerConfig()

    with open(path, "r", encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}

    section = raw.get("resolution_tracker", raw)
    if not isinstance(section, dict):
        return TrackerConfig()

    valid = set(TrackerConfig.model_fields)
    return TrackerConfig(**{k: v for k, v in section.items() if k in valid})

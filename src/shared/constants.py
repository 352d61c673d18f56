"""Shared constants used across the resolution tracker."""
from __future__ import annotations

# Application version
VERSION: str = "1.0.0"

# Service name used in structured log entries
SERVICE_NAME: str = "resolution-tracker"

# Snapshot settings
SNAPSHOT_FILENAME: str = "error-resolutions.json"
SNAPSHOT_SCHEMA_VERSION: int = 1

# Time
SECONDS_PER_DAY: int = 24 * 60 * 60

# Logical status reported for signatures with no record
UNRESOLVED_STATUS: str = "UNRESOLVED"

# Group key for records resolved without a fix type
UNSPECIFIED_FIX_TYPE: str = "UNSPECIFIED"

# Weight of a recurrence observed after the recurrence window elapsed
LATE_RECURRENCE_WEIGHT: float = 0.5

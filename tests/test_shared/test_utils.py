"""Tests for shared utilities and structured logging."""
from __future__ import annotations

import json
import logging
import sys
from datetime import timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from src.shared.logging import (
    JSONFormatter,
    setup_logging,
    signature_context,
    trace_id_var,
)
from src.shared.utils import atomic_write_json, json_safe, now_iso, read_json, utc_now


class TestAtomicWriteJson:
    """Test atomic_write_json utility."""

    def test_writes_valid_json(self, tmp_path: Path) -> None:
        target = tmp_path / "test.json"
        atomic_write_json(target, {"key": "value"})
        data = json.loads(target.read_text(encoding="utf-8"))
        assert data["key"] == "value"

    def test_creates_parent_dirs(self, tmp_path: Path) -> None:
        target = tmp_path / "sub" / "dir" / "test.json"
        atomic_write_json(target, {"a": 1})
        assert target.exists()

    def test_overwrites_existing(self, tmp_path: Path) -> None:
        target = tmp_path / "test.json"
        atomic_write_json(target, {"v": 1})
        atomic_write_json(target, {"v": 2})
        assert read_json(target)["v"] == 2

    def test_no_tmp_file_after_success(self, tmp_path: Path) -> None:
        target = tmp_path / "test.json"
        atomic_write_json(target, {"ok": True})
        assert not (tmp_path / "test.json.tmp").exists()

    def test_crash_simulation_cleanup(self, tmp_path: Path) -> None:
        """Simulate a write failure and verify cleanup."""
        target = tmp_path / "test.json"
        with patch("json.dump", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                atomic_write_json(target, {"crash": True})
        assert not (tmp_path / "test.json.tmp").exists()
        assert not target.exists()


class TestReadJson:
    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            read_json(tmp_path / "missing.json")

    def test_corrupt_file_raises(self, tmp_path: Path) -> None:
        target = tmp_path / "bad.json"
        target.write_text("{oops", encoding="utf-8")
        with pytest.raises(json.JSONDecodeError):
            read_json(target)


class TestJsonSafe:
    def test_unknown_values_become_strings(self) -> None:
        class _Opaque:
            def __str__(self) -> str:
                return "opaque"

        assert json_safe({"obj": _Opaque(), "n": 1, "items": ("a", 2)}) == {
            "obj": "opaque",
            "n": 1,
            "items": ["a", 2],
        }

    def test_non_string_keys(self) -> None:
        assert json_safe({1: "one", ("a", "b"): "dropped"}) == {"1": "one"}

    def test_circular_reference_raises(self) -> None:
        data: dict = {}
        data["self"] = data
        with pytest.raises(ValueError):
            json_safe(data)


class TestTime:
    def test_utc_now_is_aware(self) -> None:
        assert utc_now().tzinfo == timezone.utc

    def test_now_iso_has_offset(self) -> None:
        assert now_iso().endswith("+00:00")


class TestJSONFormatter:
    def _record(self, msg: str = "hello %s", args: tuple = ("world",)) -> logging.LogRecord:
        return logging.LogRecord("src.resolution.tracker", logging.INFO, __file__, 1, msg, args, None)

    def test_fields(self) -> None:
        entry = json.loads(JSONFormatter("resolution-tracker").format(self._record()))
        assert entry["service_name"] == "resolution-tracker"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "src.resolution.tracker"
        assert entry["message"] == "hello world"

    def test_trace_id_from_context(self) -> None:
        token = trace_id_var.set("trace-123")
        try:
            entry = json.loads(JSONFormatter().format(self._record()))
        finally:
            trace_id_var.reset(token)
        assert entry["trace_id"] == "trace-123"

    def test_signature_context(self) -> None:
        formatter = JSONFormatter()
        with signature_context("E-42"):
            inside = json.loads(formatter.format(self._record()))
        outside = json.loads(formatter.format(self._record()))

        assert inside["error_signature"] == "E-42"
        assert "error_signature" not in outside

    def test_exception_text(self) -> None:
        try:
            raise ValueError("bad")
        except ValueError:
            record = self._record()
            record.exc_info = sys.exc_info()
        entry = json.loads(JSONFormatter().format(record))
        assert entry["exception"] == "bad"


class TestSetupLogging:
    def test_configures_single_handler(self) -> None:
        logger = setup_logging("resolution-tracker", "debug", logger_name="test_setup_logging")
        setup_logging("resolution-tracker", "debug", logger_name="test_setup_logging")

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
        logger.handlers.clear()

"""Tests for structured logging."""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
from pathlib import Path

from sdd_mcp.logging import LOGGER_NAME, setup_logging


def _records(log_path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in log_path.read_text().strip().split("\n")]


def _flush(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        handler.flush()


class TestSetupLogging:
    def test_creates_log_file(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("tool_call", extra={"tool": "sdd-init", "args_data": {"name": "api"}})
        _flush(logger)
        [record] = _records(tmp_path / "sdd-mcp.log")
        assert record["msg"] == "tool_call"
        assert record["tool"] == "sdd-init"
        assert record["args"] == {"name": "api"}
        assert record["logger"] == LOGGER_NAME

    def test_correlation_and_session_ids(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("tool_call", extra={"correlation_id": "c-1", "session_id": "s-1", "duration_ms": 4.5})
        _flush(logger)
        record = _records(tmp_path / "sdd-mcp.log")[-1]
        assert record["correlation_id"] == "c-1"
        assert record["session_id"] == "s-1"
        assert record["duration_ms"] == 4.5

    def test_child_loggers_share_file(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logging.getLogger("sdd_mcp.sessions").info("sessions_reaped", extra={"data": {"count": 2}})
        _flush(logger)
        record = _records(tmp_path / "sdd-mcp.log")[-1]
        assert record["logger"] == "sdd_mcp.sessions"
        assert record["data"] == {"count": 2}

    def test_level_from_string(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path, level="warning")
        assert logger.level == logging.WARNING
        logger.info("dropped")
        logger.warning("kept")
        _flush(logger)
        assert [r["msg"] for r in _records(tmp_path / "sdd-mcp.log")] == ["kept"]

    def test_unknown_level_defaults_to_info(self, tmp_path: Path) -> None:
        assert setup_logging(tmp_path, level="chatty").level == logging.INFO

    def test_idempotent_setup(self, tmp_path: Path) -> None:
        logger1 = setup_logging(tmp_path)
        logger2 = setup_logging(tmp_path)
        assert logger1 is logger2
        assert len(logger1.handlers) == 1

    def test_new_directory_replaces_handler(self, tmp_path: Path) -> None:
        setup_logging(tmp_path / "a")
        logger = setup_logging(tmp_path / "b")
        file_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].baseFilename == os.path.abspath(str(tmp_path / "b" / "sdd-mcp.log"))

    def teardown_method(self) -> None:
        """Clean up the sdd_mcp logger handlers between tests."""
        logger = logging.getLogger(LOGGER_NAME)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)

"""Tests for the logging service."""

import json
import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog

from warehouse.services.logging import LoggingService, setup_logging


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)
    structlog.reset_defaults()


class TestLoggingService:
    """Test cases for LoggingService."""

    def test_development_console_is_human_readable(self, capsys: pytest.CaptureFixture[str]) -> None:
        with patch.dict(os.environ, {"ENVIRONMENT": "development"}):
            service = LoggingService(log_level="INFO")
            service.configure()

            service.get_logger("test").info("cache hit", filename="1.20.1-1.20.1.jar")

        captured = capsys.readouterr()
        assert "cache hit" in captured.err
        assert not captured.err.strip().startswith("{")
        # Command output owns stdout
        assert captured.out == ""

    def test_production_console_is_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        with patch.dict(os.environ, {"ENVIRONMENT": "production"}):
            service = LoggingService(log_level="INFO")
            service.configure()

            service.get_logger("test").info("cache miss", game="minecraft")

        lines = [line for line in capsys.readouterr().err.splitlines() if line.strip()]
        parsed = json.loads(lines[-1])
        assert parsed["event"] == "cache miss"
        assert parsed["game"] == "minecraft"
        assert parsed["level"] == "info"
        assert "timestamp" in parsed

    def test_level_filters_lower_events(self, capsys: pytest.CaptureFixture[str]) -> None:
        service = LoggingService(log_level="warning")
        service.configure()
        logger = service.get_logger("test")

        logger.info("quiet")
        logger.warning("loud")

        err = capsys.readouterr().err
        assert "quiet" not in err
        assert "loud" in err

    def test_file_logging_writes_json(self, tmp_path: Path) -> None:
        log_dir = tmp_path / "logs"
        service = LoggingService(log_level="DEBUG", log_dir=log_dir)
        service.configure()
        logger = service.get_logger("test")

        logger.info("sweep finished", entries_removed=3)
        logger.error("sweep failed", operation="sweep")
        for handler in logging.getLogger().handlers:
            handler.flush()

        app_lines = (log_dir / "app.log").read_text(encoding="utf-8").splitlines()
        error_lines = (log_dir / "error.log").read_text(encoding="utf-8").splitlines()
        assert [json.loads(line)["event"] for line in app_lines] == ["sweep finished", "sweep failed"]
        assert [json.loads(line)["event"] for line in error_lines] == ["sweep failed"]

    def test_httpx_request_logs_are_quietened(self) -> None:
        LoggingService(log_level="DEBUG").configure()

        assert logging.getLogger("httpx").level == logging.WARNING


def test_setup_logging_sets_environment() -> None:
    with patch.dict(os.environ, {}):
        service = setup_logging(log_level="ERROR", environment="production")

        assert os.environ["ENVIRONMENT"] == "production"
    assert not service.is_development
    assert logging.getLogger().level == logging.ERROR

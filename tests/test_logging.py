"""Tests for logging setup and the UTC timestamp helper."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from licitaradar.core.logging import get_logger, setup_logging
from licitaradar.db.models import utc_now


@pytest.fixture
def app_logger():
    logger = logging.getLogger("licitaradar")
    saved = (list(logger.handlers), logger.level)
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.handlers.extend(saved[0])
    logger.setLevel(saved[1])


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_reconfigure_does_not_stack_handlers(self, app_logger):
        """Test a second call replaces the console handler."""
        setup_logging("DEBUG")
        setup_logging("INFO")
        assert len(app_logger.handlers) == 1
        assert app_logger.level == logging.INFO

    def test_file_handler(self, app_logger, tmp_path):
        """Test a log file is created under missing directories."""
        log_file = tmp_path / "logs" / "sync.log"
        setup_logging("INFO", log_file=log_file)
        get_logger("sync").info("Sincronização iniciada")
        for handler in app_logger.handlers:
            handler.flush()
        assert "Sincronização iniciada" in log_file.read_text(encoding="utf-8")

    def test_client_libraries_quieted(self, app_logger):
        """Test HTTP and SDK loggers are capped at WARNING."""
        logging.getLogger("httpx").setLevel(logging.DEBUG)
        setup_logging("DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("google_genai").level == logging.WARNING

    def test_child_logger_name(self):
        """Test module loggers hang under the app logger."""
        assert get_logger("ai.classifier").name == "licitaradar.ai.classifier"


class TestUtcNow:
    """Tests for the naive UTC timestamp helper."""

    def test_naive_utc(self):
        """Test the value is naive and close to the current UTC time."""
        now = utc_now()
        assert now.tzinfo is None
        expected = datetime.now(timezone.utc).replace(tzinfo=None)
        assert abs(expected - now) < timedelta(seconds=5)

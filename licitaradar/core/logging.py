"""Logging setup for the sync job and the request handlers.

Everything logs under the ``licitaradar`` logger. Chatty client libraries
(HTTP transport, PDF parsing, the Gemini SDK) are held at WARNING so a
sync run's output stays readable.
"""

import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

QUIET_LOGGERS = ("httpx", "httpcore", "pdfminer", "google_genai")

_configured = False


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None,
    quiet: Iterable[str] = QUIET_LOGGERS,
) -> logging.Logger:
    """Attach console (and optionally file) handlers to the app logger.

    Calling it again replaces the handlers instead of stacking them.

    Args:
        level: Level name for the ``licitaradar`` logger
        log_file: Optional path; parent directories are created
        format_string: Overrides ``LOG_FORMAT``
        quiet: Third-party logger names capped at WARNING

    Returns:
        The ``licitaradar`` logger
    """
    global _configured

    formatter = logging.Formatter(format_string or LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    app_logger = logging.getLogger("licitaradar")
    app_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if _configured:
        for handler in list(app_logger.handlers):
            app_logger.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    app_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        app_logger.addHandler(file_handler)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
    return app_logger


def get_logger(name: str) -> logging.Logger:
    """Child logger, e.g. ``get_logger("ai.classifier")`` -> ``licitaradar.ai.classifier``."""
    return logging.getLogger(f"licitaradar.{name}")

"""Core module - logging, exceptions, and application infrastructure."""

from licitaradar.core.logging import setup_logging, get_logger
from licitaradar.core.exceptions import (
    LicitaRadarError,
    SourceFetchError,
    AIProcessingError,
    AIProviderError,
    ParsingError,
    DatabaseError,
    InputValidationError,
    UnauthorizedTriggerError,
    OperationAborted,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "LicitaRadarError",
    "SourceFetchError",
    "AIProcessingError",
    "AIProviderError",
    "ParsingError",
    "DatabaseError",
    "InputValidationError",
    "UnauthorizedTriggerError",
    "OperationAborted",
]

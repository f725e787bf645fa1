"""Application exception hierarchy."""


class LicitaRadarError(Exception):
    """Base exception for all licitaradar errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SourceFetchError(LicitaRadarError):
    """Procurement API could not be read after exhausting retries."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        url: str | None = None,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.source = source
        self.url = url
        self.status_code = status_code


class AIProcessingError(LicitaRadarError):
    """Error during AI/LLM processing."""

    def __init__(
        self,
        message: str,
        model: str | None = None,
        prompt_preview: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.model = model
        self.prompt_preview = prompt_preview[:200] if prompt_preview else None


class AIProviderError(AIProcessingError):
    """The AI provider rejected or failed a call.

    ``status_code`` carries the provider's HTTP-like status (429 quota,
    503 overload, ...) and drives retry classification.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        model: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, model=model, details=details)
        self.status_code = status_code


class ParsingError(AIProcessingError):
    """Error parsing AI output into structured format."""

    def __init__(
        self,
        message: str,
        raw_output: str | None = None,
        expected_schema: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details=details)
        self.raw_output = raw_output[:500] if raw_output else None
        self.expected_schema = expected_schema


class DatabaseError(LicitaRadarError):
    """Error during database operations."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        table: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.operation = operation
        self.table = table


class InputValidationError(LicitaRadarError):
    """Malformed request, rejected before any external call."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.field = field


class UnauthorizedTriggerError(LicitaRadarError):
    """Scheduler invoked the sync without the shared secret."""


class OperationAborted(LicitaRadarError):
    """A caller-supplied abort event was set while work was in flight."""

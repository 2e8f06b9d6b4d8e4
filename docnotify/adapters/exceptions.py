"""Custom exceptions for the document store and CRM adapters."""


class AdapterError(Exception):
    """Base exception for all adapter errors.

    An adapter error raised while querying the document store aborts the run.
    Raised while resolving owners, it fails only the affected documents.
    """

    pass


class AdapterHTTPError(AdapterError):
    """HTTP request failed with 4xx or 5xx error, or could not be sent at all."""

    def __init__(self, message: str, status_code: int, url: str) -> None:
        """Initialize HTTP error with status code and URL.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (0 when no response was received)
            url: URL that failed
        """
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class AdapterTimeoutError(AdapterError):
    """HTTP request timed out."""

    def __init__(self, message: str, url: str) -> None:
        super().__init__(message)
        self.url = url


class AdapterResponseError(AdapterError):
    """Response parsing or validation failed (invalid JSON, unexpected shape)."""

    pass


class AdapterConfigurationError(AdapterError):
    """Invalid adapter configuration (bad timeout, missing URL or credentials)."""

    pass


class AdapterAuthenticationError(AdapterError):
    """Authentication against the remote service failed.

    Raised when an OAuth token cannot be acquired or the service answers
    401/403.
    """

    pass

"""Custom exception hierarchy for the UtilitySign signing proxy."""


class ProxyError(Exception):
    """Base exception for all proxy errors."""


class ConfigurationError(ProxyError):
    """Raised when configuration is missing or invalid."""


class AuthError(ProxyError):
    """Raised when the credential exchange with the backend fails.

    Attributes:
        message: Error message
        status_code: HTTP status code from the backend (optional)
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthUnreachable(AuthError):
    """Raised when the authenticate endpoint cannot be reached or times out."""

    def __init__(self, message: str, duration_ms: float | None = None) -> None:
        super().__init__(message, status_code=None)
        self.duration_ms = duration_ms


class AuthRejected(AuthError):
    """Raised when the backend answers the credential exchange with a non-2xx status."""

    def __init__(self, message: str, status_code: int, code: str | None = None) -> None:
        super().__init__(message, status_code=status_code)
        self.code = code


class AuthMalformedResponse(AuthError):
    """Raised when a 2xx authenticate response carries no usable access token."""


class InvalidRequest(ProxyError):
    """Inbound payload failed validation."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

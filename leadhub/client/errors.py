"""
Client Exceptions - Errors raised by the LeadHub client SDK.

NO DICTIONARIES - All exceptions have typed attributes.
"""


class ClientError(Exception):
    """Base exception for all client SDK errors."""

    pass


class ApiRequestError(ClientError):
    """Raised when the API answers with a non-2xx status."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"HTTP {status_code}: {message}")

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class SessionExpiredError(ApiRequestError):
    """Raised on 401 from a non-auth endpoint."""

    def __init__(self, message: str = "Session expired") -> None:
        super().__init__(401, message)


class RateLimitedError(ApiRequestError):
    """Raised when 429 responses persist after all retries."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(429, f"Rate limited after {attempts} attempts")


class ApiTransportError(ClientError):
    """Raised on network failure, timeout or an unparseable body."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidResponseError(ClientError):
    """Raised when a response lacks fields the caller needs."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

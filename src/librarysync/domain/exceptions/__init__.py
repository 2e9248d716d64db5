"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). SyncState.error is built from .message, so keep it human-readable!
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class SyncAbortedError(DomainException):
    """A sync cycle was cancelled before it finished.

    Raised when the cancellation token of a cycle fires, either because stop() was called or
    a newer explicit cycle superseded it. This is EXPECTED and never surfaces as
    SyncState.error - the engine swallows it.
    """

    def __init__(self, reason: str = "Sync aborted") -> None:
        super().__init__(reason)
        self.reason = reason


class ValidationError(DomainException):
    """Input or entity validation failed.

    Example:
        raise ValidationError("Cached playlist payload is missing 'id'")
    """

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration.

    HTTP Status: 503 (Service Unavailable)

    Example:
        raise ConfigurationError("Database directory is not writable")
    """

    pass


class AuthenticationError(DomainException):
    """No access token, or the remote service rejected it.

    HTTP Status: 401
    """

    pass


class ExternalServiceError(DomainException):
    """The remote music service returned an error or could not be reached.

    HTTP Status: 502 (Bad Gateway)

    Example:
        raise ExternalServiceError("Spotify API error: 503 Service Unavailable")
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitExceededError(ExternalServiceError):
    """The remote service kept answering 429 after all retries.

    HTTP Status: 429
    """

    def __init__(self, message: str, retry_after: int | None = None) -> None:
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class CacheUnavailableError(DomainException):
    """The local metadata store cannot be read or written.

    This is the only failure that start() lets escape - if the very first cache write of a
    cold start is impossible there is nothing useful the engine can do.

    HTTP Status: 503
    """

    pass


__all__ = [
    "AuthenticationError",
    "CacheUnavailableError",
    "ConfigurationError",
    "DomainException",
    "ExternalServiceError",
    "RateLimitExceededError",
    "SyncAbortedError",
    "ValidationError",
]

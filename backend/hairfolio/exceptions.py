"""
Hairfolio Backend: Custom Exception Hierarchy
==============================================

What:  Application-specific exceptions for each failure class of the core.
How:   Each exception carries a user-facing message and an optional context
       dict. Global handlers (registered in main.py) turn them into JSON
       error responses with the matching HTTP status.
Who:   Raised by services and middleware; caught by global handlers, and by
       the try-on controller, which reports stage failures in its snapshot.

Exception Hierarchy:
    HairfolioError (base)
    ├── ValidationError          → 400 Bad Request (caught before any network call)
    ├── NotFoundError            → 404 Not Found
    ├── ExternalServiceError     → 502 Bad Gateway (a try-on stage failed)
    │   ├── NoImageProducedError → 502 (generation returned no image)
    │   └── CircuitBreakerOpenError → 503 (collaborator failing repeatedly)
    ├── PersistenceError         → 503 Service Unavailable (remote store failed)
    ├── FileStorageError         → 500 Internal Server Error
    └── RateLimitExceededError   → 429 Too Many Requests

No exception here triggers an automatic retry. A failed try-on needs a new
user-initiated request.
"""

from typing import Any, Dict, Optional

# Longest slice of an underlying error that is surfaced to clients.
MAX_REASON_LENGTH = 300


def describe_reason(error: BaseException) -> str:
    """
    Reduce an exception to a short, human-readable reason.

    Uses the application message for our own errors and the first line of
    str(error) otherwise, so tracebacks and multi-line transport dumps never
    reach the client.
    """
    if isinstance(error, HairfolioError):
        text = error.message
    else:
        text = str(error) or type(error).__name__
    first_line = text.strip().splitlines()[0] if text.strip() else type(error).__name__
    if len(first_line) > MAX_REASON_LENGTH:
        first_line = first_line[: MAX_REASON_LENGTH - 3] + "..."
    return first_line


class HairfolioError(Exception):
    """
    Base exception for all Hairfolio application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only by some handlers)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(HairfolioError):
    """
    Raised when client input is missing or invalid.

    When:  No face photo for a try-on, blank style reference, unsupported
           upload type or size, malformed import payload.
    HTTP:  400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(HairfolioError):
    """
    Raised when a requested resource does not exist.

    When:  Unknown portfolio entry id on update/remove, missing stored file.
    HTTP:  404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ExternalServiceError(HairfolioError):
    """
    Raised when a try-on pipeline stage fails.

    What:    A try-on collaborator (hairstyle or colour pipeline) raised, or
             returned something unusable.
    HTTP:    502 Bad Gateway

    Attributes:
        stage:   "describe", "compose", "color_analysis" or "color_transform"
        reason:  Short underlying cause (see describe_reason)
    """

    def __init__(
        self,
        stage: str,
        reason: str,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["stage"] = stage
        pipeline = "Hair colour try-on" if stage.startswith("color_") else "Hairstyle try-on"
        super().__init__(
            message=message or f"{pipeline} failed: {reason}",
            context=ctx,
        )
        self.stage = stage
        self.reason = reason


class NoImageProducedError(ExternalServiceError):
    """Raised when the generation model answers without an image part."""

    def __init__(
        self,
        context: Optional[Dict[str, Any]] = None,
        stage: str = "compose",
        reason: str = "AI did not return an image. Please try a different set of photos.",
    ):
        super().__init__(stage=stage, reason=reason, context=context)


class CircuitBreakerOpenError(ExternalServiceError):
    """
    Raised when a collaborator's circuit breaker is OPEN.

    HTTP:  503 Service Unavailable

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for recovery_time seconds)
        → After recovery_time → HALF-OPEN (allow one test call)
        → Test succeeds → CLOSED; test fails → OPEN again
    """

    def __init__(
        self,
        stage: str = "describe",
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(
            stage=stage,
            reason="AI service is temporarily unavailable due to repeated failures",
            message=(
                "AI service is temporarily unavailable due to repeated failures. "
                f"Please try again in approximately {recovery_time} seconds."
            ),
            context=ctx,
        )
        self.recovery_time = recovery_time


class PersistenceError(HairfolioError):
    """
    Raised when the remote store cannot be read or written.

    What:    Connection refused, auth failure, timeout, driver error.
    HTTP:    503 Service Unavailable (only if it escapes the gateway)

    The persistence gateway catches this, logs it and reports the failed
    sink in its WriteOutcome; the local mirror is still updated.
    """

    def __init__(
        self,
        message: str = "The designer store is temporarily unavailable.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(HairfolioError):
    """
    Raised when file system operations fail.

    When:  Disk full, permission denied, directory not writable, I/O error.
    HTTP:  500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(HairfolioError):
    """
    Raised when a client exceeds the try-on rate limit.

    HTTP:  429 Too Many Requests (with Retry-After header)
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before trying on more styles."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after

"""
Error taxonomy for the scheduler client.

Every failure a caller can observe is one of:
- ValidationError (400): rejected locally before any network attempt
- NotFoundError (404): no event to snapshot before a compensated mutation
- RemoteError: the service answered with an error envelope
- TransportError: no usable response (connection failure, timeout, garbage body)
"""
from typing import Any, Mapping

import httpx
import pydantic


class SchedulerError(Exception):
    """Base exception for all scheduler client errors"""

    kind: str = "scheduler"
    default_status: int = 500

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status if status is not None else self.default_status

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "status": self.status, "message": self.message}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(status={self.status}, message={self.message!r})"


class ValidationError(SchedulerError):
    """Raised when input is rejected before a request is issued"""
    kind = "validation"
    default_status = 400


class NotFoundError(SchedulerError):
    """Raised when a compensated mutation finds no prior state to capture"""
    kind = "not_found"
    default_status = 404


class RemoteError(SchedulerError):
    """Raised when the service reports a logical failure"""
    kind = "remote"


class TransportError(SchedulerError):
    """Raised when no usable response could be obtained"""
    kind = "transport"


def missing_slug() -> ValidationError:
    return ValidationError("Missing required parameter: slug")


def normalize_error(failure: Any, status: int | None = None) -> SchedulerError:
    """
    Map any failure to a SchedulerError.

    Args:
        failure: An exception, or the decoded body of an error envelope
            ({"error": {"message": ..., "status": ...}} or {"error": "..."})
        status: HTTP status of the response the failure came with, if any

    Returns:
        The normalized error. Already-normalized errors are returned as-is.
    """
    if isinstance(failure, SchedulerError):
        return failure

    if isinstance(failure, pydantic.ValidationError):
        return ValidationError(_describe_validation(failure))

    if isinstance(failure, Mapping) and "error" in failure:
        return _from_envelope(failure["error"], status)

    if isinstance(failure, httpx.TimeoutException):
        return TransportError(f"Request timed out: {failure}", status)

    if isinstance(failure, httpx.HTTPError):
        return TransportError(str(failure) or failure.__class__.__name__, status)

    if isinstance(failure, BaseException):
        own_status = getattr(failure, "status", None) or getattr(failure, "status_code", None)
        return TransportError(
            str(failure) or failure.__class__.__name__,
            own_status if isinstance(own_status, int) else status,
        )

    return TransportError(f"Unrecognized failure: {failure!r}", status)


def _from_envelope(error: Any, status: int | None) -> RemoteError:
    if isinstance(error, Mapping):
        message = error.get("message") or "Scheduler reported an error"
        reported = error.get("status") or error.get("statusCode")
        if isinstance(reported, int):
            status = reported
        return RemoteError(str(message), status)
    return RemoteError(str(error) if error else "Scheduler reported an error", status)


def _describe_validation(exc: pydantic.ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid event data"

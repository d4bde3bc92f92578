"""Classified error taxonomy for the content console engine.

Every failure that leaves the engine is one of the ``CmsError`` subclasses
below. Each kind carries fixed severity/retryable/recoverable attributes so
the presentation layer can pick a recovery action from the kind alone.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Closed set of error kinds surfaced by the engine."""

    AUTHENTICATION = "authentication"
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    SERVICE = "service"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """How loudly an error should be presented."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ErrorContext:
    """Diagnostic context attached to a classified error."""

    operation: Optional[str] = None
    collection_id: Optional[str] = None
    item_id: Optional[str] = None
    additional_data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_utc_now)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"timestamp": self.timestamp}
        if self.operation:
            result["operation"] = self.operation
        if self.collection_id:
            result["collection_id"] = self.collection_id
        if self.item_id:
            result["item_id"] = self.item_id
        if self.additional_data:
            result["additional_data"] = dict(self.additional_data)
        return result


class CmsError(Exception):
    """Base class for classified engine errors.

    Subclasses pin ``kind``, ``severity``, ``retryable`` and ``recoverable``
    as class attributes; instances carry the message pair and context.

    Attributes:
        message: Developer-facing description of the failure
        user_message: Human-readable text safe to show in the UI
        context: Operation/collection/item the failure belongs to
        original_error: The raw exception this error was classified from
        retry_after: Seconds the remote side asked us to wait, if any
    """

    kind: ErrorKind = ErrorKind.UNKNOWN
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    retryable: bool = True
    recoverable: bool = True
    default_user_message: str = "An unexpected error occurred. Please try again."

    def __init__(
        self,
        message: str,
        *,
        user_message: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        original_error: Optional[BaseException] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or self.default_user_message
        self.context = context
        self.original_error = original_error
        self.retry_after = retry_after
        self.timestamp = _utc_now()

    def with_context(self, context: Optional[ErrorContext]) -> "CmsError":
        """Attach context if none is set yet; returns self."""
        if self.context is None and context is not None:
            self.context = context
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging and serialization."""
        result: Dict[str, Any] = {
            "name": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp,
        }
        if self.context is not None:
            result["context"] = self.context.to_dict()
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        return result


class AuthenticationError(CmsError):
    """Credentials were rejected. Recoverable by re-entering the API key."""

    kind = ErrorKind.AUTHENTICATION
    severity = ErrorSeverity.HIGH
    retryable = False
    recoverable = True
    default_user_message = "Authentication failed. Please check your API key."


class NetworkError(CmsError):
    """Connection failure or timeout talking to the content API."""

    kind = ErrorKind.NETWORK
    severity = ErrorSeverity.MEDIUM
    retryable = True
    recoverable = True
    default_user_message = (
        "Network connection failed. Please check your internet connection and try again."
    )


class RateLimitError(CmsError):
    """The content API throttled the request.

    Retryable; the retry controller waits at least ``retry_after`` seconds
    when the API signalled one.
    """

    kind = ErrorKind.RATE_LIMIT
    severity = ErrorSeverity.MEDIUM
    retryable = True
    recoverable = True

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        retry_after: Optional[float] = None,
        context: Optional[ErrorContext] = None,
        original_error: Optional[BaseException] = None,
    ):
        if retry_after:
            wait = f"Please wait {retry_after:g} seconds before trying again."
        else:
            wait = "Please wait a moment before trying again."
        super().__init__(
            message or f"Rate limit exceeded. Retry after {retry_after or 'unknown'} seconds.",
            user_message=f"Too many requests. {wait}",
            context=context,
            original_error=original_error,
            retry_after=retry_after,
        )


class ServiceError(CmsError):
    """The content API failed on its side (5xx)."""

    kind = ErrorKind.SERVICE
    severity = ErrorSeverity.MEDIUM
    retryable = True
    recoverable = True
    default_user_message = "The content service returned an error. Please try again or contact support."

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.status_code is not None:
            result["status_code"] = self.status_code
        return result


class NotFoundError(CmsError):
    """The collection or item no longer exists."""

    kind = ErrorKind.NOT_FOUND
    severity = ErrorSeverity.LOW
    retryable = False
    recoverable = False
    default_user_message = "The requested item could not be found. It may have been deleted."


class ValidationError(CmsError):
    """The submitted data was rejected. Recoverable by correcting the input."""

    kind = ErrorKind.VALIDATION
    severity = ErrorSeverity.LOW
    retryable = False
    recoverable = True

    def __init__(self, message: str, *, field_name: Optional[str] = None, **kwargs: Any):
        if "user_message" not in kwargs or kwargs["user_message"] is None:
            if field_name:
                kwargs["user_message"] = f"Invalid value for {field_name}. {message}"
            else:
                kwargs["user_message"] = f"Validation failed: {message}"
        super().__init__(message, **kwargs)
        self.field_name = field_name


class UnknownError(CmsError):
    """Anything the classifier could not place. Retried conservatively."""

    kind = ErrorKind.UNKNOWN
    severity = ErrorSeverity.MEDIUM
    retryable = True
    recoverable = True


def is_retryable_error(error: BaseException) -> bool:
    return isinstance(error, CmsError) and error.retryable


def is_recoverable_error(error: BaseException) -> bool:
    return isinstance(error, CmsError) and error.recoverable

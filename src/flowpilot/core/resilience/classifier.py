"""Error classification for retry decisions.

Maps any raw failure (transport exception, HTTP status, validation failure,
or a bare exception with only a message) to one classified ``CmsError``.
Side-effect free; callers own logging and notification.

Classification rules (applied in order):
    1. ``CmsError`` passes through (context attached if missing)
    2. Errors carrying an HTTP status (``ContentApiError``,
       ``httpx.HTTPStatusError``) map by status
    3. Timeouts and transport failures are network errors
    4. ``pydantic.ValidationError`` is a validation error
    5. Message heuristics (embedded status code, then keywords)
    6. Default: unknown, retryable
"""

from __future__ import annotations

import asyncio
import re
from typing import Optional

import httpx
import pydantic

from flowpilot.core.errors.api import ContentApiError
from flowpilot.core.errors.types import (
    AuthenticationError,
    CmsError,
    ErrorContext,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServiceError,
    UnknownError,
    ValidationError,
)

_VALIDATION_STATUSES = frozenset({400, 409, 422})

_RATE_LIMIT_TERMS = ("rate limit", "too many requests")
_AUTH_TERMS = ("unauthorized", "authentication", "forbidden", "invalid api key")
_NOT_FOUND_TERMS = ("not found",)
_NETWORK_TERMS = ("network", "fetch", "connection", "timeout", "timed out")
_VALIDATION_TERMS = ("invalid", "validation")


def extract_status_code(error_message: str) -> Optional[int]:
    """Extract an HTTP status code from an error message string.

    Looks for patterns like ``"HTTP 503"``, ``"API error 429:"``, ``"status 404"``,
    or a bare status code at the start of the message. Incidental numbers
    ("Found 200 results") are not matched.

    Args:
        error_message: Error message that may contain an HTTP status code.

    Returns:
        The extracted status code as an ``int``, or ``None`` if none found.
    """
    if not error_message:
        return None
    match = re.search(
        r"(?:HTTP|status|error)\s*(?:code\s*)?:?\s*(\d{3})\b|^(\d{3})\s",
        error_message,
        re.IGNORECASE,
    )
    if match:
        code = int(match.group(1) or match.group(2))
        if 100 <= code <= 599:
            return code
    return None


def classify_status(
    status_code: int,
    message: str,
    *,
    retry_after: Optional[float] = None,
    context: Optional[ErrorContext] = None,
    original_error: Optional[BaseException] = None,
) -> CmsError:
    """Map an HTTP status code to a classified error."""
    kwargs = {"context": context, "original_error": original_error}

    if status_code == 401:
        return AuthenticationError(
            message, user_message="Please check your API key and try again.", **kwargs
        )
    if status_code == 403:
        return AuthenticationError(
            message, user_message="You do not have permission to perform this action.", **kwargs
        )
    if status_code == 404:
        return NotFoundError(message, **kwargs)
    if status_code == 429:
        return RateLimitError(message, retry_after=retry_after, **kwargs)
    if status_code in _VALIDATION_STATUSES:
        return ValidationError(message, **kwargs)
    if status_code >= 500:
        return ServiceError(message, status_code=status_code, **kwargs)
    return UnknownError(message, **kwargs)


def _contains_any(text: str, terms: tuple[str, ...]) -> bool:
    return any(term in text for term in terms)


def _classify_message(
    error: BaseException, context: Optional[ErrorContext]
) -> CmsError:
    message = str(error) or type(error).__name__
    lowered = message.lower()
    kwargs = {"context": context, "original_error": error}

    code = extract_status_code(message)
    if code is not None:
        return classify_status(code, message, **kwargs)

    if _contains_any(lowered, _RATE_LIMIT_TERMS):
        return RateLimitError(message, **kwargs)
    if _contains_any(lowered, _AUTH_TERMS):
        return AuthenticationError(message, **kwargs)
    if _contains_any(lowered, _NOT_FOUND_TERMS):
        return NotFoundError(message, **kwargs)
    if _contains_any(lowered, _NETWORK_TERMS):
        return NetworkError(message, **kwargs)
    if _contains_any(lowered, _VALIDATION_TERMS):
        return ValidationError(message, **kwargs)

    return UnknownError(message, **kwargs)


def classify_error(
    error: BaseException,
    context: Optional[ErrorContext] = None,
) -> CmsError:
    """Classify a raw failure into the engine's error taxonomy.

    Args:
        error: The exception to classify.
        context: Diagnostic context to attach to the classified error.

    Returns:
        A ``CmsError`` subclass instance. Already-classified errors are
        returned as-is.
    """
    if isinstance(error, CmsError):
        return error.with_context(context)

    kwargs = {"context": context, "original_error": error}

    if isinstance(error, ContentApiError) and error.status_code is not None:
        return classify_status(
            error.status_code, str(error), retry_after=error.retry_after, **kwargs
        )

    if isinstance(error, httpx.HTTPStatusError):
        retry_after = None
        header = error.response.headers.get("Retry-After")
        if header:
            try:
                retry_after = float(header)
            except ValueError:
                retry_after = None
        return classify_status(
            error.response.status_code, str(error), retry_after=retry_after, **kwargs
        )

    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return NetworkError(
            f"Request timed out: {error}" if str(error) else "Request timed out",
            **kwargs,
        )

    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return NetworkError(str(error) or type(error).__name__, **kwargs)

    if isinstance(error, pydantic.ValidationError):
        first = error.errors()[0] if error.error_count() else {}
        loc = first.get("loc") or ()
        field_name = ".".join(str(part) for part in loc) or None
        return ValidationError(
            first.get("msg", str(error)), field_name=field_name, **kwargs
        )

    return _classify_message(error, context)

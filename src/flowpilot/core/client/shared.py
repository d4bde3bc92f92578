"""HTTP parsing helpers for the content API client.

SECURITY: every message extracted from a response body is run through
:func:`redact_secrets` so API tokens never reach logs or error messages.

Helpers:
    - redact_secrets(text) -> str
    - redact_headers(headers) -> dict
    - parse_retry_after(response) -> Optional[float]
    - extract_error_message(response) -> str
    - extract_error_code(response) -> Optional[str]
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Regex to detect potential API keys / bearer tokens in strings
_SECRET_PATTERN = re.compile(
    r"(?i)"
    r"(?:"
    r"(?:api[_-]?key|token|bearer|authorization|secret|password)"
    r"[\s:=]+"
    r")"
    r"['\"]?([^\s'\"]{8,})['\"]?",
)

# Headers that should never appear in logs/errors
_SENSITIVE_HEADERS = frozenset({"authorization", "x-api-key", "cookie", "set-cookie"})

_REDACTED = "****"
_MAX_BODY_CHARS = 200


# ---------------------------------------------------------------------------
# Secret redaction
# ---------------------------------------------------------------------------


def redact_secrets(text: str) -> str:
    """Replace the secret part of ``token=...``/``Bearer ...`` patterns.

    Example:
        >>> redact_secrets("Authorization: Bearer abcdef123456")
        'Authorization: Bearer ****'
    """
    if not text:
        return text

    def _replace(match: re.Match[str]) -> str:
        return match.group(0).replace(match.group(1), _REDACTED)

    return _SECRET_PATTERN.sub(_replace, text)


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Copy of ``headers`` with sensitive values replaced by ``"****"``."""
    return {
        key: _REDACTED if key.lower() in _SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def parse_retry_after(response: "httpx.Response") -> Optional[float]:
    """Seconds from a numeric ``Retry-After`` header, else None.

    Date-valued headers are not supported.
    """
    retry_after = response.headers.get("Retry-After")
    if retry_after:
        try:
            return float(retry_after)
        except ValueError:
            pass
    return None


def extract_error_message(response: "httpx.Response") -> str:
    """Human-readable, secret-redacted message from an error response.

    Understands ``{"message": ...}`` and ``{"error": ...}`` bodies (string or
    nested dict); anything else falls back to the first characters of the
    raw body.
    """
    try:
        data = response.json()
    except ValueError:
        text = response.text[:_MAX_BODY_CHARS] if response.text else "Unknown error"
        return redact_secrets(text)

    if not isinstance(data, dict):
        return redact_secrets(str(data)[:_MAX_BODY_CHARS])

    msg = data.get("message")
    if not msg:
        error_field = data.get("error")
        if isinstance(error_field, dict):
            msg = error_field.get("message", str(error_field))
        elif isinstance(error_field, str):
            msg = error_field
        else:
            msg = response.text[:_MAX_BODY_CHARS] or response.reason_phrase
    return redact_secrets(str(msg))


def extract_error_code(response: "httpx.Response") -> Optional[str]:
    """Provider error code (``{"code": ...}``) from a JSON error body."""
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict) and isinstance(data.get("code"), str):
        return data["code"]
    return None

"""Unified error hierarchy for flowpilot.

All exception classes are defined in the modules of this package; this
__init__.py re-exports everything for convenient access.

Usage:
    from flowpilot.core.errors import CmsError, ErrorKind, error_to_response
"""

# --- Raw API errors ---
from flowpilot.core.errors.api import ContentApiError

# --- Presentation mapping ---
from flowpilot.core.errors.base import (
    RecoveryAction,
    RecoveryActionType,
    error_to_response,
    get_recovery_actions,
)

# --- Classified errors ---
from flowpilot.core.errors.types import (
    AuthenticationError,
    CmsError,
    ErrorContext,
    ErrorKind,
    ErrorSeverity,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServiceError,
    UnknownError,
    ValidationError,
    is_recoverable_error,
    is_retryable_error,
)

__all__ = [
    # Taxonomy
    "ErrorKind",
    "ErrorSeverity",
    "ErrorContext",
    "CmsError",
    "AuthenticationError",
    "NetworkError",
    "RateLimitError",
    "ServiceError",
    "NotFoundError",
    "ValidationError",
    "UnknownError",
    "is_retryable_error",
    "is_recoverable_error",
    # Raw API errors
    "ContentApiError",
    # Presentation
    "RecoveryAction",
    "RecoveryActionType",
    "error_to_response",
    "get_recovery_actions",
]

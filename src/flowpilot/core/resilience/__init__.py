"""Retry and error classification for remote content API calls.

Centralized resilience utilities:
- RetryConfig / SleepFunc models
- classify_error mapping raw failures to the CmsError taxonomy
- RetryController keyed exponential-backoff retry loop
"""

from flowpilot.core.resilience.classifier import (
    classify_error,
    classify_status,
    extract_status_code,
)
from flowpilot.core.resilience.models import RetryConfig, SleepFunc
from flowpilot.core.resilience.retry import RetryController, compute_backoff_delay

__all__ = [
    # Models
    "RetryConfig",
    "SleepFunc",
    # Classification
    "classify_error",
    "classify_status",
    "extract_status_code",
    # Retry
    "RetryController",
    "compute_backoff_delay",
]

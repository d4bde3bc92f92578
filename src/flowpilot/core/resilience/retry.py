"""Keyed async retry with exponential backoff.

``RetryController`` wraps a remote call in a retry loop whose attempt
counter lives under a caller-chosen key. Each failure is classified; only
retryable errors are retried, and the error that finally escapes is always
the classified ``CmsError``.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from flowpilot.core.errors.types import ErrorContext
from flowpilot.core.observability import audit_log
from flowpilot.core.resilience.classifier import classify_error
from flowpilot.core.resilience.models import RetryConfig, SleepFunc

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff_delay(
    attempt: int,
    config: RetryConfig,
    retry_after: Optional[float] = None,
) -> float:
    """Delay in seconds before retry number ``attempt + 1``.

    ``min(base_delay * backoff_factor**attempt, max_delay)``. A signalled
    ``retry_after`` raises the delay to at least that value; the server's
    wait is honored even beyond ``max_delay``.

    Example:
        >>> cfg = RetryConfig(base_delay=1.0, backoff_factor=2.0, max_delay=10.0)
        >>> [compute_backoff_delay(n, cfg) for n in range(5)]
        [1.0, 2.0, 4.0, 8.0, 10.0]
    """
    delay = min(config.base_delay * (config.backoff_factor**attempt), config.max_delay)
    if retry_after is not None:
        delay = max(delay, retry_after)
    return delay


class RetryController:
    """Per-key retry state for remote calls.

    Keys should embed the collection id, item id and operation kind so two
    unrelated calls never share a counter. Distinct keys retry fully
    independently.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep_func: Optional[SleepFunc] = None,
    ) -> None:
        self.config = config or RetryConfig()
        self._sleep = sleep_func or asyncio.sleep
        self._attempts: Dict[str, int] = {}

    def attempts(self, operation_key: str) -> int:
        """Retries already spent under ``operation_key`` (0 when idle)."""
        return self._attempts.get(operation_key, 0)

    def reset(self, operation_key: Optional[str] = None) -> None:
        """Clear one counter, or all of them."""
        if operation_key is None:
            self._attempts.clear()
        else:
            self._attempts.pop(operation_key, None)

    async def with_retry(
        self,
        func: Callable[[], Awaitable[T]],
        operation_key: str,
        config: Optional[RetryConfig] = None,
        context: Optional[ErrorContext] = None,
    ) -> T:
        """Run ``func`` until it succeeds or fails terminally.

        Args:
            func: Async callable performing the remote call (no arguments;
                use a lambda or closure for arguments).
            operation_key: Key the attempt counter is stored under.
            config: Per-call override of the controller's RetryConfig.
            context: Diagnostic context attached to a terminal error.

        Returns:
            Result from ``func`` on success.

        Raises:
            CmsError: The classified form of the last failure, chained to the
                raw exception.
        """
        cfg = config or self.config

        try:
            while True:
                attempt = self._attempts.get(operation_key, 0)
                try:
                    return await func()
                except Exception as exc:
                    error = classify_error(exc, context)

                    if not error.retryable or attempt >= cfg.max_attempts - 1:
                        if error is exc:
                            raise
                        raise error from exc

                    self._attempts[operation_key] = attempt + 1
                    delay = compute_backoff_delay(attempt, cfg, retry_after=error.retry_after)

                    logger.warning(
                        "Retrying %s after %s error (attempt %d of %d, waiting %.2fs): %s",
                        operation_key,
                        error.kind.value,
                        attempt + 2,
                        cfg.max_attempts,
                        delay,
                        error.message,
                    )
                    audit_log(
                        "retry_attempt",
                        operation_key=operation_key,
                        attempt=attempt + 2,
                        max_attempts=cfg.max_attempts,
                        error_kind=error.kind.value,
                        delay_seconds=delay,
                    )

                await self._sleep(delay)
        finally:
            # the counter lives only as long as this call, cancellation included
            self._attempts.pop(operation_key, None)


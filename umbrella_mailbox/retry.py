"""Tenacity retry wrapper for the REST transports.

The retrieval core never retries a batch; only individual HTTP requests
to a provider are retried, and only for throttling and transient faults.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import TransportRetryConfig

logger = structlog.get_logger()


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "provider_request_retry",
        attempt=state.attempt_number,
        error=str(exc) if exc else None,
    )


def with_retry(
    config: TransportRetryConfig,
    *,
    retryable_exceptions: tuple[type[BaseException], ...] = (Exception,),
) -> Callable:
    """Return a tenacity retry decorator configured from *config*.

    Usage::

        @with_retry(config.retry, retryable_exceptions=(RetryableStatusError,))
        async def send() -> httpx.Response: ...
    """
    return retry(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.multiplier,
            min=config.initial_wait_seconds,
            max=config.max_wait_seconds,
        ),
        retry=retry_if_exception_type(retryable_exceptions),
        before_sleep=_log_retry,
        reraise=True,
    )

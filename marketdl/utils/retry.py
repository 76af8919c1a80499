"""tenacity retry policies for provider calls."""

from __future__ import annotations

import time
from typing import Callable

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from marketdl.providers.base import NetworkError, RateLimited
from marketdl.utils.logging import get_logger

log = get_logger(__name__)

Sleeper = Callable[[float], None]

MIN_RATE_LIMIT_WAIT = 1.0


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    log.warning(
        "retrying_after_error",
        error_type=type(exc).__name__,
        error=str(exc),
        attempt=retry_state.attempt_number,
        sleep_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
    )


def rate_limit_policy(
    wait_seconds: float,
    max_retries: int,
    sleep: Sleeper = time.sleep,
) -> Retrying:
    """Retry on RateLimited with a fixed delay, at most *max_retries* times.

    The delay is the configured wait or the server's Retry-After, whichever
    is longer, and never less than one second.
    """

    def _wait(retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = getattr(exc, "retry_after", None) or 0.0
        return max(float(wait_seconds), float(retry_after), MIN_RATE_LIMIT_WAIT)

    return Retrying(
        retry=retry_if_exception_type(RateLimited),
        stop=stop_after_attempt(max_retries + 1),
        wait=_wait,
        sleep=sleep,
        before_sleep=_log_retry,
        reraise=True,
    )


def network_policy(max_retries: int, sleep: Sleeper = time.sleep) -> Retrying:
    """Retry transport failures with exponential backoff."""
    return Retrying(
        retry=retry_if_exception_type(NetworkError),
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=1, min=1, max=30),
        sleep=sleep,
        before_sleep=_log_retry,
        reraise=True,
    )

"""
Deadline and retry wrappers for scrape operations.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from errors import InvalidRequestError, NotFoundError, ScrapeTimeoutError, ScrapingError, classify
from logging_utils import log_event

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Retrying cannot change these outcomes.
NON_RETRYABLE = (InvalidRequestError, NotFoundError)


def _drain_abandoned(task: "asyncio.Future") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log_event(logger, logging.DEBUG, "abandoned_operation_failed", error=str(exc))


async def with_timeout(
    operation: Callable[[], Awaitable[T]],
    timeout_ms: int,
    timeout_message: Optional[str] = None,
) -> T:
    """
    Race `operation` against a timer.

    When the timer wins the operation keeps running in the background and its
    result is dropped; whatever it holds must be released by the operation
    itself. Errors raised by the operation are classified.
    """

    task = asyncio.ensure_future(operation())
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task not in done:
        task.add_done_callback(_drain_abandoned)
        log_event(logger, logging.WARNING, "scrape_timeout", timeout_ms=timeout_ms)
        raise ScrapeTimeoutError(
            timeout_message or f"Operation timed out after {timeout_ms}ms",
            {"timeoutMs": timeout_ms},
        )

    try:
        return task.result()
    except ScrapingError:
        raise
    except Exception as exc:
        raise classify(exc) from exc


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    log_event(
        logger,
        logging.WARNING,
        "operation_retry",
        attempt=retry_state.attempt_number,
        sleep_seconds=retry_state.next_action.sleep if retry_state.next_action else 0,
        error=str(error),
    )


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    *,
    backoff_seconds: float = 1.0,
) -> T:
    """
    Run `operation`, retrying up to `max_retries` more times.

    The wait before retry n (0-based) is `backoff_seconds * 2**n`. The last
    error is re-raised once retries run out.
    """

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(max_retries, 0) + 1),
        wait=wait_exponential(multiplier=backoff_seconds, exp_base=2, min=0),
        retry=retry_if_not_exception_type(NON_RETRYABLE),
        before_sleep=_log_retry,
        reraise=True,
    )
    # Iterate attempts so plain callables returning a coroutine are awaited too.
    async for attempt in retrying:
        with attempt:
            return await operation()

"""
Fixed-window request limiter per domain.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from logging_utils import log_event
from store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 60
DEFAULT_WINDOW_MS = 60000


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at_ms: int
    current: int
    limit: int
    reset_in_seconds: int


class DomainRateLimiter:
    """
    Counts requests per domain inside a fixed window.

    Reading the window and writing the incremented count are separate store
    calls, so concurrent requests can both be admitted on the same count. The
    limit is approximate under contention.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_ms: int = DEFAULT_WINDOW_MS,
        namespace: str = "ratelimit",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._max_requests = max_requests
        self._window_ms = window_ms
        self._namespace = namespace
        self._clock = clock

    def _key(self, domain: str) -> str:
        return f"{self._namespace}:{domain}"

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _parse_window(self, domain: str, window: Any) -> Optional[Tuple[int, int]]:
        """`(count, reset_ms)` of a stored window, or None when absent or malformed."""
        if not window:
            return None
        try:
            return int(window["count"]), int(window["reset"])
        except (KeyError, TypeError, ValueError) as exc:
            log_event(logger, logging.WARNING, "rate_limit_window_malformed", domain=domain, error=str(exc))
            return None

    def _fresh(self, now_ms: int) -> RateLimitDecision:
        return RateLimitDecision(
            allowed=True,
            remaining=self._max_requests,
            reset_at_ms=now_ms + self._window_ms,
            current=0,
            limit=self._max_requests,
            reset_in_seconds=math.ceil(self._window_ms / 1000),
        )

    async def check(self, domain: str) -> RateLimitDecision:
        """Report the domain's window without counting a request."""
        now_ms = self._now_ms()
        try:
            window = self._parse_window(domain, await self._store.get(self._key(domain)))
        except Exception as exc:
            log_event(logger, logging.WARNING, "rate_limit_read_failed", domain=domain, error=str(exc))
            return self._fresh(now_ms)

        if window is None or now_ms > window[1]:
            return self._fresh(now_ms)
        count, reset = window

        return RateLimitDecision(
            allowed=count < self._max_requests,
            remaining=max(self._max_requests - count, 0),
            reset_at_ms=reset,
            current=count,
            limit=self._max_requests,
            reset_in_seconds=max(math.ceil((reset - now_ms) / 1000), 0),
        )

    async def increment(self, domain: str) -> RateLimitDecision:
        """Count one request, opening a new window when the old one has expired."""
        key = self._key(domain)
        now_ms = self._now_ms()
        try:
            window = self._parse_window(domain, await self._store.get(key))
            if window is None or now_ms > window[1]:
                reset = now_ms + self._window_ms
                count = 1
            else:
                count, reset = window
                count += 1
            ttl = max(math.ceil((reset - now_ms) / 1000), 1)
            await self._store.set(key, {"count": count, "reset": reset}, ttl_seconds=ttl)
        except Exception as exc:
            log_event(logger, logging.WARNING, "rate_limit_write_failed", domain=domain, error=str(exc))
            return self._fresh(now_ms)

        return RateLimitDecision(
            allowed=count <= self._max_requests,
            remaining=max(self._max_requests - count, 0),
            reset_at_ms=reset,
            current=count,
            limit=self._max_requests,
            reset_in_seconds=ttl,
        )

    async def admit(self, domain: str) -> RateLimitDecision:
        """
        Admit or reject one request for `domain`.

        Requests already over the ceiling are rejected without being counted.
        """

        decision = await self.check(domain)
        if not decision.allowed:
            log_event(
                logger,
                logging.WARNING,
                "rate_limited",
                domain=domain,
                current=decision.current,
                limit=decision.limit,
                reset_in_seconds=decision.reset_in_seconds,
            )
            return decision
        return await self.increment(domain)

    async def reset(self, domain: str) -> bool:
        try:
            await self._store.delete(self._key(domain))
        except Exception as exc:
            log_event(logger, logging.WARNING, "rate_limit_reset_failed", domain=domain, error=str(exc))
            return False
        return True

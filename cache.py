"""
Cache-or-compute memoization for scrape results.

Store failures are logged and treated as a miss (reads) or a no-op (writes);
the cache never blocks the scrape itself. Concurrent misses for the same key
all compute, and the last write wins.
"""

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Mapping, Optional, TypeVar

from logging_utils import log_event
from store import KeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_NAMESPACE = "scrape"


@dataclass(frozen=True)
class CachedValue(Generic[T]):
    value: T
    hit: bool


def generate_cache_key(
    url: str,
    params: Optional[Mapping[str, Any]] = None,
    namespace: str = DEFAULT_NAMESPACE,
) -> str:
    """
    Derive a URL-safe key from namespace, URL and parameters.

    Parameter keys are sorted first so insertion order never changes the key.
    """

    params = params or {}
    params_string = "|".join(
        f"{key}:{json.dumps(params[key], sort_keys=True, separators=(',', ':'), default=str)}"
        for key in sorted(params)
    )
    raw = f"{namespace}:{url}"
    if params_string:
        raw = f"{raw}:{params_string}"

    encoded = base64.b64encode(raw.encode("utf-8")).decode("ascii")
    return encoded.translate(str.maketrans({"+": "_", "/": "_", "=": "_"}))


async def get_cached(store: KeyValueStore, key: str) -> Optional[Any]:
    try:
        return await store.get(key)
    except Exception as exc:
        log_event(logger, logging.WARNING, "cache_read_failed", key=key, error=str(exc))
        return None


async def set_cached(store: KeyValueStore, key: str, value: Any, ttl: int) -> bool:
    try:
        await store.set(key, value, ttl_seconds=ttl)
        return True
    except Exception as exc:
        log_event(logger, logging.WARNING, "cache_store_failed", key=key, error=str(exc))
        return False


async def delete_cached(store: KeyValueStore, key: str) -> bool:
    try:
        await store.delete(key)
        return True
    except Exception as exc:
        log_event(logger, logging.WARNING, "cache_delete_failed", key=key, error=str(exc))
        return False


async def cached_compute(
    store: KeyValueStore,
    url: str,
    params: Optional[Dict[str, Any]],
    producer: Callable[[], Awaitable[T]],
    *,
    namespace: str = DEFAULT_NAMESPACE,
    ttl: int,
) -> CachedValue[T]:
    """
    Return the cached value for (namespace, url, params), or run `producer`
    and store what it returns for `ttl` seconds.
    """

    key = generate_cache_key(url, params, namespace)
    cached = await get_cached(store, key)
    if cached is not None:
        log_event(logger, logging.INFO, "cache_hit", url=url, namespace=namespace)
        return CachedValue(value=cached, hit=True)

    log_event(logger, logging.INFO, "cache_miss", url=url, namespace=namespace)
    value = await producer()
    await set_cached(store, key, value, ttl)
    return CachedValue(value=value, hit=False)

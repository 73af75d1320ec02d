"""
Token-invalidated caches for save results and validation verdicts.

PayloadCache drops everything whenever its token changes. The orchestrator
uses the baseline version as the token, so a cached result is only ever
reused against the baseline it was saved on.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


def stable_signature(value: Any) -> str:
    """Order-independent JSON signature used as a cache key."""
    return json.dumps(value, sort_keys=True, default=str, separators=(",", ":"))


@dataclass
class CacheEntry(Generic[T]):
    value: T
    timestamp: float
    hits: int = 0


class PayloadCache(Generic[T]):
    """
    Signature-keyed cache with token invalidation, TTL and a size bound.

    Example:
        cache = PayloadCache(lambda: baseline.version, ttl_ms=300000)
        cached = cache.get(signature)
        if cached is None:
            cache.put(signature, await transport(payload))
    """

    def __init__(
        self,
        token_provider: Callable[[], Any],
        max_size: int = 100,
        ttl_ms: float = 5 * 60 * 1000,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            token_provider: Returns the current token; a change clears the cache
            max_size: Entries kept before the oldest are evicted
            ttl_ms: Entry lifetime
            clock: Milliseconds clock (default: wall clock)
        """
        self._token_provider = token_provider
        self._max_size = max_size
        self._ttl_ms = ttl_ms
        self._clock = clock or (lambda: time.time() * 1000.0)
        self._cache: Dict[str, CacheEntry[T]] = {}
        self._last_token: Any = None

    def _check_token(self) -> None:
        current_token = self._token_provider()

        # Invalidate entire cache if token changed
        if current_token != self._last_token:
            if self._cache:
                logger.debug(f"Token changed ({self._last_token!r} -> {current_token!r}), clearing {len(self._cache)} entries")
            self._cache.clear()
            self._last_token = current_token

    def _is_expired(self, entry: CacheEntry[T]) -> bool:
        return self._clock() - entry.timestamp > self._ttl_ms

    def get(self, key: str) -> Optional[T]:
        """Cached value, or None if absent, expired or the token changed."""
        self._check_token()
        entry = self._cache.get(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            del self._cache[key]
            return None
        entry.hits += 1
        return entry.value

    def put(self, key: str, value: T) -> None:
        self._check_token()
        self._cache[key] = CacheEntry(value=value, timestamp=self._clock())
        self._cleanup()

    def has(self, key: str) -> bool:
        """Like get() without counting a hit."""
        self._check_token()
        entry = self._cache.get(key)
        return entry is not None and not self._is_expired(entry)

    def delete(self, key: str) -> bool:
        return self._cache.pop(key, None) is not None

    def invalidate(self) -> None:
        """Manually invalidate the entire cache."""
        self._cache.clear()
        self._last_token = None

    def keys(self) -> List[str]:
        return list(self._cache.keys())

    def __len__(self) -> int:
        return len(self._cache)

    def stats(self) -> Dict[str, float]:
        entries = list(self._cache.values())
        total_hits = sum(entry.hits for entry in entries)
        return {
            'size': len(entries),
            'total_hits': total_hits,
            'average_hits': total_hits / len(entries) if entries else 0,
        }

    def _cleanup(self) -> None:
        if len(self._cache) <= self._max_size:
            return

        for key in [k for k, entry in self._cache.items() if self._is_expired(entry)]:
            del self._cache[key]

        # Still over: evict oldest
        overflow = len(self._cache) - self._max_size
        if overflow > 0:
            oldest = sorted(self._cache.items(), key=lambda item: item[1].timestamp)[:overflow]
            for key, _ in oldest:
                del self._cache[key]


class ValidationCache:
    """Bounded map from payload signature to a validation verdict.

    Evicts in insertion order once max_size is exceeded.
    """

    def __init__(self, max_size: int = 50):
        self._max_size = max_size
        self._cache: Dict[str, bool] = {}

    def get(self, key: str) -> Optional[bool]:
        return self._cache.get(key)

    def put(self, key: str, valid: bool) -> None:
        self._cache.pop(key, None)
        self._cache[key] = valid
        while len(self._cache) > self._max_size:
            del self._cache[next(iter(self._cache))]

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

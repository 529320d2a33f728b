"""
SecurityStore - process-local state for rate limiting and CSRF.

All counters and tokens live here instead of in module globals. The store is
built once at application startup, handed to every limiter and guard, and
cleared between tests.

Nothing survives a restart. Running several worker processes gives each one
its own buckets; a shared backend would be needed for that deployment.
"""

import threading
import time
from collections.abc import Callable, Iterator
from typing import Generic, TypeVar

from invitegate.infrastructure.observability.logging import get_logger
from invitegate.models.domain.security_domain import (
    CSRFTokenEntry,
    RateLimitEntry,
    ViolationHistory,
)

logger = get_logger(__name__)

T = TypeVar("T")

HOUR_MS = 60 * 60 * 1000


def wall_clock_ms() -> float:
    return time.time() * 1000


class ExpiringMap(Generic[T]):
    """
    Dict guarded by a lock, with a sweep that drops expired entries.

    Callers needing read-modify-write atomicity hold `lock` around the
    whole sequence; the lock is re-entrant so the helpers can be used inside.
    """

    def __init__(self, name: str, is_expired: Callable[[T, float], bool]):
        self.name = name
        self._is_expired = is_expired
        self._entries: dict[str, T] = {}
        self.lock = threading.RLock()

    def get(self, key: str) -> T | None:
        with self.lock:
            return self._entries.get(key)

    def set(self, key: str, entry: T) -> None:
        with self.lock:
            self._entries[key] = entry

    def delete(self, key: str) -> bool:
        with self.lock:
            return self._entries.pop(key, None) is not None

    def sweep(self, now: float) -> int:
        with self.lock:
            expired = [k for k, v in self._entries.items() if self._is_expired(v, now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self.lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self.lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self.lock:
            return key in self._entries


def _rate_limit_expired(entry: RateLimitEntry, now: float) -> bool:
    return entry.reset_time < now


def _csrf_expired(entry: CSRFTokenEntry, now: float) -> bool:
    return entry.expires < now


def _history_decayed(history: ViolationHistory, now: float) -> bool:
    # A fully decayed history behaves exactly like a fresh one
    if history.count == 0:
        return True
    hours = (now - history.last_violation) / HOUR_MS
    return hours > 1 and int(hours) >= history.count


class SecurityStore:
    """
    Container for every in-memory security map.

    Args:
        clock: Returns the current time in epoch milliseconds. Tests pass a
            controllable clock to exercise expiry deterministically.
    """

    def __init__(self, clock: Callable[[], float] = wall_clock_ms):
        self.clock = clock
        self._rate_limits: dict[str, ExpiringMap[RateLimitEntry]] = {}
        self._violations: dict[str, ExpiringMap[ViolationHistory]] = {}
        self.csrf_tokens: ExpiringMap[CSRFTokenEntry] = ExpiringMap("csrf", _csrf_expired)
        self._registry_lock = threading.Lock()

    def now(self) -> float:
        return self.clock()

    def rate_limits(self, name: str) -> ExpiringMap[RateLimitEntry]:
        """Counter map for one named limiter, created on first use."""
        with self._registry_lock:
            if name not in self._rate_limits:
                self._rate_limits[name] = ExpiringMap(f"ratelimit:{name}", _rate_limit_expired)
            return self._rate_limits[name]

    def violations(self, name: str) -> ExpiringMap[ViolationHistory]:
        with self._registry_lock:
            if name not in self._violations:
                self._violations[name] = ExpiringMap(f"violations:{name}", _history_decayed)
            return self._violations[name]

    def _all_maps(self) -> Iterator[ExpiringMap]:
        with self._registry_lock:
            maps = [*self._rate_limits.values(), *self._violations.values()]
        yield from maps
        yield self.csrf_tokens

    def sweep(self, now: float | None = None) -> int:
        """Delete expired entries from every map. Returns the number removed."""
        now = self.now() if now is None else now
        removed = 0
        for entries in self._all_maps():
            removed += entries.sweep(now)

        if removed:
            logger.debug("Security store swept", removed=removed)
        return removed

    def clear(self) -> None:
        for entries in self._all_maps():
            entries.clear()

    def shutdown(self) -> None:
        """Drop all state; called from the application lifespan."""
        self.clear()
        logger.info("Security store cleared on shutdown")

    def stats(self) -> dict[str, int]:
        return {entries.name: len(entries) for entries in self._all_maps()}

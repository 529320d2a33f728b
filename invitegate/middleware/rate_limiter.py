"""
Rate Limiter - in-memory fixed window request rate limiting.

This module provides two limiters backed by the SecurityStore:
- FixedWindowRateLimiter: counter per client, reset fully when the window ends
- ProgressiveRateLimiter: same counter, but repeat offenders get a wider
  window and a smaller allowance

Design:
- Fixed window (not sliding): the count resets at `reset_time`, it does not decay
- Increment first, then compare: the stored count may briefly exceed the limit,
  the request that pushes it over is the one rejected
- Each named limiter owns its own map, so throttling on one never affects another

Usage:
    limiter = FixedWindowRateLimiter(store, name="auth", window_ms=900_000, max_attempts=10)
    decision = limiter.check(client_id)
    if not decision.allowed:
        ...  # 429 with decision.retry_after
"""

import math

from invitegate.config import settings
from invitegate.models.domain.security_domain import (
    RateLimitDecision,
    RateLimitEntry,
    ViolationHistory,
)
from invitegate.services.security_store import HOUR_MS, ExpiringMap, SecurityStore

MINUTE_MS = 60 * 1000


def _hit(
    entries: ExpiringMap[RateLimitEntry],
    client_id: str,
    window_ms: float,
    now: float,
) -> RateLimitEntry:
    """Count one request for client_id and return a snapshot of its entry."""
    with entries.lock:
        entry = entries.get(client_id)
        if entry is None or entry.reset_time < now:
            entry = RateLimitEntry(count=0, reset_time=now + window_ms)
            entries.set(client_id, entry)
        entry.count += 1
        return RateLimitEntry(count=entry.count, reset_time=entry.reset_time)


def _retry_after_seconds(reset_time: float, now: float) -> int:
    return math.ceil((reset_time - now) / 1000)


class FixedWindowRateLimiter:
    """
    Fixed window limiter keyed by client fingerprint.

    Example:
        With max_attempts=5 and a 15 minute window, the 6th request inside
        the window is rejected; the first request after reset_time starts a
        new window with count 1.
    """

    def __init__(
        self,
        store: SecurityStore,
        name: str,
        window_ms: int = 15 * MINUTE_MS,
        max_attempts: int = 5,
        operation_name: str | None = None,
    ):
        self.store = store
        self.name = name
        self.window_ms = window_ms
        self.max_attempts = max_attempts
        self.operation_name = operation_name or name.replace("_", " ")
        self._entries = store.rate_limits(name)

    def check(
        self,
        client_id: str,
        window_ms: int | None = None,
        max_attempts: int | None = None,
    ) -> RateLimitDecision:
        window_ms = window_ms or self.window_ms
        max_attempts = max_attempts or self.max_attempts
        now = self.store.now()

        entry = _hit(self._entries, client_id, window_ms, now)
        allowed = entry.count <= max_attempts

        return RateLimitDecision(
            allowed=allowed,
            limit=max_attempts,
            remaining=max(0, max_attempts - entry.count),
            reset_at=entry.reset_time,
            retry_after=0 if allowed else _retry_after_seconds(entry.reset_time, now),
            window_ms=window_ms,
        )

    def rejection_message(self, decision: RateLimitDecision) -> str:
        return f"Too many {self.operation_name} attempts. Please try again later."

    def reset(self, client_id: str) -> None:
        self._entries.delete(client_id)


class ProgressiveRateLimiter:
    """
    Limiter whose penalty grows with each violation and decays over time.

    multiplier   = min(max_multiplier, 1 + violations * 0.5)
    window_ms    = base_window_ms * multiplier
    max_attempts = max(1, floor(base_max_attempts / multiplier))

    One violation is forgiven per full hour since the last one (only once
    more than an hour has passed).
    """

    def __init__(
        self,
        store: SecurityStore,
        name: str = "progressive",
        base_window_ms: int = 15 * MINUTE_MS,
        base_max_attempts: int = 5,
        max_multiplier: float | None = None,
    ):
        self.store = store
        self.name = name
        self.base_window_ms = base_window_ms
        self.base_max_attempts = base_max_attempts
        self.max_multiplier = max_multiplier or settings.RATE_LIMIT_PROGRESSIVE_MAX_MULTIPLIER
        self._entries = store.rate_limits(f"progressive:{name}")
        self._history = store.violations(name)

    def _current_penalty(self, history: ViolationHistory, now: float) -> float:
        hours_since_last = (now - history.last_violation) / HOUR_MS
        if hours_since_last > 1:
            history.count = max(0, history.count - math.floor(hours_since_last))
        return min(self.max_multiplier, 1 + history.count * 0.5)

    def check(self, client_id: str) -> RateLimitDecision:
        now = self.store.now()

        with self._history.lock:
            history = self._history.get(client_id)
            if history is None:
                history = ViolationHistory()
                self._history.set(client_id, history)

            multiplier = self._current_penalty(history, now)
            window_ms = int(self.base_window_ms * multiplier)
            max_attempts = max(1, math.floor(self.base_max_attempts / multiplier))

            entry = _hit(self._entries, client_id, window_ms, now)
            allowed = entry.count <= max_attempts
            if not allowed:
                history.count += 1
                history.last_violation = now

        return RateLimitDecision(
            allowed=allowed,
            limit=max_attempts,
            remaining=max(0, max_attempts - entry.count),
            reset_at=entry.reset_time,
            retry_after=0 if allowed else _retry_after_seconds(entry.reset_time, now),
            window_ms=window_ms,
            penalty=multiplier,
        )

    def violation_count(self, client_id: str) -> int:
        history = self._history.get(client_id)
        return history.count if history else 0

    def rejection_message(self, decision: RateLimitDecision) -> str:
        return f"Rate limit exceeded. Current penalty: {decision.penalty:g}x. Please try again later."


def build_named_limiters(store: SecurityStore) -> dict[str, FixedWindowRateLimiter]:
    """The standalone limiters used outside the route presets."""
    return {
        "sensitive_operation": FixedWindowRateLimiter(
            store, "sensitive_operation", window_ms=15 * MINUTE_MS, max_attempts=5
        ),
        "auth": FixedWindowRateLimiter(
            store, "auth", window_ms=15 * MINUTE_MS, max_attempts=10, operation_name="authentication"
        ),
        "content_creation": FixedWindowRateLimiter(
            store, "content_creation", window_ms=HOUR_MS, max_attempts=20
        ),
        "file_upload": FixedWindowRateLimiter(
            store, "file_upload", window_ms=HOUR_MS, max_attempts=50
        ),
    }

import math

from invitegate.middleware.rate_limiter import (
    MINUTE_MS,
    FixedWindowRateLimiter,
    ProgressiveRateLimiter,
    build_named_limiters,
)
from invitegate.models.domain.security_domain import ViolationHistory

WINDOW_MS = 15 * MINUTE_MS


def test_request_over_the_limit_is_rejected_with_retry_after(store):
    limiter = FixedWindowRateLimiter(store, "login", window_ms=WINDOW_MS, max_attempts=5)

    decisions = [limiter.check("client-a") for _ in range(6)]

    assert all(d.allowed for d in decisions[:5])
    rejected = decisions[5]
    assert not rejected.allowed
    assert rejected.retry_after == math.ceil(WINDOW_MS / 1000)
    assert rejected.remaining == 0


def test_new_window_after_reset_time_starts_at_one(store, clock):
    limiter = FixedWindowRateLimiter(store, "login", window_ms=WINDOW_MS, max_attempts=2)
    for _ in range(3):
        limiter.check("client-a")

    clock.advance(WINDOW_MS + 1)
    decision = limiter.check("client-a")

    assert decision.allowed
    assert decision.remaining == 1  # count is back to 1


def test_window_is_fixed_not_sliding(store, clock):
    limiter = FixedWindowRateLimiter(store, "login", window_ms=WINDOW_MS, max_attempts=2)
    limiter.check("client-a")
    clock.advance(WINDOW_MS - 1000)
    limiter.check("client-a")

    decision = limiter.check("client-a")

    assert not decision.allowed
    assert decision.retry_after == 1


def test_clients_are_counted_separately(store):
    limiter = FixedWindowRateLimiter(store, "login", max_attempts=1)
    limiter.check("client-a")

    assert not limiter.check("client-a").allowed
    assert limiter.check("client-b").allowed


def test_named_limiters_are_independent(store):
    limiters = build_named_limiters(store)
    for _ in range(11):
        limiters["auth"].check("client-a")

    assert not limiters["auth"].check("client-a").allowed
    assert limiters["file_upload"].check("client-a").allowed
    assert limiters["content_creation"].check("client-a").allowed


def test_per_call_overrides(store):
    limiter = FixedWindowRateLimiter(store, "api", window_ms=WINDOW_MS, max_attempts=100)

    limiter.check("client-a", max_attempts=1)
    decision = limiter.check("client-a", max_attempts=1)

    assert not decision.allowed
    assert decision.limit == 1


def test_rejection_message_uses_operation_name(store):
    limiters = build_named_limiters(store)
    decision = limiters["auth"].check("client-a")

    assert limiters["auth"].rejection_message(decision) == (
        "Too many authentication attempts. Please try again later."
    )


def test_decision_headers(store, clock):
    limiter = FixedWindowRateLimiter(store, "api", window_ms=WINDOW_MS, max_attempts=1)
    limiter.check("client-a")
    decision = limiter.check("client-a")

    headers = decision.headers()

    assert headers["X-RateLimit-Limit"] == "1"
    assert headers["X-RateLimit-Remaining"] == "0"
    assert headers["X-RateLimit-Reset"].endswith("Z")
    assert headers["Retry-After"] == str(decision.retry_after)
    assert "X-RateLimit-Penalty" not in headers


def test_reset_forgets_the_client(store):
    limiter = FixedWindowRateLimiter(store, "api", max_attempts=1)
    limiter.check("client-a")
    limiter.reset("client-a")

    assert limiter.check("client-a").allowed


# =================================================================
# PROGRESSIVE
# =================================================================


def _exhaust(limiter, client_id):
    decision = None
    for _ in range(limiter.base_max_attempts + 1):
        decision = limiter.check(client_id)
    return decision


def test_progressive_penalty_tightens_after_violation(store, clock):
    limiter = ProgressiveRateLimiter(store, base_window_ms=WINDOW_MS, base_max_attempts=5)

    rejected = _exhaust(limiter, "client-a")
    assert not rejected.allowed
    assert limiter.violation_count("client-a") == 1

    clock.advance(WINDOW_MS + 1)
    decision = limiter.check("client-a")

    assert decision.allowed
    assert decision.penalty == 1.5
    assert decision.limit <= 5
    assert decision.limit == 3
    assert decision.window_ms >= WINDOW_MS
    assert decision.headers()["X-RateLimit-Penalty"] == "1.50"


def test_progressive_penalty_decays_per_hour(store, clock):
    limiter = ProgressiveRateLimiter(store, base_window_ms=WINDOW_MS, base_max_attempts=5)
    _exhaust(limiter, "client-a")

    clock.advance(2 * 60 * MINUTE_MS + 1)
    decision = limiter.check("client-a")

    assert decision.penalty == 1.0
    assert decision.limit == 5


def test_progressive_penalty_is_capped(store, clock):
    limiter = ProgressiveRateLimiter(
        store, base_window_ms=WINDOW_MS, base_max_attempts=5, max_multiplier=8
    )
    store.violations("progressive").set(
        "client-a", ViolationHistory(count=100, last_violation=clock.now)
    )

    decision = limiter.check("client-a")

    assert decision.penalty == 8
    assert decision.limit == 1
    assert decision.window_ms == WINDOW_MS * 8


def test_progressive_rejection_message(store):
    limiter = ProgressiveRateLimiter(store, base_window_ms=WINDOW_MS, base_max_attempts=1)
    limiter.check("client-a")
    decision = limiter.check("client-a")

    assert limiter.rejection_message(decision) == (
        "Rate limit exceeded. Current penalty: 1x. Please try again later."
    )

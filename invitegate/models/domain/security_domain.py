"""
Domain models for the request-security layer.

Store entries are plain dataclasses (mutated in place under a store lock);
decisions and results handed to callers are pydantic models.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


class MembershipTier(str, Enum):
    FREE = "free"
    LITE = "lite"
    PRO = "pro"
    ELITE = "elite"

    @property
    def level(self) -> int:
        return _TIER_LEVELS[self]


_TIER_LEVELS = {
    MembershipTier.FREE: 0,
    MembershipTier.LITE: 1,
    MembershipTier.PRO: 2,
    MembershipTier.ELITE: 3,
}


class AuthenticatedUser(BaseModel):
    """Identity resolved from a bearer token."""

    id: str
    email: str | None = None
    role: str = "user"
    membership_tier: MembershipTier = MembershipTier.FREE


# =================================================================
# STORE ENTRIES
# =================================================================


@dataclass
class RateLimitEntry:
    count: int
    reset_time: float  # epoch ms


@dataclass
class CSRFTokenEntry:
    token: str
    expires: float  # epoch ms


@dataclass
class ViolationHistory:
    count: int = 0
    last_violation: float = 0.0  # epoch ms


# =================================================================
# DECISIONS / RESULTS
# =================================================================


class RateLimitDecision(BaseModel):
    """Result of one rate-limit check."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch ms
    retry_after: int = 0  # seconds, only meaningful when rejected
    window_ms: int
    penalty: float | None = None

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": format_timestamp(self.reset_at),
        }
        if self.penalty is not None:
            headers["X-RateLimit-Penalty"] = f"{self.penalty:.2f}"
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class CSRFCheck(BaseModel):
    valid: bool
    reason: str | None = None


class ModerationCategories(BaseModel):
    profanity: bool = False
    spam: bool = False
    malicious: bool = False
    inappropriate: bool = False


class ModerationResult(BaseModel):
    """Outcome of scoring a piece of user-generated text."""

    is_approved: bool
    reason: str | None = None
    score: int = Field(ge=0)
    categories: ModerationCategories = Field(default_factory=ModerationCategories)


class FileScanResult(BaseModel):
    is_safe: bool
    threats: list[str] = Field(default_factory=list)
    confidence: int = 100


def format_timestamp(epoch_ms: float) -> str:
    """Render epoch milliseconds as ISO-8601 UTC with millisecond precision."""
    moment = datetime.fromtimestamp(epoch_ms / 1000, tz=UTC)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"

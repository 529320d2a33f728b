"""
Content Moderation Service - heuristic scoring of guest-written text.

Scores RSVP messages, guest wishes and names before they reach storage.
The score is a pure function of the text:

    +80  malicious markup/script detected
    +15  per inappropriate word found (substring, case-insensitive)
    +20  per spam pattern matched
    +25  per suspicious pattern matched
    +15  more than half of the letters are uppercase (10+ chars)
    +5   per word (4+ chars) repeated more than 3 times
    +10  trimmed length under 3 or over 1000

Clamped to 100. Approved when the score is below the threshold (50).
The rejection reason follows a fixed priority (malicious > profanity > spam >
generic) no matter which category contributed the most points.
"""

import re

from invitegate.config import settings
from invitegate.infrastructure.observability.logging import get_logger
from invitegate.models.domain.security_domain import ModerationCategories, ModerationResult
from invitegate.security.sanitization import detect_malicious_content

logger = get_logger(__name__)

MAX_SCORE = 100

INAPPROPRIATE_WORDS = [
    # Profanity
    "damn", "hell", "shit", "ass", "bastard", "bitch", "crap", "dick", "piss", "tits",
    # Hate speech indicators
    "hate", "kill", "murder", "terrorist", "nazi", "racist",
    # Spam phrases
    "click here", "buy now", "free money", "winner", "congratulations", "claim now",
    # Off-topic for a wedding platform
    "divorce", "breakup", "cheating", "affair", "scam",
]  # fmt: skip

SPAM_PATTERNS = [
    re.compile(r"(\w+)\1{3,}", re.ASCII),  # repeated runs ("aaaa", "hahahaha")
    re.compile(r"[A-Z]{5,}"),
    re.compile(
        r"https?://(www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
        r"([-a-zA-Z0-9()@:%_+.~#?&/=]*)",
        re.ASCII,
    ),
    re.compile(r"\b\d{3,}\b", re.ASCII),  # phone-number-like runs
    re.compile(r"[!@#$%^&*]{3,}"),
]

SUSPICIOUS_PATTERNS = [
    re.compile(r"script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE | re.ASCII),
    re.compile(r"eval\s*\(", re.IGNORECASE),
    re.compile(r"expression\s*\(", re.IGNORECASE),
    re.compile(r"url\s*\(", re.IGNORECASE),
    re.compile(r"@import", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
]

REASON_MALICIOUS = "Content contains potentially malicious code or scripts"
REASON_PROFANITY = "Content contains inappropriate language"
REASON_SPAM = "Content appears to be spam"
REASON_GENERIC = "Content does not meet community guidelines"

_NAME_RE = re.compile(r"^[a-zA-Z\s'\-]+$")
_UPPER_RE = re.compile(r"[A-Z]")
_LETTER_RE = re.compile(r"[a-zA-Z]")


class ContentModerationService:
    """Score free text and apply per-field constraints."""

    def __init__(self, approval_threshold: int | None = None):
        self.approval_threshold = approval_threshold or settings.MODERATION_APPROVAL_THRESHOLD

    def analyze_content(self, content: str) -> ModerationResult:
        """Score text. Empty or non-string input is approved with score 0."""
        if not isinstance(content, str) or not content.strip():
            return ModerationResult(is_approved=True, score=0)

        lowered = content.lower()
        categories = ModerationCategories()
        score = 0

        if detect_malicious_content(content):
            categories.malicious = True
            score += 80

        found_words = [word for word in INAPPROPRIATE_WORDS if word in lowered]
        if found_words:
            categories.inappropriate = True
            categories.profanity = True
            score += len(found_words) * 15

        spam_hits = sum(1 for pattern in SPAM_PATTERNS if pattern.search(content))
        if spam_hits:
            categories.spam = True
            score += spam_hits * 20

        score += 25 * sum(1 for pattern in SUSPICIOUS_PATTERNS if pattern.search(content))

        score += self._excessive_capitalization_penalty(content)
        score += self._repeated_words_penalty(content)
        score += self._length_penalty(content)

        score = min(MAX_SCORE, score)
        is_approved = score < self.approval_threshold

        return ModerationResult(
            is_approved=is_approved,
            reason=None if is_approved else self._reason(categories),
            score=score,
            categories=categories,
        )

    @staticmethod
    def _reason(categories: ModerationCategories) -> str:
        if categories.malicious:
            return REASON_MALICIOUS
        if categories.profanity:
            return REASON_PROFANITY
        if categories.spam:
            return REASON_SPAM
        return REASON_GENERIC

    @staticmethod
    def _excessive_capitalization_penalty(content: str) -> int:
        if len(content) < 10:
            return 0
        total_letters = len(_LETTER_RE.findall(content))
        if total_letters == 0:
            return 0
        uppercase = len(_UPPER_RE.findall(content))
        return 15 if uppercase / total_letters * 100 > 50 else 0

    @staticmethod
    def _repeated_words_penalty(content: str) -> int:
        counts: dict[str, int] = {}
        for word in re.split(r"\s+", content.lower()):
            if len(word) > 3:
                counts[word] = counts.get(word, 0) + 1
        return sum(5 for count in counts.values() if count > 3)

    @staticmethod
    def _length_penalty(content: str) -> int:
        length = len(content.strip())
        if 0 < length < 3 or length > 1000:
            return 10
        return 0

    # =================================================================
    # FIELD-SPECIFIC WRAPPERS
    # =================================================================

    @staticmethod
    def _flag(result: ModerationResult, reason: str, penalty: int) -> None:
        result.is_approved = False
        result.reason = result.reason or reason
        result.score = min(MAX_SCORE, result.score + penalty)

    def moderate_guest_name(self, name: str) -> ModerationResult:
        """Names: 2-50 chars, letters, spaces, hyphens and apostrophes only."""
        result = self.analyze_content(name)
        name = name if isinstance(name, str) else ""

        if len(name) < 2 or len(name) > 50:
            self._flag(result, "Name length is invalid", 20)
        if not _NAME_RE.match(name):
            self._flag(result, "Name contains invalid characters", 30)
        return result

    def moderate_rsvp_message(self, message: str) -> ModerationResult:
        """RSVP messages are optional; when present they must be 5-500 chars."""
        result = self.analyze_content(message)
        if isinstance(message, str) and message and (len(message) < 5 or len(message) > 500):
            self._flag(result, "Message length is invalid (must be 5-500 characters)", 15)
        return result

    def moderate_guest_wish(self, wish: str) -> ModerationResult:
        """Guest wishes must be 10-300 chars."""
        result = self.analyze_content(wish)
        wish = wish if isinstance(wish, str) else ""
        if len(wish) < 10 or len(wish) > 300:
            self._flag(result, "Wish length is invalid (must be 10-300 characters)", 15)
        return result

    def log_moderation_decision(
        self, content: str, result: ModerationResult, user_id: str | None = None
    ) -> None:
        """Record rejections and borderline approvals; content is truncated."""
        log_data = {
            "content": content[:100] + ("..." if len(content) > 100 else ""),
            "is_approved": result.is_approved,
            "reason": result.reason,
            "score": result.score,
            "categories": result.categories.model_dump(),
            "user_id": user_id,
        }

        if not result.is_approved:
            logger.warning("Content moderation: rejected", **log_data)
        elif result.score > 20:
            logger.info("Content moderation: approved with warnings", **log_data)


content_moderation_service = ContentModerationService()

"""
String sanitization and field-format helpers.

`sanitize` is the single string scrubber used by the request validator.
The `validate_*` helpers return the normalized value or None, which makes
them usable as `custom` predicates in validation schemas.
"""

import re
from datetime import date
from typing import Any
from urllib.parse import urlparse

MAX_STRING_LENGTH = 10000

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

# Shared with the content moderation scorer
MALICIOUS_PATTERNS = [
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE | re.ASCII),
    re.compile(r"eval\s*\(", re.IGNORECASE),
    re.compile(r"expression\s*\(", re.IGNORECASE),
    re.compile(r"url\s*\(", re.IGNORECASE),
    re.compile(r"@import", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
]

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^(0[1-9]\d{7,9})$")  # Malaysian landline/mobile
_HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
_TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SLUG_RE = re.compile(r"^[a-z0-9-]+$")

RESERVED_SLUGS = {"admin", "api", "www", "mail", "ftp"}


def sanitize(value: Any) -> str:
    """Strip control characters and cap length. Non-strings become ''."""
    if not isinstance(value, str):
        return ""
    return _CONTROL_CHARS.sub("", value)[:MAX_STRING_LENGTH]


def sanitize_shallow(value: Any) -> Any:
    """Sanitize the string leaves of a dict or list, one level deep."""
    if isinstance(value, dict):
        return {k: sanitize(v) if isinstance(v, str) else v for k, v in value.items()}
    if isinstance(value, list):
        return [sanitize(item) if isinstance(item, str) else item for item in value]
    if isinstance(value, str):
        return sanitize(value)
    return value


def detect_malicious_content(content: Any) -> bool:
    """True if the text carries script/injection markers."""
    if not isinstance(content, str):
        return False
    return any(pattern.search(content) for pattern in MALICIOUS_PATTERNS)


def validate_and_sanitize_email(email: Any) -> str | None:
    if not isinstance(email, str):
        return None
    sanitized = email.strip().lower()
    return sanitized if _EMAIL_RE.match(sanitized) else None


def validate_and_sanitize_phone(phone: Any) -> str | None:
    if not isinstance(phone, str):
        return None
    sanitized = re.sub(r"\D", "", phone)
    return sanitized if _PHONE_RE.match(sanitized) else None


def validate_and_sanitize_url(url: Any) -> str | None:
    """Accept only absolute http(s) URLs."""
    if not isinstance(url, str):
        return None
    sanitized = url.strip()
    parsed = urlparse(sanitized)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return sanitized


def validate_hex_color(color: Any) -> str | None:
    if not isinstance(color, str):
        return None
    sanitized = color.strip()
    return sanitized if _HEX_COLOR_RE.match(sanitized) else None


def validate_time_format(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    sanitized = value.strip()
    return sanitized if _TIME_RE.match(sanitized) else None


def validate_date_format(value: Any) -> str | None:
    """YYYY-MM-DD that is also a real calendar date."""
    if not isinstance(value, str):
        return None
    sanitized = value.strip()
    if not _DATE_RE.match(sanitized):
        return None
    try:
        date.fromisoformat(sanitized)
    except ValueError:
        return None
    return sanitized


def validate_slug(slug: Any) -> str | None:
    if not isinstance(slug, str):
        return None
    sanitized = slug.strip().lower()
    if not _SLUG_RE.match(sanitized) or sanitized in RESERVED_SLUGS:
        return None
    return sanitized

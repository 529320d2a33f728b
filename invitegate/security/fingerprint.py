"""
Deterministic SHA-256 client fingerprints.

There is no server-side session store: rate-limit buckets and CSRF tokens are
keyed by a hash of what the client sends on every request. Two users behind
the same NAT with an identical User-Agent share a bucket; this is a known
limitation kept on purpose (see DESIGN.md).
"""

from __future__ import annotations

import hashlib

UNKNOWN = "unknown"
ANONYMOUS = "anonymous"

__all__ = [
    "compute_digest",
    "client_fingerprint",
    "session_fingerprint",
]


def compute_digest(*parts: str | None) -> str:
    """Hash colon-joined parts, substituting ``unknown`` for missing ones."""
    payload = ":".join(part or UNKNOWN for part in parts)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def client_fingerprint(ip: str | None, user_agent: str | None, user_id: str | None) -> str:
    """Rate-limit bucket key for (ip, user agent, user id or anonymous)."""
    return compute_digest(ip, user_agent, user_id or ANONYMOUS)


def session_fingerprint(ip: str | None, user_agent: str | None) -> str:
    """CSRF session key for (ip, user agent)."""
    return compute_digest(ip, user_agent)

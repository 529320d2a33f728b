"""
Security error taxonomy.

Every pipeline stage converts these into a response outcome; none of them
escapes to the application. Each error knows its HTTP status and the JSON
body the client receives:

    {"success": false, "error": "...", "details": [...]}  # details optional
"""

from typing import Any


class SecurityError(Exception):
    """Base class for request-security failures."""

    status_code = 500
    event = "security_error"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "error": self.message}
        body.update({k: v for k, v in self.extra.items() if v is not None})
        return body


class RateLimitExceeded(SecurityError):
    status_code = 429
    event = "rate_limit_exceeded"

    def __init__(self, message: str, retry_after: int, penalty_multiplier: float | None = None):
        super().__init__(message, retryAfter=retry_after, penaltyMultiplier=penalty_multiplier)
        self.retry_after = retry_after
        self.penalty_multiplier = penalty_multiplier


class AuthenticationRequired(SecurityError):
    status_code = 401
    event = "authentication_failed"


class AccessDenied(SecurityError):
    status_code = 403
    event = "access_denied"


class InsufficientMembership(AccessDenied):
    event = "membership_denied"


class CSRFInvalid(SecurityError):
    status_code = 403
    event = "csrf_validation_failed"
    reason = "token_mismatch"


class CSRFMissing(CSRFInvalid):
    reason = "token_missing"


class CSRFExpired(CSRFInvalid):
    reason = "expired_or_missing_session"


class ValidationFailed(SecurityError):
    status_code = 400
    event = "validation_failed"

    def __init__(self, message: str, details: list[str]):
        super().__init__(message, details=list(details))
        self.details = list(details)


class ContentRejected(SecurityError):
    status_code = 400
    event = "content_rejected"

    def __init__(self, reason: str | None, score: int = 0, categories: dict | None = None):
        super().__init__("Content not allowed", reason=reason)
        self.reason = reason
        self.score = score
        self.categories = categories or {}


class FileRejected(SecurityError):
    status_code = 400
    event = "file_rejected"

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message, details=details)
        self.details = details

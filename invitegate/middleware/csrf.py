"""
CSRF Guard - per-session tokens for state-changing requests.

Tokens are issued on safe requests (and on demand from /healthz) and checked
on POST/PUT/PATCH/DELETE. The session is the SHA-256 of (client IP,
User-Agent); there is no server-side session id.

Token lookup order on validation:
1. X-CSRF-Token header
2. `csrf_token` body field
3. `csrf_token` query parameter

The double-submit variant also requires the `csrf-token` cookie and demands
cookie == supplied token == stored token.

Only the first 8 characters of a supplied token are ever logged.
"""

import secrets

from invitegate.config import settings
from invitegate.core.errors import CSRFExpired, CSRFInvalid, CSRFMissing
from invitegate.infrastructure.observability.logging import get_logger, redact_token
from invitegate.models.domain.security_domain import CSRFCheck, CSRFTokenEntry
from invitegate.security.fingerprint import session_fingerprint
from invitegate.services.security_store import SecurityStore

logger = get_logger(__name__)

SAFE_METHODS = ("GET", "HEAD", "OPTIONS")
TOKEN_BYTES = 32

EXPIRED_MESSAGE = "CSRF token expired or invalid. Please refresh the page and try again."
MISSING_MESSAGE = (
    "CSRF token required. Please include X-CSRF-Token header or csrf_token in your request."
)
MISMATCH_MESSAGE = "Invalid CSRF token. Please refresh the page and try again."
DOUBLE_SUBMIT_MISSING_MESSAGE = (
    "CSRF protection failed. Both cookie and request token are required."
)


def _tokens_match(supplied, expected: str) -> bool:
    return secrets.compare_digest(str(supplied).encode("utf-8"), expected.encode("utf-8"))


class CSRFGuard:
    """
    Issue, validate and invalidate CSRF tokens.

    One active token per session fingerprint: issuing again overwrites the
    previous token, which is rejected from then on.
    """

    def __init__(
        self,
        store: SecurityStore,
        ttl_seconds: int | None = None,
        skip_methods: tuple[str, ...] = SAFE_METHODS,
        skip_paths: list[str] | None = None,
    ):
        self.store = store
        self.ttl_ms = (ttl_seconds or settings.CSRF_TOKEN_TTL_SECONDS) * 1000
        self.skip_methods = tuple(m.upper() for m in skip_methods)
        self.skip_paths = skip_paths if skip_paths is not None else list(settings.CSRF_SKIP_PATHS)
        self._tokens = store.csrf_tokens

    def issue(self, ip: str | None, user_agent: str | None) -> str:
        """Generate and store a fresh token for this session."""
        session_id = session_fingerprint(ip, user_agent)
        token = secrets.token_hex(TOKEN_BYTES)
        self._tokens.set(session_id, CSRFTokenEntry(token=token, expires=self.store.now() + self.ttl_ms))
        return token

    def invalidate(self, ip: str | None, user_agent: str | None) -> bool:
        """Forget the session's token (logout)."""
        return self._tokens.delete(session_fingerprint(ip, user_agent))

    def is_exempt(self, method: str, path: str) -> bool:
        return method.upper() in self.skip_methods or any(
            path.startswith(prefix) for prefix in self.skip_paths
        )

    def _stored_entry(self, session_id: str) -> CSRFTokenEntry | None:
        entry = self._tokens.get(session_id)
        if entry is None or entry.expires < self.store.now():
            return None
        return entry

    def check(
        self,
        ip: str | None,
        user_agent: str | None,
        method: str,
        path: str,
        header_token: str | None = None,
        body_token: str | None = None,
        query_token: str | None = None,
    ) -> None:
        """
        Validate a request's token.

        Raises:
            CSRFExpired: no live token for this session
            CSRFMissing: request carries no token
            CSRFInvalid: token differs from the stored one
        """
        if self.is_exempt(method, path):
            return

        session_id = session_fingerprint(ip, user_agent)
        entry = self._stored_entry(session_id)
        log_fields = {"session_id": session_id, "path": path, "method": method, "ip": ip}

        if entry is None:
            logger.warning("CSRF token expired or not found", **log_fields)
            raise CSRFExpired(EXPIRED_MESSAGE)

        provided = header_token or body_token or query_token
        if not provided:
            logger.warning("CSRF token missing in request", **log_fields)
            raise CSRFMissing(MISSING_MESSAGE)

        if not _tokens_match(provided, entry.token):
            logger.warning(
                "Invalid CSRF token", provided_token=redact_token(str(provided)), **log_fields
            )
            raise CSRFInvalid(MISMATCH_MESSAGE)

    def check_double_submit(
        self,
        ip: str | None,
        user_agent: str | None,
        method: str,
        path: str,
        cookie_token: str | None,
        header_token: str | None = None,
        body_token: str | None = None,
    ) -> None:
        """Cookie, supplied token and stored token must all match."""
        if method.upper() in SAFE_METHODS:
            return

        session_id = session_fingerprint(ip, user_agent)
        entry = self._stored_entry(session_id)
        if entry is None:
            raise CSRFExpired(EXPIRED_MESSAGE)

        provided = header_token or body_token
        if not cookie_token or not provided:
            raise CSRFMissing(DOUBLE_SUBMIT_MISSING_MESSAGE)

        if not (
            _tokens_match(cookie_token, provided) and _tokens_match(provided, entry.token)
        ):
            logger.warning(
                "Double submit CSRF validation failed",
                session_id=session_id,
                path=path,
                method=method,
                ip=ip,
            )
            raise CSRFInvalid(MISMATCH_MESSAGE)

    def validate(self, *args, **kwargs) -> CSRFCheck:
        """Non-raising form of `check`."""
        try:
            self.check(*args, **kwargs)
        except CSRFInvalid as e:
            return CSRFCheck(valid=False, reason=e.reason)
        return CSRFCheck(valid=True)

    def validate_double_submit(self, *args, **kwargs) -> CSRFCheck:
        try:
            self.check_double_submit(*args, **kwargs)
        except CSRFInvalid as e:
            return CSRFCheck(valid=False, reason=e.reason)
        return CSRFCheck(valid=True)

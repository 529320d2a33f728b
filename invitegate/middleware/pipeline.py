"""
Security Pipeline - ordered per-route request checks.

Stages run in a fixed order and each returns an explicit outcome:

    RateLimit -> Authenticate -> CSRF -> Validate -> ContentModeration
      -> FileUpload -> (CSRF token issuance on safe requests)

- Proceed: continue, optionally carrying headers/cookies for the final response
- Respond: stop here and send this status/body

Headers collected before a Respond (rate-limit headers) stay on the error
response. A stage that raises unexpectedly yields a 500; nothing escapes.

Usage:
    components = SecurityComponents.build()
    pipeline = components.pipeline("rsvp", body_schema=RSVP_SCHEMA)
    outcome = pipeline.run(ctx)
"""

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from invitegate.auth.verify import (
    AuthenticationError,
    Authenticator,
    JWTAuthenticator,
    extract_bearer_token,
)
from invitegate.config import settings
from invitegate.core.errors import (
    AuthenticationRequired,
    ContentRejected,
    CSRFInvalid,
    FileRejected,
    RateLimitExceeded,
    SecurityError,
    ValidationFailed,
)
from invitegate.infrastructure.observability.logging import get_logger, log_security_event
from invitegate.middleware.csrf import SAFE_METHODS, CSRFGuard
from invitegate.middleware.rate_limiter import (
    FixedWindowRateLimiter,
    ProgressiveRateLimiter,
    build_named_limiters,
)
from invitegate.middleware.request_validation import (
    Schema,
    oversized_fields,
    validate_body,
    validate_params,
    validate_query,
)
from invitegate.models.domain.security_domain import AuthenticatedUser, ModerationResult
from invitegate.security.fingerprint import client_fingerprint
from invitegate.services.content_moderation_service import ContentModerationService
from invitegate.services.file_security_service import FileSecurityService, UploadedFile
from invitegate.services.security_store import SecurityStore

logger = get_logger(__name__)

UNSAFE_METHODS = ("POST", "PUT", "PATCH", "DELETE")
INTERNAL_ERROR_BODY = {"success": False, "error": "Internal server error"}
MALFORMED_BODY_MESSAGE = "Request body must be valid JSON"

UPLOAD_AUTH_MESSAGE = "Authentication required for file upload"
SCAN_FAILED_MESSAGE = "File upload failed security scan"
BLACKLISTED_MESSAGE = "File is not allowed"


# =================================================================
# OUTCOMES
# =================================================================


@dataclass
class CookieDirective:
    """A cookie to set on the final response (value=None deletes it)."""

    name: str
    value: str | None
    max_age: int | None = None
    httponly: bool = True
    secure: bool = False
    samesite: str = "lax"


@dataclass
class Proceed:
    headers: dict[str, str] = field(default_factory=dict)
    cookies: list[CookieDirective] = field(default_factory=list)


@dataclass
class Respond:
    status_code: int
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)
    cookies: list[CookieDirective] = field(default_factory=list)


Outcome = Proceed | Respond


def respond_with(error: SecurityError, headers: dict[str, str] | None = None) -> Respond:
    return Respond(status_code=error.status_code, body=error.to_body(), headers=headers or {})


# =================================================================
# CONTEXT AND POLICY
# =================================================================


@dataclass
class SecurityContext:
    """Everything the stages may read from (and write back to) a request."""

    method: str
    path: str
    ip: str | None = None
    user_agent: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    cookies: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] | None = None
    body_malformed: bool = False
    query: dict[str, Any] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    files: list[UploadedFile] = field(default_factory=list)
    user: AuthenticatedUser | None = None
    csrf_token: str | None = None

    @property
    def user_id(self) -> str | None:
        return self.user.id if self.user else None

    def log_fields(self) -> dict[str, Any]:
        return {"ip": self.ip, "path": self.path, "method": self.method, "user_id": self.user_id}


@dataclass
class RateLimitPolicy:
    enabled: bool = True
    max_attempts: int | None = None
    window_ms: int | None = None


@dataclass
class ModerationPolicy:
    enabled: bool = False
    content_type: str = "general"


@dataclass
class FileUploadPolicy:
    enabled: bool = False
    allowed_types: list[str] | None = None
    max_size: int | None = None


@dataclass
class SecurityPolicy:
    require_auth: bool = True
    require_csrf: bool = True
    rate_limit: RateLimitPolicy = field(default_factory=RateLimitPolicy)
    content_moderation: ModerationPolicy = field(default_factory=ModerationPolicy)
    file_upload: FileUploadPolicy = field(default_factory=FileUploadPolicy)


def route_policy(preset: str) -> SecurityPolicy:
    """Policy for one of the route families (auth, rsvp, guest_wish, ...)."""
    limits = settings.get_rate_limit_presets()
    if preset not in limits:
        raise ValueError(f"Unknown security preset '{preset}'. Available: {', '.join(limits)}")
    rate_limit = RateLimitPolicy(**limits[preset])

    general = ModerationPolicy(enabled=True, content_type="general")

    if preset == "auth":
        return SecurityPolicy(
            require_auth=False,
            require_csrf=False,
            rate_limit=rate_limit,
            content_moderation=general,
        )
    if preset == "rsvp":
        return SecurityPolicy(
            require_auth=False,
            rate_limit=rate_limit,
            content_moderation=ModerationPolicy(enabled=True, content_type="rsvp"),
        )
    if preset == "guest_wish":
        return SecurityPolicy(
            require_auth=False,
            rate_limit=rate_limit,
            content_moderation=ModerationPolicy(enabled=True, content_type="guest-wish"),
        )
    if preset == "file_upload":
        return SecurityPolicy(
            rate_limit=rate_limit,
            file_upload=FileUploadPolicy(
                enabled=True,
                allowed_types=list(settings.ALLOWED_IMAGE_TYPES),
                max_size=settings.MAX_FILE_SIZE,
            ),
        )
    # profile, admin
    return SecurityPolicy(rate_limit=rate_limit, content_moderation=general)


Stage = Callable[[SecurityContext], Outcome]


# =================================================================
# STAGES
# =================================================================


class RateLimitStage:
    """Fixed-window (or progressive) limit per client fingerprint."""

    def __init__(self, limiter: FixedWindowRateLimiter | ProgressiveRateLimiter, policy: RateLimitPolicy):
        self.limiter = limiter
        self.policy = policy

    def __call__(self, ctx: SecurityContext) -> Outcome:
        if not settings.RATE_LIMIT_ENABLED:
            return Proceed()

        client_id = client_fingerprint(ctx.ip, ctx.user_agent, ctx.user_id)
        if isinstance(self.limiter, ProgressiveRateLimiter):
            decision = self.limiter.check(client_id)
        else:
            decision = self.limiter.check(
                client_id,
                window_ms=self.policy.window_ms,
                max_attempts=self.policy.max_attempts,
            )

        headers = decision.headers()
        if decision.allowed:
            return Proceed(headers=headers)

        log_security_event(
            RateLimitExceeded.event,
            "Rate limit exceeded",
            client_id=client_id,
            limiter=self.limiter.name,
            retry_after=decision.retry_after,
            **ctx.log_fields(),
        )
        error = RateLimitExceeded(
            self.limiter.rejection_message(decision),
            retry_after=decision.retry_after,
            penalty_multiplier=decision.penalty,
        )
        return respond_with(error, headers)


class AuthenticationStage:
    def __init__(self, authenticator: Authenticator):
        self.authenticator = authenticator

    def __call__(self, ctx: SecurityContext) -> Outcome:
        try:
            token = extract_bearer_token(ctx.headers.get("authorization"))
            ctx.user = self.authenticator.authenticate(token)
        except AuthenticationError as e:
            log_security_event(AuthenticationRequired.event, e.message, **ctx.log_fields())
            return respond_with(AuthenticationRequired(e.message))
        return Proceed()


class CSRFStage:
    """Validate the token on unsafe methods."""

    def __init__(self, guard: CSRFGuard):
        self.guard = guard

    def __call__(self, ctx: SecurityContext) -> Outcome:
        if ctx.method.upper() not in UNSAFE_METHODS:
            return Proceed()

        body = ctx.body if isinstance(ctx.body, dict) else {}
        try:
            self.guard.check(
                ctx.ip,
                ctx.user_agent,
                ctx.method,
                ctx.path,
                header_token=ctx.headers.get(settings.CSRF_HEADER_NAME.lower()),
                body_token=body.get("csrf_token"),
                query_token=ctx.query.get("csrf_token"),
            )
        except CSRFInvalid as e:
            log_security_event(e.event, e.message, **ctx.log_fields())
            return respond_with(e)
        return Proceed()


class ValidationStage:
    """
    Default size guard on every body, then the route's schemas.

    Sanitized values replace the raw ones on the context.
    """

    def __init__(
        self,
        body_schema: Schema | None = None,
        query_schema: Schema | None = None,
        params_schema: Schema | None = None,
    ):
        self.body_schema = body_schema
        self.query_schema = query_schema
        self.params_schema = params_schema

    def __call__(self, ctx: SecurityContext) -> Outcome:
        if ctx.body_malformed:
            return self._reject(ctx, ValidationFailed("Validation failed", [MALFORMED_BODY_MESSAGE]))

        too_large = oversized_fields(ctx.body)
        if too_large:
            return self._reject(ctx, ValidationFailed("Validation failed", too_large))

        if self.body_schema:
            result = validate_body(ctx.body, self.body_schema)
            if not result.ok:
                return self._reject(ctx, ValidationFailed("Validation failed", result.errors))
            ctx.body = {**(ctx.body or {}), **result.sanitized}

        if self.params_schema:
            result = validate_params(ctx.params, self.params_schema)
            if not result.ok:
                return self._reject(
                    ctx, ValidationFailed("Parameter validation failed", result.errors)
                )
            ctx.params = {**ctx.params, **result.sanitized}

        if self.query_schema:
            result = validate_query(ctx.query, self.query_schema)
            if not result.ok:
                return self._reject(ctx, ValidationFailed("Query validation failed", result.errors))
            ctx.query = {**ctx.query, **result.sanitized}

        return Proceed()

    @staticmethod
    def _reject(ctx: SecurityContext, error: ValidationFailed) -> Respond:
        log_security_event(error.event, error.message, errors=error.details, **ctx.log_fields())
        return respond_with(error)


class ContentModerationStage:
    """Score the whole body, then the fields the content type cares about."""

    def __init__(self, moderation: ContentModerationService, content_type: str):
        self.moderation = moderation
        self.content_type = content_type

    def _field_checks(self, body: dict[str, Any]) -> list[tuple[str, ModerationResult]]:
        checks = []
        name_field = "guest_name" if "guest_name" in body else "name"
        if self.content_type in ("rsvp", "guest-wish") and name_field in body:
            name = body[name_field]
            checks.append((str(name), self.moderation.moderate_guest_name(name)))
        if self.content_type == "rsvp" and "message" in body:
            message = body["message"]
            checks.append((str(message), self.moderation.moderate_rsvp_message(message)))
        if self.content_type == "guest-wish" and "message" in body:
            wish = body["message"]
            checks.append((str(wish), self.moderation.moderate_guest_wish(wish)))
        return checks

    def __call__(self, ctx: SecurityContext) -> Outcome:
        if ctx.body is None:
            return Proceed()

        text = json.dumps(ctx.body, separators=(",", ":"), ensure_ascii=False)
        checks = [(text, self.moderation.analyze_content(text))]
        if isinstance(ctx.body, dict):
            checks.extend(self._field_checks(ctx.body))

        for content, result in checks:
            if result.is_approved:
                continue
            self.moderation.log_moderation_decision(content, result, ctx.user_id)
            error = ContentRejected(
                result.reason, score=result.score, categories=result.categories.model_dump()
            )
            log_security_event(
                error.event,
                "Content moderation rejected request",
                reason=result.reason,
                score=result.score,
                content_type=self.content_type,
                **ctx.log_fields(),
            )
            return respond_with(error)

        return Proceed()


class FileUploadStage:
    """Size, real MIME type, heuristic scan and blacklist, per file."""

    def __init__(self, files: FileSecurityService, policy: FileUploadPolicy, require_auth: bool):
        self.files = files
        self.policy = policy
        self.require_auth = require_auth

    def __call__(self, ctx: SecurityContext) -> Outcome:
        if not ctx.files:
            return Proceed()

        if self.require_auth and ctx.user is None:
            log_security_event(AuthenticationRequired.event, UPLOAD_AUTH_MESSAGE, **ctx.log_fields())
            return respond_with(AuthenticationRequired(UPLOAD_AUTH_MESSAGE))

        allowed_types = self.policy.allowed_types or list(settings.ALLOWED_IMAGE_TYPES)
        for upload in ctx.files:
            error = self._check(upload, allowed_types, ctx)
            if error is not None:
                log_security_event(
                    error.event,
                    error.message,
                    filename=upload.filename,
                    details=error.details,
                    **ctx.log_fields(),
                )
                return respond_with(error)

        logger.info(
            "File upload security validation passed",
            files=[upload.security_metadata.get("sanitized_filename") for upload in ctx.files],
            user_id=ctx.user_id,
        )
        return Proceed()

    def _check(
        self, upload: UploadedFile, allowed_types: list[str], ctx: SecurityContext
    ) -> FileRejected | None:
        size_error = self.files.validate_file_size(upload.size, self.policy.max_size)
        if size_error:
            return FileRejected(size_error)

        detected_type = self.files.detect_mime_type(upload.content)
        if detected_type not in allowed_types:
            return FileRejected(f"File type {detected_type} is not allowed")

        scan = self.files.scan_file(upload.content, upload.filename)
        if not scan.is_safe:
            return FileRejected(SCAN_FAILED_MESSAGE, details=scan.threats)

        if self.files.is_blacklisted(self.files.generate_file_hash(upload.content)):
            return FileRejected(BLACKLISTED_MESSAGE)

        upload.security_metadata = self.files.build_metadata(
            upload, detected_type, scan, ctx.user_id, ctx.ip
        )
        return None


class CSRFIssueStage:
    """Hand out a fresh token on safe requests that passed every check."""

    def __init__(self, guard: CSRFGuard):
        self.guard = guard

    def __call__(self, ctx: SecurityContext) -> Outcome:
        if ctx.method.upper() not in SAFE_METHODS:
            return Proceed()
        token = self.guard.issue(ctx.ip, ctx.user_agent)
        ctx.csrf_token = token
        return Proceed(
            headers={settings.CSRF_HEADER_NAME: token},
            cookies=[csrf_cookie(token)],
        )


def csrf_cookie(token: str) -> CookieDirective:
    # Readable by the front end so it can echo the token in the header
    return CookieDirective(
        name=settings.CSRF_COOKIE_NAME,
        value=token,
        max_age=settings.CSRF_TOKEN_TTL_SECONDS,
        httponly=False,
        secure=settings.is_production(),
        samesite="strict",
    )


# =================================================================
# RUNNER
# =================================================================


class SecurityPipeline:
    def __init__(self, name: str, stages: list[Stage]):
        self.name = name
        self.stages = stages

    def run(self, ctx: SecurityContext) -> Outcome:
        """Run stages in order, stopping at the first Respond."""
        headers: dict[str, str] = {}
        cookies: list[CookieDirective] = []

        for stage in self.stages:
            try:
                outcome = stage(ctx)
            except Exception as e:
                logger.exception(
                    "Security stage failed",
                    pipeline=self.name,
                    stage=type(stage).__name__,
                    error=str(e),
                    **ctx.log_fields(),
                )
                outcome = Respond(status_code=500, body=dict(INTERNAL_ERROR_BODY))

            headers.update(outcome.headers)
            cookies.extend(outcome.cookies)
            if isinstance(outcome, Respond):
                return Respond(
                    status_code=outcome.status_code,
                    body=outcome.body,
                    headers=headers,
                    cookies=cookies,
                )

        return Proceed(headers=headers, cookies=cookies)


# =================================================================
# COMPONENTS
# =================================================================


@dataclass
class SecurityComponents:
    """All collaborators the pipelines share, built once per application."""

    store: SecurityStore
    csrf: CSRFGuard
    moderation: ContentModerationService
    files: FileSecurityService
    authenticator: Authenticator
    limiters: dict[str, FixedWindowRateLimiter]
    progressive: ProgressiveRateLimiter
    route_limiters: dict[str, FixedWindowRateLimiter] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        store: SecurityStore | None = None,
        authenticator: Authenticator | None = None,
        moderation: ContentModerationService | None = None,
        files: FileSecurityService | None = None,
    ) -> "SecurityComponents":
        store = store or SecurityStore()
        return cls(
            store=store,
            csrf=CSRFGuard(store),
            moderation=moderation or ContentModerationService(),
            files=files or FileSecurityService(),
            authenticator=authenticator or JWTAuthenticator(),
            limiters=build_named_limiters(store),
            progressive=ProgressiveRateLimiter(
                store,
                base_window_ms=settings.RATE_LIMIT_DEFAULT_WINDOW_MS,
                base_max_attempts=settings.RATE_LIMIT_DEFAULT_MAX_ATTEMPTS,
            ),
        )

    def route_limiter(self, preset: str, policy: RateLimitPolicy) -> FixedWindowRateLimiter:
        """One independent limiter per route family."""
        if preset not in self.route_limiters:
            self.route_limiters[preset] = FixedWindowRateLimiter(
                self.store,
                f"route:{preset}",
                window_ms=policy.window_ms or settings.RATE_LIMIT_DEFAULT_WINDOW_MS,
                max_attempts=policy.max_attempts or settings.RATE_LIMIT_DEFAULT_MAX_ATTEMPTS,
                operation_name="API request",
            )
        return self.route_limiters[preset]

    def pipeline(
        self,
        preset: str,
        policy: SecurityPolicy | None = None,
        body_schema: Schema | None = None,
        query_schema: Schema | None = None,
        params_schema: Schema | None = None,
    ) -> SecurityPipeline:
        policy = policy or route_policy(preset)
        stages: list[Stage] = []

        if policy.rate_limit.enabled:
            stages.append(RateLimitStage(self.route_limiter(preset, policy.rate_limit), policy.rate_limit))
        if policy.require_auth:
            stages.append(AuthenticationStage(self.authenticator))
        if policy.require_csrf:
            stages.append(CSRFStage(self.csrf))
        stages.append(ValidationStage(body_schema, query_schema, params_schema))
        if policy.content_moderation.enabled:
            stages.append(
                ContentModerationStage(self.moderation, policy.content_moderation.content_type)
            )
        if policy.file_upload.enabled:
            stages.append(FileUploadStage(self.files, policy.file_upload, policy.require_auth))
        if policy.require_csrf:
            stages.append(CSRFIssueStage(self.csrf))

        return SecurityPipeline(preset, stages)

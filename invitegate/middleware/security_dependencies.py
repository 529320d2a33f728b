"""
Security Dependencies - run the security pipeline from a route.

Usage:
    from invitegate.middleware.security_dependencies import secure_route

    @router.post("/api/rsvps")
    async def create_rsvp(secured: SecuredRequest = Depends(secure_route("rsvp", body=RSVP_SCHEMA))):
        secured.body  # sanitized

Features:
- One line per route: preset policy plus optional body/query/params schemas
- Rate-limit and CSRF headers/cookies copied onto the handler's response
- Rejections raised as PipelineRejection and rendered by the app's handler
- Standalone named limiters (`limit_requests`) and membership gates
"""

import json
from dataclasses import dataclass, field
from typing import Any

from fastapi import Depends, Request, Response
from starlette.datastructures import UploadFile

from invitegate.config import settings
from invitegate.core.errors import AuthenticationRequired, InsufficientMembership, RateLimitExceeded
from invitegate.infrastructure.observability.logging import get_logger, log_security_event
from invitegate.middleware.pipeline import (
    CookieDirective,
    Respond,
    SecurityComponents,
    SecurityContext,
    SecurityPolicy,
    respond_with,
    route_policy,
)
from invitegate.middleware.request_validation import Schema
from invitegate.models.domain.security_domain import AuthenticatedUser, MembershipTier
from invitegate.security.fingerprint import client_fingerprint
from invitegate.services.file_security_service import UploadedFile

logger = get_logger(__name__)


class PipelineRejection(Exception):
    """Carries a Respond outcome out of a dependency to the exception handler."""

    def __init__(self, outcome: Respond):
        super().__init__(outcome.body.get("error"))
        self.outcome = outcome


@dataclass
class SecuredRequest:
    """What a route handler gets once every check has passed."""

    body: dict[str, Any] | None
    query: dict[str, Any]
    params: dict[str, Any]
    user: AuthenticatedUser | None = None
    files: list[UploadedFile] = field(default_factory=list)
    csrf_token: str | None = None
    ip: str | None = None
    user_agent: str | None = None


def get_security(request: Request) -> SecurityComponents:
    return request.app.state.security


def apply_cookies(response: Response, cookies: list[CookieDirective]) -> None:
    for cookie in cookies:
        if cookie.value is None:
            response.delete_cookie(cookie.name)
            continue
        response.set_cookie(
            cookie.name,
            cookie.value,
            max_age=cookie.max_age,
            httponly=cookie.httponly,
            secure=cookie.secure,
            samesite=cookie.samesite,
        )


def client_ip(request: Request) -> str | None:
    ip = getattr(request.state, "ip_address", None)
    if ip:
        return ip
    return request.client.host if request.client else None


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


async def _read_body(request: Request, ctx: SecurityContext, max_file_size: int | None = None) -> None:
    """
    Fill body/files on the context from a JSON or multipart request.

    Files are read at most one byte past the size limit, enough for the
    upload stage to reject them.
    """
    if request.method.upper() in ("GET", "HEAD", "OPTIONS"):
        return
    read_limit = (max_file_size or settings.MAX_FILE_SIZE) + 1

    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data") or content_type.startswith(
        "application/x-www-form-urlencoded"
    ):
        form = await request.form()
        body: dict[str, Any] = {}
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                ctx.files.append(
                    UploadedFile(
                        filename=value.filename or "",
                        content=await value.read(read_limit),
                        content_type=value.content_type,
                    )
                )
            else:
                body[key] = value
        ctx.body = body
        return

    raw = await request.body()
    if not raw:
        return
    try:
        parsed = json.loads(raw, parse_constant=_reject_constant)
    except ValueError:
        ctx.body_malformed = True
        return
    ctx.body = parsed if isinstance(parsed, dict) else {"value": parsed}


async def build_context(request: Request, max_file_size: int | None = None) -> SecurityContext:
    ctx = SecurityContext(
        method=request.method,
        path=request.url.path,
        ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        headers=dict(request.headers),
        cookies=dict(request.cookies),
        query=dict(request.query_params),
        params=dict(request.path_params),
    )
    await _read_body(request, ctx, max_file_size)
    return ctx


def secure_route(
    preset: str,
    body: Schema | None = None,
    query: Schema | None = None,
    params: Schema | None = None,
    policy: SecurityPolicy | None = None,
):
    """
    Build a dependency that runs the preset's pipeline for this route.

    Args:
        preset: Route family (auth, rsvp, guest_wish, profile, file_upload, admin)
        body: Schema for the JSON/form body
        query: Schema for query parameters
        params: Schema for path parameters
        policy: Override the preset's policy

    Raises:
        PipelineRejection: any stage answered with a Respond
    """

    async def dependency(request: Request, response: Response) -> SecuredRequest:
        components = get_security(request)
        resolved = policy or route_policy(preset)
        pipeline = components.pipeline(
            preset, policy=resolved, body_schema=body, query_schema=query, params_schema=params
        )
        ctx = await build_context(request, max_file_size=resolved.file_upload.max_size)
        outcome = pipeline.run(ctx)

        if isinstance(outcome, Respond):
            raise PipelineRejection(outcome)

        for name, value in outcome.headers.items():
            response.headers[name] = value
        apply_cookies(response, outcome.cookies)

        request.state.user = ctx.user
        return SecuredRequest(
            body=ctx.body,
            query=ctx.query,
            params=ctx.params,
            user=ctx.user,
            files=ctx.files,
            csrf_token=ctx.csrf_token,
            ip=ctx.ip,
            user_agent=ctx.user_agent,
        )

    return dependency


def limit_requests(name: str):
    """
    Standalone limiter dependency (sensitive_operation, auth, content_creation,
    file_upload or progressive), applied on top of a route's preset.

    The client is keyed on `request.state.user`, so declare it after the
    `secure_route` parameter to count per authenticated user; as a route-level
    dependency it runs first and counts the anonymous client.
    """

    async def dependency(request: Request, response: Response) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return

        components = get_security(request)
        limiter = components.progressive if name == "progressive" else components.limiters[name]
        user = getattr(request.state, "user", None)
        ip = client_ip(request)
        client_id = client_fingerprint(ip, request.headers.get("user-agent"), user.id if user else None)

        decision = limiter.check(client_id)
        headers = decision.headers()
        if decision.allowed:
            for header, value in headers.items():
                response.headers[header] = value
            return

        log_security_event(
            RateLimitExceeded.event,
            "Rate limit exceeded",
            limiter=name,
            client_id=client_id,
            retry_after=decision.retry_after,
            ip=ip,
            path=request.url.path,
        )
        error = RateLimitExceeded(
            limiter.rejection_message(decision),
            retry_after=decision.retry_after,
            penalty_multiplier=decision.penalty,
        )
        raise PipelineRejection(respond_with(error, headers))

    return dependency


def require_membership_tier(
    tier: MembershipTier | str,
    preset: str = "profile",
    body: Schema | None = None,
    query: Schema | None = None,
    params: Schema | None = None,
):
    """
    Run the preset's pipeline, then gate on the user's membership tier.

    Tier order: free < lite < pro < elite.
    """
    required = MembershipTier(tier)
    route = secure_route(preset, body=body, query=query, params=params)

    async def dependency(
        request: Request, secured: SecuredRequest = Depends(route)
    ) -> SecuredRequest:
        user = secured.user
        if user is None:
            raise PipelineRejection(respond_with(AuthenticationRequired("Authentication required.")))

        if user.membership_tier.level < required.level:
            log_security_event(
                InsufficientMembership.event,
                "Membership tier too low",
                user_id=user.id,
                tier=user.membership_tier.value,
                required=required.value,
                path=request.url.path,
            )
            error = InsufficientMembership(
                f"{required.value.capitalize()} membership or higher required for this feature."
            )
            raise PipelineRejection(respond_with(error))
        return secured

    return dependency

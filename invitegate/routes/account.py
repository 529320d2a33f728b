"""
account.py
----------
Purpose:
    Login, registration, logout and profile endpoints.

    - Login/registration use the `auth` preset (no CSRF, 10 requests / 15 min)
      plus the progressive limiter, so repeated brute forcing widens the window.
    - Logout and profile use the `profile` preset (bearer token + CSRF).
    - `/api/profile/insights` is gated on the Pro membership tier.
"""

from fastapi import APIRouter, Depends, Response

from invitegate.api.dependencies import get_user_repository
from invitegate.config import settings
from invitegate.core.errors import AuthenticationRequired, ValidationFailed
from invitegate.infrastructure.observability.logging import get_logger
from invitegate.middleware.pipeline import SecurityComponents
from invitegate.middleware.request_validation import FieldRule
from invitegate.middleware.security_dependencies import (
    SecuredRequest,
    get_security,
    limit_requests,
    require_membership_tier,
    secure_route,
)
from invitegate.models.api.responses import ApiResponse, LoginData
from invitegate.models.domain.security_domain import MembershipTier
from invitegate.repositories.user_repository import UserRepository
from invitegate.security.passwords import PASSWORD_MIN_LENGTH
from invitegate.security.sanitization import validate_and_sanitize_email

router = APIRouter()
logger = get_logger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password."


def _email_check(value) -> bool | str:
    return validate_and_sanitize_email(value) is not None or "email must be a valid email address"


LOGIN_SCHEMA = {
    "email": FieldRule(type="string", required=True, max=255, custom=_email_check),
    "password": FieldRule(type="string", required=True, min=1, max=128),
}

REGISTER_SCHEMA = {
    "email": FieldRule(type="string", required=True, max=255, custom=_email_check),
    "password": FieldRule(type="string", required=True, min=PASSWORD_MIN_LENGTH, max=128),
    "full_name": FieldRule(type="string", required=True, min=2, max=100),
}

PROFILE_UPDATE_SCHEMA = {
    "full_name": FieldRule(type="string", min=2, max=100),
}


def _public_user(record) -> dict:
    return {
        "id": record.id,
        "email": record.email,
        "full_name": record.full_name,
        "role": record.role,
        "membership_tier": record.membership_tier.value,
    }


@router.post("/api/auth/register", response_model=ApiResponse, status_code=201)
async def register(
    secured: SecuredRequest = Depends(secure_route("auth", body=REGISTER_SCHEMA)),
    users: UserRepository = Depends(get_user_repository),
    security: SecurityComponents = Depends(get_security),
):
    email = validate_and_sanitize_email(secured.body["email"])
    if users.find_by_email(email):
        raise ValidationFailed("Validation failed", ["email is already registered"])

    record = users.create(email, secured.body["password"], full_name=secured.body["full_name"])
    token = security.authenticator.issue_token(record.to_user())
    logger.info("User registered", user_id=record.id)
    return ApiResponse(data=LoginData(token=token, user=_public_user(record)).model_dump())


@router.post(
    "/api/auth/login",
    response_model=ApiResponse,
    dependencies=[Depends(limit_requests("progressive"))],
)
async def login(
    secured: SecuredRequest = Depends(secure_route("auth", body=LOGIN_SCHEMA)),
    users: UserRepository = Depends(get_user_repository),
    security: SecurityComponents = Depends(get_security),
):
    record = users.verify_credentials(secured.body["email"], secured.body["password"])
    if record is None:
        logger.warning("Login failed", ip=secured.ip)
        raise AuthenticationRequired(INVALID_CREDENTIALS_MESSAGE)

    token = security.authenticator.issue_token(record.to_user())
    logger.info("User logged in", user_id=record.id)
    return ApiResponse(data=LoginData(token=token, user=_public_user(record)).model_dump())


@router.post(
    "/api/auth/logout",
    response_model=ApiResponse,
)
async def logout(
    response: Response,
    secured: SecuredRequest = Depends(secure_route("profile")),
    _quota: None = Depends(limit_requests("sensitive_operation")),
    security: SecurityComponents = Depends(get_security),
):
    """Drop the session's CSRF token and clear the cookie."""
    security.csrf.invalidate(secured.ip, secured.user_agent)
    response.delete_cookie(settings.CSRF_COOKIE_NAME)
    logger.info("User logged out", user_id=secured.user.id)
    return ApiResponse(message="Logged out successfully")


@router.get("/api/profile", response_model=ApiResponse)
async def get_profile(
    secured: SecuredRequest = Depends(secure_route("profile")),
    users: UserRepository = Depends(get_user_repository),
):
    record = users.get(secured.user.id)
    return ApiResponse(data=_public_user(record) if record else secured.user.model_dump())


@router.put("/api/profile", response_model=ApiResponse)
async def update_profile(
    secured: SecuredRequest = Depends(secure_route("profile", body=PROFILE_UPDATE_SCHEMA)),
    users: UserRepository = Depends(get_user_repository),
):
    record = users.update_profile(secured.user.id, full_name=(secured.body or {}).get("full_name"))
    if record is None:
        raise AuthenticationRequired("Invalid token. User not found.")
    return ApiResponse(data=_public_user(record), message="Profile updated")


@router.get("/api/profile/insights", response_model=ApiResponse)
async def profile_insights(
    secured: SecuredRequest = Depends(require_membership_tier(MembershipTier.PRO)),
):
    return ApiResponse(
        data={"user_id": secured.user.id, "membership_tier": secured.user.membership_tier.value}
    )

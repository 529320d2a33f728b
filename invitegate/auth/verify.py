"""
verify.py
---------
Purpose:
    Bearer token verification for the security pipeline.

Notes:
    - Tokens are HS256 JWTs issued by the account service.
    - `JWTAuthenticator` maps verified claims to an AuthenticatedUser; pass a
      `resolve_user` callable to look the user up in the user repository instead.
    - The pipeline only depends on the `Authenticator` protocol, so tests and
      other deployments can plug in their own implementation.
"""

import time
from collections.abc import Callable
from typing import Protocol

import jwt
from pydantic import ValidationError

from invitegate.config import settings
from invitegate.models.domain.security_domain import AuthenticatedUser

BEARER_PREFIX = "Bearer "

MISSING_TOKEN_MESSAGE = "Access denied. No token provided or invalid format."
INVALID_TOKEN_MESSAGE = "Invalid token."
EXPIRED_TOKEN_MESSAGE = "Token expired."
UNKNOWN_USER_MESSAGE = "Invalid token. User not found."


class AuthenticationError(Exception):
    """Raised when a bearer token cannot be resolved to a user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Authenticator(Protocol):
    def authenticate(self, token: str) -> AuthenticatedUser: ...


def extract_bearer_token(authorization: str | None) -> str:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise AuthenticationError(MISSING_TOKEN_MESSAGE)
    return authorization[len(BEARER_PREFIX) :]


def _user_from_claims(claims: dict) -> AuthenticatedUser | None:
    user_id = claims.get("id") or claims.get("sub")
    if not user_id:
        return None
    return AuthenticatedUser(
        id=str(user_id),
        email=claims.get("email"),
        role=claims.get("role") or "user",
        membership_tier=claims.get("membership_tier") or "free",
    )


class JWTAuthenticator:
    def __init__(
        self,
        secret: str | None = None,
        algorithm: str | None = None,
        resolve_user: Callable[[dict], AuthenticatedUser | None] = _user_from_claims,
    ):
        self.secret = secret or settings.JWT_SECRET
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self.resolve_user = resolve_user

    def verify_jwt(self, token: str) -> dict:
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"verify_exp": True},
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError(EXPIRED_TOKEN_MESSAGE) from e
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(INVALID_TOKEN_MESSAGE) from e

    def authenticate(self, token: str) -> AuthenticatedUser:
        claims = self.verify_jwt(token)
        try:
            user = self.resolve_user(claims)
        except ValidationError as e:
            raise AuthenticationError(INVALID_TOKEN_MESSAGE) from e
        if user is None:
            raise AuthenticationError(UNKNOWN_USER_MESSAGE)
        return user

    def issue_token(self, user: AuthenticatedUser, expires_in_seconds: int = 3600) -> str:
        """Mint a token for a user (login flow and tests)."""
        now = int(time.time())
        payload = {
            "sub": user.id,
            "email": user.email,
            "role": user.role,
            "membership_tier": user.membership_tier.value,
            "iat": now,
            "exp": now + expires_in_seconds,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

"""
Middleware components for request processing.

This package contains:
- Request context (request ID, IP address, user agent, suspicious-URL logging)
- Security pipeline (rate limit, auth, CSRF, validation, moderation, uploads)
- Response hardening (CORS, security headers)
"""

from invitegate.middleware.cors import CORSMiddleware
from invitegate.middleware.request_context import RequestContextMiddleware
from invitegate.middleware.security_dependencies import (
    PipelineRejection,
    SecuredRequest,
    limit_requests,
    require_membership_tier,
    secure_route,
)
from invitegate.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "RequestContextMiddleware",
    "SecurityHeadersMiddleware",
    "CORSMiddleware",
    "PipelineRejection",
    "SecuredRequest",
    "secure_route",
    "limit_requests",
    "require_membership_tier",
]

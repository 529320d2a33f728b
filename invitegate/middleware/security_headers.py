"""
Security Headers Middleware - Add security headers to all responses.

The invitation pages are served from the same origin as the API, so the CSP
allows same-origin scripts/styles (with inline) and data: images, and forbids
framing.

Headers added:
1. X-Frame-Options
2. X-Content-Type-Options
3. X-XSS-Protection
4. Strict-Transport-Security (production only)
5. Content-Security-Policy
6. Referrer-Policy
7. Permissions-Policy

Usage:
    app.add_middleware(SecurityHeadersMiddleware, enforce_https=settings.is_production())
"""

from starlette.middleware.base import BaseHTTPMiddleware

from invitegate.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CONTENT_SECURITY_POLICY = (
    "default-src 'self'; "
    "script-src 'self' 'unsafe-inline'; "
    "style-src 'self' 'unsafe-inline'; "
    "img-src 'self' data:; "
    "font-src 'self'; "
    "connect-src 'self'; "
    "frame-ancestors 'none';"
)

PERMISSIONS_POLICY = "geolocation=(), microphone=(), camera=(), payment=(), usb=()"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, enforce_https: bool = False):
        """
        Args:
            app: FastAPI application
            enforce_https: Whether to add HSTS header (production only)
        """
        super().__init__(app)
        self.enforce_https = enforce_https

        logger.info(
            "Security headers middleware initialized",
            enforce_https=self.enforce_https,
        )

    async def dispatch(self, request, call_next):
        response = await call_next(request)

        # Clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # MIME sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Legacy XSS filter for older browsers
        response.headers["X-XSS-Protection"] = "1; mode=block"

        if self.enforce_https:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        response.headers["Content-Security-Policy"] = CONTENT_SECURITY_POLICY
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = PERMISSIONS_POLICY

        return response

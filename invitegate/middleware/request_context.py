"""
RequestContext Middleware - Adds request tracking to all requests.

Adds to request.state for every request:
- request_id: Unique ID for request tracing
- ip_address: Client IP address (trusted-proxy aware)
- user_agent: Client user agent string

The security pipeline keys rate limits and CSRF sessions on ip_address and
user_agent, so both must come from here rather than from raw headers.

Requests whose URL looks like path traversal, script injection or SQL/command
injection are logged with `suspicious=True`; they are not blocked here.
"""

import re
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from invitegate.config import settings
from invitegate.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SUSPICIOUS_URL_PATTERNS = [
    re.compile(r"\.\."),
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"union", re.IGNORECASE),
    re.compile(r"select", re.IGNORECASE),
    re.compile(r"drop", re.IGNORECASE),
    re.compile(r"exec", re.IGNORECASE),
    re.compile(r"cmd", re.IGNORECASE),
]


def is_suspicious_url(url: str) -> bool:
    return any(pattern.search(url) for pattern in SUSPICIOUS_URL_PATTERNS)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Add request context to all incoming requests.

    Also adds X-Request-ID header to responses for client-side tracing.

    Request.state Namespace Convention:
    - request_id, ip_address, user_agent: Set by RequestContextMiddleware
    - user: Set by the secure_route dependency once authenticated
    """

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        ip_address = self._extract_client_ip(request)
        request.state.ip_address = ip_address

        user_agent = request.headers.get("user-agent")
        request.state.user_agent = user_agent

        log_data = {
            "request_id": request_id,
            "method": request.method,
            "url": str(request.url.path)
            + (f"?{request.url.query}" if request.url.query else ""),
            "ip_address": ip_address,
            "user_agent": user_agent,
        }

        if is_suspicious_url(log_data["url"]):
            logger.warning("Suspicious request detected", suspicious=True, **log_data)
        else:
            logger.debug("Request started", **log_data)

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        return response

    def _extract_client_ip(self, request: Request) -> str | None:
        """
        Extract client IP address with proxy spoofing protection.

        X-Forwarded-For is only trusted when TRUST_X_FORWARDED_FOR is enabled
        and the direct peer is one of TRUSTED_PROXY_IPS. Otherwise a client
        could rotate its rate-limit key by forging the header.
        """
        if not settings.TRUST_X_FORWARDED_FOR:
            return request.client.host if request.client else None

        if request.client and request.client.host in settings.TRUSTED_PROXY_IPS:
            forwarded_for = request.headers.get("x-forwarded-for")
            if forwarded_for:
                # "client, proxy1, proxy2": first entry is the original client
                ip_address = forwarded_for.split(",")[0].strip()
                logger.debug(
                    "Using X-Forwarded-For from trusted proxy",
                    proxy_ip=request.client.host,
                    client_ip=ip_address,
                )
                return ip_address

        return request.client.host if request.client else None

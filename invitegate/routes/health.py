"""
Health check endpoints.

`/healthz` doubles as the front end's CSRF bootstrap: every call issues a
fresh token (X-CSRF-Token header and readable `csrf-token` cookie).
"""

import time
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request, Response

from invitegate.config import settings
from invitegate.infrastructure.observability.logging import get_logger
from invitegate.middleware.pipeline import SecurityComponents, csrf_cookie
from invitegate.middleware.security_dependencies import apply_cookies, client_ip, get_security
from invitegate.models.api.responses import ApiResponse, HealthData

router = APIRouter()
logger = get_logger(__name__)

STARTED_AT = time.time()
VERSION = "1.0.0"


@router.get("/healthz", response_model=ApiResponse)
async def healthz(
    request: Request,
    response: Response,
    security: SecurityComponents = Depends(get_security),
):
    """Basic health check; always 200 while the app runs."""
    ip = client_ip(request)
    user_agent = request.headers.get("user-agent")
    token = security.csrf.issue(ip, user_agent)

    response.headers[settings.CSRF_HEADER_NAME] = token
    apply_cookies(response, [csrf_cookie(token)])

    logger.info("Health check accessed", ip=ip, user_agent=user_agent)

    return ApiResponse(
        data=HealthData(
            timestamp=datetime.now(UTC).isoformat(),
            uptime_seconds=round(time.time() - STARTED_AT, 2),
            environment=settings.environment,
            version=VERSION,
        ).model_dump()
    )


@router.get("/readyz", response_model=ApiResponse)
async def readyz(security: SecurityComponents = Depends(get_security)):
    """Readiness: the security store is reachable and reports its map sizes."""
    return ApiResponse(data={"status": "ready", "store": security.store.stats()})

"""
Admin endpoints for inspecting and maintaining the in-memory security state.
"""

from fastapi import APIRouter, Depends

from invitegate.api.dependencies import get_content_repository
from invitegate.core.errors import AccessDenied
from invitegate.infrastructure.observability.logging import get_logger, log_security_event
from invitegate.middleware.pipeline import SecurityComponents
from invitegate.middleware.security_dependencies import SecuredRequest, get_security, secure_route
from invitegate.models.api.responses import ApiResponse, SecurityStats
from invitegate.repositories.guest_content_repository import GuestContentRepository

router = APIRouter(prefix="/api/admin")
logger = get_logger(__name__)

ADMIN_REQUIRED_MESSAGE = "Access denied. Admin privileges required."


def _require_admin(secured: SecuredRequest) -> None:
    if secured.user is None or secured.user.role != "admin":
        log_security_event(
            AccessDenied.event,
            "Admin route denied",
            user_id=secured.user.id if secured.user else None,
            ip=secured.ip,
        )
        raise AccessDenied(ADMIN_REQUIRED_MESSAGE)


@router.get("/security/stats", response_model=ApiResponse)
async def security_stats(
    secured: SecuredRequest = Depends(secure_route("admin")),
    security: SecurityComponents = Depends(get_security),
    content: GuestContentRepository = Depends(get_content_repository),
):
    _require_admin(secured)
    stats = SecurityStats(maps=security.store.stats(), content=content.counts())
    return ApiResponse(data=stats.model_dump())


@router.post("/security/sweep", response_model=ApiResponse)
async def sweep_security_store(
    secured: SecuredRequest = Depends(secure_route("admin")),
    security: SecurityComponents = Depends(get_security),
):
    _require_admin(secured)
    removed = security.store.sweep()
    logger.info("Manual security store sweep", user_id=secured.user.id, removed=removed)
    return ApiResponse(data={"removed": removed})

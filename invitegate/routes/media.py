"""
Gallery and background image uploads.

The `file_upload` preset authenticates, checks CSRF and runs every file
through size, MIME sniffing, heuristic scan and blacklist checks; only then
does the handler see the files (with `security_metadata` attached).
"""

from fastapi import APIRouter, Depends

from invitegate.api.dependencies import get_content_repository
from invitegate.core.errors import FileRejected
from invitegate.infrastructure.observability.logging import get_logger
from invitegate.middleware.pipeline import SecurityComponents
from invitegate.middleware.security_dependencies import (
    SecuredRequest,
    get_security,
    limit_requests,
    secure_route,
)
from invitegate.models.api.responses import ApiResponse
from invitegate.repositories.guest_content_repository import GuestContentRepository

router = APIRouter()
logger = get_logger(__name__)

NO_FILES_MESSAGE = "No files uploaded"


@router.post(
    "/api/files/upload",
    response_model=ApiResponse,
    status_code=201,
)
async def upload_files(
    secured: SecuredRequest = Depends(secure_route("file_upload")),
    _quota: None = Depends(limit_requests("file_upload")),
    content: GuestContentRepository = Depends(get_content_repository),
    security: SecurityComponents = Depends(get_security),
):
    if not secured.files:
        raise FileRejected(NO_FILES_MESSAGE)

    stored = []
    for upload in secured.files:
        metadata = dict(upload.security_metadata)
        metadata["stored_filename"] = security.files.generate_secure_filename(upload.filename)
        stored.append(content.add_media(secured.user.id, metadata))

    logger.info("Files uploaded", user_id=secured.user.id, count=len(stored))
    return ApiResponse(data=stored, message="Files uploaded successfully")

"""
Guest-facing content: RSVPs and guest wishes.

Submissions are public (no bearer token) but require a CSRF token obtained
from a prior safe request, and pass content moderation before anything is
stored. Listing is for the invitation owner (`profile` preset).
"""

from fastapi import APIRouter, Depends

from invitegate.api.dependencies import get_content_repository
from invitegate.infrastructure.observability.logging import get_logger
from invitegate.middleware.request_validation import FieldRule
from invitegate.middleware.security_dependencies import SecuredRequest, limit_requests, secure_route
from invitegate.models.api.responses import ApiResponse
from invitegate.repositories.guest_content_repository import GuestContentRepository

router = APIRouter()
logger = get_logger(__name__)

PHONE_PATTERN = r"^(\+?6?01)[0-46-9]*$"


def _phone_length(value) -> bool | str:
    if not value:
        return True
    return 10 <= len(value) <= 15 or "Phone number must be between 10 and 15 digits"


def _sort_key(value) -> tuple:
    # missing values sort last in ascending order
    return (value is None, 0 if value is None else value)


CREATE_RSVP_SCHEMA = {
    "invitation_id": FieldRule(type="string", required=True),
    "guest_name": FieldRule(type="string", required=True, min=2, max=100),
    "pax": FieldRule(type="number", required=True, min=0, max=20),
    "is_attending": FieldRule(type="boolean", required=True),
    "phone_number": FieldRule(
        type="string", required=True, pattern=PHONE_PATTERN, custom=_phone_length
    ),
    "message": FieldRule(type="string", max=500),
}

RSVP_QUERY_SCHEMA = {
    "search": FieldRule(type="string"),
    "sortBy": FieldRule(
        type="string", enum=["created_at", "guest_name", "phone_number", "is_attending", "pax"]
    ),
    "sortOrder": FieldRule(type="string", enum=["asc", "desc"]),
    "page": FieldRule(type="number", min=1),
    "limit": FieldRule(type="number", min=1, max=100),
    "invitation_id": FieldRule(type="string"),
    "is_attending": FieldRule(type="boolean"),
}

CREATE_GUEST_WISH_SCHEMA = {
    "invitation_id": FieldRule(type="string", required=True),
    "name": FieldRule(type="string", required=True, min=2, max=100),
    "message": FieldRule(type="string", required=True, min=5, max=500),
}

INVITATION_ID_PARAM_SCHEMA = {
    "invitationId": FieldRule(type="string", required=True),
}


@router.post("/api/rsvps", response_model=ApiResponse, status_code=201)
async def create_rsvp(
    secured: SecuredRequest = Depends(secure_route("rsvp", body=CREATE_RSVP_SCHEMA)),
    content: GuestContentRepository = Depends(get_content_repository),
):
    record = content.add_rsvp(secured.body["invitation_id"], secured.body)
    logger.info("RSVP created", rsvp_id=record["id"], invitation_id=record["invitation_id"])
    return ApiResponse(data=record, message="RSVP submitted successfully")


@router.get("/api/rsvps", response_model=ApiResponse)
async def list_rsvps(
    secured: SecuredRequest = Depends(secure_route("profile", query=RSVP_QUERY_SCHEMA)),
    content: GuestContentRepository = Depends(get_content_repository),
):
    query = secured.query
    rsvps = content.rsvps(query.get("invitation_id"))

    if "is_attending" in query:
        rsvps = [r for r in rsvps if r["is_attending"] == query["is_attending"]]
    if query.get("search"):
        needle = query["search"].lower()
        rsvps = [r for r in rsvps if needle in r["guest_name"].lower()]

    sort_by = query.get("sortBy", "created_at")
    descending = query.get("sortOrder", "desc") == "desc"
    rsvps.sort(key=lambda r: _sort_key(r.get(sort_by)), reverse=descending)

    page = query.get("page", 1)
    limit = query.get("limit", 10)
    start = (page - 1) * limit
    return ApiResponse(
        data={
            "rsvps": rsvps[start : start + limit],
            "pagination": {"page": page, "limit": limit, "total": len(rsvps)},
        }
    )


@router.post(
    "/api/guest-wishes",
    response_model=ApiResponse,
    status_code=201,
    dependencies=[Depends(limit_requests("content_creation"))],
)
async def create_guest_wish(
    secured: SecuredRequest = Depends(secure_route("guest_wish", body=CREATE_GUEST_WISH_SCHEMA)),
    content: GuestContentRepository = Depends(get_content_repository),
):
    body = secured.body
    record = content.add_wish(body["invitation_id"], body["name"], body["message"])
    logger.info("Guest wish created", wish_id=record["id"], invitation_id=record["invitation_id"])
    return ApiResponse(data=record, message="Guest wish submitted successfully")


@router.get("/api/guest-wishes/invitation/{invitationId}", response_model=ApiResponse)
async def list_guest_wishes(
    secured: SecuredRequest = Depends(secure_route("auth", params=INVITATION_ID_PARAM_SCHEMA)),
    content: GuestContentRepository = Depends(get_content_repository),
):
    """Public: wishes are shown on the invitation page."""
    return ApiResponse(data=content.wishes(secured.params["invitationId"]))

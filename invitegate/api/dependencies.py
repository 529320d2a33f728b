from fastapi import Request

from invitegate.repositories.guest_content_repository import GuestContentRepository
from invitegate.repositories.user_repository import UserRepository


def get_user_repository(request: Request) -> UserRepository:
    return request.app.state.users


def get_content_repository(request: Request) -> GuestContentRepository:
    return request.app.state.content

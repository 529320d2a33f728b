"""
Application factory with security store lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from invitegate.api.error_handlers import register_exception_handlers
from invitegate.auth.verify import JWTAuthenticator
from invitegate.config import settings
from invitegate.infrastructure.observability.logging import get_logger, setup_logging
from invitegate.jobs.store_sweeper import start_store_sweeper, stop_store_sweeper
from invitegate.middleware import CORSMiddleware, RequestContextMiddleware, SecurityHeadersMiddleware
from invitegate.middleware.pipeline import SecurityComponents
from invitegate.repositories.guest_content_repository import GuestContentRepository
from invitegate.repositories.user_repository import UserRepository
from invitegate.routes import account, admin, guest_content, health, media

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the store sweeper; clear every security map on shutdown."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    security: SecurityComponents = app.state.security
    sweeper = start_store_sweeper(security.store)

    yield

    logger.info("Application shutting down")
    await stop_store_sweeper(sweeper)
    security.store.shutdown()
    logger.info("All services closed successfully")


def create_app(
    security: SecurityComponents | None = None,
    users: UserRepository | None = None,
    content: GuestContentRepository | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        security: Pre-built components (tests inject a store with a fake clock)
        users: User repository; its claim resolver backs bearer authentication
        content: Guest content repository
    """
    users = users or UserRepository()
    security = security or SecurityComponents.build(
        authenticator=JWTAuthenticator(resolve_user=users.resolve_claims)
    )

    app = FastAPI(
        title="Invitegate",
        description="Request-security layer for the digital wedding invitation platform",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.security = security
    app.state.users = users
    app.state.content = content or GuestContentRepository()

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(account.router)
    app.include_router(guest_content.router)
    app.include_router(media.router)
    app.include_router(admin.router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log HTTP requests with timing."""
        start_time = time.time()
        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        logger.info(
            "HTTP request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(process_time, 2),
        )
        return response

    # Last added runs first: CORS -> context -> headers -> app
    app.add_middleware(SecurityHeadersMiddleware, enforce_https=settings.is_production())
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(CORSMiddleware, allowed_origins=settings.ALLOWED_ORIGINS)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

"""
Exception handlers that keep every error in the `{success: false, error}` shape.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from invitegate.core.errors import SecurityError
from invitegate.infrastructure.observability.logging import get_logger
from invitegate.middleware.security_dependencies import PipelineRejection, apply_cookies

logger = get_logger(__name__)


async def pipeline_rejection_handler(request: Request, exc: PipelineRejection) -> JSONResponse:
    """Render the pipeline's Respond outcome verbatim."""
    outcome = exc.outcome
    response = JSONResponse(
        status_code=outcome.status_code, content=outcome.body, headers=outcome.headers
    )
    apply_cookies(response, outcome.cookies)
    return response


async def security_error_handler(request: Request, exc: SecurityError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": detail},
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        f"{'.'.join(str(part) for part in error['loc'] if part != 'body')} {error['msg']}".strip()
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Validation failed", "details": details},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PipelineRejection, pipeline_rejection_handler)
    app.add_exception_handler(SecurityError, security_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

"""
Error Handling
==============

Two layers turn failures into JSON responses:

1. Exception handlers for the domain hierarchy (`NanoChatError`) and for
   request validation. Each domain error carries its own `http_status`
   (400, 401, 403, 404, 409, ...) and is rendered with `to_dict()`.
   Validation failures are reported as 400 rather than FastAPI's default 422.
2. `ErrorHandlingMiddleware`, a catch-all for anything else raised by a route
   handler, which becomes a generic 500 without leaking internals (the
   traceback is included only when `include_traceback` is set).

Nothing from a background generation run ever reaches these handlers: runs
record their failures on the assistant message instead.
"""

import traceback
from collections.abc import Callable

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from nanochat.core.exceptions import NanoChatError
from nanochat.core.logging import get_logger

logger = get_logger(__name__)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Last line of defense: unhandled exceptions become a 500 JSON response."""

    def __init__(self, app, include_traceback: bool = False):
        super().__init__(app)
        self.include_traceback = include_traceback

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except Exception as e:
            method = request.method
            path = request.url.path
            error_type = type(e).__name__

            logger.error(
                f"Unhandled exception in request: {method} {path}",
                method=method,
                path=path,
                error_type=error_type,
                error_message=str(e),
                exc_info=True,
            )

            error_response = {
                "error": "internal_server_error",
                "message": "An unexpected error occurred while processing your request",
                "error_type": error_type,
            }
            if self.include_traceback:
                error_response["traceback"] = traceback.format_exc()
                error_response["detail"] = str(e)

            return JSONResponse(status_code=500, content=error_response)


async def nanochat_error_handler(request: Request, exc: NanoChatError) -> JSONResponse:
    """Render a domain error with its own status code."""
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        f"Request failed: {exc.message}",
        error_type=type(exc).__name__,
        status_code=exc.http_status,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.http_status,
        content={"ok": False, "error": exc.message, **exc.to_dict()},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    # pydantic prefixes messages raised from validators
    message = message.removeprefix("Value error, ")
    logger.warning("Request validation failed", path=request.url.path, error=message)
    return JSONResponse(
        status_code=400,
        content={
            "ok": False,
            "error": message,
            "error_type": "ValidationError",
            "details": {"errors": jsonable_encoder(errors)},
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NanoChatError, nanochat_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

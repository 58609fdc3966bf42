"""
Error taxonomy and exception handlers.
Psychology: Uniform failure shape - clients only ever parse one error body.
Intention: No exception crosses a route boundary as a raw stack trace.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Internal server error"


class ApiError(Exception):
    """Raised anywhere below a route to produce a `{success: false}` response."""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code
        self.headers = headers or {}


class ValidationFailed(ApiError):
    def __init__(self, message: str):
        super().__init__(status.HTTP_400_BAD_REQUEST, message)


class NotFound(ApiError):
    def __init__(self, message: str):
        super().__init__(status.HTTP_404_NOT_FOUND, message)


class Unauthorized(ApiError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(status.HTTP_401_UNAUTHORIZED, message)


def error_body(message: str, code: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "error": message}
    if code:
        body["code"] = code
    return body


def error_response(
    status_code: int,
    message: str,
    code: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_body(message, code), headers=headers)


async def api_error_handler(request: Request, exc: ApiError):
    return error_response(exc.status_code, exc.message, exc.code, exc.headers)


async def http_exception_handler(request: Request, exc: HTTPException):
    """Wrap framework HTTP errors (404 route, 405 method...) in the standard shape."""
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(item) for item in first.get("loc", []) if item not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return error_response(status.HTTP_400_BAD_REQUEST, message)


async def unexpected_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", None)
    logger.exception(f"Unhandled error on {request.method} {request.url.path} (request_id={request_id})")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, DEFAULT_ERROR_MESSAGE)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unexpected_exception_handler)

"""
Typed API errors and the FastAPI handlers that render them.

Every error renders as {"detail": message}, plus "errors" when field-level
detail exists.
"""
import logging
from typing import Any, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Any]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)

    def payload(self) -> dict:
        body = {"detail": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class AuthenticationRequired(ApiError):
    status_code = 401
    default_message = "Authentication required"


class AccessDenied(ApiError):
    status_code = 403
    default_message = "Access denied"


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class ValidationFailed(ApiError):
    status_code = 400
    default_message = "Validation failed"


class Conflict(ApiError):
    status_code = 409
    default_message = "Conflict"


def _jsonable_errors(errors):
    cleaned = []
    for err in errors:
        item = {
            "loc": list(err.get("loc", ())),
            "msg": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        cleaned.append(item)
    return cleaned


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        return JSONResponse(status_code=exc.status_code, content=exc.payload())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        error = ValidationFailed(errors=_jsonable_errors(exc.errors()))
        return JSONResponse(status_code=error.status_code, content=error.payload())

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

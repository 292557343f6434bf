"""
Service exceptions and the FastAPI handlers that render them.

Every error response has the same body:

    {"error": {"code", "message", "request_id"}, "detail": message}

and echoes the request id in ``x-request-id``.
"""

import logging
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from habitmomentum.core.logging import LOGGER_NAME, get_request_id

logger = logging.getLogger(LOGGER_NAME)


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.code
        self.status_code = status_code or self.status_code
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    """Bad input to a calculator or service. Never coerced."""

    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, LookupError):
    code = "not_found"
    status_code = 404


class OwnershipError(AppError):
    """The habit is missing or owned by someone else; callers can't tell which."""

    code = "forbidden"
    status_code = 403


class ConflictError(AppError):
    code = "conflict"
    status_code = 409


class StoreError(AppError):
    code = "store_unavailable"
    status_code = 503


class UnauthorizedError(AppError):
    code = "unauthorized"
    status_code = 401


def _request_id_for(request: Request) -> str:
    return getattr(request.state, "request_id", None) or get_request_id() or uuid4().hex


def error_response(status_code: int, code: str, message: str, request_id: str) -> JSONResponse:
    body = {
        "error": {"code": code, "message": message, "request_id": request_id},
        "detail": message,
    }
    return JSONResponse(status_code=status_code, content=body, headers={"x-request-id": request_id})


def _describe_validation(exc: RequestValidationError) -> str:
    problems = exc.errors()
    if not problems:
        return "invalid request"
    first = problems[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    reason = first.get("msg", "invalid request")
    return f"{field}: {reason}" if field else reason


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _request_id_for(request)
    logger.log(
        logging.ERROR if exc.status_code >= 500 else logging.WARNING,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "status": exc.status_code},
    )
    return error_response(exc.status_code, exc.code, exc.message, rid)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    rid = _request_id_for(request)
    logger.warning("request.invalid", extra={"request_id": rid, "error_code": "validation_error", "status": 422})
    return error_response(422, "validation_error", _describe_validation(exc), rid)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _request_id_for(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    return error_response(exc.status_code, code, exc.detail or "HTTP error", rid)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _request_id_for(request)
    logger.error("unhandled.exception", exc_info=exc, extra={"request_id": rid, "error_code": "internal_error"})
    return error_response(500, "internal_error", "Unexpected error", rid)

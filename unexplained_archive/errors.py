"""
unexplained_archive/errors.py
Centralized error envelope and FastAPI exception handlers.

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}

The message is what the UI shows in its alert, after the awaited call
settles. Recoverable errors never escape the initiating handler as a 500.
"""
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from unexplained_archive.exceptions import ArchiveException

logger = logging.getLogger(__name__)


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INVALID = "AUTH_INVALID"

    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"

    CONFLICT = "CONFLICT"
    STATE_TRANSITION_INVALID = "STATE_TRANSITION_INVALID"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"

    RATE_LIMITED = "RATE_LIMITED"

    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    CHECKOUT_UNAVAILABLE = "CHECKOUT_UNAVAILABLE"


class ErrorResponse(BaseModel):
    """Standard error response model"""
    success: bool = False
    error: str
    message: str
    code: str
    details: Optional[Dict[str, Any]] = None


def error_envelope(error: str, message: str, code: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    content = {
        "success": False,
        "error": error,
        "message": message,
        "code": code,
    }
    if details:
        content["details"] = details
    return content


def exception_to_response(exc: ArchiveException) -> JSONResponse:
    """Convert a domain exception to a JSONResponse"""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(exc.error, exc.message, exc.code, exc.details),
    )


async def archive_exception_handler(request: Request, exc: ArchiveException):
    if exc.status_code >= 500:
        logger.error(f"Remote failure on {request.url.path}: {exc.code} - {exc.message}")
    else:
        logger.warning(f"Request refused on {request.url.path}: {exc.code} - {exc.message}")
    return exception_to_response(exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    error_details = []
    for error in exc.errors():
        error_details.append({
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "type": error.get("type"),
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": "Validation Error",
            "message": "Request body is invalid",
            "code": ErrorCode.VALIDATION_ERROR,
            "details": {"errors": error_details},
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP exception on {request.url.path}: {exc.detail}")

    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content=exc.detail)

    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(
            "Error",
            str(exc.detail),
            ErrorCode.INTERNAL_ERROR if exc.status_code >= 500 else ErrorCode.INVALID_INPUT,
        ),
    )


async def global_exception_handler(request: Request, exc: Exception):
    log_id = str(uuid.uuid4())[:8]
    logger.error(f"[{log_id}] Unhandled exception on {request.url.path}: {type(exc).__name__}: {str(exc)}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_envelope(
            "Internal Error",
            "An unexpected error occurred. Please try again later.",
            ErrorCode.INTERNAL_ERROR,
            {"log_id": log_id},
        ),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ArchiveException, archive_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

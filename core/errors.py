# core/errors.py
from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


# ========================================
# ❗ Error taxonomy
# ========================================
class AppError(HTTPException):
    """Base for every user-facing failure. `detail` is the message the dashboard shows."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Unexpected server error"

    def __init__(self, message: str | None = None, status_code: int | None = None, headers: dict | None = None):
        super().__init__(
            status_code=status_code or self.status_code,
            detail=message or self.default_message,
            headers=headers,
        )


class AuthenticationRequired(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized: Login to get access"


class PermissionDenied(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class QuotaExceeded(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Free plan limit reached for today"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Already exists"


class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class InvalidWorkbook(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid Excel file"


class UpstreamFailure(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Upstream service failed"


class IntegrityFailure(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid signature"


class Gone(AppError):
    status_code = status.HTTP_410_GONE
    default_message = "Expired"


class ServiceUnavailable(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Service unavailable"


# ========================================
# 🧯 Handlers (registered in main.py)
# ========================================
async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query"))
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": f"{field}: {message}" if field else message},
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"❌ Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": f"Unexpected server error: {exc}"},
    )

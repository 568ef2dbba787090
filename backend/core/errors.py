from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from utils.logger import get_logger

logger = get_logger("backend.core.errors")


class AppError(Exception):
    """Base for failures the services report to callers.

    ``message`` is user-visible and ends up in the ``{"error": ...}`` body.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT


class RateLimitError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class IntegrityFault(AppError):
    """Stored data could not be read back (e.g. corrupt JSON column)."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("Request failed", extra={"path": request.url.path, "error": exc.message})
        return error_response(exc.status_code, "Internal server error")
    return error_response(exc.status_code, exc.message)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.warning("Invalid request body", extra={"path": request.url.path, "errors": str(exc.errors())})
    return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request body")


async def unhandled_error_handler(request: Request, exc: Exception):
    # Never leak SQL or tracebacks to the client
    logger.exception("Unhandled error", extra={"method": request.method, "path": request.url.path})
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

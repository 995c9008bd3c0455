import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from plasticwatch.utils.response import error_response, field_error_response

logger = logging.getLogger(__name__)


class AppException(Exception):
    code = "internal"

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthorizationError(AppException):
    """Caller lacks the role or ownership the operation requires."""

    code = "authorization"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message, status_code=403)


class ValidationError(AppException):
    code = "validation"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, status_code=422)
        self.field = field


class NotFoundError(AppException):
    code = "not_found"

    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class ConflictError(AppException):
    code = "conflict"

    def __init__(self, message: str):
        super().__init__(message, status_code=409)


class TransientIOError(AppException):
    """Network or storage failure that is expected to succeed on retry."""

    code = "transient_io"

    def __init__(self, message: str):
        super().__init__(message, status_code=503)


class ImmutableRecordError(AppException):
    code = "immutable"

    def __init__(self, message: str = "Review history is append-only"):
        super().__init__(message, status_code=409)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        if isinstance(exc, ValidationError) and exc.field:
            content = field_error_response(exc.message, exc.field)
        else:
            content = error_response(exc.message)
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_response("Internal server error"),
        )

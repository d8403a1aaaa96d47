"""Application errors and the handlers that turn them into JSON envelopes."""

import logfire

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from models.helpers import UploadErrorKind, CLIENT_INPUT_ERRORS

GENERIC_UPLOAD_FAILURE = "Failed to upload image. Please check your Cloudinary configuration."


class UploadError(Exception):
    """Single error type for every way the upload pipeline can fail.

    Args:
        kind (UploadErrorKind): What went wrong.
        message (str | None): Human readable description, may be empty.
        code (int | None): Status code reported by Cloudinary, if any.
    """

    def __init__(self, kind: UploadErrorKind, message: str | None = None, code: int | None = None):
        self.kind = kind
        self.message = message
        self.code = code
        super().__init__(message or kind.value)

    @property
    def status_code(self) -> int:
        if self.kind in CLIENT_INPUT_ERRORS:
            return status.HTTP_400_BAD_REQUEST
        return status.HTTP_500_INTERNAL_SERVER_ERROR

    def describe(self) -> str:
        """Message shown to the caller, with the store's status code embedded when present."""
        if self.code is not None:
            return f"Cloudinary API error ({self.code}): {self.message or 'Unknown error'}"
        return self.message or GENERIC_UPLOAD_FAILURE


def error_envelope(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register handlers so every error leaves the app as `{success: false, message}`.

    Args:
        app (FastAPI): The application instance.
    """

    @app.exception_handler(UploadError)
    async def upload_error_handler(request: Request, exc: UploadError):
        if exc.status_code >= 500:
            logfire.error(f"Upload error ({exc.kind.value}) on {request.url.path}: {exc.describe()}")
        else:
            logfire.info(f"Upload rejected ({exc.kind.value}) on {request.url.path}: {exc.describe()}")
        return error_envelope(exc.status_code, exc.describe())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        detail = exc.detail
        if isinstance(detail, dict):
            detail = detail.get("message", str(detail))
        logfire.info(f"HTTP exception on {request.url.path}: {detail} (Status: {exc.status_code})")
        return error_envelope(exc.status_code, str(detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0]["msg"] if errors else "Request validation failed"
        logfire.info(f"Validation error on {request.url.path}: {errors}")
        return error_envelope(status.HTTP_400_BAD_REQUEST, message)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logfire.exception(f"Unhandled exception on {request.url.path}: {exc}")
        return error_envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or "Internal server error")

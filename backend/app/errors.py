"""Error taxonomy and the FastAPI handlers that render it."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that carry a stable kind and HTTP status."""

    kind = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind, "message": self.message}


class NotFoundError(AppError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class BadRequestError(AppError):
    kind = "bad_request"
    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(AppError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class UnauthorizedError(AppError):
    kind = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED


class DependencyError(AppError):
    """An external collaborator (LLM, TTS, object storage) failed or timed out."""

    kind = "dependency_failure"
    status_code = status.HTTP_502_BAD_GATEWAY


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError as ``{"error": kind, "message": message}``."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Constraint violations that escaped a service are still conflicts, not 500s."""
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"error": ConflictError.kind, "message": "A record with this value already exists"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the handlers to an application."""
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, integrity_error_handler)  # type: ignore[arg-type]

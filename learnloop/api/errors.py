"""Map the error taxonomy onto HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.config import Settings
from ..core.exceptions import LearnLoopError, ProviderError

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Install handlers producing ``{"detail": ..., "error": ...}`` bodies."""

    @app.exception_handler(LearnLoopError)
    async def learnloop_error_handler(request: Request, exc: LearnLoopError):
        if isinstance(exc, ProviderError):
            logger.warning("Provider failure on %s %s: %s", request.method, request.url.path, exc)
        content = {"detail": exc.message, "error": type(exc).__name__}
        if exc.details and settings.DEBUG:
            content["details"] = exc.details
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "error": str(exc) if settings.DEBUG else "An error occurred",
            },
        )

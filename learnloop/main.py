"""LearnLoop FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import ai, content, progress, review, sessions
from .api.deps import Container
from .api.errors import register_exception_handlers
from .core.config import Settings, get_settings
from .core.logging import configure_logging
from .db.base import close_all, init_database
from .observability.langsmith import initialize_langsmith

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[Container] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Defaults to the environment-loaded settings
        container: Pre-built collaborators; when omitted the lifespan builds
            one from settings and creates the database tables
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        configure_logging(settings)
        logger.info("%s starting up", settings.APP_NAME)
        initialize_langsmith(settings)

        owns_container = container is None
        if owns_container:
            await init_database()
            app.state.container = Container.from_settings(settings)
        else:
            app.state.container = container

        yield

        await app.state.container.background.shutdown()
        if owns_container:
            await close_all()
        logger.info("%s shutting down", settings.APP_NAME)

    app = FastAPI(
        title=settings.APP_NAME,
        description="Adaptive AI tutoring engine",
        version="0.1.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )
    if container is not None:
        # Available without running the lifespan (e.g. ASGITransport in tests).
        app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=settings.cors_allow_headers_list,
    )

    # Include routers
    app.include_router(sessions.router, prefix=settings.API_V1_PREFIX)
    app.include_router(content.router, prefix=settings.API_V1_PREFIX)
    app.include_router(ai.router, prefix=settings.API_V1_PREFIX)
    app.include_router(review.router, prefix=settings.API_V1_PREFIX)
    app.include_router(progress.router, prefix=settings.API_V1_PREFIX)

    register_exception_handlers(app, settings)

    # Health check
    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "app": settings.APP_NAME}

    @app.get("/")
    async def root():
        return {
            "app": settings.APP_NAME,
            "version": "0.1.0",
            "docs": "/docs",
            "health": "/health",
        }

    return app


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "learnloop.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )


# Create the app instance
app = create_app()

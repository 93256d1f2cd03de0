"""FastAPI application factory.

Main entry point for the Training System Web API.
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from training import __version__
from training.core.errors import (
    InvalidConfigError,
    InvalidStateError,
    NotFoundError,
    PolicyViolationError,
)
from training.core.session_manager import SessionManager
from training.web.routes import (
    criteria_router,
    events_router,
    health_router,
    promotions_router,
    sessions_router,
    students_router,
)
from training.web.sessions import get_services

logger = structlog.get_logger(__name__)

ERROR_STATUS = {
    NotFoundError: 404,
    InvalidStateError: 409,
    PolicyViolationError: 403,
    InvalidConfigError: 422,
}


async def cleanup_loop(manager: SessionManager, interval: float) -> None:
    """Periodically force-complete inactive sessions."""
    while True:
        await asyncio.sleep(interval)
        try:
            await manager.cleanup_inactive()
        except Exception as e:
            logger.warning("cleanup_sweep_failed", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown events."""
    services = get_services()
    restored = await services.manager.restore()

    sweeper = None
    interval = services.config.lifecycle.cleanup_interval_seconds
    if interval > 0:
        sweeper = asyncio.create_task(cleanup_loop(services.manager, interval))
    logger.info("api_startup", restored_sessions=restored, cleanup_interval=interval)

    yield

    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    await services.manager.shutdown()
    await services.notifications.close()
    logger.info("api_shutdown")


def _register_error_handlers(app: FastAPI) -> None:
    for error_class, status_code in ERROR_STATUS.items():

        async def handler(request: Request, exc: Exception, status_code: int = status_code):
            return JSONResponse(status_code=status_code, content={"detail": str(exc)})

        app.add_exception_handler(error_class, handler)

    async def unexpected_error(request: Request, exc: Exception):
        logger.error(
            "unhandled_error",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    app.add_exception_handler(Exception, unexpected_error)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Training System API",
        description="Web API for mental-math training sessions and promotions",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware for web clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)

    app.include_router(health_router)
    app.include_router(sessions_router)
    app.include_router(events_router)
    app.include_router(promotions_router)
    app.include_router(students_router)
    app.include_router(criteria_router)

    return app


# Default app instance for uvicorn
app = create_app()

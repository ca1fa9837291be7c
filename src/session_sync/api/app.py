"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from session_sync.api.adapter_events import router as adapter_router
from session_sync.api.admin import router as admin_router
from session_sync.api.status import router as status_router
from session_sync.app_logging import configure_logging
from session_sync.containers import AppContainer
from session_sync.domain.errors import InvalidTransitionError, SessionNotFoundError


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Session sync starting",
            extra={"environment": container.settings.environment},
        )
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(status_router)
    app.include_router(adapter_router)
    app.include_router(admin_router)

    @app.exception_handler(SessionNotFoundError)
    async def session_not_found(
        request: Request, exc: SessionNotFoundError
    ) -> JSONResponse:
        return JSONResponse(
            {"success": False, "error": str(exc)},
            status_code=status.HTTP_404_NOT_FOUND,
        )

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition(
        request: Request, exc: InvalidTransitionError
    ) -> JSONResponse:
        logger.warning(
            "Rejected transition",
            extra={"current": exc.current.value, "target": exc.target.value},
        )
        return JSONResponse(
            {
                "success": False,
                "error": str(exc),
                "status": exc.current.value,
            },
            status_code=status.HTTP_409_CONFLICT,
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app

"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from nomutore.api.ledger import router as ledger_router
from nomutore.app_logging import configure_logging
from nomutore.containers import AppContainer
from nomutore.domain.errors import (
    EntryNotFoundError,
    InvalidEntryError,
    RecalculationError,
    StorageError,
)


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        try:
            if state_container.period_ledger.check_period_rollover():
                logger.info("Period rollover performed at startup")
            state_container.ledger_service.ensure_today_check_in()
        except Exception:
            logger.exception("Failed to run startup period rollover check")
        yield

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(ledger_router)

    @app.exception_handler(EntryNotFoundError)
    async def entry_not_found(
        _request: Request, exc: EntryNotFoundError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)}
        )

    @app.exception_handler(InvalidEntryError)
    async def invalid_entry(_request: Request, exc: InvalidEntryError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(RecalculationError)
    async def recalculation_failed(
        _request: Request, exc: RecalculationError
    ) -> JSONResponse:
        logger.error(
            "Recalculation failed after write: entry=%s timestamp=%s",
            exc.entry_id,
            exc.timestamp,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "history recalculation failed"},
        )

    @app.exception_handler(StorageError)
    async def storage_failed(_request: Request, exc: StorageError) -> JSONResponse:
        logger.error("Storage failure: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "storage unavailable"},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app

"""
FastAPI server: warning lifecycle, community records and live notifications.

The lifespan builds the service graph once per process and stores it on
app.state; the Monitoring Scheduler is restored on startup and shut down on
exit. Domain errors map to HTTP status codes in one exception handler.
Config via env (see rugwatch.config.settings).
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rugwatch import __version__
from rugwatch.api_server.deps import build_services
from rugwatch.api_server.routes import router
from rugwatch.api_server.websocket import ws_router
from rugwatch.chain import ChainDataProvider
from rugwatch.config import Settings, get_settings
from rugwatch.core.exceptions import RugwatchError
from rugwatch.database import Database
from rugwatch.logging import get_logger

logger = get_logger(__name__)

# Error code -> HTTP status; subclasses without their own entry use the base class code
STATUS_FOR_CODE = {
    "not_found": 404,
    "invalid_transition": 409,
    "duplicate_record": 409,
    "validation_error": 422,
    "unsupported_network": 422,
    "provider_error": 502,
    "provider_unavailable": 502,
    "provider_timeout": 504,
}


def error_status(exc: RugwatchError) -> int:
    for cls in type(exc).__mro__:
        code = getattr(cls, "code", None)
        if code in STATUS_FOR_CODE:
            return STATUS_FOR_CODE[code]
    return 500


async def rugwatch_error_handler(request: Request, exc: RugwatchError) -> JSONResponse:
    status = error_status(exc)
    if status >= 500:
        logger.warning("api_provider_error", path=request.url.path, error=exc.message, error_code=exc.code)
    return JSONResponse(status_code=status, content=exc.to_dict())


def create_app(
    settings: Settings | None = None,
    *,
    chain: ChainDataProvider | None = None,
    db: Database | None = None,
) -> FastAPI:
    """Build the app. Tests pass a temporary database and a fake chain provider."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or get_settings()
        services = build_services(cfg, chain=chain, db=db)
        app.state.services = services
        restored = await services.scheduler.restore()
        logger.info("api_started", restored_monitors=restored, database=cfg.database_url.split("://", 1)[0])
        try:
            yield
        finally:
            await services.scheduler.shutdown()
            if db is None:
                services.db.dispose()
            logger.info("api_stopped")

    app = FastAPI(
        title="Rugwatch API",
        description="Risk warnings, rug-pull tombstones, insider tips and live chat.",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_exception_handler(RugwatchError, rugwatch_error_handler)
    app.include_router(router)
    app.include_router(ws_router)
    return app


app = create_app()

"""
Ranking API - FastAPI application serving the web dashboard.

Provides endpoints for:
- Guilds and cached member lookup
- Event management and score recording
- Leaderboards (private dashboard and public views)
- Bot, scheduler and health status
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import RankingBotConfig
from ..core.errors import NotFoundError, RankingError, StorageError, ValidationError
from ..core.logging_utils import get_logger
from ..core.member_sync import MemberSyncScheduler
from ..core.ranking_service import RankingService
from ..core.storage_engine import RankingStorageEngine
from .routes import (
    events_router,
    guilds_router,
    health_router,
    logs_router,
    public_router,
    scores_router,
)

logger = get_logger("api")

API_VERSION = "1.0.0"


def _error(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "code": code})


def create_app(
    service: Optional[RankingService] = None,
    *,
    config: Optional[RankingBotConfig] = None,
    bot_status: Optional[Callable[[], Dict[str, Any]]] = None,
    scheduler: Optional[MemberSyncScheduler] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The storage behind ``service`` is opened in the lifespan so the
    connection belongs to the server's event loop, and closed on shutdown.
    """
    config = config or RankingBotConfig.from_env(require_token=False)
    if service is None:
        service = RankingService(RankingStorageEngine(config.db_path, busy_timeout=config.db_busy_timeout))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting ranking API (db=%s)", service.storage.db_path)
        await service.start()
        yield
        logger.info("Shutting down ranking API")
        await service.close()

    app = FastAPI(
        title="Event Ranking API",
        description="Events, score ledger and leaderboards for Discord servers.",
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.bot_status = bot_status
    app.state.scheduler = scheduler

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(guilds_router)
    app.include_router(events_router)
    app.include_router(scores_router)
    app.include_router(public_router)
    app.include_router(logs_router)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _error(400, str(exc), exc.code)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(404, str(exc), exc.code)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        return _error(503, "The database is busy, please retry.", exc.code)

    @app.exception_handler(RankingError)
    async def ranking_error_handler(request: Request, exc: RankingError):
        return _error(400, str(exc), exc.code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        return _error(400, f"{location}: {message}" if location else message, ValidationError.code)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
        return _error(500, "Internal server error", "INTERNAL_ERROR")

    return app


__all__ = ["create_app", "API_VERSION"]

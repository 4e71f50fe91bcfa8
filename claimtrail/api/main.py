"""claimtrail FastAPI Application

Webhook ingestion for external claim events plus read access to claim
state, audit history and timelines.

Run with::

    uvicorn claimtrail.api.main:create_app --factory
"""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from claimtrail.api.auth import initialize_dev_keys
from claimtrail.api.correlation import CorrelationIDMiddleware
from claimtrail.api.database import DatabaseManager
from claimtrail.api.models import ErrorResponse
from claimtrail.api.routes import build_router
from claimtrail.config import AppConfig, load_config
from claimtrail.claims.locks import ClaimLockRegistry
from claimtrail.claims.service import ClaimStatusService
from claimtrail.exceptions import ConcurrencyConflictError, InvalidTransitionError, NotFoundError, StorageError
from claimtrail.ledger import AuditLedger
from claimtrail.logging_config import configure_logging
from claimtrail.webhooks.normalizer import WebhookNormalizer
from claimtrail.webhooks.service import WebhookService

logger = logging.getLogger(__name__)


def create_app(config: AppConfig | None = None, db_manager: DatabaseManager | None = None) -> FastAPI:
    """
    Build the application.

    Args:
        config: Loaded configuration. Defaults to ``load_config()`` with the
            YAML file named by ``CLAIMTRAIL_CONFIG``, if set.
        db_manager: Pre-built database manager (tests pass an in-memory one).
            Defaults to one built from ``config.api.database_url``.
    """
    if config is None:
        config = load_config(os.getenv("CLAIMTRAIL_CONFIG"))
        configure_logging(level=config.log_level, json_output=config.log_json, log_file=config.log_file)

    owns_database = db_manager is None
    database = db_manager or DatabaseManager(config.api.database_url, echo=config.api.database_echo)
    ledger = AuditLedger(database)
    normalizer = WebhookNormalizer(config.webhook)
    locks = ClaimLockRegistry()
    webhook_service = WebhookService(database, ledger, config.webhook, locks=locks)
    status_service = ClaimStatusService(database, ledger, locks=locks)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting %s v%s", config.api.api_title, config.api.api_version)
        database.create_tables()
        logger.info("Database initialized: %s", database.engine.url.render_as_string(hide_password=True))

        if not normalizer.verifier.configured:
            logger.warning("No webhook secret configured; every webhook will be rejected")

        if config.api.dev_mode:
            logger.warning("!!! DEVELOPMENT MODE - Initializing test API keys !!!")
            initialize_dev_keys()

        try:
            yield
        finally:
            if owns_database:
                database.engine.dispose()
            logger.info("Shutdown complete")

    app = FastAPI(
        title=config.api.api_title,
        version=config.api.api_version,
        description="Webhook-driven claim status lifecycle with an append-only audit trail",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIDMiddleware)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Standardized error response for HTTP exceptions"""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.__class__.__name__, message=str(exc.detail)).model_dump(mode="json"),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=ErrorResponse(error=exc.error_code, message=str(exc)).model_dump(mode="json"),
        )

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=ErrorResponse(error=exc.error_code, message=str(exc)).model_dump(mode="json"),
        )

    @app.exception_handler(ConcurrencyConflictError)
    async def conflict_handler(request: Request, exc: ConcurrencyConflictError):
        logger.warning("Concurrent update rejected: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=ErrorResponse(error=exc.error_code, message=str(exc)).model_dump(mode="json"),
        )

    @app.exception_handler(StorageError)
    async def storage_exception_handler(request: Request, exc: StorageError):
        logger.error("Storage failure: %s", exc, exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=ErrorResponse(
                error=exc.error_code,
                message="Storage temporarily unavailable",
                detail=str(exc) if config.api.dev_mode else None,
            ).model_dump(mode="json"),
            headers={"Retry-After": "5"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Catch-all error handler"""
        logger.error("Unhandled exception: %s", exc, exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(
                error="InternalServerError",
                message="An unexpected error occurred",
                detail=str(exc) if config.api.dev_mode else None,
            ).model_dump(mode="json"),
        )

    app.state.config = config
    app.state.db_manager = database
    app.state.ledger = ledger
    app.state.normalizer = normalizer
    app.state.webhook_service = webhook_service
    app.state.status_service = status_service
    app.state.start_time = datetime.now(timezone.utc)

    app.include_router(build_router())
    return app


def main():
    """Run development server"""
    uvicorn.run(
        "claimtrail.api.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )


if __name__ == "__main__":
    main()

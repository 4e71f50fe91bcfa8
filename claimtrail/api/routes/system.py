"""Health, metrics and operator audit endpoints."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from claimtrail.api.auth import require_permission
from claimtrail.api.models import HealthResponse, RecentAuditResponse
from claimtrail.api.routes._helpers import get_config, get_db_manager, get_ledger, get_normalizer
from claimtrail.api.routes.claims import audit_log_entry
from claimtrail.ledger import AuditLedger
from claimtrail.metrics import METRICS

logger = logging.getLogger(__name__)


def _ping(request: Request) -> bool:
    try:
        with get_db_manager(request).get_session() as session:
            session.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error("Database health check failed: %s", e)
        return False


def _recent(ledger: AuditLedger, limit: int) -> RecentAuditResponse:
    events = [audit_log_entry(entry) for entry in ledger.recent(limit)]
    return RecentAuditResponse(total_events=len(events), events=events)


def build_system_router() -> APIRouter:
    router = APIRouter(tags=["System"])

    @router.get("/health", response_model=HealthResponse, summary="Health check")
    async def health_check(request: Request):
        """Liveness plus database connectivity, for load balancers and monitoring."""
        now = datetime.now(timezone.utc)
        uptime = (now - request.app.state.start_time).total_seconds()
        db_connected = await run_in_threadpool(_ping, request)

        return HealthResponse(
            status="healthy" if db_connected else "unhealthy",
            version=get_config(request).api.api_version,
            uptime_seconds=uptime,
            database_connected=db_connected,
            webhook_secret_configured=get_normalizer(request).verifier.configured,
            timestamp=now,
        )

    @router.get(
        "/metrics",
        summary="In-memory metrics snapshot",
        dependencies=[Depends(require_permission("admin"))],
    )
    async def get_metrics() -> dict:
        """Counters, gauges and histogram summaries. **Authentication:** admin key."""
        return METRICS.snapshot()

    @router.get(
        "/audit/recent",
        response_model=RecentAuditResponse,
        summary="Latest audit entries across all claims",
        dependencies=[Depends(require_permission("admin"))],
    )
    async def recent_audit(request: Request, limit: int = Query(100, ge=1, le=1000)):
        """
        Newest entries first, including system-wide ones without a claim
        (e.g. receipts of queued or rejected webhooks).

        **Authentication:** admin key.
        """
        return await run_in_threadpool(_recent, get_ledger(request), limit)

    return router

"""Claim endpoints: current state, audit history, timeline and status changes."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from claimtrail.api.auth import APIKey, check_rate_limit, require_permission
from claimtrail.api.database import AuditEntry, Claim, ClaimRepository, DatabaseManager
from claimtrail.api.models import (
    AuditHistoryResponse,
    AuditLogEntry,
    ClaimResponse,
    ErrorResponse,
    StatusChangeRequest,
    StatusChangeResponse,
    TimelineItemResponse,
    TimelineResponse,
)
from claimtrail.api.routes._helpers import get_config, get_db_manager, get_ledger, get_status_service, read_session
from claimtrail.claims.timeline import project_timeline
from claimtrail.exceptions import NotFoundError
from claimtrail.ledger import AuditLedger


def _require_claim(session: Session, claim_id: str) -> Claim:
    claim = ClaimRepository(session).get_by_id(claim_id)
    if claim is None:
        raise NotFoundError(f"Claim {claim_id} not found", error_code="CLAIM_NOT_FOUND", context={"claim_id": claim_id})
    return claim


def claim_response(claim: Claim) -> ClaimResponse:
    return ClaimResponse(
        claim_id=claim.id,
        status=claim.status,
        lifecycle_status=claim.lifecycle_status,
        fraud_score=claim.fraud_score,
        fraud_indicators=claim.fraud_indicators,
        payment_id=claim.payment_id,
        payment_amount=claim.payment_amount,
        paid_at=claim.paid_at,
        version=claim.version,
        created_at=claim.created_at,
        updated_at=claim.updated_at,
    )


def audit_log_entry(entry: AuditEntry) -> AuditLogEntry:
    return AuditLogEntry(
        log_id=entry.id,
        claim_id=entry.claim_id,
        action=entry.action,
        actor_id=entry.actor_id,
        description=entry.description,
        details=entry.details,
        timestamp=entry.timestamp,
    )


def _load_claim(db_manager: DatabaseManager, claim_id: str) -> ClaimResponse:
    with read_session(db_manager) as session:
        return claim_response(_require_claim(session, claim_id))


def _load_audit(db_manager: DatabaseManager, ledger: AuditLedger, claim_id: str, limit: int) -> AuditHistoryResponse:
    with read_session(db_manager) as session:
        _require_claim(session, claim_id)
        events = []
        for entry in ledger.query(claim_id, session=session):
            if len(events) >= limit:
                break
            events.append(audit_log_entry(entry))
    return AuditHistoryResponse(claim_id=claim_id, total_events=len(events), events=events)


def _load_timeline(
    db_manager: DatabaseManager, ledger: AuditLedger, claim_id: str, now: datetime, window_days: int
) -> TimelineResponse:
    with read_session(db_manager) as session:
        _require_claim(session, claim_id)
        items = project_timeline(ledger.query(claim_id, session=session), now, window_days=window_days)

    return TimelineResponse(
        claim_id=claim_id,
        generated_at=now,
        items=[
            TimelineItemResponse(
                id=item.id,
                action=item.action,
                label=item.label,
                icon=item.icon,
                color=item.color,
                description=item.description,
                actor=item.actor,
                timestamp=item.timestamp,
                relative_time=item.relative_time,
            )
            for item in items
        ],
    )


def build_claims_router() -> APIRouter:
    router = APIRouter(prefix="/claims", tags=["Claims"])

    @router.get("/{claim_id}", response_model=ClaimResponse, summary="Current claim state")
    async def get_claim(request: Request, claim_id: str, api_key: APIKey = Depends(check_rate_limit)):
        """
        Current state of a claim.

        ``status`` is the effective status (``FLAGGED_FRAUD`` overrides);
        ``lifecycle_status`` is the substantive status underneath it.

        **Authentication:** Requires valid API key.
        """
        return await run_in_threadpool(_load_claim, get_db_manager(request), claim_id)

    @router.get("/{claim_id}/audit", response_model=AuditHistoryResponse, summary="Audit history")
    async def get_claim_audit(
        request: Request,
        claim_id: str,
        limit: int = Query(1000, ge=1, le=10000, description="Maximum events to return"),
        api_key: APIKey = Depends(check_rate_limit),
    ):
        """
        Audit entries for a claim, oldest first.

        **Authentication:** Requires valid API key.
        """
        return await run_in_threadpool(_load_audit, get_db_manager(request), get_ledger(request), claim_id, limit)

    @router.get("/{claim_id}/timeline", response_model=TimelineResponse, summary="Claim timeline")
    async def get_claim_timeline(request: Request, claim_id: str, api_key: APIKey = Depends(check_rate_limit)):
        """
        Display-ready timeline of a claim's audit history with icons and
        relative times as seen from the server clock.

        **Authentication:** Requires valid API key.
        """
        return await run_in_threadpool(
            _load_timeline,
            get_db_manager(request),
            get_ledger(request),
            claim_id,
            datetime.now(timezone.utc),
            get_config(request).timeline.relative_window_days,
        )

    @router.post(
        "/{claim_id}/status",
        response_model=StatusChangeResponse,
        summary="Move a claim along its lifecycle",
        dependencies=[Depends(check_rate_limit)],
        responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    )
    async def change_claim_status(
        request: Request,
        claim_id: str,
        body: StatusChangeRequest,
        api_key: APIKey = Depends(require_permission("write")),
    ):
        """
        Reviewer status change (approve, reject, close, ...).

        Only forward moves of the lifecycle graph are accepted; a terminal
        claim answers 409. A ``STATUS_CHANGED`` audit entry records
        ``{from, to, reason, metadata}``.

        **Authentication:** Requires an API key with ``write`` permission.
        """
        change = await run_in_threadpool(
            get_status_service(request).change_status,
            claim_id,
            body.status,
            api_key.name,
            body.reason,
            body.metadata,
        )
        return StatusChangeResponse(
            claim=claim_response(change.claim),
            previous_status=change.previous_status,
            new_status=change.new_status,
            audit_entry_id=change.audit_entry_id,
        )

    return router

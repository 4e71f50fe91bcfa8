"""Event Dispatcher

Routes a canonical webhook event to the handler for its (source, kind)
pair.  Handlers read current state and either raise a business error or
return a :class:`DispatchDecision`; nothing is written until the caller
applies the decision, so a rejected event never leaves a half-applied
mutation behind.

Routing table:

    payment gateway   + payment.issued     -> payment_recorded / complete
    fraud service     + fraud.detected     -> fraud_recorded / complete
    document service  + document.uploaded  -> document_analysis_recorded / complete
    known source      + any other kind     -> unknown_event / ignored
    unrecognized source                    -> queued / pending
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from claimtrail.api.database import ClaimRepository, DocumentRepository, utcnow
from claimtrail.api.models import AuditAction, ClaimStatus, DispatchStatus, WebhookResult
from claimtrail.claims.lifecycle import (
    DEFAULT_FRAUD_FLAG_THRESHOLD,
    check_transition,
    effective_status,
    exceeds_fraud_threshold,
    is_terminal,
)
from claimtrail.exceptions import InvalidTransitionError, NotFoundError
from claimtrail.ledger import AuditLedger
from claimtrail.webhooks.schema import (
    CanonicalWebhookEvent,
    DocumentUploadedData,
    EventKind,
    FraudDetectedData,
    PaymentIssuedData,
    WebhookSource,
)

logger = logging.getLogger(__name__)

WEBHOOK_ACTOR = "WEBHOOK_HANDLER"
FRAUD_SERVICE_ACTOR = "EXTERNAL_FRAUD_SERVICE"
DOCUMENT_SERVICE_ACTOR = "DOCUMENT_SERVICE"


@dataclass
class AuditNote:
    """Business audit entry to write alongside a mutation"""

    action: AuditAction
    actor_id: str
    description: str
    details: dict[str, Any] = field(default_factory=dict)
    claim_id: str | None = None


@dataclass
class DispatchDecision:
    """What the dispatcher decided to do with one event.

    ``mutate`` is None for outcomes that change nothing (queued, unknown
    event).  When present it runs inside the caller's transaction.
    """

    action: str
    status: DispatchStatus
    mutate: Callable[[Session], None] | None = None
    note: AuditNote | None = None

    @property
    def mutates(self) -> bool:
        return self.mutate is not None

    def result(self) -> WebhookResult:
        return WebhookResult(action=self.action, status=self.status)


Handler = Callable[[Session, CanonicalWebhookEvent], DispatchDecision]


def _format_amount(amount: float) -> str:
    return f"${amount:,.2f}"


class EventDispatcher:
    """Decide and apply the effect of canonical webhook events."""

    def __init__(self, ledger: AuditLedger, fraud_flag_threshold: float = DEFAULT_FRAUD_FLAG_THRESHOLD):
        self.ledger = ledger
        self.fraud_flag_threshold = fraud_flag_threshold
        self._handlers: dict[tuple[WebhookSource, EventKind], Handler] = {
            (WebhookSource.PAYMENT_GATEWAY, EventKind.PAYMENT_ISSUED): self._payment_issued,
            (WebhookSource.FRAUD_SERVICE, EventKind.FRAUD_DETECTED): self._fraud_detected,
            (WebhookSource.DOCUMENT_SERVICE, EventKind.DOCUMENT_UPLOADED): self._document_uploaded,
        }

    def decide(self, session: Session, event: CanonicalWebhookEvent) -> DispatchDecision:
        """Pick the outcome for *event* without writing anything.

        Raises:
            NotFoundError: Target claim or document does not exist.
            InvalidTransitionError: The mutation is not allowed in the claim's current status.
        """
        if event.source_kind == WebhookSource.UNRECOGNIZED:
            return DispatchDecision(action="queued", status=DispatchStatus.PENDING)

        handler = self._handlers.get((event.source_kind, event.kind))
        if handler is None:
            return DispatchDecision(action="unknown_event", status=DispatchStatus.IGNORED)
        return handler(session, event)

    def apply(self, session: Session, decision: DispatchDecision) -> int | None:
        """Run the decided mutation and write its audit entry.  Returns the entry id, if any."""
        if decision.mutate is None:
            return None
        decision.mutate(session)
        if decision.note is None:
            return None
        note = decision.note
        entry = self.ledger.append(
            session,
            claim_id=note.claim_id,
            action=note.action,
            actor_id=note.actor_id,
            description=note.description,
            details=note.details,
        )
        return entry.id

    # -- Handlers ----------------------------------------------------------

    @staticmethod
    def _load_claim(session: Session, claim_id: str):
        claim = ClaimRepository(session).get_by_id(claim_id)
        if claim is None:
            raise NotFoundError(
                f"Claim {claim_id} not found",
                error_code="CLAIM_NOT_FOUND",
                context={"claim_id": claim_id},
            )
        return claim

    def _payment_issued(self, session: Session, event: CanonicalWebhookEvent) -> DispatchDecision:
        data: PaymentIssuedData = event.payload
        claim = self._load_claim(session, data.claim_id)
        check_transition(claim.lifecycle_status, ClaimStatus.PAID)

        expected_version = claim.version
        flagged = claim.fraud_flagged

        def mutate(s: Session) -> None:
            ClaimRepository(s).update(
                claim,
                expected_version,
                lifecycle_status=ClaimStatus.PAID,
                status=effective_status(ClaimStatus.PAID, flagged),
                payment_id=data.payment_id,
                payment_amount=data.amount,
                paid_at=utcnow(),
            )

        return DispatchDecision(
            action="payment_recorded",
            status=DispatchStatus.COMPLETE,
            mutate=mutate,
            note=AuditNote(
                action=AuditAction.PAYMENT_CONFIRMED,
                actor_id=WEBHOOK_ACTOR,
                description=f"Payment confirmed: {_format_amount(data.amount)}",
                details={"paymentId": data.payment_id, "amount": data.amount},
                claim_id=claim.id,
            ),
        )

    def _fraud_detected(self, session: Session, event: CanonicalWebhookEvent) -> DispatchDecision:
        data: FraudDetectedData = event.payload
        claim = self._load_claim(session, data.claim_id)
        if is_terminal(claim.lifecycle_status):
            raise InvalidTransitionError(
                f"Cannot record fraud score on claim {claim.id}: claim is in terminal status "
                f"{claim.lifecycle_status.value}",
                current=claim.lifecycle_status.value,
                context={"claim_id": claim.id},
            )

        expected_version = claim.version
        # The flag is sticky: a later lower score does not clear it.
        flagged = claim.fraud_flagged or exceeds_fraud_threshold(data.score, self.fraud_flag_threshold)
        indicators = list(data.indicators)

        def mutate(s: Session) -> None:
            ClaimRepository(s).update(
                claim,
                expected_version,
                fraud_score=data.score,
                fraud_indicators=indicators,
                status=effective_status(claim.lifecycle_status, flagged),
            )

        if flagged and not claim.fraud_flagged:
            logger.warning("Claim %s flagged for fraud (score %.2f)", claim.id, data.score)

        return DispatchDecision(
            action="fraud_recorded",
            status=DispatchStatus.COMPLETE,
            mutate=mutate,
            note=AuditNote(
                action=AuditAction.FRAUD_ALERT,
                actor_id=FRAUD_SERVICE_ACTOR,
                description=f"External fraud alert: {data.score * 100:.0f}% risk",
                details={"fraudScore": data.score, "indicators": indicators, "flagged": flagged},
                claim_id=claim.id,
            ),
        )

    def _document_uploaded(self, session: Session, event: CanonicalWebhookEvent) -> DispatchDecision:
        data: DocumentUploadedData = event.payload
        repo = DocumentRepository(session)
        document = repo.get_by_id(data.document_id)
        if document is None:
            raise NotFoundError(
                f"Document {data.document_id} not found",
                error_code="DOCUMENT_NOT_FOUND",
                context={"document_id": data.document_id},
            )

        analysis = dict(data.analysis or {})

        def mutate(s: Session) -> None:
            DocumentRepository(s).mark_analyzed(document, analysis, utcnow())

        return DispatchDecision(
            action="document_analysis_recorded",
            status=DispatchStatus.COMPLETE,
            mutate=mutate,
            note=AuditNote(
                action=AuditAction.DOCUMENT_ANALYZED,
                actor_id=DOCUMENT_SERVICE_ACTOR,
                description=f"Document {document.id} analyzed",
                details={"documentId": document.id, "analysis": analysis},
                claim_id=document.claim_id,
            ),
        )

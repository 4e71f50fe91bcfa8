"""Webhook processing unit of work.

One accepted event is handled in a single database transaction:

1. idempotency check against ``processed_events``
2. dispatcher decision (read-only)
3. ``WEBHOOK_RECEIVED`` receipt
4. the mutation and its business audit entry
5. the idempotency key

Business errors (claim or document missing, forbidden transition) still
commit the receipt plus a ``WEBHOOK_ANOMALY`` note.  Storage failures roll
everything back and surface as ``StorageError``.

Events for the same claim are serialized in-process by
:class:`ClaimLockRegistry`; across processes the claim ``version`` column
and the unique idempotency key catch races, and the unit is retried.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from claimtrail.api.database import DatabaseManager, ProcessedEventRepository
from claimtrail.api.models import AuditAction, DispatchStatus, WebhookResult
from claimtrail.claims.locks import ClaimLockRegistry
from claimtrail.config import WebhookConfig
from claimtrail.exceptions import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from claimtrail.ledger import AuditLedger
from claimtrail.logging_config import log_context
from claimtrail.metrics import METRICS
from claimtrail.serialization import canonical_json
from claimtrail.webhooks.dispatcher import WEBHOOK_ACTOR, EventDispatcher
from claimtrail.webhooks.schema import CanonicalWebhookEvent

logger = logging.getLogger(__name__)


def idempotency_key(event: CanonicalWebhookEvent) -> str:
    """Stable key for duplicate detection.

    SHA-256 of (source, kind, target id, nonce).  The nonce is the sender's
    event id when present, otherwise a digest of the canonical
    ``(timestamp, data)`` body, so byte-identical redeliveries collide.
    """
    nonce = event.nonce
    if not nonce:
        body = {"timestamp": event.timestamp.astimezone(timezone.utc).isoformat(), "data": event.data}
        nonce = hashlib.sha256(canonical_json(body).encode("utf-8")).hexdigest()
    target = event.claim_id or event.document_id or ""
    material = canonical_json([event.source, event.kind.value, target, nonce])
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


class WebhookService:
    """Applies canonical webhook events to claim state and the audit ledger."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        ledger: AuditLedger,
        config: WebhookConfig,
        locks: ClaimLockRegistry | None = None,
    ):
        self.db_manager = db_manager
        self.ledger = ledger
        self.config = config
        self.dispatcher = EventDispatcher(ledger, fraud_flag_threshold=config.fraud_flag_threshold)
        self.locks = locks if locks is not None else ClaimLockRegistry()

    def process(self, event: CanonicalWebhookEvent) -> WebhookResult:
        """Process one event end to end and return the dispatch outcome.

        Raises:
            StorageError: The unit of work could not be committed.  Nothing
                was written; the sender may retry.
        """
        key = idempotency_key(event)
        lock_key = event.claim_id or (f"document:{event.document_id}" if event.document_id else key)

        with log_context(claim_id=event.claim_id, event=event.kind.value, source=event.source):
            with METRICS.in_flight("webhooks_in_flight"), METRICS.timer("webhook_processing_seconds"):
                with self.locks.hold(lock_key):
                    result = self._process_with_retry(event, key)

            METRICS.inc("webhooks_total", labels={"kind": event.kind.value, "status": result.status.value})
            logger.info(
                "Webhook processed: %s", result.action, extra={"outcome": result.action}
            )
            return result

    def _process_with_retry(self, event: CanonicalWebhookEvent, key: str) -> WebhookResult:
        attempts = self.config.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                return self._process_once(event, key)
            except (StaleDataError, IntegrityError, ConcurrencyConflictError) as e:
                if attempt == attempts:
                    logger.error("Webhook unit of work lost %d concurrency races; giving up", attempts)
                    raise ConcurrencyConflictError(
                        "Concurrent update conflict while processing webhook",
                        cause=e,
                        context={"claim_id": event.claim_id, "attempts": attempts},
                    ) from e
                logger.info("Concurrency conflict on attempt %d/%d, retrying: %s", attempt, attempts, e)
            except StorageError:
                raise
            except SQLAlchemyError as e:
                logger.error("Webhook unit of work failed: %s", e)
                raise StorageError("Failed to persist webhook outcome", cause=e) from e
        raise AssertionError("unreachable")

    def _process_once(self, event: CanonicalWebhookEvent, key: str) -> WebhookResult:
        with self.db_manager.get_session() as session:
            processed = ProcessedEventRepository(session)
            if processed.get(key) is not None:
                self._write_receipt(session, event, key, "duplicate_skipped")
                logger.info("Duplicate webhook delivery skipped")
                return WebhookResult(action="duplicate_skipped", status=DispatchStatus.IGNORED)

            try:
                decision = self.dispatcher.decide(session, event)
            except (NotFoundError, InvalidTransitionError) as e:
                action = e.error_code.lower()
                self._write_receipt(session, event, key, action)
                self.ledger.append(
                    session,
                    claim_id=event.claim_id,
                    action=AuditAction.WEBHOOK_ANOMALY,
                    actor_id=WEBHOOK_ACTOR,
                    description=str(e),
                    details={
                        "event": event.kind.value,
                        "source": event.source,
                        "errorCode": e.error_code,
                        "context": e.context,
                    },
                )
                logger.warning("Webhook ignored (%s): %s", action, e)
                return WebhookResult(action=action, status=DispatchStatus.IGNORED)

            self._write_receipt(session, event, key, decision.action)
            entry_id = self.dispatcher.apply(session, decision)
            if decision.mutates:
                processed.record(
                    idempotency_key=key,
                    source=event.source,
                    kind=event.kind.value,
                    claim_id=event.claim_id,
                    outcome=decision.action,
                    audit_entry_id=entry_id,
                )
            return decision.result()

    def _write_receipt(self, session: Session, event: CanonicalWebhookEvent, key: str, outcome: str):
        return self.ledger.append(
            session,
            claim_id=event.claim_id,
            action=AuditAction.WEBHOOK_RECEIVED,
            actor_id=WEBHOOK_ACTOR,
            description=f"Received webhook: {event.kind.value} from {event.source}",
            details={
                "event": event.kind.value,
                "source": event.source,
                "idempotencyKey": key,
                "outcome": outcome,
                "eventTimestamp": event.timestamp,
            },
        )

    def record_rejection(self, error: ValidationError, source: str | None) -> None:
        """Write a ``WEBHOOK_REJECTED`` entry for a signed but malformed event.

        Only called when the payload named a claim; anonymous rejections are
        logged but not written to the ledger.
        """
        METRICS.inc("webhook_rejections_total", labels={"reason": "validation"})
        if error.claim_id is None:
            return
        try:
            with self.db_manager.get_session() as session:
                self.ledger.append(
                    session,
                    claim_id=error.claim_id,
                    action=AuditAction.WEBHOOK_REJECTED,
                    actor_id=WEBHOOK_ACTOR,
                    description=f"Rejected webhook from {source or 'unknown'}: {error}",
                    details={"source": source or "unknown", "errorCode": error.error_code, "reason": str(error)},
                )
        except SQLAlchemyError as e:
            raise StorageError("Failed to record rejected webhook", cause=e) from e

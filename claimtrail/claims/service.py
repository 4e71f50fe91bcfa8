"""Reviewer-driven claim status changes.

Moves a claim along the lifecycle graph on behalf of an authenticated
caller and records a ``STATUS_CHANGED`` entry in the same transaction.
Takes the same per-claim lock as webhook processing, so a status change
and a webhook for one claim never interleave in this process.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from claimtrail.api.database import Claim, ClaimRepository, DatabaseManager
from claimtrail.api.models import AuditAction, ClaimStatus
from claimtrail.claims.lifecycle import check_transition, effective_status
from claimtrail.claims.locks import ClaimLockRegistry
from claimtrail.exceptions import ConcurrencyConflictError, NotFoundError, StorageError
from claimtrail.ledger import AuditLedger
from claimtrail.logging_config import log_context
from claimtrail.metrics import METRICS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusChange:
    claim: Claim
    previous_status: ClaimStatus
    new_status: ClaimStatus
    audit_entry_id: int


class ClaimStatusService:
    def __init__(self, db_manager: DatabaseManager, ledger: AuditLedger, locks: ClaimLockRegistry | None = None):
        self.db_manager = db_manager
        self.ledger = ledger
        self.locks = locks if locks is not None else ClaimLockRegistry()

    def change_status(
        self,
        claim_id: str,
        target: ClaimStatus,
        actor_id: str,
        reason: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> StatusChange:
        """Move the lifecycle status of *claim_id* to *target*.

        The effective status follows the lifecycle unless the claim carries
        the fraud flag, which stays in place.

        Raises:
            NotFoundError: No such claim.
            InvalidTransitionError: The lifecycle graph forbids the move.
                Nothing is written.
            ConcurrencyConflictError: The claim changed underneath us.
            StorageError: The transaction could not be committed.
        """
        target = ClaimStatus(target)
        with log_context(claim_id=claim_id, actor=actor_id):
            with self.locks.hold(claim_id):
                try:
                    with self.db_manager.get_session() as session:
                        repo = ClaimRepository(session)
                        claim = repo.get_by_id(claim_id)
                        if claim is None:
                            raise NotFoundError(
                                f"Claim {claim_id} not found",
                                error_code="CLAIM_NOT_FOUND",
                                context={"claim_id": claim_id},
                            )

                        previous = ClaimStatus(claim.lifecycle_status)
                        check_transition(previous, target)
                        repo.update(
                            claim,
                            claim.version,
                            lifecycle_status=target,
                            status=effective_status(target, claim.fraud_flagged),
                        )
                        entry = self.ledger.append(
                            session,
                            claim_id=claim_id,
                            action=AuditAction.STATUS_CHANGED,
                            actor_id=actor_id,
                            description=f"Status changed from {previous.value} to {target.value}",
                            details={"from": previous.value, "to": target.value, "reason": reason, "metadata": metadata or {}},
                        )
                        entry_id = entry.id
                except StaleDataError as e:
                    raise ConcurrencyConflictError(
                        f"Claim {claim_id} was modified concurrently", cause=e, context={"claim_id": claim_id}
                    ) from e
                except SQLAlchemyError as e:
                    logger.error("Status change failed: %s", e)
                    raise StorageError(f"Failed to change status of claim {claim_id}", cause=e) from e

            METRICS.inc("status_changes_total", labels={"to": target.value})
            logger.info("Claim status changed: %s -> %s", previous.value, target.value)
            return StatusChange(claim=claim, previous_status=previous, new_status=target, audit_entry_id=entry_id)

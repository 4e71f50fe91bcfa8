"""Audit Ledger

Append-only log of state-changing actions.  Every other component writes
audit entries through :class:`AuditLedger`; none touches the
``audit_entries`` table directly.

``append`` joins the caller's transaction, so the entry commits or rolls
back together with the state change it describes.  ``query`` returns a
lazy, restartable view ordered by ``(timestamp, id)``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from claimtrail.api.database import AuditEntry, DatabaseManager, to_naive_utc, utcnow
from claimtrail.api.models import AuditAction
from claimtrail.exceptions import StorageError
from claimtrail.serialization import to_serializable

logger = logging.getLogger(__name__)


class AuditQuery:
    """Lazy, ordered, restartable sequence of audit entries for one claim.

    Nothing is read until iteration starts.  Every iteration issues a fresh
    query, so iterating twice yields the same entries unless new ones were
    appended in between.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        claim_id: str,
        session: Session | None = None,
        batch_size: int = 100,
    ):
        self._db_manager = db_manager
        self.claim_id = claim_id
        self._session = session
        self._batch_size = batch_size

    def _statement(self):
        return (
            select(AuditEntry)
            .where(AuditEntry.claim_id == self.claim_id)
            .order_by(AuditEntry.timestamp.asc(), AuditEntry.id.asc())
            .execution_options(yield_per=self._batch_size)
        )

    def __iter__(self) -> Iterator[AuditEntry]:
        if self._session is not None:
            try:
                yield from self._session.scalars(self._statement())
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to read audit entries for claim {self.claim_id}", cause=e) from e
            return

        session = self._db_manager.SessionLocal()
        try:
            for entry in session.scalars(self._statement()):
                yield entry
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read audit entries for claim {self.claim_id}", cause=e) from e
        finally:
            session.close()

    def all(self) -> list[AuditEntry]:
        return list(self)


class AuditLedger:
    """Write-once, read-many audit log."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def append(
        self,
        session: Session,
        *,
        claim_id: str | None,
        action: AuditAction | str,
        actor_id: str,
        description: str,
        details: dict[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> AuditEntry:
        """Write one entry inside the caller's transaction and return it with its durable id.

        Per-claim timestamps never go backwards: an entry is stamped no earlier
        than the latest entry already recorded for the same claim.

        Raises:
            StorageError: The entry could not be flushed.  The caller must
                roll back the surrounding unit of work.
        """
        action_value = action.value if isinstance(action, AuditAction) else str(action)
        ts = to_naive_utc(timestamp) if timestamp is not None else utcnow()

        try:
            if claim_id is not None:
                latest = session.scalar(
                    select(func.max(AuditEntry.timestamp)).where(AuditEntry.claim_id == claim_id)
                )
                if latest is not None and ts < latest:
                    ts = latest

            entry = AuditEntry(
                claim_id=claim_id,
                action=action_value,
                actor_id=actor_id,
                description=description,
                details_json=json.dumps(to_serializable(details or {}), ensure_ascii=False),
                timestamp=ts,
            )
            session.add(entry)
            session.flush()
        except StorageError:
            raise
        except SQLAlchemyError as e:
            logger.error("Audit append failed: action=%s claim_id=%s: %s", action_value, claim_id, e)
            raise StorageError(
                f"Failed to append audit entry {action_value}",
                cause=e,
                context={"claim_id": claim_id, "action": action_value},
            ) from e

        logger.debug("Audit entry %s appended: %s claim_id=%s", entry.id, action_value, claim_id)
        return entry

    def query(self, claim_id: str, session: Session | None = None) -> AuditQuery:
        """Entries for *claim_id*, timestamp ascending.  Pass *session* to read inside a transaction."""
        return AuditQuery(self.db_manager, claim_id, session=session)

    def recent(self, limit: int = 100) -> list[AuditEntry]:
        """Latest entries across all claims, newest first"""
        stmt = select(AuditEntry).order_by(AuditEntry.timestamp.desc(), AuditEntry.id.desc()).limit(limit)
        try:
            with self.db_manager.get_session() as session:
                return list(session.scalars(stmt))
        except SQLAlchemyError as e:
            raise StorageError("Failed to read recent audit entries", cause=e) from e

"""Shared helpers for route handlers."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from claimtrail.api.database import DatabaseManager
from claimtrail.claims.service import ClaimStatusService
from claimtrail.config import AppConfig
from claimtrail.exceptions import StorageError
from claimtrail.ledger import AuditLedger
from claimtrail.webhooks.normalizer import WebhookNormalizer
from claimtrail.webhooks.service import WebhookService


def get_config(request: Request) -> AppConfig:
    cfg: AppConfig = request.app.state.config
    return cfg


def get_db_manager(request: Request) -> DatabaseManager:
    db: DatabaseManager = request.app.state.db_manager
    return db


def get_ledger(request: Request) -> AuditLedger:
    ledger: AuditLedger = request.app.state.ledger
    return ledger


def get_normalizer(request: Request) -> WebhookNormalizer:
    normalizer: WebhookNormalizer = request.app.state.normalizer
    return normalizer


def get_webhook_service(request: Request) -> WebhookService:
    svc: WebhookService = request.app.state.webhook_service
    return svc


def get_status_service(request: Request) -> ClaimStatusService:
    svc: ClaimStatusService = request.app.state.status_service
    return svc


@contextmanager
def read_session(db_manager: DatabaseManager) -> Iterator[Session]:
    """Session for a read handler; driver failures surface as ``StorageError``."""
    try:
        with db_manager.get_session() as session:
            yield session
    except SQLAlchemyError as e:
        raise StorageError("Failed to read claim data", cause=e) from e

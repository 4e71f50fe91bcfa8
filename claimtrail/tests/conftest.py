"""Shared test fixtures for claimtrail tests.

Provides factory functions and fixtures used across all test modules.
"""

import hashlib
import hmac
import json
from typing import Any

import pytest
from fastapi.testclient import TestClient

from claimtrail.api.auth import api_key_store, rate_limiter
from claimtrail.api.database import ClaimRepository, DatabaseManager, DocumentRepository
from claimtrail.api.main import create_app
from claimtrail.api.models import ClaimStatus
from claimtrail.claims.service import ClaimStatusService
from claimtrail.config import ApiConfig, AppConfig, WebhookConfig
from claimtrail.ledger import AuditLedger
from claimtrail.metrics import METRICS
from claimtrail.webhooks.normalizer import WebhookNormalizer
from claimtrail.webhooks.service import WebhookService

TEST_SECRET = "test-webhook-secret"
DEFAULT_TIMESTAMP = "2026-02-17T11:45:00Z"


# ---------------------------------------------------------------------------
# Factory helpers (importable, not fixtures)
# ---------------------------------------------------------------------------


def make_test_config(**webhook_overrides) -> AppConfig:
    """AppConfig with an in-memory database, dev keys disabled and a known secret."""
    webhook = dict(secret=TEST_SECRET)
    webhook.update(webhook_overrides)
    return AppConfig(
        log_level="WARNING",
        api=ApiConfig(database_url="sqlite:///:memory:", dev_mode=False),
        webhook=WebhookConfig(**webhook),
    )


def make_payload(event: str = "payment.issued", data: dict[str, Any] | None = None, **extra) -> dict[str, Any]:
    """Webhook request body. ``data`` defaults to a payment for claim C1."""
    if data is None:
        data = {"claimId": "C1", "paymentId": "P1", "amount": 4200}
    payload = {"event": event, "timestamp": DEFAULT_TIMESTAMP, "data": data}
    payload.update(extra)
    return payload


def encode(payload: Any) -> bytes:
    return json.dumps(payload).encode("utf-8")


def sign(body: bytes, secret: str = TEST_SECRET, prefix: bool = True) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}" if prefix else digest


def signed_headers(body: bytes, source: str | None = "payment-gateway", secret: str = TEST_SECRET) -> dict[str, str]:
    headers = {"X-Webhook-Signature": sign(body, secret), "Content-Type": "application/json"}
    if source is not None:
        headers["X-Webhook-Source"] = source
    return headers


def make_event(normalizer: WebhookNormalizer, event: str = "payment.issued", data=None, source="payment-gateway", **extra):
    """Sign and normalize a payload into a CanonicalWebhookEvent."""
    body = encode(make_payload(event, data, **extra))
    return normalizer.normalize(body, sign(body), source)


def make_claim(db: DatabaseManager, claim_id: str = "C1", status: ClaimStatus = ClaimStatus.APPROVED):
    with db.get_session() as session:
        return ClaimRepository(session).create(claim_id, status=status)


def make_document(db: DatabaseManager, document_id: str = "D1", claim_id: str | None = "C1"):
    with db.get_session() as session:
        return DocumentRepository(session).create(document_id, claim_id=claim_id, file_name=f"{document_id}.pdf")


def get_claim(db: DatabaseManager, claim_id: str = "C1"):
    with db.get_session() as session:
        return ClaimRepository(session).get_by_id(claim_id)


def actions(ledger: AuditLedger, claim_id: str = "C1") -> list[str]:
    return [entry.action for entry in ledger.query(claim_id)]


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_globals():
    METRICS.reset()
    rate_limiter.reset()
    yield
    METRICS.reset()


@pytest.fixture
def config() -> AppConfig:
    return make_test_config()


@pytest.fixture
def db():
    """In-memory database with all tables"""
    manager = DatabaseManager("sqlite:///:memory:")
    manager.create_tables()
    yield manager
    manager.drop_tables()
    manager.engine.dispose()


@pytest.fixture
def ledger(db) -> AuditLedger:
    return AuditLedger(db)


@pytest.fixture
def normalizer(config) -> WebhookNormalizer:
    return WebhookNormalizer(config.webhook)


@pytest.fixture
def service(db, ledger, config) -> WebhookService:
    return WebhookService(db, ledger, config.webhook)


@pytest.fixture
def status_service(db, ledger, service) -> ClaimStatusService:
    return ClaimStatusService(db, ledger, locks=service.locks)


@pytest.fixture
def app(config, db):
    return create_app(config, db_manager=db)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_key() -> str:
    return api_key_store.generate_key("test-reader", permissions={"read": True, "admin": False})


@pytest.fixture
def admin_key() -> str:
    return api_key_store.generate_key("test-admin", permissions={"read": True, "admin": True})


@pytest.fixture
def writer_key() -> str:
    return api_key_store.generate_key("test-reviewer", permissions={"read": True, "write": True, "admin": False})

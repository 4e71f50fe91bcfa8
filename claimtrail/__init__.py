"""claimtrail - insurance claim lifecycle with webhook ingestion and audit trail

Main Components:
- Webhooks: signature verification, normalization, dispatch (webhooks/)
- Claims: status lifecycle graph, reviewer status changes, timeline projection (claims/)
- Ledger: append-only audit log (ledger.py)
- API: REST API server (api/)
"""

__version__ = "0.1.0"

from claimtrail.claims.lifecycle import can_transition, check_transition, effective_status
from claimtrail.claims.locks import ClaimLockRegistry
from claimtrail.claims.service import ClaimStatusService, StatusChange
from claimtrail.claims.timeline import TimelineItem, format_relative_time, project_timeline
from claimtrail.config import AppConfig, WebhookConfig, load_config, save_config
from claimtrail.exceptions import (
    AuthenticationError,
    ClaimTrailError,
    ConcurrencyConflictError,
    ConfigurationError,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from claimtrail.ledger import AuditLedger, AuditQuery
from claimtrail.webhooks.normalizer import SignatureVerifier, WebhookNormalizer
from claimtrail.webhooks.schema import CanonicalWebhookEvent, EventKind, WebhookSource
from claimtrail.webhooks.service import WebhookService, idempotency_key

__all__ = [
    # Version
    "__version__",
    # Config
    "AppConfig",
    "WebhookConfig",
    "load_config",
    "save_config",
    # Errors
    "ClaimTrailError",
    "AuthenticationError",
    "ValidationError",
    "NotFoundError",
    "InvalidTransitionError",
    "StorageError",
    "ConcurrencyConflictError",
    "ConfigurationError",
    # Ledger
    "AuditLedger",
    "AuditQuery",
    # Claims
    "can_transition",
    "check_transition",
    "effective_status",
    "ClaimLockRegistry",
    "ClaimStatusService",
    "StatusChange",
    "TimelineItem",
    "format_relative_time",
    "project_timeline",
    # Webhooks
    "CanonicalWebhookEvent",
    "EventKind",
    "WebhookSource",
    "SignatureVerifier",
    "WebhookNormalizer",
    "WebhookService",
    "idempotency_key",
]

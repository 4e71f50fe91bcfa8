"""API Request/Response Models

Enums shared by the ORM layer and Pydantic models for API endpoints.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# Enums for type safety


class ClaimStatus(str, Enum):
    """Claim status.

    ``FLAGGED_FRAUD`` only ever appears as the effective ``status``; the
    substantive ``lifecycle_status`` is always one of the other values.
    """

    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    INVESTIGATING = "INVESTIGATING"
    APPROVED = "APPROVED"
    PAID = "PAID"
    CLOSED = "CLOSED"
    REJECTED = "REJECTED"
    FLAGGED_FRAUD = "FLAGGED_FRAUD"


class DocumentStatus(str, Enum):
    """Document analysis status"""

    PENDING = "PENDING"
    ANALYZED = "ANALYZED"


class AuditAction(str, Enum):
    """Audit ledger action tags written by this service.

    The ledger stores the plain string, so entries written by other
    collaborators (intake, reviewers) may carry tags outside this set.
    """

    WEBHOOK_RECEIVED = "WEBHOOK_RECEIVED"
    WEBHOOK_REJECTED = "WEBHOOK_REJECTED"
    WEBHOOK_ANOMALY = "WEBHOOK_ANOMALY"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    FRAUD_ALERT = "FRAUD_ALERT"
    DOCUMENT_ANALYZED = "DOCUMENT_ANALYZED"
    STATUS_CHANGED = "STATUS_CHANGED"
    CLAIM_SUBMITTED = "CLAIM_SUBMITTED"


class DispatchStatus(str, Enum):
    """Outcome status reported to the webhook sender"""

    COMPLETE = "complete"
    PENDING = "pending"
    IGNORED = "ignored"


# Webhook responses


class WebhookResult(BaseModel):
    """Dispatch outcome"""

    action: str = Field(description="What the dispatcher did, e.g. payment_recorded, queued, duplicate_skipped")
    status: DispatchStatus


class WebhookResponse(BaseModel):
    """Accepted webhook response"""

    success: Literal[True] = True
    processed: Literal[True] = True
    result: WebhookResult

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "processed": True,
                "result": {"action": "payment_recorded", "status": "complete"},
            }
        }
    )


class WebhookErrorResponse(BaseModel):
    """Rejected webhook response"""

    success: Literal[False] = False
    error: str

    model_config = ConfigDict(json_schema_extra={"example": {"success": False, "error": "Invalid signature"}})


class ChallengeResponse(BaseModel):
    """Endpoint ownership verification echo"""

    challenge: str


class WebhookStatusResponse(BaseModel):
    """Webhook endpoint description"""

    status: str = "active"
    version: str
    supportedEvents: list[str]  # noqa: N815 - wire name


# Claim responses


class ClaimResponse(BaseModel):
    """Current claim state"""

    claim_id: str
    status: ClaimStatus
    lifecycle_status: ClaimStatus
    fraud_score: float | None = Field(None, ge=0.0, le=1.0)
    fraud_indicators: list[str] = Field(default_factory=list)
    payment_id: str | None = None
    payment_amount: float | None = None
    paid_at: datetime | None = None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "claim_id": "C1",
                "status": "PAID",
                "lifecycle_status": "PAID",
                "fraud_score": 0.12,
                "fraud_indicators": [],
                "payment_id": "P1",
                "payment_amount": 4200.0,
                "paid_at": "2026-02-17T11:45:00Z",
                "version": 3,
                "created_at": "2026-02-15T09:00:00Z",
                "updated_at": "2026-02-17T11:45:00Z",
            }
        }
    )


class StatusChangeRequest(BaseModel):
    """Reviewer-initiated lifecycle move"""

    status: ClaimStatus
    reason: str | None = Field(None, max_length=2000)
    metadata: dict[str, Any] | None = None

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={"example": {"status": "CLOSED", "reason": "Settlement complete"}},
    )


class StatusChangeResponse(BaseModel):
    """Result of a status change"""

    success: Literal[True] = True
    claim: ClaimResponse
    previous_status: ClaimStatus
    new_status: ClaimStatus
    audit_entry_id: int


class AuditLogEntry(BaseModel):
    """Single audit log entry"""

    log_id: int
    claim_id: str | None
    action: str
    actor_id: str
    description: str
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "log_id": 1234,
                "claim_id": "C1",
                "action": "PAYMENT_CONFIRMED",
                "actor_id": "WEBHOOK_HANDLER",
                "description": "Payment confirmed: $4,200.00",
                "details": {"paymentId": "P1", "amount": 4200},
                "timestamp": "2026-02-17T11:45:00Z",
            }
        }
    )


class AuditHistoryResponse(BaseModel):
    """Audit history response"""

    claim_id: str
    total_events: int
    events: list[AuditLogEntry]


class RecentAuditResponse(BaseModel):
    """Latest audit entries across all claims, newest first"""

    total_events: int
    events: list[AuditLogEntry]


class TimelineItemResponse(BaseModel):
    """One display-ready timeline row"""

    id: int
    action: str
    label: str
    icon: str
    color: str
    description: str
    actor: str | None = None
    timestamp: datetime
    relative_time: str


class TimelineResponse(BaseModel):
    """Projected claim timeline"""

    claim_id: str
    generated_at: datetime
    items: list[TimelineItemResponse]


# System responses


class ErrorResponse(BaseModel):
    """Standard error response"""

    error: str = Field(description="Error type")
    message: str = Field(description="Human-readable error message")
    detail: str | None = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class HealthResponse(BaseModel):
    """Health check response"""

    status: str = Field(description="healthy or unhealthy")
    version: str
    uptime_seconds: float
    database_connected: bool
    webhook_secret_configured: bool
    timestamp: datetime

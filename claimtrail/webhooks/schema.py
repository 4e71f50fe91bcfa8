"""Webhook event shapes.

One Pydantic model per event kind describes what ``data`` must contain.
Field names follow the wire format of the senders (camelCase aliases).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr, StringConstraints, field_validator


class EventKind(str, Enum):
    """The eight event kinds external systems may send"""

    CLAIM_CREATED = "claim.created"
    CLAIM_UPDATED = "claim.updated"
    CLAIM_APPROVED = "claim.approved"
    CLAIM_REJECTED = "claim.rejected"
    CLAIM_PAID = "claim.paid"
    DOCUMENT_UPLOADED = "document.uploaded"
    FRAUD_DETECTED = "fraud.detected"
    PAYMENT_ISSUED = "payment.issued"


class WebhookSource(str, Enum):
    """Closed set of senders; anything else is UNRECOGNIZED"""

    PAYMENT_GATEWAY = "payment_gateway"
    FRAUD_SERVICE = "fraud_service"
    DOCUMENT_SERVICE = "document_service"
    UNRECOGNIZED = "unrecognized"


NonEmptyStr = Annotated[StrictStr, StringConstraints(strip_whitespace=True, min_length=1)]


def _finite_number(value: Any, name: str) -> Any:
    # bool is an int subclass; "true" is not an amount
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number")
    try:
        finite = math.isfinite(value)
    except OverflowError:
        raise ValueError(f"{name} is out of range") from None
    if not finite:
        raise ValueError(f"{name} must be finite")
    return value


class EventData(BaseModel):
    """Fields every kind may carry.  Unknown fields are kept."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    event_id: NonEmptyStr | None = Field(default=None, alias="eventId")
    nonce: NonEmptyStr | None = None


class ClaimEventData(EventData):
    """claim.* events"""

    claim_id: NonEmptyStr = Field(alias="claimId")


class PaymentIssuedData(ClaimEventData):
    """payment.issued"""

    payment_id: NonEmptyStr = Field(alias="paymentId")
    amount: float

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_is_number(cls, v):
        return _finite_number(v, "amount")

    @field_validator("amount")
    @classmethod
    def _amount_non_negative(cls, v):
        if v < 0:
            raise ValueError("amount must be non-negative")
        return v


class FraudDetectedData(ClaimEventData):
    """fraud.detected"""

    score: float
    indicators: list[StrictStr] = Field(default_factory=list)

    @field_validator("score", mode="before")
    @classmethod
    def _score_is_number(cls, v):
        return _finite_number(v, "score")

    @field_validator("score")
    @classmethod
    def _score_in_range(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError("score must be within [0, 1]")
        return v


class DocumentUploadedData(EventData):
    """document.uploaded (document-scoped; the claim id is optional)"""

    document_id: NonEmptyStr = Field(alias="documentId")
    claim_id: NonEmptyStr | None = Field(default=None, alias="claimId")
    analysis: dict[str, Any] | None = None


DATA_MODELS: dict[EventKind, type[EventData]] = {
    EventKind.CLAIM_CREATED: ClaimEventData,
    EventKind.CLAIM_UPDATED: ClaimEventData,
    EventKind.CLAIM_APPROVED: ClaimEventData,
    EventKind.CLAIM_REJECTED: ClaimEventData,
    EventKind.CLAIM_PAID: ClaimEventData,
    EventKind.DOCUMENT_UPLOADED: DocumentUploadedData,
    EventKind.FRAUD_DETECTED: FraudDetectedData,
    EventKind.PAYMENT_ISSUED: PaymentIssuedData,
}


class WebhookEnvelope(BaseModel):
    """Request body: ``{event, timestamp, data, signature?}``"""

    model_config = ConfigDict(extra="ignore")

    event: EventKind
    timestamp: datetime
    data: dict[str, Any]
    signature: str | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _iso_8601(cls, v):
        # lax datetime parsing would also take Unix epoch numbers
        if not isinstance(v, str):
            raise ValueError("timestamp must be an ISO-8601 string")
        text = v.strip()
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"timestamp is not ISO-8601: {v!r}") from None


@dataclass(frozen=True)
class CanonicalWebhookEvent:
    """Validated inbound event, consumed once by the dispatcher."""

    kind: EventKind
    timestamp: datetime
    source: str
    source_kind: WebhookSource
    data: dict[str, Any]
    payload: EventData
    signature: str
    nonce: str | None = None
    received_at: datetime | None = field(default=None, compare=False)

    @property
    def claim_id(self) -> str | None:
        return getattr(self.payload, "claim_id", None)

    @property
    def document_id(self) -> str | None:
        return getattr(self.payload, "document_id", None)

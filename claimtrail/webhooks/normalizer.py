"""Webhook Event Normalizer

Verifies the HMAC signature of an inbound request and turns its raw body
into a :class:`CanonicalWebhookEvent`.  Pure: no storage access, no side
effects.  Either a complete event comes back or an exception is raised.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from claimtrail.config import WebhookConfig
from claimtrail.exceptions import AuthenticationError, ValidationError
from claimtrail.webhooks.schema import (
    DATA_MODELS,
    CanonicalWebhookEvent,
    EventKind,
    WebhookEnvelope,
    WebhookSource,
)

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="
UNKNOWN_SOURCE = "unknown"


class SignatureVerifier:
    """HMAC-SHA256 over the raw request body with a shared secret.

    The token is the hex digest, optionally prefixed with ``sha256=``.
    """

    def __init__(self, secret: str | None):
        self._secret = secret.encode("utf-8") if secret else None

    @property
    def configured(self) -> bool:
        return self._secret is not None

    def sign(self, body: bytes) -> str:
        if self._secret is None:
            raise AuthenticationError("Webhook secret is not configured")
        digest = hmac.new(self._secret, body, hashlib.sha256).hexdigest()
        return f"{SIGNATURE_PREFIX}{digest}"

    def verify(self, body: bytes, token: str | None) -> None:
        """Raise ``AuthenticationError`` unless *token* signs *body*."""
        if token is None or not token.strip():
            raise AuthenticationError("Missing webhook signature")
        if self._secret is None:
            logger.error("Webhook secret is not configured; rejecting signed request")
            raise AuthenticationError("Webhook secret is not configured")

        supplied = token.strip()
        if supplied.lower().startswith(SIGNATURE_PREFIX):
            supplied = supplied[len(SIGNATURE_PREFIX):]
        expected = hmac.new(self._secret, body, hashlib.sha256).hexdigest()
        if not hmac.compare_digest(supplied.lower().encode("utf-8"), expected.encode("ascii")):
            raise AuthenticationError("Webhook signature does not match payload")


def _format_errors(exc: PydanticValidationError, prefix: str = "") -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        where = f"{prefix}{loc}" if loc else prefix.rstrip(".") or "body"
        parts.append(f"{where}: {err.get('msg')}")
    return "; ".join(parts)


def _extract_claim_id(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    data = body.get("data")
    if isinstance(data, dict):
        claim_id = data.get("claimId")
        if isinstance(claim_id, str) and claim_id.strip():
            return claim_id.strip()
    return None


class WebhookNormalizer:
    """Validate and canonicalize inbound webhook requests."""

    def __init__(self, config: WebhookConfig):
        self.config = config
        self.verifier = SignatureVerifier(config.secret)
        self._sources = {
            config.payment_source: WebhookSource.PAYMENT_GATEWAY,
            config.fraud_source: WebhookSource.FRAUD_SERVICE,
            config.document_source: WebhookSource.DOCUMENT_SERVICE,
        }

    def resolve_source(self, source: str | None) -> WebhookSource:
        if not source:
            return WebhookSource.UNRECOGNIZED
        return self._sources.get(source.strip(), WebhookSource.UNRECOGNIZED)

    def normalize(self, raw_body: bytes, signature: str | None, source: str | None) -> CanonicalWebhookEvent:
        """Verify and parse one request.

        Raises:
            AuthenticationError: Signature missing or invalid.
            ValidationError: Body is not a well-formed event of a known kind.
        """
        self.verifier.verify(raw_body, signature)

        try:
            body = json.loads(raw_body)
        except ValueError as e:  # includes the int digit limit
            raise ValidationError(f"Request body is not valid JSON: {e}") from e
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")

        claim_id = _extract_claim_id(body)

        event = body.get("event")
        if not isinstance(event, str) or event not in {k.value for k in EventKind}:
            raise ValidationError(f"Unsupported event kind: {event!r}", claim_id=claim_id)

        try:
            envelope = WebhookEnvelope.model_validate(body)
        except PydanticValidationError as e:
            raise ValidationError(f"Malformed webhook envelope: {_format_errors(e)}", claim_id=claim_id) from e

        model = DATA_MODELS[envelope.event]
        try:
            payload = model.model_validate(envelope.data)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid data for {envelope.event.value}: {_format_errors(e, 'data.')}",
                claim_id=claim_id,
                context={"event": envelope.event.value},
            ) from e

        timestamp = envelope.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        source_tag = (source or "").strip() or UNKNOWN_SOURCE
        return CanonicalWebhookEvent(
            kind=envelope.event,
            timestamp=timestamp,
            source=source_tag,
            source_kind=self.resolve_source(source),
            data=payload.model_dump(by_alias=True, exclude_none=True),
            payload=payload,
            signature=signature.strip() if signature else "",
            nonce=payload.event_id or payload.nonce,
            received_at=datetime.now(timezone.utc),
        )

"""Inbound webhook endpoint.

Responses use the ``{success, ...}`` envelope expected by the senders,
not the ``ErrorResponse`` envelope of the read API.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Header, Query, Request, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from claimtrail.api.models import (
    ChallengeResponse,
    WebhookErrorResponse,
    WebhookResponse,
    WebhookStatusResponse,
)
from claimtrail.api.routes._helpers import get_config, get_normalizer, get_webhook_service
from claimtrail.exceptions import AuthenticationError, ValidationError
from claimtrail.metrics import METRICS
from claimtrail.webhooks.schema import EventKind

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=WebhookErrorResponse(error=message).model_dump())


def build_webhook_router() -> APIRouter:
    router = APIRouter(tags=["Webhooks"])

    @router.post(
        "/webhooks",
        response_model=WebhookResponse,
        summary="Receive an external webhook event",
        responses={
            400: {"model": WebhookErrorResponse},
            401: {"model": WebhookErrorResponse},
            500: {"model": WebhookErrorResponse},
        },
    )
    async def receive_webhook(
        request: Request,
        x_webhook_signature: str | None = Header(None),
        x_webhook_source: str | None = Header(None),
    ):
        """
        Verify, validate and apply one event from the payment gateway, fraud
        service or document service.

        **Headers:** ``X-Webhook-Signature`` (HMAC-SHA256 of the raw body),
        ``X-Webhook-Source`` (sender tag).

        Business outcomes (claim missing, forbidden transition, duplicate
        delivery) are reported with HTTP 200 and status ``ignored``.
        """
        raw_body = await request.body()
        normalizer = get_normalizer(request)

        try:
            event = normalizer.normalize(raw_body, x_webhook_signature, x_webhook_source)
        except AuthenticationError as e:
            METRICS.inc("webhook_rejections_total", labels={"reason": "signature"})
            logger.warning("Webhook rejected from %s: %s", x_webhook_source or "unknown", e)
            return _error(status.HTTP_401_UNAUTHORIZED, "Invalid signature")
        except ValidationError as e:
            logger.warning("Malformed webhook from %s: %s", x_webhook_source or "unknown", e)
            try:
                await run_in_threadpool(get_webhook_service(request).record_rejection, e, x_webhook_source)
            except Exception as record_error:
                logger.error("Could not record rejected webhook: %s", record_error, exc_info=True)
                return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Webhook processing failed")
            return _error(status.HTTP_400_BAD_REQUEST, str(e))

        try:
            result = await run_in_threadpool(get_webhook_service(request).process, event)
        except Exception as e:  # senders only understand the {success, error} envelope
            METRICS.inc("webhooks_total", labels={"kind": event.kind.value, "status": "error"})
            logger.error("Webhook processing failed: %s", e, exc_info=True)
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Webhook processing failed")

        return WebhookResponse(result=result)

    @router.get(
        "/webhooks",
        response_model=ChallengeResponse | WebhookStatusResponse,
        summary="Endpoint verification",
    )
    async def verify_webhook(request: Request, challenge: str | None = Query(None)):
        """Echo ``challenge`` for ownership verification; otherwise describe the endpoint."""
        if challenge:
            return ChallengeResponse(challenge=challenge)
        return WebhookStatusResponse(
            status="active",
            version=get_config(request).api.api_version,
            supportedEvents=[kind.value for kind in EventKind],
        )

    return router

"""API routers for claimtrail.

``build_router()`` composes the webhook, claim and system routers into a
single APIRouter mounted by the application factory.
"""

from __future__ import annotations

from fastapi import APIRouter

from claimtrail.api.routes.claims import build_claims_router
from claimtrail.api.routes.system import build_system_router
from claimtrail.api.routes.webhooks import build_webhook_router


def build_router() -> APIRouter:
    """Compose all routers into a single APIRouter."""
    router = APIRouter()
    router.include_router(build_system_router())
    router.include_router(build_webhook_router())
    router.include_router(build_claims_router())
    return router

"""API key authentication for the claim and operator endpoints.

Webhook senders authenticate with the HMAC signature instead (see
``claimtrail.webhooks.normalizer``); keys here gate claim reads, reviewer
status changes (``write``) and operator endpoints (``admin``).
"""

import hashlib
import logging
import secrets
import threading
import time
from datetime import datetime, timezone

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

KEY_PREFIX = "ct_"


class APIKey(BaseModel):
    """API key metadata (the plain key is never stored)"""

    key_hash: str
    name: str
    created_at: datetime
    permissions: dict[str, bool] = Field(default_factory=dict)
    active: bool = True


class APIKeyStore:
    """In-memory store of hashed API keys."""

    def __init__(self):
        self._keys: dict[str, APIKey] = {}
        self._lock = threading.Lock()

    def generate_key(self, name: str, permissions: dict[str, bool] | None = None) -> str:
        """
        Issue a new API key.

        Args:
            name: Human-readable key name (e.g. "claims-dashboard")
            permissions: Permission flags; defaults to read-only

        Returns:
            Plain-text key. It is not recoverable afterwards.
        """
        api_key = f"{KEY_PREFIX}{secrets.token_urlsafe(32)}"
        key_hash = self._hash_key(api_key)
        with self._lock:
            self._keys[key_hash] = APIKey(
                key_hash=key_hash,
                name=name,
                created_at=datetime.now(timezone.utc),
                permissions=permissions if permissions is not None else {"read": True, "admin": False},
            )
        return api_key

    def validate_key(self, api_key: str) -> APIKey | None:
        key_meta = self._keys.get(self._hash_key(api_key))
        if key_meta and key_meta.active:
            return key_meta
        return None

    def revoke_key(self, api_key: str) -> bool:
        """Deactivate a key. Returns False if it was never issued."""
        key_meta = self._keys.get(self._hash_key(api_key))
        if key_meta is None:
            return False
        key_meta.active = False
        return True

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()

    @staticmethod
    def _hash_key(api_key: str) -> str:
        return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


api_key_store = APIKeyStore()


def initialize_dev_keys() -> dict[str, str]:
    """Issue development keys and log them. Never call outside dev mode."""
    full = api_key_store.generate_key("dev-admin", permissions={"read": True, "write": True, "admin": True})
    readonly = api_key_store.generate_key("dev-readonly", permissions={"read": True, "admin": False})
    logger.warning("[DEV] Admin API key: %s", full)
    logger.warning("[DEV] Read-only API key: %s", readonly)
    return {"admin": full, "readonly": readonly}


# FastAPI security dependencies

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
bearer_scheme = HTTPBearer(auto_error=False)


async def get_api_key(
    api_key_header: str | None = Security(api_key_header),
    bearer_token: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
) -> APIKey:
    """Resolve the caller's key from ``X-API-Key`` or a Bearer token."""
    api_key_str = api_key_header or (bearer_token.credentials if bearer_token else None)

    if not api_key_str:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-Key header or Bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    key_meta = api_key_store.validate_key(api_key_str)
    if not key_meta:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or revoked API key",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return key_meta


def require_permission(permission: str):
    """
    Dependency factory for permission checks.

    Usage:
        @app.get("/metrics", dependencies=[Depends(require_permission("admin"))])
    """

    async def check_permission(api_key: APIKey = Security(get_api_key)) -> APIKey:
        if not api_key.permissions.get(permission, False):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required: {permission}",
            )
        return api_key

    return check_permission


class RateLimiter:
    """Per-identifier token bucket."""

    def __init__(self, requests_per_minute: int = 120):
        self.requests_per_minute = requests_per_minute
        self._buckets: dict[str, tuple[float, float]] = {}  # identifier -> (tokens, last_refill)
        self._lock = threading.Lock()

    def check_rate_limit(self, identifier: str) -> bool:
        """Consume one token. Returns False when the bucket is empty."""
        now = time.monotonic()
        with self._lock:
            tokens, last = self._buckets.get(identifier, (float(self.requests_per_minute), now))
            elapsed_minutes = (now - last) / 60.0
            tokens = min(float(self.requests_per_minute), tokens + elapsed_minutes * self.requests_per_minute)
            allowed = tokens >= 1.0
            if allowed:
                tokens -= 1.0
            self._buckets[identifier] = (tokens, now)
        return allowed

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


rate_limiter = RateLimiter()


async def check_rate_limit(api_key: APIKey = Security(get_api_key)) -> APIKey:
    """Rate limiting dependency keyed by the caller's API key."""
    if not rate_limiter.check_rate_limit(api_key.key_hash):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Rate limit exceeded. Maximum {rate_limiter.requests_per_minute} requests per minute.",
            headers={"Retry-After": "60"},
        )
    return api_key

"""Standardized exception hierarchy for claimtrail.

All custom exceptions inherit from ``ClaimTrailError`` so callers can catch
the whole family with a single ``except ClaimTrailError``.  Each exception
carries:

- ``error_code``: a machine-readable uppercase string (e.g. ``"CLAIM_NOT_FOUND"``)
- ``context``: an optional dict of structured metadata for diagnostics
"""

from __future__ import annotations

from typing import Any


class ClaimTrailError(Exception):
    """Base exception for all claimtrail errors.

    Parameters
    ----------
    message:
        Human-readable error description.
    error_code:
        Machine-readable code.  Defaults to ``"CLAIMTRAIL_ERROR"``.
    context:
        Optional dict of structured metadata (claim_id, event kind, etc.)
        included in log records and audit details.
    """

    default_code = "CLAIMTRAIL_ERROR"

    def __init__(
        self,
        message: str = "",
        *,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code: str = error_code or self.default_code
        self.context: dict[str, Any] = context or {}


class AuthenticationError(ClaimTrailError):
    """Webhook signature is missing or does not verify."""

    default_code = "INVALID_SIGNATURE"


class ValidationError(ClaimTrailError):
    """Inbound event is malformed for its kind.

    Attributes:
        claim_id: Claim id extracted from the payload, if any, so the caller
            can record a rejected receipt against the claim.
    """

    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "",
        *,
        claim_id: str | None = None,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, context=context)
        self.claim_id = claim_id


class NotFoundError(ClaimTrailError):
    """Target claim or document does not exist."""

    default_code = "NOT_FOUND"


class InvalidTransitionError(ClaimTrailError):
    """Requested mutation violates the claim status graph.

    Attributes:
        current: Status the claim was in.
        target: Status the event tried to reach (None for non-status mutations).
    """

    default_code = "INVALID_TRANSITION"

    def __init__(
        self,
        message: str = "",
        *,
        current: str | None = None,
        target: str | None = None,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = {"current": current, "target": target}
        ctx.update(context or {})
        super().__init__(message, error_code=error_code, context=ctx)
        self.current = current
        self.target = target


class StorageError(ClaimTrailError):
    """Ledger or state store failed; the unit of work was rolled back."""

    default_code = "STORAGE_ERROR"

    def __init__(
        self,
        message: str = "",
        *,
        cause: Exception | None = None,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, context=context)
        self.cause = cause


class ConcurrencyConflictError(StorageError):
    """A concurrent writer changed the claim or recorded the same event first."""

    default_code = "CONCURRENCY_CONFLICT"


class ConfigurationError(ClaimTrailError):
    """Invalid or missing configuration."""

    default_code = "CONFIGURATION_ERROR"

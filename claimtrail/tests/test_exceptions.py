"""Tests for claimtrail.exceptions module."""

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


class TestExceptionHierarchy:
    def test_all_inherit_from_base(self):
        for exc_cls in [
            AuthenticationError,
            ValidationError,
            NotFoundError,
            InvalidTransitionError,
            StorageError,
            ConcurrencyConflictError,
            ConfigurationError,
        ]:
            assert issubclass(exc_cls, ClaimTrailError)

    def test_conflict_is_storage_error(self):
        assert issubclass(ConcurrencyConflictError, StorageError)

    def test_default_codes(self):
        assert AuthenticationError().error_code == "INVALID_SIGNATURE"
        assert NotFoundError("x").error_code == "NOT_FOUND"
        assert StorageError("x").error_code == "STORAGE_ERROR"
        assert ClaimTrailError("x").error_code == "CLAIMTRAIL_ERROR"

    def test_custom_code_and_context(self):
        exc = NotFoundError("Claim C1 not found", error_code="CLAIM_NOT_FOUND", context={"claim_id": "C1"})
        assert exc.error_code == "CLAIM_NOT_FOUND"
        assert exc.context == {"claim_id": "C1"}
        assert str(exc) == "Claim C1 not found"


class TestValidationError:
    def test_claim_id(self):
        exc = ValidationError("bad amount", claim_id="C1")
        assert exc.claim_id == "C1"

    def test_claim_id_optional(self):
        assert ValidationError("bad").claim_id is None


class TestInvalidTransitionError:
    def test_statuses_in_context(self):
        exc = InvalidTransitionError("no", current="CLOSED", target="PAID", context={"claim_id": "C1"})
        assert exc.current == "CLOSED"
        assert exc.target == "PAID"
        assert exc.context == {"current": "CLOSED", "target": "PAID", "claim_id": "C1"}


class TestStorageError:
    def test_cause(self):
        cause = RuntimeError("disk full")
        exc = StorageError("append failed", cause=cause)
        assert exc.cause is cause

    def test_no_cause(self):
        assert StorageError("x").cause is None

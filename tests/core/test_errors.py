"""Tests for cellcache.core.errors module."""

import pytest

from cellcache.core.errors import (
    BackendError,
    BackendUnavailableError,
    CellCacheError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    InvariantError,
    MetadataNotLoadedError,
    RecordNotFoundError,
    RecordOutOfSyncError,
    UnknownViewError,
    invariant,
    is_retryable,
)


class TestErrorContext:
    """Test ErrorContext dataclass."""

    def test_create_empty_context(self):
        ctx = ErrorContext()
        assert ctx.table_id is None
        assert ctx.to_dict() == {}

    def test_to_dict_skips_unset_fields(self):
        ctx = ErrorContext(table_id="tbl1", field_id="fld1")
        ctx.metadata["attempt"] = 2
        assert ctx.to_dict() == {"table_id": "tbl1", "field_id": "fld1", "attempt": 2}


class TestCellCacheError:
    """Test the base error."""

    def test_defaults(self):
        error = CellCacheError("Something went wrong")
        assert error.message == "Something went wrong"
        assert error.category == ErrorCategory.INTERNAL
        assert error.retryable is False
        assert error.cause is None

    def test_with_context_sets_known_fields_and_metadata(self):
        error = CellCacheError("boom").with_context(table_id="tbl1", batch=3)
        assert error.context.table_id == "tbl1"
        assert error.context.metadata == {"batch": 3}

    def test_cause_is_chained(self):
        original = ConnectionError("reset")
        error = BackendError("fetch failed", cause=original)
        assert error.__cause__ is original
        assert error.to_dict()["cause"] == "reset"

    def test_to_dict(self):
        error = RecordNotFoundError("missing").with_context(record_id="rec9")
        d = error.to_dict()
        assert d["error_type"] == "RecordNotFoundError"
        assert d["category"] == "VALIDATION"
        assert d["retryable"] is False
        assert d["context"] == {"record_id": "rec9"}

    def test_repr(self):
        assert repr(ConfigError("bad")) == "ConfigError('bad', category=CONFIG)"


class TestInvariantErrors:
    """Contract breaches are fatal and never retryable."""

    @pytest.mark.parametrize(
        "error_cls",
        [MetadataNotLoadedError, RecordOutOfSyncError, UnknownViewError],
    )
    def test_subclasses_are_invariant_errors(self, error_cls):
        error = error_cls("broken")
        assert isinstance(error, InvariantError)
        assert error.category == ErrorCategory.INTERNAL
        assert is_retryable(error) is False

    def test_invariant_passes_on_truthy(self):
        invariant(True, "never raised")

    def test_invariant_raises_given_class(self):
        with pytest.raises(UnknownViewError, match="view must exist"):
            invariant(None, "view must exist", UnknownViewError)

    def test_invariant_default_class(self):
        with pytest.raises(InvariantError):
            invariant(0, "zero")


class TestBackendErrors:
    def test_backend_error_is_retryable(self):
        error = BackendError("500")
        assert error.category == ErrorCategory.SOURCE
        assert is_retryable(error) is True

    def test_unavailable_is_network(self):
        error = BackendUnavailableError("down")
        assert isinstance(error, BackendError)
        assert error.category == ErrorCategory.NETWORK
        assert error.retryable is True

    def test_is_retryable_for_foreign_exceptions(self):
        assert is_retryable(ValueError("x")) is False

"""
Unit tests for configuration and the exception hierarchy.
"""

import pytest

from smart_wallet.config import Config
from smart_wallet.exceptions import (
    ConfigurationError,
    DataFetchError,
    InsufficientCapitalError,
    PersistenceError,
    RecordNotFoundError,
    ValidationError,
    is_caller_error,
    is_retryable,
)


class TestConfig:
    """Test configuration validation."""

    def test_defaults(self):
        config = Config(quote_symbol_suffix=".CA", default_currency=" egp ", log_level="INFO")
        assert config.default_currency == "EGP"
        assert config.quote_timeout > 0

    def test_invalid_timeout(self):
        with pytest.raises(ConfigurationError) as exc_info:
            Config(quote_timeout=0, log_level="INFO")
        assert exc_info.value.details["config_key"] == "QUOTE_TIMEOUT"

    def test_invalid_log_level(self):
        with pytest.raises(ConfigurationError):
            Config(log_level="CHATTY")

    def test_ensure_backup_dir(self, tmp_path):
        config = Config(backup_dir=tmp_path / "backups", log_level="INFO")
        assert config.ensure_backup_dir().is_dir()


class TestExceptions:
    """Test error classification and formatting."""

    def test_details_in_message(self):
        error = InsufficientCapitalError("Not enough", portfolio_id="p1", available=100.0, requested=150.0)
        assert error.details == {"portfolio_id": "p1", "available": 100.0, "requested": 150.0}
        assert "available=100.0" in str(error)

    def test_cause_in_message(self):
        error = PersistenceError("Write failed", operation="set", cause=OSError("disk full"))
        assert "OSError: disk full" in str(error)

    def test_not_found_is_a_validation_error(self):
        error = RecordNotFoundError("Trade not found", kind="trade", record_id="t1")
        assert isinstance(error, ValidationError)
        assert is_caller_error(error)

    @pytest.mark.parametrize("error,caller,retryable", [
        (ValidationError("bad"), True, False),
        (PersistenceError("io"), False, True),
        (DataFetchError("offline"), False, True),
        (ValueError("other"), False, False),
    ])
    def test_classification(self, error, caller, retryable):
        assert is_caller_error(error) is caller
        assert is_retryable(error) is retryable

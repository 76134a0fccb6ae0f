"""Unit tests for custom exceptions."""

import pytest

from chatgate.core.types import SessionStatus
from chatgate.exceptions import (
    ChatGateError,
    ConfigurationError,
    EngineFailure,
    InvalidConfigurationError,
    InvalidStateError,
    ScanTimeoutError,
    SessionError,
    SessionLimitError,
    SessionNotFoundError,
    SessionNotReadyError,
)


class TestChatGateError:
    """Tests for base exception."""

    def test_basic_creation(self):
        """Test creating a basic exception."""
        error = ChatGateError("Test error")
        assert str(error) == "Test error"
        assert error.message == "Test error"
        assert error.details == {}
        assert error.status_code == 500

    def test_to_dict(self):
        """Test converting to dictionary."""
        error = ChatGateError("Test error", details={"extra": "info"})
        result = error.to_dict()

        assert result["error"] == "ChatGateError"
        assert result["message"] == "Test error"
        assert result["details"] == {"extra": "info"}

    def test_can_be_raised(self):
        """Test exception can be raised and caught."""
        with pytest.raises(ChatGateError) as exc_info:
            raise ChatGateError("Raised error")
        assert "Raised error" in str(exc_info.value)


class TestSessionExceptions:
    """Tests for session exceptions."""

    def test_not_found(self):
        """Test SessionNotFoundError."""
        error = SessionNotFoundError("bob")

        assert isinstance(error, SessionError)
        assert error.name == "bob"
        assert error.status_code == 404
        assert "bob" in str(error)
        assert error.details["session"] == "bob"

    def test_not_ready(self):
        """Test SessionNotReadyError carries the observed status."""
        error = SessionNotReadyError("alice", SessionStatus.STARTING)

        assert error.status == SessionStatus.STARTING
        assert error.status_code == 409
        assert "STARTING" in str(error)
        assert error.to_dict()["details"] == {"session": "alice", "status": "STARTING"}

    def test_invalid_state(self):
        """Test InvalidStateError."""
        error = InvalidStateError("alice", SessionStatus.WORKING, target="REMOVED")

        assert error.status_code == 409
        assert error.target == "REMOVED"
        assert error.details["status"] == "WORKING"

    def test_limit(self):
        """Test SessionLimitError."""
        error = SessionLimitError(10)

        assert error.maximum == 10
        assert error.status_code == 429
        assert "10" in str(error)

    def test_custom_message(self):
        """Test overriding the default message."""
        error = SessionNotFoundError("bob", message="gone")
        assert str(error) == "gone"


class TestEngineExceptions:
    """Tests for engine exceptions."""

    def test_retryable_by_default(self):
        """Test engine failures default to retryable."""
        error = EngineFailure("contacts.get")

        assert error.retryable
        assert not error.fatal
        assert error.status_code == 503
        assert error.details == {"operation": "contacts.get", "retryable": True}

    def test_fatal(self):
        """Test fatal failures map to a bad gateway."""
        error = EngineFailure("connection", retryable=False, message="logged out")

        assert error.fatal
        assert error.status_code == 502
        assert str(error) == "logged out"
        assert EngineFailure.status_code == 503

    def test_scan_timeout(self):
        """Test ScanTimeoutError is a fatal authentication failure."""
        error = ScanTimeoutError("alice", 30)

        assert isinstance(error, EngineFailure)
        assert error.fatal
        assert error.operation == "authenticate"
        assert error.details["timeout"] == 30
        assert "30" in str(error)


class TestConfigurationExceptions:
    """Tests for configuration exceptions."""

    def test_invalid_configuration(self):
        """Test InvalidConfigurationError."""
        error = InvalidConfigurationError("SESSION_MAX_SESSIONS", -1, "must be >= 0")

        assert isinstance(error, ConfigurationError)
        assert error.key == "SESSION_MAX_SESSIONS"
        assert error.details["value"] == "-1"
        assert "must be >= 0" in str(error)

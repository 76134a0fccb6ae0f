"""Custom exceptions for chatgate.

This module defines the hierarchy of errors raised by the session
orchestration layer. Every error carries a ``status_code`` so the HTTP
layer can map it to a response without further inspection.
"""

from typing import Any


class ChatGateError(Exception):
    """Base exception for all chatgate errors."""

    status_code: int = 500

    def __init__(self, message: str = "", details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Session Exceptions
# =============================================================================


class SessionError(ChatGateError):
    """Base exception for session-related errors."""

    pass


class SessionNotFoundError(SessionError):
    """Session was never started or has been removed."""

    status_code = 404

    def __init__(self, name: str, message: str = "", details: dict | None = None):
        self.name = name
        super().__init__(
            message or f"Session not found: {name}",
            details={"session": name, **(details or {})},
        )


class SessionNotReadyError(SessionError):
    """Session exists but is not in the WORKING state."""

    status_code = 409

    def __init__(
        self,
        name: str,
        status: Any,
        message: str = "",
        details: dict | None = None,
    ):
        self.name = name
        self.status = status
        status_value = getattr(status, "value", status)
        super().__init__(
            message or f"Session '{name}' is not ready (status: {status_value})",
            details={"session": name, "status": status_value, **(details or {})},
        )


class InvalidStateError(SessionError):
    """Requested transition is illegal from the current state."""

    status_code = 409

    def __init__(
        self,
        name: str,
        status: Any,
        target: str = "",
        message: str = "",
        details: dict | None = None,
    ):
        self.name = name
        self.status = status
        self.target = target
        status_value = getattr(status, "value", status)
        super().__init__(
            message or f"Session '{name}' cannot go to {target} from {status_value}",
            details={
                "session": name,
                "status": status_value,
                "target": target,
                **(details or {}),
            },
        )


class SessionLimitError(SessionError):
    """Maximum number of sessions reached."""

    status_code = 429

    def __init__(self, maximum: int, message: str = "", details: dict | None = None):
        self.maximum = maximum
        super().__init__(
            message or f"Maximum sessions ({maximum}) reached",
            details={"maximum": maximum, **(details or {})},
        )


# =============================================================================
# Engine Exceptions
# =============================================================================


class EngineFailure(ChatGateError):
    """The underlying chat-network engine failed.

    Retryable failures (a transient network blip, a request timeout) leave the
    session WORKING. Fatal failures (credentials revoked, connection
    permanently lost) move the session to FAILED.
    """

    status_code = 503

    def __init__(
        self,
        operation: str = "",
        retryable: bool = True,
        message: str = "",
        details: dict | None = None,
    ):
        self.operation = operation
        self.retryable = retryable
        if not retryable:
            self.status_code = 502
        super().__init__(
            message or f"Engine operation failed: {operation}",
            details={
                "operation": operation,
                "retryable": retryable,
                **(details or {}),
            },
        )

    @property
    def fatal(self) -> bool:
        return not self.retryable


class ScanTimeoutError(EngineFailure):
    """Interactive authentication was not completed in time."""

    def __init__(self, name: str, timeout: float, message: str = "", details: dict | None = None):
        self.name = name
        self.timeout = timeout
        super().__init__(
            operation="authenticate",
            retryable=False,
            message=message or f"Session '{name}' was not authenticated within {timeout}s",
            details={"session": name, "timeout": timeout, **(details or {})},
        )


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(ChatGateError):
    """Base exception for configuration errors."""

    pass


class InvalidConfigurationError(ConfigurationError):
    """Invalid configuration value."""

    def __init__(
        self,
        key: str,
        value: Any,
        reason: str = "",
        message: str = "",
        details: dict | None = None,
    ):
        self.key = key
        self.value = value
        self.reason = reason
        super().__init__(
            message or f"Invalid configuration for {key}: {reason}",
            details={"key": key, "value": str(value), "reason": reason, **(details or {})},
        )

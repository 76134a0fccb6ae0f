"""Core abstractions and interfaces for chatgate."""

from chatgate.core.types import (
    EngineEvent,
    EngineEventType,
    SessionConfig,
    SessionStatus,
)
from chatgate.core.base import ChatEngine, EngineEventCallback, EngineFactory

__all__ = [
    "EngineEvent",
    "EngineEventType",
    "SessionConfig",
    "SessionStatus",
    "ChatEngine",
    "EngineEventCallback",
    "EngineFactory",
]

"""chatgate: Multi-tenant session gateway for chat-network clients."""

from chatgate.core.types import SessionConfig, SessionStatus
from chatgate.core.base import ChatEngine
from chatgate.session import Session, SessionManager, SessionRegistry

__version__ = "0.1.0"

__all__ = [
    "SessionConfig",
    "SessionStatus",
    "ChatEngine",
    "Session",
    "SessionManager",
    "SessionRegistry",
    "__version__",
]

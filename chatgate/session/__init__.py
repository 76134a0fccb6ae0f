"""Multi-tenant session orchestration."""

from chatgate.session.session import Session
from chatgate.session.registry import SessionRegistry
from chatgate.session.manager import SessionManager

__all__ = [
    "Session",
    "SessionRegistry",
    "SessionManager",
]

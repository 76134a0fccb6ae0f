"""Session lifecycle hooks."""

from chatgate.hooks.events import (
    EventType,
    Hook,
    HookPriority,
    HookRegistry,
    SessionEvent,
    on_event,
)

__all__ = [
    "EventType",
    "Hook",
    "HookPriority",
    "HookRegistry",
    "SessionEvent",
    "on_event",
]

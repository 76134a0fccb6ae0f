"""Session lifecycle event hooks."""

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable
from uuid import UUID, uuid4

import structlog

logger = structlog.get_logger()


class EventType(Enum):
    """Types of session events."""

    # Registry events
    SESSION_CREATED = "session.created"
    SESSION_REMOVED = "session.removed"

    # State machine events
    SESSION_STATUS = "session.status"

    # Engine events
    ENGINE_ERROR = "engine.error"


class HookPriority(Enum):
    """Priority levels for hooks."""

    HIGHEST = 0
    HIGH = 25
    NORMAL = 50
    LOW = 75
    LOWEST = 100


@dataclass
class SessionEvent:
    """A session lifecycle event."""

    id: UUID = field(default_factory=uuid4)
    type: EventType = EventType.SESSION_STATUS
    session: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "type": self.type.value,
            "session": self.session,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


SyncHookCallback = Callable[[SessionEvent], None]
AsyncHookCallback = Callable[[SessionEvent], Awaitable[None]]
HookCallback = SyncHookCallback | AsyncHookCallback


@dataclass
class Hook:
    """A registered hook."""

    id: UUID = field(default_factory=uuid4)
    name: str = ""
    event_type: EventType = EventType.SESSION_STATUS
    callback: HookCallback = field(default=lambda e: None)
    priority: HookPriority = HookPriority.NORMAL
    enabled: bool = True
    is_async: bool = False

    # Statistics
    call_count: int = 0
    error_count: int = 0
    last_called: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "event_type": self.event_type.value,
            "priority": self.priority.value,
            "enabled": self.enabled,
            "is_async": self.is_async,
            "call_count": self.call_count,
            "error_count": self.error_count,
            "last_called": self.last_called.isoformat() if self.last_called else None,
        }


class HookRegistry:
    """Registry for session lifecycle hooks.

    Provides:
    - Event subscription and unsubscription
    - Priority-based execution order
    - Sync and async hook support
    - Bounded event history

    A failing hook is logged and counted; it never interrupts the
    session that emitted the event.
    """

    def __init__(self, history_limit: int = 1000):
        self._hooks: dict[EventType, list[Hook]] = defaultdict(list)
        self._hook_index: dict[UUID, Hook] = {}
        self._event_history: list[SessionEvent] = []
        self._history_limit = history_limit

    def register(
        self,
        event_type: EventType,
        callback: HookCallback,
        name: str = "",
        priority: HookPriority = HookPriority.NORMAL,
    ) -> UUID:
        """Register a hook for an event type.

        Args:
            event_type: Type of event to hook
            callback: Function to call when event occurs
            name: Optional name for the hook
            priority: Execution priority

        Returns:
            Hook ID for later reference
        """
        hook = Hook(
            name=name or f"hook_{event_type.value}",
            event_type=event_type,
            callback=callback,
            priority=priority,
            is_async=asyncio.iscoroutinefunction(callback),
        )

        self._hooks[event_type].append(hook)
        self._hooks[event_type].sort(key=lambda h: h.priority.value)
        self._hook_index[hook.id] = hook

        logger.debug(
            "Hook registered",
            name=hook.name,
            event_type=event_type.value,
            priority=priority.value,
        )

        return hook.id

    def unregister(self, hook_id: UUID) -> bool:
        """Unregister a hook by ID.

        Returns:
            True if hook was found and removed
        """
        hook = self._hook_index.pop(hook_id, None)
        if hook is None:
            return False

        self._hooks[hook.event_type] = [
            h for h in self._hooks[hook.event_type] if h.id != hook_id
        ]

        logger.debug("Hook unregistered", hook_id=str(hook_id))
        return True

    def enable(self, hook_id: UUID) -> bool:
        """Enable a hook."""
        hook = self._hook_index.get(hook_id)
        if hook:
            hook.enabled = True
            return True
        return False

    def disable(self, hook_id: UUID) -> bool:
        """Disable a hook."""
        hook = self._hook_index.get(hook_id)
        if hook:
            hook.enabled = False
            return True
        return False

    async def emit(self, event: SessionEvent) -> SessionEvent:
        """Deliver an event to every enabled hook in priority order."""
        for hook in self._hooks.get(event.type, []):
            if not hook.enabled:
                continue

            try:
                if hook.is_async:
                    await hook.callback(event)
                else:
                    hook.callback(event)

                hook.call_count += 1
                hook.last_called = datetime.now(timezone.utc)

            except Exception as e:
                hook.error_count += 1
                logger.error(
                    "Hook error",
                    hook=hook.name,
                    event_type=event.type.value,
                    session=event.session,
                    error=str(e),
                )

        self._event_history.append(event)
        if len(self._event_history) > self._history_limit:
            self._event_history = self._event_history[-self._history_limit :]

        return event

    def get_hooks(self, event_type: EventType | None = None) -> list[dict]:
        """Get registered hooks, optionally filtered by event type."""
        if event_type:
            return [h.to_dict() for h in self._hooks.get(event_type, [])]

        all_hooks = []
        for hooks in self._hooks.values():
            all_hooks.extend(h.to_dict() for h in hooks)
        return all_hooks

    def get_event_history(
        self,
        event_type: EventType | None = None,
        session: str | None = None,
        limit: int = 50,
    ) -> list[dict]:
        """Get recent event history.

        Args:
            event_type: Filter by event type
            session: Filter by session name
            limit: Maximum events to return
        """
        events = self._event_history
        if event_type:
            events = [e for e in events if e.type == event_type]
        if session:
            events = [e for e in events if e.session == session]
        return [e.to_dict() for e in events[-limit:]]

    def clear_history(self) -> None:
        """Clear event history."""
        self._event_history.clear()

    def get_stats(self) -> dict:
        """Get hook registry statistics."""
        all_hooks = [h for hooks in self._hooks.values() for h in hooks]
        enabled = sum(1 for h in all_hooks if h.enabled)

        return {
            "total_hooks": len(all_hooks),
            "enabled_hooks": enabled,
            "disabled_hooks": len(all_hooks) - enabled,
            "total_calls": sum(h.call_count for h in all_hooks),
            "total_errors": sum(h.error_count for h in all_hooks),
            "history_size": len(self._event_history),
        }


def on_event(
    registry: HookRegistry,
    event_type: EventType,
    priority: HookPriority = HookPriority.NORMAL,
    name: str = "",
):
    """Decorator for registering a function as an event hook.

    Usage:
        @on_event(registry, EventType.SESSION_STATUS)
        async def handle_status(event: SessionEvent):
            print(f"{event.session}: {event.data['status']}")
    """

    def decorator(func: HookCallback):
        registry.register(
            event_type=event_type,
            callback=func,
            name=name or func.__name__,
            priority=priority,
        )
        return func

    return decorator

"""Session manager: the orchestration facade used by the HTTP layer."""

import asyncio

import structlog

from chatgate.config import SessionSettings
from chatgate.core.base import EngineFactory
from chatgate.core.types import SessionConfig, SessionStatus
from chatgate.exceptions import (
    SessionLimitError,
    SessionNotFoundError,
    SessionNotReadyError,
)
from chatgate.hooks.events import EventType, HookRegistry, SessionEvent
from chatgate.session.registry import SessionRegistry
from chatgate.session.session import Session

logger = structlog.get_logger()


class SessionManager:
    """Creates, starts, stops and resolves sessions by name.

    Provides:
    - Explicit start / stop / restart per session name
    - Resolution of a name to a WORKING session for operation dispatch
    - Removal of terminated sessions
    - Statistics and shutdown of every session

    Lifecycle calls for one name are serialized by that session's lock;
    calls for different names never wait on each other.
    """

    def __init__(
        self,
        engine_factory: EngineFactory,
        registry: SessionRegistry | None = None,
        hooks: HookRegistry | None = None,
        settings: SessionSettings | None = None,
    ):
        """Initialize the session manager.

        Args:
            engine_factory: Builds one engine handle per session start
            registry: Registry to track sessions in (a fresh one if omitted)
            hooks: Hook registry receiving lifecycle events
            settings: Session settings (defaults from environment if omitted)
        """
        self._engine_factory = engine_factory
        self._registry = registry if registry is not None else SessionRegistry()
        self._hooks = hooks
        self._settings = settings or SessionSettings()

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def hooks(self) -> HookRegistry | None:
        return self._hooks

    async def start(self, name: str, config: SessionConfig | None = None) -> Session:
        """Start a session, creating it on first reference.

        Returns once STARTING is recorded. Starting a session that is already
        STARTING, SCAN_REQUIRED or WORKING does nothing.
        """
        while True:
            session = await self._get_or_create(name)
            try:
                await session.start(config)
            except SessionNotFoundError:
                # removed between lookup and start; register a fresh one
                if session.discarded:
                    continue
                raise
            return session

    async def stop(self, name: str) -> Session:
        """Stop a session and release its engine. Idempotent."""
        session = self.get_session(name)
        await session.stop()
        return session

    async def restart(self, name: str, config: SessionConfig | None = None) -> Session:
        """Stop then start a session as one serialized request."""
        while True:
            session = await self._get_or_create(name)
            try:
                await session.restart(config)
            except SessionNotFoundError:
                if session.discarded:
                    continue
                raise
            return session

    async def remove(self, name: str) -> Session:
        """Remove a STOPPED or FAILED session from the registry."""
        session = await self._registry.remove(name)
        if self._hooks is not None:
            await self._hooks.emit(
                SessionEvent(type=EventType.SESSION_REMOVED, session=name, data=session.to_dict())
            )
        return session

    def get_session(self, name: str) -> Session:
        """Get a session in any state.

        Raises:
            SessionNotFoundError: If the name was never started or was removed
        """
        session = self._registry.get(name)
        if session is None:
            raise SessionNotFoundError(name)
        return session

    async def get_working_session(self, name: str, wait: float | None = None) -> Session:
        """Resolve ``name`` to a session that can run operations right now.

        Never starts a session. A session that is still connecting may be
        waited on for up to ``wait`` seconds (settings default, 0 = no wait).

        Raises:
            SessionNotFoundError: If the name was never started or was removed
            SessionNotReadyError: If the session exists but is not WORKING
        """
        session = self.get_session(name)
        if session.status == SessionStatus.WORKING:
            return session

        if wait is None:
            wait = self._settings.ready_wait_seconds
        if wait > 0 and session.status in (SessionStatus.STARTING, SessionStatus.SCAN_REQUIRED):
            if await session.wait_until_working(wait):
                return session

        raise SessionNotReadyError(name, session.status)

    def list_sessions(self, status: SessionStatus | None = None) -> list[dict]:
        """List sessions, optionally filtered by status, sorted by name."""
        sessions = self._registry.sessions()
        if status:
            sessions = [s for s in sessions if s.status == status]
        return [s.to_dict() for s in sorted(sessions, key=lambda s: s.name)]

    async def stop_all(self) -> None:
        """Stop every session concurrently; used on shutdown."""
        sessions = self._registry.sessions()
        if not sessions:
            return

        logger.info("Stopping all sessions", count=len(sessions))
        results = await asyncio.gather(
            *(s.stop() for s in sessions),
            return_exceptions=True,
        )
        for session, result in zip(sessions, results):
            if isinstance(result, Exception):
                logger.error("Error stopping session", session=session.name, error=str(result))

    def get_stats(self) -> dict:
        """Get session manager statistics."""
        sessions = self._registry.sessions()
        states = {
            state.value: sum(1 for s in sessions if s.status == state)
            for state in SessionStatus
        }

        return {
            "total_sessions": len(sessions),
            "by_state": states,
            "max_sessions": self._settings.max_sessions,
            "total_operations": sum(s.operation_count for s in sessions),
        }

    async def _get_or_create(self, name: str) -> Session:
        created: list[Session] = []

        def build(session_name: str) -> Session:
            limit = self._settings.max_sessions
            if limit and len(self._registry) >= limit:
                raise SessionLimitError(limit)
            session = Session(
                session_name,
                self._engine_factory,
                hooks=self._hooks,
                settings=self._settings,
            )
            created.append(session)
            return session

        session = self._registry.get_or_create(name, build)

        if created:
            logger.info("Session created", session=name)
            if self._hooks is not None:
                await self._hooks.emit(
                    SessionEvent(type=EventType.SESSION_CREATED, session=name)
                )
        return session

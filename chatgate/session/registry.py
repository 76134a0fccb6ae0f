"""In-process mapping from session name to Session."""

import threading
from typing import Callable, Iterator

import structlog

from chatgate.exceptions import SessionNotFoundError
from chatgate.session.session import Session

logger = structlog.get_logger()

SessionFactory = Callable[[str], Session]


class SessionRegistry:
    """Single source of truth for live sessions, one instance per name.

    The registry is owned by whoever constructs it and handed to the
    manager; nothing here is module-global.
    """

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def get_or_create(self, name: str, factory: SessionFactory) -> Session:
        """Return the session for ``name``, building it with ``factory`` if absent.

        The check and the insert happen under one lock, so concurrent callers
        always observe the same instance and ``factory`` runs at most once
        per name.
        """
        with self._lock:
            session = self._sessions.get(name)
            if session is None:
                session = factory(name)
                self._sessions[name] = session
                logger.debug("Session registered", session=name)
            return session

    def get(self, name: str) -> Session | None:
        """Lookup without creation."""
        return self._sessions.get(name)

    async def remove(self, name: str) -> Session:
        """Remove a STOPPED or FAILED session.

        Raises:
            SessionNotFoundError: If no session is registered under ``name``
            InvalidStateError: If the session still holds a live engine
        """
        session = self._sessions.get(name)
        if session is None:
            raise SessionNotFoundError(name)

        await session.discard()

        with self._lock:
            if self._sessions.get(name) is session:
                del self._sessions[name]

        logger.info("Session removed", session=name)
        return session

    def names(self) -> list[str]:
        return list(self._sessions)

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, name: object) -> bool:
        return name in self._sessions

    def __iter__(self) -> Iterator[Session]:
        return iter(self.sessions())

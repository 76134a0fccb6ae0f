"""Per-tenant session: one chat-network connection and its lifecycle."""

import asyncio
from functools import partial
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from chatgate.config import SessionSettings
from chatgate.core.base import ChatEngine, EngineFactory
from chatgate.core.types import (
    CheckNumberStatusQuery,
    ContactQuery,
    ContactRequest,
    ContactsPaginationParams,
    DeleteStatusRequest,
    EngineEvent,
    EngineEventType,
    ImageStatus,
    NumberExistResult,
    SessionConfig,
    SessionStatus,
    TextStatus,
    VideoStatus,
    VoiceStatus,
    utcnow,
)
from chatgate.exceptions import (
    ChatGateError,
    EngineFailure,
    InvalidStateError,
    ScanTimeoutError,
    SessionNotFoundError,
    SessionNotReadyError,
)
from chatgate.hooks.events import EventType, HookRegistry, SessionEvent

logger = structlog.get_logger()

T = TypeVar("T")

_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.STOPPED: frozenset({SessionStatus.STARTING}),
    SessionStatus.STARTING: frozenset({
        SessionStatus.SCAN_REQUIRED,
        SessionStatus.WORKING,
        SessionStatus.FAILED,
        SessionStatus.STOPPING,
    }),
    SessionStatus.SCAN_REQUIRED: frozenset({
        SessionStatus.WORKING,
        SessionStatus.FAILED,
        SessionStatus.STOPPING,
    }),
    SessionStatus.WORKING: frozenset({SessionStatus.FAILED, SessionStatus.STOPPING}),
    SessionStatus.FAILED: frozenset({SessionStatus.STARTING, SessionStatus.STOPPING}),
    SessionStatus.STOPPING: frozenset({SessionStatus.STOPPED}),
}

_ACTIVE = (SessionStatus.STARTING, SessionStatus.SCAN_REQUIRED, SessionStatus.WORKING)
_CONNECTING = (SessionStatus.STARTING, SessionStatus.SCAN_REQUIRED)


class Session:
    """A single tenant's connection handle.

    Owns exactly one engine at a time and the lifecycle state around it.
    Every transition runs under the session's lock, including the ones
    triggered by engine callbacks, so transitions never overlap. Operation
    calls do not take the lock; they only require the session to be WORKING
    at the moment they are dispatched.

    Each engine handle gets a generation number. Callbacks and failures
    coming from an older generation are ignored, which keeps a released
    engine from touching the state of its successor.
    """

    def __init__(
        self,
        name: str,
        engine_factory: EngineFactory,
        hooks: HookRegistry | None = None,
        settings: SessionSettings | None = None,
        config: SessionConfig | None = None,
    ):
        self._name = name
        self._engine_factory = engine_factory
        self._hooks = hooks
        self._settings = settings or SessionSettings()
        self.config = config or SessionConfig()

        self._status = SessionStatus.STOPPED
        self.last_error: ChatGateError | None = None
        self.created_at = utcnow()
        self.status_changed_at = self.created_at
        self.auth_data: dict | None = None
        self.operation_count = 0
        self.discarded = False

        self._engine: ChatEngine | None = None
        self._generation = 0
        self._start_task: asyncio.Task | None = None
        self._scan_timer: asyncio.Task | None = None

        self._lock = asyncio.Lock()
        # set whenever the session is not connecting
        self._settled = asyncio.Event()
        self._settled.set()
        self._pending_events: list[SessionEvent] = []
        self._delivery_lock = asyncio.Lock()
        self._delivering: asyncio.Task | None = None

    def __repr__(self) -> str:
        return f"Session(name={self._name!r}, status={self._status.value})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def engine_generation(self) -> int:
        """Number of engine handles constructed for this session so far."""
        return self._generation

    @property
    def has_engine(self) -> bool:
        return self._engine is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, config: SessionConfig | None = None) -> bool:
        """Begin connecting if the session is STOPPED or FAILED.

        Returns as soon as STARTING is recorded; the engine connects in the
        background. Returns False when the session was already starting or
        working, in which case nothing is constructed.
        """
        try:
            async with self._lock:
                return self._start_locked(config)
        finally:
            await self._flush_events()

    async def stop(self) -> None:
        """Release the engine and settle in STOPPED. Idempotent."""
        try:
            async with self._lock:
                await self._stop_locked()
        finally:
            await self._flush_events()

    async def restart(self, config: SessionConfig | None = None) -> None:
        """Stop and start again without releasing the lock in between."""
        try:
            async with self._lock:
                if self.discarded:
                    raise SessionNotFoundError(self._name)
                await self._stop_locked()
                self._start_locked(config)
        finally:
            await self._flush_events()

    async def discard(self) -> None:
        """Mark the session as removed from its registry.

        Only STOPPED and FAILED sessions hold no engine, so only those can
        be discarded.
        """
        async with self._lock:
            if not self._status.is_terminal:
                raise InvalidStateError(self._name, self._status, target="REMOVED")
            self.discarded = True

    async def wait_until_working(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for the session to reach WORKING.

        Returns early with False as soon as the session leaves STARTING and
        SCAN_REQUIRED for any state other than WORKING.
        """
        if self._status not in _CONNECTING:
            return self._status == SessionStatus.WORKING
        try:
            await asyncio.wait_for(self._settled.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return self._status == SessionStatus.WORKING

    def _start_locked(self, config: SessionConfig | None) -> bool:
        if self.discarded:
            raise SessionNotFoundError(self._name)
        if self._status in _ACTIVE:
            logger.debug("Session already active", session=self._name, status=self._status.value)
            return False

        if config is not None:
            self.config = config
        self._transition(SessionStatus.STARTING)

        self._generation += 1
        generation = self._generation
        try:
            engine = self._engine_factory(
                self._name,
                self.config,
                partial(self._on_engine_event, generation),
            )
        except Exception as e:
            failure = _as_failure("create", e)
            self._transition(SessionStatus.FAILED, failure)
            self._queue_event(EventType.ENGINE_ERROR, failure.to_dict())
            logger.error("Engine construction failed", session=self._name, error=str(e))
            raise failure from e

        self._engine = engine
        self._start_task = asyncio.create_task(
            self._run_engine(generation, engine),
            name=f"chatgate-start-{self._name}",
        )
        logger.info("Session starting", session=self._name, generation=generation)
        return True

    async def _stop_locked(self) -> None:
        if self._status == SessionStatus.STOPPED:
            return
        self._transition(SessionStatus.STOPPING)
        await self._release_engine()
        self._transition(SessionStatus.STOPPED)
        logger.info("Session stopped", session=self._name)

    async def _fail_locked(self, error: EngineFailure) -> None:
        self._transition(SessionStatus.FAILED, error)
        self._queue_event(EventType.ENGINE_ERROR, error.to_dict())
        logger.error(
            "Session failed",
            session=self._name,
            operation=error.operation,
            error=error.message,
        )
        await self._release_engine()

    async def _release_engine(self) -> None:
        self._cancel_scan_timer()

        task, self._start_task = self._start_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            await asyncio.wait({task})

        engine, self._engine = self._engine, None
        if engine is None:
            return

        try:
            await asyncio.wait_for(engine.stop(), timeout=self._settings.stop_timeout_seconds)
        except Exception as e:
            # The handle is gone either way; report and carry on to a terminal state.
            failure = _as_failure("stop", e)
            self._queue_event(EventType.ENGINE_ERROR, failure.to_dict())
            logger.warning("Engine did not stop cleanly", session=self._name, error=str(e))

    async def _run_engine(self, generation: int, engine: ChatEngine) -> None:
        try:
            await engine.start()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            failure = _as_failure("start", e)
            logger.error("Engine start failed", session=self._name, error=str(e))
            try:
                async with self._lock:
                    if generation == self._generation and self._status in _CONNECTING:
                        await self._fail_locked(failure)
            finally:
                await self._flush_events()

    # ------------------------------------------------------------------
    # Engine events
    # ------------------------------------------------------------------

    async def _on_engine_event(self, generation: int, event: EngineEvent) -> None:
        try:
            async with self._lock:
                if generation != self._generation or self._engine is None:
                    logger.debug(
                        "Ignoring event from released engine",
                        session=self._name,
                        event_type=event.type.value,
                    )
                    return
                await self._apply_event_locked(event)
        finally:
            await self._flush_events()

    async def _apply_event_locked(self, event: EngineEvent) -> None:
        status = self._status

        if event.type == EngineEventType.SCAN_REQUIRED:
            if status == SessionStatus.STARTING:
                self.auth_data = dict(event.data)
                self._transition(SessionStatus.SCAN_REQUIRED)
                self._start_scan_timer()
            elif status == SessionStatus.SCAN_REQUIRED:
                # refreshed challenge, same deadline
                self.auth_data = dict(event.data)

        elif event.type == EngineEventType.AUTHENTICATED:
            if status in _CONNECTING:
                self._cancel_scan_timer()
                self.auth_data = None
                self._transition(SessionStatus.WORKING)
                logger.info("Session working", session=self._name)

        elif event.fatal:
            if status in _ACTIVE:
                error = event.error or EngineFailure(
                    operation=event.type.value,
                    retryable=False,
                    message=f"Engine reported {event.type.value}",
                )
                await self._fail_locked(error)

        else:
            data = event.error.to_dict() if event.error else {"operation": event.type.value}
            self._queue_event(EventType.ENGINE_ERROR, data)
            logger.warning(
                "Engine connection interrupted",
                session=self._name,
                error=event.error.message if event.error else "",
            )

    def _start_scan_timer(self) -> None:
        timeout = self.config.scan_timeout_seconds
        if timeout is None:
            timeout = self._settings.scan_timeout_seconds
        if timeout <= 0:
            return
        self._scan_timer = asyncio.create_task(
            self._expire_scan(self._generation, timeout),
            name=f"chatgate-scan-{self._name}",
        )

    def _cancel_scan_timer(self) -> None:
        timer, self._scan_timer = self._scan_timer, None
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    async def _expire_scan(self, generation: int, timeout: float) -> None:
        await asyncio.sleep(timeout)
        try:
            async with self._lock:
                if generation != self._generation or self._status != SessionStatus.SCAN_REQUIRED:
                    return
                await self._fail_locked(ScanTimeoutError(self._name, timeout))
        finally:
            await self._flush_events()

    # ------------------------------------------------------------------
    # State bookkeeping
    # ------------------------------------------------------------------

    def _transition(self, target: SessionStatus, error: ChatGateError | None = None) -> None:
        if target not in _TRANSITIONS[self._status]:
            raise InvalidStateError(self._name, self._status, target=target.value)

        previous = self._status
        self._status = target
        self.status_changed_at = utcnow()

        if target == SessionStatus.WORKING:
            self.last_error = None
        if target in _CONNECTING:
            self._settled.clear()
        else:
            self._settled.set()
        if target != SessionStatus.SCAN_REQUIRED:
            self.auth_data = None
        if error is not None:
            self.last_error = error

        logger.debug(
            "Session status changed",
            session=self._name,
            previous=previous.value,
            status=target.value,
        )
        self._queue_event(
            EventType.SESSION_STATUS,
            {
                "previous": previous.value,
                "status": target.value,
                "error": error.to_dict() if error else None,
            },
        )

    def _queue_event(self, event_type: EventType, data: dict) -> None:
        if self._hooks is None:
            return
        self._pending_events.append(SessionEvent(type=event_type, session=self._name, data=data))

    async def _flush_events(self) -> None:
        """Deliver queued events to hooks in the order they were queued.

        Only one task delivers at a time. A hook that calls back into this
        session queues more events; the delivering task picks them up after
        the current batch instead of flushing recursively.
        """
        if self._hooks is None or self._delivering is asyncio.current_task():
            return
        async with self._delivery_lock:
            self._delivering = asyncio.current_task()
            try:
                while self._pending_events:
                    events, self._pending_events = self._pending_events, []
                    for event in events:
                        await self._hooks.emit(event)
            finally:
                self._delivering = None

    # ------------------------------------------------------------------
    # Operation dispatch
    # ------------------------------------------------------------------

    async def _dispatch(self, operation: str, call: Callable[[ChatEngine], Awaitable[T]]) -> T:
        if self._status != SessionStatus.WORKING or self._engine is None:
            raise SessionNotReadyError(self._name, self._status)

        engine, generation = self._engine, self._generation
        self.operation_count += 1
        try:
            return await call(engine)
        except EngineFailure as e:
            if e.fatal:
                await self._on_operation_failure(generation, e)
            else:
                logger.warning(
                    "Engine operation failed",
                    session=self._name,
                    operation=operation,
                    error=e.message,
                )
            raise

    async def _on_operation_failure(self, generation: int, error: EngineFailure) -> None:
        try:
            async with self._lock:
                if generation == self._generation and self._status == SessionStatus.WORKING:
                    await self._fail_locked(error)
        finally:
            await self._flush_events()

    # --- Contacts ---

    async def get_contacts(self, pagination: ContactsPaginationParams) -> list[dict]:
        return await self._dispatch("get_contacts", lambda e: e.get_contacts(pagination))

    async def get_contact(self, query: ContactQuery) -> dict:
        return await self._dispatch("get_contact", lambda e: e.get_contact(query))

    async def check_number_status(self, request: CheckNumberStatusQuery) -> NumberExistResult:
        return await self._dispatch("check_number_status", lambda e: e.check_number_status(request))

    async def get_contact_about(self, query: ContactQuery) -> dict | None:
        """None when the contact's privacy settings hide it."""
        return await self._dispatch("get_contact_about", lambda e: e.get_contact_about(query))

    async def get_contact_profile_picture(self, contact_id: str, refresh: bool = False) -> str | None:
        """None when the contact's privacy settings hide it."""
        return await self._dispatch(
            "get_contact_profile_picture",
            lambda e: e.get_contact_profile_picture(contact_id, refresh),
        )

    async def block_contact(self, request: ContactRequest) -> Any:
        return await self._dispatch("block_contact", lambda e: e.block_contact(request))

    async def unblock_contact(self, request: ContactRequest) -> Any:
        return await self._dispatch("unblock_contact", lambda e: e.unblock_contact(request))

    # --- Status ---

    async def send_text_status(self, status: TextStatus) -> Any:
        return await self._dispatch("send_text_status", lambda e: e.send_text_status(status))

    async def send_image_status(self, status: ImageStatus) -> Any:
        return await self._dispatch("send_image_status", lambda e: e.send_image_status(status))

    async def send_voice_status(self, status: VoiceStatus) -> Any:
        return await self._dispatch("send_voice_status", lambda e: e.send_voice_status(status))

    async def send_video_status(self, status: VideoStatus) -> Any:
        return await self._dispatch("send_video_status", lambda e: e.send_video_status(status))

    async def delete_status(self, request: DeleteStatusRequest) -> Any:
        return await self._dispatch("delete_status", lambda e: e.delete_status(request))

    def to_dict(self) -> dict:
        """Convert session to dictionary for serialization."""
        return {
            "name": self._name,
            "status": self._status.value,
            "last_error": self.last_error.to_dict() if self.last_error else None,
            "created_at": self.created_at.isoformat(),
            "status_changed_at": self.status_changed_at.isoformat(),
            "engine_generation": self._generation,
            "operation_count": self.operation_count,
            "auth": self.auth_data,
            "config": self.config.to_dict(),
        }


def _as_failure(operation: str, error: Exception) -> EngineFailure:
    if isinstance(error, EngineFailure):
        return error
    return EngineFailure(
        operation=operation,
        retryable=False,
        message=str(error) or error.__class__.__name__,
        details={"exception": error.__class__.__name__},
    )

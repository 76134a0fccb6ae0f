"""Shared fixtures: a scripted in-memory engine and a manager built on it."""

import asyncio

import pytest

from chatgate.config import SessionSettings
from chatgate.core.base import ChatEngine
from chatgate.core.types import (
    EngineEvent,
    EngineEventType,
    NumberExistResult,
    SessionStatus,
)
from chatgate.exceptions import EngineFailure
from chatgate.hooks.events import HookRegistry
from chatgate.session import SessionManager


class FakeEngine(ChatEngine):
    """Engine driven by the test instead of a network."""

    def __init__(self, name, config, on_event, authenticated=False, start_error=None):
        super().__init__(name, config, on_event)
        self.authenticated_on_start = authenticated
        self.start_error = start_error
        self.started = False
        self.stopped = False
        self.calls: list[tuple[str, tuple]] = []
        self.failures: dict[str, Exception] = {}
        self.results: dict[str, object] = {}

    async def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started = True
        if self.authenticated_on_start:
            await self.emit(EngineEvent(type=EngineEventType.AUTHENTICATED))

    async def stop(self) -> None:
        self.stopped = True

    # --- Test controls ---

    async def request_scan(self, qr: str = "qr-code") -> None:
        await self.emit(EngineEvent(type=EngineEventType.SCAN_REQUIRED, data={"qr": qr}))

    async def authenticate(self) -> None:
        await self.emit(EngineEvent(type=EngineEventType.AUTHENTICATED))

    async def reject_auth(self) -> None:
        await self.emit(EngineEvent(type=EngineEventType.AUTH_FAILURE))

    async def lose_connection(self, fatal: bool = True) -> None:
        await self.emit(EngineEvent(
            type=EngineEventType.CONNECTION_LOST,
            error=EngineFailure(operation="connection", retryable=not fatal),
        ))

    async def _call(self, operation: str, *args):
        self.calls.append((operation, args))
        if operation in self.failures:
            raise self.failures[operation]
        return self.results.get(operation)

    # --- Operations ---

    async def get_contacts(self, pagination):
        return await self._call("get_contacts", pagination)

    async def get_contact(self, query):
        return await self._call("get_contact", query)

    async def check_number_status(self, request):
        result = await self._call("check_number_status", request)
        return result or NumberExistResult(number_exists=True, chat_id=f"{request.phone}@c.us")

    async def get_contact_about(self, query):
        return await self._call("get_contact_about", query)

    async def get_contact_profile_picture(self, contact_id, refresh):
        return await self._call("get_contact_profile_picture", contact_id, refresh)

    async def block_contact(self, request):
        return await self._call("block_contact", request)

    async def unblock_contact(self, request):
        return await self._call("unblock_contact", request)

    async def send_text_status(self, status):
        return await self._call("send_text_status", status)

    async def send_image_status(self, status):
        return await self._call("send_image_status", status)

    async def send_voice_status(self, status):
        return await self._call("send_voice_status", status)

    async def send_video_status(self, status):
        return await self._call("send_video_status", status)

    async def delete_status(self, request):
        return await self._call("delete_status", request)


class EngineRecorder:
    """Engine factory that counts and keeps every engine it builds."""

    def __init__(self, **engine_kwargs):
        self.engine_kwargs = engine_kwargs
        self.engines: list[FakeEngine] = []

    def __call__(self, name, config, on_event) -> FakeEngine:
        engine = FakeEngine(name, config, on_event, **self.engine_kwargs)
        self.engines.append(engine)
        return engine

    @property
    def count(self) -> int:
        return len(self.engines)

    def last(self, name: str | None = None) -> FakeEngine:
        engines = [e for e in self.engines if name is None or e.name == name]
        return engines[-1]


async def wait_for_status(session, status: SessionStatus, timeout: float = 1.0) -> None:
    """Let background tasks run until the session reaches ``status``."""
    deadline = asyncio.get_running_loop().time() + timeout
    while session.status != status:
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(f"{session!r} never reached {status.value}")
        await asyncio.sleep(0.005)


@pytest.fixture
def engines():
    """Engine factory building engines that wait for the test to authenticate."""
    return EngineRecorder()


@pytest.fixture
def hooks():
    """Create a hook registry."""
    return HookRegistry()


@pytest.fixture
def session_settings():
    """Session settings with timeouts disabled."""
    return SessionSettings(
        scan_timeout_seconds=0,
        ready_wait_seconds=0,
        stop_timeout_seconds=1,
        max_sessions=0,
    )


@pytest.fixture
def manager(engines, hooks, session_settings):
    """Create a session manager on fake engines."""
    return SessionManager(engines, hooks=hooks, settings=session_settings)


@pytest.fixture
def make_engines():
    """Build an engine factory with custom FakeEngine options."""
    return EngineRecorder


@pytest.fixture
def wait_status():
    """Helper waiting for a session to reach a status."""
    return wait_for_status

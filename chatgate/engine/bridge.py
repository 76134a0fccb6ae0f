"""Chat-network engine backed by an external WebSocket bridge.

The bridge is a separate process that speaks the chat network's own
protocol and exposes a small JSON protocol to us:

Bridge -> engine frames:
- qr: interactive authentication required, ``qr`` holds the challenge
- status: ``connected`` once authenticated, ``disconnected`` on a drop
- auth_failure / logout: credentials rejected or revoked
- response: answer to a request, matched by ``id``
- error: bridge-side problem not tied to a request

Engine -> bridge frames:
- auth: optional bridge token, sent first
- start: attach this connection to a session name
- request: ``{"id", "method", "params"}``
"""

import asyncio
import json
from typing import Any
from uuid import uuid4

import structlog
import websockets
from pydantic import BaseModel
from websockets.exceptions import ConnectionClosed, WebSocketException

from chatgate.config import EngineSettings
from chatgate.core.base import ChatEngine, EngineEventCallback, EngineFactory
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
    TextStatus,
    VideoStatus,
    VoiceStatus,
)
from chatgate.exceptions import EngineFailure, InvalidConfigurationError

logger = structlog.get_logger()


def _params(payload: BaseModel) -> dict:
    return payload.model_dump(by_alias=True, exclude_none=True)


class BridgeEngine(ChatEngine):
    """Engine that drives one session on a chat-network bridge.

    Transient drops are retried with a fixed delay, reported to the session
    as retryable CONNECTION_LOST events. Running out of attempts is reported
    as a fatal one.
    """

    def __init__(
        self,
        name: str,
        config: SessionConfig,
        on_event: EngineEventCallback,
        settings: EngineSettings | None = None,
    ):
        super().__init__(name, config, on_event)
        self._settings = settings or EngineSettings()
        self._url = config.engine.get("bridge_url") or self._settings.bridge_url
        self._token = config.engine.get("bridge_token") or self._settings.bridge_token
        if not self._url.startswith(("ws://", "wss://")):
            raise InvalidConfigurationError("bridge_url", self._url, "expected a ws:// or wss:// URL")

        self._ws = None
        self._running = False
        self._reader: asyncio.Task | None = None
        self._pending: dict[str, tuple[str, asyncio.Future]] = {}

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def start(self) -> None:
        """Connect to the bridge and start listening in the background."""
        self._running = True
        try:
            ws = await self._connect()
        except Exception:
            self._running = False
            raise
        self._reader = asyncio.create_task(
            self._read_loop(ws),
            name=f"chatgate-bridge-{self.name}",
        )

    async def stop(self) -> None:
        """Close the bridge connection and fail any request still waiting."""
        self._running = False

        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
            await asyncio.wait({reader})

        ws, self._ws = self._ws, None
        self._fail_pending("Engine stopped")
        if ws is not None:
            await ws.close()
        logger.info("Disconnected from chat bridge", session=self.name)

    async def _connect(self):
        logger.info("Connecting to chat bridge", session=self.name, url=self._url)
        ws = await websockets.connect(self._url)
        if self._token:
            await ws.send(json.dumps({"type": "auth", "token": self._token}))
        await ws.send(json.dumps({"type": "start", "session": self.name}))
        self._ws = ws
        logger.info("Connected to chat bridge", session=self.name)
        return ws

    async def _read_loop(self, ws) -> None:
        while self._running:
            try:
                async for raw in ws:
                    try:
                        await self._handle_bridge_message(raw)
                    except Exception as e:
                        logger.error("Error handling bridge message", session=self.name, error=str(e))
                reason = "closed by bridge"
            except ConnectionClosed as e:
                reason = str(e)

            self._ws = None
            self._fail_pending(f"Bridge connection lost: {reason}")
            if not self._running:
                return

            ws = await self._reconnect(reason)
            if ws is None:
                return

    async def _reconnect(self, reason: str):
        await self.emit(EngineEvent(
            type=EngineEventType.CONNECTION_LOST,
            error=EngineFailure(
                operation="connection",
                retryable=True,
                message=f"Bridge connection lost: {reason}",
            ),
        ))

        attempts = self._settings.max_reconnect_attempts
        delay = self._settings.reconnect_delay_seconds
        for attempt in range(1, attempts + 1):
            if not self._running:
                return None
            logger.info("Reconnecting to chat bridge", session=self.name, attempt=attempt, delay=delay)
            await asyncio.sleep(delay)
            try:
                return await self._connect()
            except (OSError, WebSocketException) as e:
                logger.warning("Bridge reconnect failed", session=self.name, attempt=attempt, error=str(e))

        if self._running:
            await self.emit(EngineEvent(
                type=EngineEventType.CONNECTION_LOST,
                error=EngineFailure(
                    operation="connection",
                    retryable=False,
                    message=f"Gave up reconnecting to bridge after {attempts} attempts",
                ),
            ))
        return None

    async def _handle_bridge_message(self, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON from bridge", session=self.name, preview=str(raw)[:100])
            return
        if not isinstance(data, dict):
            logger.warning("Unexpected frame from bridge", session=self.name, preview=str(raw)[:100])
            return

        msg_type = data.get("type")

        if msg_type == "response":
            self._resolve(data)

        elif msg_type == "qr":
            logger.info("Scan QR code to authenticate", session=self.name)
            await self.emit(EngineEvent(type=EngineEventType.SCAN_REQUIRED, data={"qr": data.get("qr")}))

        elif msg_type == "status":
            status = data.get("status")
            logger.info("Bridge status", session=self.name, status=status)
            if status == "connected":
                await self.emit(EngineEvent(type=EngineEventType.AUTHENTICATED, data=data))
            elif status == "disconnected":
                await self.emit(EngineEvent(
                    type=EngineEventType.CONNECTION_LOST,
                    error=EngineFailure(
                        operation="connection",
                        retryable=True,
                        message=data.get("reason") or "Chat network disconnected",
                    ),
                ))

        elif msg_type in ("auth_failure", "logout"):
            await self.emit(EngineEvent(
                type=EngineEventType.AUTH_FAILURE,
                error=EngineFailure(
                    operation="authenticate",
                    retryable=False,
                    message=data.get("reason") or f"Bridge reported {msg_type}",
                ),
            ))

        elif msg_type == "error":
            logger.error("Chat bridge error", session=self.name, error=data.get("error"))

        else:
            logger.debug("Unknown bridge message", session=self.name, type=msg_type)

    def _resolve(self, data: dict) -> None:
        entry = self._pending.get(data.get("id"))
        if entry is None:
            logger.debug("Response for unknown request", session=self.name, id=data.get("id"))
            return

        method, future = entry
        if future.done():
            return

        error = data.get("error")
        if error:
            future.set_exception(EngineFailure(
                operation=method,
                retryable=not error.get("fatal", False),
                message=error.get("message") or f"Bridge request failed: {method}",
                details={"code": error.get("code")},
            ))
        else:
            future.set_result(data.get("result"))

    def _fail_pending(self, message: str) -> None:
        for method, future in list(self._pending.values()):
            if not future.done():
                future.set_exception(EngineFailure(operation=method, retryable=True, message=message))

    async def _request(self, method: str, params: dict | None = None) -> Any:
        if not self.connected:
            raise EngineFailure(operation=method, retryable=True, message="Bridge not connected")
        ws = self._ws

        request_id = uuid4().hex
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = (method, future)
        timeout = self._settings.request_timeout_seconds
        try:
            await ws.send(json.dumps({
                "type": "request",
                "id": request_id,
                "session": self.name,
                "method": method,
                "params": params or {},
            }))
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise EngineFailure(
                operation=method,
                retryable=True,
                message=f"Bridge did not answer {method} within {timeout}s",
            ) from None
        except ConnectionClosed as e:
            raise EngineFailure(
                operation=method,
                retryable=True,
                message=f"Bridge connection closed: {e}",
            ) from e
        finally:
            self._pending.pop(request_id, None)

    # --- Contacts ---

    async def get_contacts(self, pagination: ContactsPaginationParams) -> list[dict]:
        return await self._request("contacts.getAll", _params(pagination))

    async def get_contact(self, query: ContactQuery) -> dict:
        return await self._request("contacts.get", _params(query))

    async def check_number_status(self, request: CheckNumberStatusQuery) -> NumberExistResult:
        result = await self._request("contacts.checkExists", _params(request))
        return NumberExistResult.model_validate(result)

    async def get_contact_about(self, query: ContactQuery) -> dict | None:
        return await self._request("contacts.getAbout", _params(query))

    async def get_contact_profile_picture(self, contact_id: str, refresh: bool) -> str | None:
        return await self._request(
            "contacts.getProfilePicture",
            {"contactId": contact_id, "refresh": refresh},
        )

    async def block_contact(self, request: ContactRequest) -> Any:
        return await self._request("contacts.block", _params(request))

    async def unblock_contact(self, request: ContactRequest) -> Any:
        return await self._request("contacts.unblock", _params(request))

    # --- Status ---

    async def send_text_status(self, status: TextStatus) -> Any:
        return await self._request("status.sendText", _params(status))

    async def send_image_status(self, status: ImageStatus) -> Any:
        return await self._request("status.sendImage", _params(status))

    async def send_voice_status(self, status: VoiceStatus) -> Any:
        return await self._request("status.sendVoice", _params(status))

    async def send_video_status(self, status: VideoStatus) -> Any:
        return await self._request("status.sendVideo", _params(status))

    async def delete_status(self, request: DeleteStatusRequest) -> Any:
        return await self._request("status.delete", _params(request))


def bridge_engine_factory(settings: EngineSettings | None = None) -> EngineFactory:
    """Build an engine factory that creates BridgeEngine instances."""

    def factory(name: str, config: SessionConfig, on_event: EngineEventCallback) -> ChatEngine:
        return BridgeEngine(name, config, on_event, settings=settings)

    return factory

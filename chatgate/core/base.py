"""Base classes and interfaces for chat-network engines."""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from chatgate.core.types import (
    CheckNumberStatusQuery,
    ContactQuery,
    ContactRequest,
    ContactsPaginationParams,
    DeleteStatusRequest,
    EngineEvent,
    ImageStatus,
    NumberExistResult,
    SessionConfig,
    TextStatus,
    VideoStatus,
    VoiceStatus,
)

EngineEventCallback = Callable[[EngineEvent], Awaitable[None]]


class ChatEngine(ABC):
    """Abstract base class for a single authenticated chat-network connection.

    An engine is owned by exactly one session. It reports authentication
    progress and connection loss through ``on_event``; it must not call
    ``on_event`` from inside ``stop()``.
    """

    def __init__(self, name: str, config: SessionConfig, on_event: EngineEventCallback):
        self.name = name
        self.config = config
        self._on_event = on_event

    async def emit(self, event: EngineEvent) -> None:
        """Report a connection event to the owning session."""
        await self._on_event(event)

    @abstractmethod
    async def start(self) -> None:
        """Open the connection. Returns once connecting is under way."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Release the connection and every resource it holds."""
        pass

    # --- Contacts ---

    @abstractmethod
    async def get_contacts(self, pagination: ContactsPaginationParams) -> list[dict]:
        pass

    @abstractmethod
    async def get_contact(self, query: ContactQuery) -> dict:
        pass

    @abstractmethod
    async def check_number_status(self, request: CheckNumberStatusQuery) -> NumberExistResult:
        pass

    @abstractmethod
    async def get_contact_about(self, query: ContactQuery) -> dict | None:
        pass

    @abstractmethod
    async def get_contact_profile_picture(self, contact_id: str, refresh: bool) -> str | None:
        pass

    @abstractmethod
    async def block_contact(self, request: ContactRequest) -> Any:
        pass

    @abstractmethod
    async def unblock_contact(self, request: ContactRequest) -> Any:
        pass

    # --- Status ---

    @abstractmethod
    async def send_text_status(self, status: TextStatus) -> Any:
        pass

    @abstractmethod
    async def send_image_status(self, status: ImageStatus) -> Any:
        pass

    @abstractmethod
    async def send_voice_status(self, status: VoiceStatus) -> Any:
        pass

    @abstractmethod
    async def send_video_status(self, status: VideoStatus) -> Any:
        pass

    @abstractmethod
    async def delete_status(self, request: DeleteStatusRequest) -> Any:
        pass


EngineFactory = Callable[[str, SessionConfig, EngineEventCallback], ChatEngine]

"""Core type definitions for the session gateway."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from chatgate.exceptions import EngineFailure


def utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    """Lifecycle states of a session."""

    STOPPED = "STOPPED"
    STARTING = "STARTING"
    SCAN_REQUIRED = "SCAN_REQUIRED"
    WORKING = "WORKING"
    FAILED = "FAILED"
    STOPPING = "STOPPING"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.STOPPED, SessionStatus.FAILED)


@dataclass
class SessionConfig:
    """Per-session start options."""

    # Overrides SESSION_SCAN_TIMEOUT_SECONDS for this session (0 = no timeout)
    scan_timeout_seconds: float | None = None

    # Opaque options handed to the engine factory
    engine: dict[str, Any] = field(default_factory=dict)

    # Custom metadata
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "scan_timeout_seconds": self.scan_timeout_seconds,
            "engine": self.engine,
            "metadata": self.metadata,
        }


class EngineEventType(str, Enum):
    """Events an engine reports about its connection."""

    SCAN_REQUIRED = "scan_required"
    AUTHENTICATED = "authenticated"
    AUTH_FAILURE = "auth_failure"
    CONNECTION_LOST = "connection_lost"


@dataclass
class EngineEvent:
    """A state-machine event fed into a session by its engine."""

    type: EngineEventType
    error: "EngineFailure | None" = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def fatal(self) -> bool:
        """Whether the event ends the connection for good."""
        if self.type == EngineEventType.AUTH_FAILURE:
            return True
        if self.type == EngineEventType.CONNECTION_LOST:
            return self.error is None or self.error.fatal
        return False


# =============================================================================
# Operation payloads
# =============================================================================


class _Payload(BaseModel):
    """Base for operation payloads; camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContactsPaginationParams(_Payload):
    limit: int | None = Field(default=None, ge=1)
    offset: int | None = Field(default=None, ge=0)
    sort_by: Literal["id", "name"] | None = None
    sort_order: Literal["asc", "desc"] | None = None


class ContactQuery(_Payload):
    contact_id: str = Field(description="Contact id, e.g. 11111111111@c.us")


class ContactRequest(_Payload):
    contact_id: str


class CheckNumberStatusQuery(_Payload):
    phone: str = Field(description="Phone number without + or spaces")


class NumberExistResult(_Payload):
    number_exists: bool
    chat_id: str | None = None


class MediaFile(_Payload):
    mimetype: str
    filename: str | None = None
    url: str | None = None
    data: str | None = Field(default=None, description="Base64 encoded content")


class StatusRequest(_Payload):
    id: str | None = Field(default=None, description="Optional message id to reuse")
    contacts: list[str] | None = Field(
        default=None,
        description="Restrict the status to these contacts",
    )


class TextStatus(StatusRequest):
    text: str
    background_color: str = "#38b42f"
    font: int = 0
    link_preview: bool = True


class ImageStatus(StatusRequest):
    file: MediaFile
    caption: str = ""


class VoiceStatus(StatusRequest):
    file: MediaFile
    background_color: str = "#38b42f"


class VideoStatus(StatusRequest):
    file: MediaFile
    caption: str = ""


class DeleteStatusRequest(StatusRequest):
    id: str = Field(description="Id of the status message to delete")

"""FastAPI application for chatgate."""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Literal

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from chatgate.config import get_settings
from chatgate.core.types import (
    CheckNumberStatusQuery,
    ContactQuery,
    ContactRequest,
    ContactsPaginationParams,
    DeleteStatusRequest,
    ImageStatus,
    NumberExistResult,
    SessionConfig,
    SessionStatus,
    TextStatus,
    VideoStatus,
    VoiceStatus,
)
from chatgate.engine import bridge_engine_factory
from chatgate.exceptions import ChatGateError
from chatgate.hooks.events import HookRegistry
from chatgate.session import Session, SessionManager


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan management."""
    if getattr(app.state, "manager", None) is None:
        settings = get_settings()
        app.state.manager = SessionManager(
            bridge_engine_factory(settings.engine),
            hooks=HookRegistry(),
            settings=settings.session,
        )

    yield

    await app.state.manager.stop_all()


def create_app(manager: SessionManager | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        manager: Session manager to serve; built from settings on startup
            when omitted
    """
    settings = get_settings()

    app = FastAPI(
        title="chatgate API",
        description="Multi-tenant gateway for chat-network sessions",
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.manager = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ChatGateError, chatgate_error_handler)

    app.include_router(sessions_router, prefix="/api/sessions", tags=["Sessions"])
    app.include_router(contacts_router, prefix="/api/contacts", tags=["Contacts"])
    app.include_router(status_router, prefix="/api/{session}/status", tags=["Status"])
    app.include_router(health_router, tags=["Health"])

    return app


async def chatgate_error_handler(request: Request, exc: ChatGateError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# --- Request/Response Models ---

class StartSessionRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Session name")
    scan_timeout_seconds: float | None = Field(default=None, ge=0.0)
    engine: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_config(self) -> SessionConfig:
        return SessionConfig(
            scan_timeout_seconds=self.scan_timeout_seconds,
            engine=self.engine,
            metadata=self.metadata,
        )


class SessionNameRequest(BaseModel):
    name: str = Field(..., min_length=1)


class SessionContactRequest(ContactRequest):
    session: str = Field(..., min_length=1)


class HealthResponse(BaseModel):
    status: str
    version: str
    sessions: dict


# --- Dependency ---

def get_manager(request: Request) -> SessionManager:
    return request.app.state.manager


async def get_working_session(
    session: str,
    manager: SessionManager = Depends(get_manager),
) -> Session:
    """Resolve the ``{session}`` path parameter to a WORKING session."""
    return await manager.get_working_session(session)


# --- Routers ---

sessions_router = APIRouter()
contacts_router = APIRouter()
status_router = APIRouter()
health_router = APIRouter()


@health_router.get("/health", response_model=HealthResponse)
async def health_check(manager: SessionManager = Depends(get_manager)):
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        version=get_settings().version,
        sessions=manager.get_stats(),
    )


@sessions_router.get("/")
async def list_sessions(
    status: SessionStatus | None = None,
    manager: SessionManager = Depends(get_manager),
):
    """List all sessions."""
    return manager.list_sessions(status=status)


@sessions_router.get("/{name}")
async def get_session(name: str, manager: SessionManager = Depends(get_manager)):
    """Get session info."""
    return manager.get_session(name).to_dict()


@sessions_router.get("/{name}/events")
async def get_session_events(
    name: str,
    limit: int = Query(default=50, ge=1, le=1000),
    manager: SessionManager = Depends(get_manager),
):
    """Recent lifecycle events of a session."""
    manager.get_session(name)
    if manager.hooks is None:
        return []
    return manager.hooks.get_event_history(session=name, limit=limit)


@sessions_router.post("/start", status_code=201)
async def start_session(
    request: StartSessionRequest,
    manager: SessionManager = Depends(get_manager),
):
    """Start a session. Returns before authentication completes."""
    session = await manager.start(request.name, request.to_config())
    return session.to_dict()


@sessions_router.post("/stop")
async def stop_session(
    request: SessionNameRequest,
    manager: SessionManager = Depends(get_manager),
):
    """Stop a session."""
    session = await manager.stop(request.name)
    return session.to_dict()


@sessions_router.post("/restart")
async def restart_session(
    request: StartSessionRequest,
    manager: SessionManager = Depends(get_manager),
):
    """Restart a session with fresh credentials and engine."""
    session = await manager.restart(request.name, request.to_config())
    return session.to_dict()


@sessions_router.delete("/{name}")
async def delete_session(name: str, manager: SessionManager = Depends(get_manager)):
    """Remove a stopped or failed session."""
    await manager.remove(name)
    return {"message": "Session deleted"}


@contacts_router.get("/all")
async def get_all_contacts(
    session: str,
    limit: int | None = Query(default=None, ge=1),
    offset: int | None = Query(default=None, ge=0),
    sort_by: Literal["id", "name"] | None = Query(default=None, alias="sortBy"),
    sort_order: Literal["asc", "desc"] | None = Query(default=None, alias="sortOrder"),
    manager: SessionManager = Depends(get_manager),
):
    """Get all contacts."""
    whatsapp = await manager.get_working_session(session)
    pagination = ContactsPaginationParams(
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return await whatsapp.get_contacts(pagination)


@contacts_router.get("/")
async def get_contact(
    session: str,
    contact_id: str = Query(..., alias="contactId"),
    manager: SessionManager = Depends(get_manager),
):
    """Get contact basic info.

    Always returns a result, even if the number is not registered on the
    network; use /check-exists for that.
    """
    whatsapp = await manager.get_working_session(session)
    return await whatsapp.get_contact(ContactQuery(contact_id=contact_id))


@contacts_router.get("/check-exists", response_model=NumberExistResult)
async def check_exists(
    session: str,
    phone: str,
    manager: SessionManager = Depends(get_manager),
):
    """Check phone number is registered on the network."""
    whatsapp = await manager.get_working_session(session)
    return await whatsapp.check_number_status(CheckNumberStatusQuery(phone=phone))


@contacts_router.get("/about")
async def get_about(
    session: str,
    contact_id: str = Query(..., alias="contactId"),
    manager: SessionManager = Depends(get_manager),
):
    """Get the contact's "about" info; null without permission to read it."""
    whatsapp = await manager.get_working_session(session)
    return await whatsapp.get_contact_about(ContactQuery(contact_id=contact_id))


@contacts_router.get("/profile-picture")
async def get_profile_picture(
    session: str,
    contact_id: str = Query(..., alias="contactId"),
    refresh: bool = False,
    manager: SessionManager = Depends(get_manager),
):
    """Get contact's profile picture URL; null if privacy settings hide it."""
    whatsapp = await manager.get_working_session(session)
    url = await whatsapp.get_contact_profile_picture(contact_id, refresh)
    return {"profilePictureURL": url}


@contacts_router.post("/block")
async def block_contact(
    request: SessionContactRequest,
    manager: SessionManager = Depends(get_manager),
):
    """Block contact."""
    whatsapp = await manager.get_working_session(request.session)
    return await whatsapp.block_contact(ContactRequest(contact_id=request.contact_id))


@contacts_router.post("/unblock")
async def unblock_contact(
    request: SessionContactRequest,
    manager: SessionManager = Depends(get_manager),
):
    """Unblock contact."""
    whatsapp = await manager.get_working_session(request.session)
    return await whatsapp.unblock_contact(ContactRequest(contact_id=request.contact_id))


@status_router.post("/text")
async def send_text_status(status: TextStatus, session: Session = Depends(get_working_session)):
    """Send text status."""
    return await session.send_text_status(status)


@status_router.post("/image")
async def send_image_status(status: ImageStatus, session: Session = Depends(get_working_session)):
    """Send image status."""
    return await session.send_image_status(status)


@status_router.post("/voice")
async def send_voice_status(status: VoiceStatus, session: Session = Depends(get_working_session)):
    """Send voice status."""
    return await session.send_voice_status(status)


@status_router.post("/video")
async def send_video_status(status: VideoStatus, session: Session = Depends(get_working_session)):
    """Send video status."""
    return await session.send_video_status(status)


@status_router.post("/delete")
async def delete_status(
    request: DeleteStatusRequest,
    session: Session = Depends(get_working_session),
):
    """Delete a sent status."""
    return await session.delete_status(request)


# Create default app instance
app = create_app()

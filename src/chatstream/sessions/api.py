"""
Sessions Management API

This module provides API endpoints for managing chat sessions: creation,
selection, deletion, streamed messages, retry, cancellation, image requests
and a live event stream.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from ..images import ImageExchange
from ..manager_singleton import ManagerSingleton
from .models import ImagePart
from .orchestrator import StreamingOrchestrator
from .retry import RetryCoordinator
from .service import SessionsService
from .store import SessionStore

# Router setup
router = APIRouter(prefix="/sessions", tags=["Sessions"])


class MessageRequest(BaseModel):
    """Request model for a user turn."""
    text: str = Field("", description="The message text")
    image: Optional[ImagePart] = Field(None, description="Optional inline image (mimeType + base64 data)")


class ImageRequest(BaseModel):
    """Request model for an image generation exchange."""
    prompt: str = Field(..., description="What the image should show")


class SessionResponse(BaseModel):
    """Snapshot of one session."""
    id: str
    title: str
    titled: bool
    messages: List[Dict[str, Any]] = Field(default_factory=list, description="Transcript in stored record format")
    is_active: bool
    is_generating: bool
    can_retry: bool = Field(False, description="Whether the transcript ends in a failure that retry can re-run")
    retried: Optional[bool] = None


class SessionListResponse(BaseModel):
    """Response model for session list."""
    sessions: List[SessionResponse]
    active_session_id: Optional[str]
    total_count: int
    timestamp: str


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    store: SessionStore = Depends(ManagerSingleton.get_session_store),
    orchestrator: StreamingOrchestrator = Depends(ManagerSingleton.get_orchestrator),
):
    """List sessions, most recent first."""
    return await SessionsService.list_sessions(store, orchestrator)


@router.post("", response_model=SessionResponse, status_code=201)
async def create_session(
    store: SessionStore = Depends(ManagerSingleton.get_session_store),
    orchestrator: StreamingOrchestrator = Depends(ManagerSingleton.get_orchestrator),
):
    """Open a new session and make it active."""
    return await SessionsService.create_session(store, orchestrator)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    store: SessionStore = Depends(ManagerSingleton.get_session_store),
    orchestrator: StreamingOrchestrator = Depends(ManagerSingleton.get_orchestrator),
):
    """Get a single session."""
    return await SessionsService.get_session(session_id, store, orchestrator)


@router.post("/{session_id}/select")
async def select_session(session_id: str, store: SessionStore = Depends(ManagerSingleton.get_session_store)):
    """Make a session active. Unknown ids leave the selection unchanged."""
    return await SessionsService.select_session(session_id, store)


@router.delete("/{session_id}")
async def delete_session(
    session_id: str,
    store: SessionStore = Depends(ManagerSingleton.get_session_store),
    orchestrator: StreamingOrchestrator = Depends(ManagerSingleton.get_orchestrator),
):
    """Delete a session and its stored record."""
    return await SessionsService.delete_session(session_id, store, orchestrator)


@router.post("/{session_id}/messages", response_model=SessionResponse, status_code=202)
async def send_message(
    session_id: str,
    request: MessageRequest,
    store: SessionStore = Depends(ManagerSingleton.get_session_store),
    orchestrator: StreamingOrchestrator = Depends(ManagerSingleton.get_orchestrator),
):
    """Send a user turn; the reply streams into the transcript in the background."""
    return await SessionsService.send_message(session_id, request.text, request.image, store, orchestrator)


@router.post("/{session_id}/retry", response_model=SessionResponse, status_code=202)
async def retry_session(
    session_id: str,
    store: SessionStore = Depends(ManagerSingleton.get_session_store),
    orchestrator: StreamingOrchestrator = Depends(ManagerSingleton.get_orchestrator),
    retry: RetryCoordinator = Depends(ManagerSingleton.get_retry_coordinator),
):
    """Retry the last user turn after a failed reply."""
    return await SessionsService.retry(session_id, store, orchestrator, retry)


@router.post("/{session_id}/cancel")
async def cancel_generation(
    session_id: str,
    store: SessionStore = Depends(ManagerSingleton.get_session_store),
    orchestrator: StreamingOrchestrator = Depends(ManagerSingleton.get_orchestrator),
):
    """Stop the active generation for a session, keeping the text received so far."""
    return await SessionsService.cancel(session_id, store, orchestrator)


@router.post("/{session_id}/images", response_model=SessionResponse)
async def generate_image(
    session_id: str,
    request: ImageRequest,
    store: SessionStore = Depends(ManagerSingleton.get_session_store),
    orchestrator: StreamingOrchestrator = Depends(ManagerSingleton.get_orchestrator),
    images: ImageExchange = Depends(ManagerSingleton.get_image_exchange),
):
    """Run an image generation exchange in the session."""
    return await SessionsService.generate_image(session_id, request.prompt, store, orchestrator, images)


@router.get("/{session_id}/events")
async def session_events(
    session_id: str,
    request: Request,
    store: SessionStore = Depends(ManagerSingleton.get_session_store),
    orchestrator: StreamingOrchestrator = Depends(ManagerSingleton.get_orchestrator),
):
    """Server-Sent Events stream of session snapshots."""
    return await SessionsService.stream_events(session_id, store, orchestrator, request)

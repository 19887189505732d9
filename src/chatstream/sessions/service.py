"""
Sessions Service Layer

This module contains the business logic behind the session endpoints,
separated from the API layer for better maintainability.
"""

import asyncio
import json
from datetime import datetime
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import StreamingResponse
from loguru import logger

from ..exceptions import GenerationInProgress, SessionNotFound
from ..images import ImageExchange
from .models import ChatSession, ImagePart, Message
from .orchestrator import StreamingOrchestrator
from .retry import RetryCoordinator
from .store import SessionStore

KEEP_ALIVE_SECONDS = 15


def deleted_event(session_id: str) -> str:
    return f"data: {json.dumps({'type': 'deleted', 'data': {'id': session_id}})}\n\n"


def session_snapshot(session: ChatSession, store: SessionStore, orchestrator: StreamingOrchestrator) -> dict[str, Any]:
    return {
        "id": session.id,
        "title": session.title,
        "titled": session.titled,
        "messages": [message.to_json_dict() for message in session.messages],
        "is_active": store.active_id == session.id,
        "is_generating": orchestrator.is_active(session.id),
        "can_retry": session.can_retry and not orchestrator.is_active(session.id),
    }


class SessionsService:
    """Service class for session management operations."""

    @staticmethod
    def _require(store: SessionStore, session_id: str) -> ChatSession:
        try:
            return store.require(session_id)
        except SessionNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))

    @staticmethod
    async def list_sessions(store: SessionStore, orchestrator: StreamingOrchestrator) -> dict[str, Any]:
        sessions = [session_snapshot(s, store, orchestrator) for s in store.list_sessions()]
        return {
            "sessions": sessions,
            "active_session_id": store.active_id,
            "total_count": len(sessions),
            "timestamp": datetime.now().isoformat(),
        }

    @staticmethod
    async def create_session(store: SessionStore, orchestrator: StreamingOrchestrator) -> dict[str, Any]:
        session = store.create()
        return session_snapshot(session, store, orchestrator)

    @staticmethod
    async def get_session(session_id: str, store: SessionStore, orchestrator: StreamingOrchestrator) -> dict[str, Any]:
        session = SessionsService._require(store, session_id)
        return session_snapshot(session, store, orchestrator)

    @staticmethod
    async def select_session(session_id: str, store: SessionStore) -> dict[str, Any]:
        store.select(session_id)
        return {"active_session_id": store.active_id, "timestamp": datetime.now().isoformat()}

    @staticmethod
    async def delete_session(session_id: str, store: SessionStore, orchestrator: StreamingOrchestrator) -> dict[str, Any]:
        orchestrator.cancel(session_id)
        if not store.delete(session_id):
            raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
        return {
            "message": f"Session '{session_id}' deleted successfully",
            "session_id": session_id,
            "active_session_id": store.active_id,
            "timestamp": datetime.now().isoformat(),
        }

    @staticmethod
    async def send_message(
        session_id: str,
        text: str,
        image: ImagePart | None,
        store: SessionStore,
        orchestrator: StreamingOrchestrator,
    ) -> dict[str, Any]:
        """Start a generation. Only one generation may run across the whole application."""
        SessionsService._require(store, session_id)
        if not text.strip() and image is None:
            raise HTTPException(status_code=400, detail="Message must contain text or an image")
        if orchestrator.is_generating:
            raise HTTPException(status_code=409, detail="A response is already being generated")
        try:
            orchestrator.send(session_id, Message.user(text, image=image))
        except GenerationInProgress as e:
            raise HTTPException(status_code=409, detail=str(e))
        return session_snapshot(store.require(session_id), store, orchestrator)

    @staticmethod
    async def retry(
        session_id: str, store: SessionStore, orchestrator: StreamingOrchestrator, retry: RetryCoordinator
    ) -> dict[str, Any]:
        SessionsService._require(store, session_id)
        if orchestrator.is_generating:
            raise HTTPException(status_code=409, detail="A response is already being generated")
        try:
            task = retry.retry(session_id)
        except GenerationInProgress as e:
            raise HTTPException(status_code=409, detail=str(e))
        snapshot = session_snapshot(store.require(session_id), store, orchestrator)
        snapshot["retried"] = task is not None
        return snapshot

    @staticmethod
    async def cancel(session_id: str, store: SessionStore, orchestrator: StreamingOrchestrator) -> dict[str, Any]:
        SessionsService._require(store, session_id)
        return {"session_id": session_id, "cancelled": orchestrator.cancel(session_id)}

    @staticmethod
    async def generate_image(
        session_id: str, prompt: str, store: SessionStore, orchestrator: StreamingOrchestrator, images: ImageExchange
    ) -> dict[str, Any]:
        SessionsService._require(store, session_id)
        if not prompt.strip():
            raise HTTPException(status_code=400, detail="Prompt cannot be empty")
        try:
            await images.generate(session_id, prompt)
        except GenerationInProgress as e:
            raise HTTPException(status_code=409, detail=str(e))
        return session_snapshot(store.require(session_id), store, orchestrator)

    @staticmethod
    async def stream_events(
        session_id: str,
        store: SessionStore,
        orchestrator: StreamingOrchestrator,
        request: Request | None = None,
    ) -> StreamingResponse:
        """Stream session snapshots as Server-Sent Events whenever the session changes."""
        SessionsService._require(store, session_id)

        async def sse_generator():
            queue = store.subscribe()
            try:
                session = store.get(session_id)
                if session is None:
                    # Deleted between the request check and the first read.
                    yield deleted_event(session_id)
                    return
                payload = {"type": "session", "data": session_snapshot(session, store, orchestrator)}
                yield f"data: {json.dumps(payload)}\n\n"

                while True:
                    if request and await request.is_disconnected():
                        logger.debug(f"Event stream client for {session_id} disconnected")
                        break
                    try:
                        changed = await asyncio.wait_for(queue.get(), timeout=KEEP_ALIVE_SECONDS)
                    except TimeoutError:
                        yield ": keep-alive\n\n"
                        continue
                    if changed is not None and changed != session_id:
                        continue

                    session = store.get(session_id)
                    if session is None:
                        yield deleted_event(session_id)
                        break
                    payload = {"type": "session", "data": session_snapshot(session, store, orchestrator)}
                    yield f"data: {json.dumps(payload)}\n\n"
            finally:
                store.unsubscribe(queue)

        headers = {
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        }
        return StreamingResponse(sse_generator(), media_type="text/event-stream", headers=headers)

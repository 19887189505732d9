"""
Streaming Orchestrator

Owns the lifecycle of each generation: appends the exchange, streams chunks
from the backend into the trailing assistant message through a throttled
flusher, honors cooperative cancellation, finalizes the transcript and
converts failures into transcript state.
"""

import asyncio
from typing import Optional

from loguru import logger

from ..advisory import AdvisoryState
from ..constants import GENERIC_ERROR_PREFIX, QUOTA_ADVISORY_MESSAGE, QUOTA_ERROR_TEXT
from ..exceptions import ErrorKind, GenerationInProgress, classify_error
from ..llm.client import Capabilities
from ..user_config import AppConfig
from .codec import content_parts
from .models import Message
from .store import SessionStore
from .throttle import Clock, ThrottledFlusher
from .title import TitleGenerator


class CancellationToken:
    """Per-generation cancellation flag, polled at chunk boundaries."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def error_text(kind: ErrorKind, message: str) -> str:
    if kind == ErrorKind.QUOTA:
        return QUOTA_ERROR_TEXT
    return f"{GENERIC_ERROR_PREFIX} {message}".strip()


class StreamingOrchestrator:
    """Runs generations as background tasks, one per session at most."""

    def __init__(
        self,
        store: SessionStore,
        client,
        titles: TitleGenerator,
        advisory: AdvisoryState,
        config: AppConfig,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.client = client
        self.titles = titles
        self.advisory = advisory
        self.config = config
        self.clock = clock
        self._tokens: dict[str, CancellationToken] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def is_generating(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    def is_active(self, session_id: str) -> bool:
        task = self._tasks.get(session_id)
        return task is not None and not task.done()

    def send(self, session_id: str, user_message: Message) -> asyncio.Task:
        """
        Append the user message and a loading placeholder in one step, then
        stream the reply in the background.
        """
        self._ensure_idle(session_id)
        if self.store.require(session_id).in_flight:
            raise GenerationInProgress(f"Session {session_id} already has a message in flight")
        self.store.append_messages(session_id, user_message, Message.placeholder())
        return self.start(session_id, user_message)

    def start(self, session_id: str, user_message: Message) -> asyncio.Task:
        """
        Stream a reply for user_message into the session's trailing loading
        message, which must already be in place.
        """
        self._ensure_idle(session_id)
        self._tokens.pop(session_id, None)
        token = CancellationToken()
        self._tokens[session_id] = token
        task = asyncio.create_task(self._generate(session_id, user_message, token), name=f"generate-{session_id}")
        self._tasks[session_id] = task
        task.add_done_callback(lambda t: self._release(session_id, t))
        return task

    def cancel(self, session_id: str) -> bool:
        """Request cancellation of the session's active generation, if any."""
        if not self.is_active(session_id):
            return False
        token = self._tokens.get(session_id)
        if token is not None and not token.cancelled:
            logger.info(f"Cancelling generation for session {session_id}")
            token.cancel()
        return True

    def _ensure_idle(self, session_id: str) -> None:
        if self.is_active(session_id):
            raise GenerationInProgress(f"Session {session_id} is already generating")

    def _release(self, session_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(session_id) is task:
            self._tasks.pop(session_id, None)
            self._tokens.pop(session_id, None)

    async def _generate(self, session_id: str, user_message: Message, token: CancellationToken) -> None:
        session = self.store.get(session_id)
        if session is None:
            logger.debug(f"Session {session_id} was deleted before generation started")
            return
        conversation = session.chat
        parts = content_parts(user_message)
        flusher = ThrottledFlusher(
            lambda text: self.store.update_trailing(session_id, text=text),
            self.config.throttle_window,
            clock=self.clock,
        )
        logger.info(f"Starting generation for session {session_id}")

        try:
            stream = self.client.stream_turn(conversation, parts, Capabilities(search=self.config.search_enabled))
            try:
                async for fragment in stream:
                    if token.cancelled:
                        logger.info(f"Generation cancelled for session {session_id}")
                        break
                    flusher.push(fragment)
            finally:
                await stream.aclose()
        except asyncio.CancelledError:
            flusher.flush()
            flusher.stop()
            self.store.update_trailing(session_id, is_loading=False)
            raise
        except Exception as e:
            flusher.stop()
            self._fail(session_id, e)
            return

        flusher.flush()
        flusher.stop()
        text = flusher.text
        self.store.update_trailing(session_id, text=text, is_loading=False)
        conversation.add_exchange(parts, text)
        logger.info(f"Generation finished for session {session_id} ({len(text)} chars)")

        if text and self.store.mark_titled(session_id):
            self.titles.schedule(session_id)

    def _fail(self, session_id: str, exc: Exception) -> None:
        kind = classify_error(exc)
        message = getattr(exc, "message", None) or str(exc) or "An unexpected error occurred"
        logger.error(f"Generation failed for session {session_id} ({kind.value}): {message}")
        if kind == ErrorKind.QUOTA:
            self.advisory.raise_quota(QUOTA_ADVISORY_MESSAGE)
        self.store.update_trailing(
            session_id,
            text=error_text(kind, message),
            is_loading=False,
            is_error=True,
            error_kind=kind,
        )

    async def drain(self) -> None:
        """Wait for running generations and title tasks to settle."""
        while self.is_generating:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
        await self.titles.drain()

    async def aclose(self) -> None:
        for session_id in list(self._tasks):
            self.cancel(session_id)
        for task in list(self._tasks.values()):
            task.cancel()
        await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
        self.titles.cancel_all()
        await self.titles.drain()

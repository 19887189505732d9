"""
Retry Coordinator

Re-runs the most recent conversational user turn after a failure without
duplicating it in the transcript.
"""

import asyncio
from typing import Optional

from loguru import logger

from ..exceptions import GenerationInProgress
from .models import Message
from .orchestrator import StreamingOrchestrator
from .store import SessionStore


class RetryCoordinator:
    def __init__(self, store: SessionStore, orchestrator: StreamingOrchestrator):
        self.store = store
        self.orchestrator = orchestrator

    def retry(self, session_id: str) -> Optional[asyncio.Task]:
        """
        Prune error messages, append a fresh placeholder and stream a new reply
        to the last user message. Returns None when there is nothing to retry.
        """
        session = self.store.require(session_id)
        if self.orchestrator.is_active(session_id) or session.in_flight:
            raise GenerationInProgress(f"Session {session_id} is already generating")

        if not session.can_retry:
            # Only a trailing conversational failure is re-run.
            logger.debug(f"Session {session_id} does not end in a retryable failure")
            return None
        user_message = next((m for m in reversed(session.messages) if m.is_user), None)
        if user_message is None or user_message.is_image_generation:
            logger.debug(f"No conversational turn to retry in session {session_id}")
            return None

        kept = [m for m in session.messages if not m.is_error]
        position = max(i for i, m in enumerate(kept) if m is user_message)
        self.store.replace_messages(session_id, [*kept, Message.placeholder()])
        # The handle may hold state from the failed attempt, so it is rebuilt
        # from the transcript that precedes the retried turn.
        self.store.rebuild_conversation(session_id, upto=position)

        logger.info(f"Retrying last turn in session {session_id}")
        return self.orchestrator.start(session_id, user_message)

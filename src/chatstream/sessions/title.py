"""
Title Generator

Derives a short session title from the first user message with a one-shot
backend completion, falling back to a truncated prompt on failure. Only the
session title is ever changed here.
"""

import asyncio

from loguru import logger

from ..constants import TITLE_PROMPT_TEMPLATE
from ..user_config import AppConfig
from .store import SessionStore

QUOTE_CHARS = "\"'“”‘’`"


def clean_title(raw: str, max_length: int) -> str:
    """Trim whitespace and surrounding quotes, then cap the length."""
    return raw.strip().strip(QUOTE_CHARS).strip()[:max_length].strip()


def fallback_title(text: str, length: int) -> str:
    return text[:length] + ("..." if len(text) > length else "")


class TitleGenerator:
    def __init__(self, client, store: SessionStore, config: AppConfig):
        self.client = client
        self.store = store
        self.config = config
        self._tasks: set[asyncio.Task] = set()

    def schedule(self, session_id: str) -> asyncio.Task:
        """
        Run generate() in the background for a session whose title claim is
        already held. A cancelled task never sets a title, so its claim is
        released again.
        """
        task = asyncio.create_task(self.generate(session_id), name=f"title-{session_id}")
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(session_id, t))
        return task

    def _finished(self, session_id: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info(f"Title generation for {session_id} cancelled; session left untitled")
            self.store.release_title(session_id)

    async def generate(self, session_id: str) -> str | None:
        session = self.store.get(session_id)
        if session is None:
            return None
        first = session.first_user_message()
        if first is None:
            return None

        try:
            prompt = TITLE_PROMPT_TEMPLATE.format(text=first.text)
            title = clean_title(await self.client.one_shot_complete(prompt), self.config.title_max_length)
            if not title:
                raise ValueError("empty title completion")
        except Exception as e:
            logger.warning(f"Title generation failed for {session_id}, using prompt text: {e}")
            title = fallback_title(first.text, self.config.fallback_title_length)

        self.store.set_title(session_id, title)
        logger.debug(f"Session {session_id} titled '{title}'")
        return title

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()

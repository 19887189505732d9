"""
Session Store

The authoritative in-memory table of sessions. Sessions are kept in an
id-keyed dict with a separate most-recent-first display order. Every mutation
replaces the affected session with a new snapshot and writes the full session
list through to durable storage.
"""

import asyncio
import time
from collections.abc import Iterable
from typing import Optional

from loguru import logger

from ..constants import SESSIONS_KEY
from ..database import KeyValueStorage
from ..exceptions import SessionNotFound, StorageCorruptionError, StorageUnavailableError
from .codec import PersistenceCodec, replay_history
from .models import ChatSession, Message, SessionRecord


class SnapshotWriter:
    """
    Persists encoded session snapshots through a single background writer.
    Only the newest pending snapshot is written; writes never reorder.
    """

    def __init__(self, storage: KeyValueStorage, key: str):
        self._storage = storage
        self._key = key
        self._pending: Optional[bytes] = None
        self._task: Optional[asyncio.Task] = None

    def submit(self, payload: bytes) -> None:
        self._pending = payload
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._pending is not None:
            payload, self._pending = self._pending, None
            try:
                await self._storage.set(self._key, payload)
            except Exception as e:
                logger.error(f"Failed to persist sessions: {e}")

    async def flush(self) -> None:
        """Wait until every submitted snapshot has been written."""
        while self._task is not None and not self._task.done():
            await self._task


class SessionStore:
    """Create/select/delete/list sessions and mutate their transcripts."""

    def __init__(self, storage: KeyValueStorage, codec: PersistenceCodec, client, placeholder_title: str = "New Chat"):
        self.storage = storage
        self.codec = codec
        self.client = client
        self.placeholder_title = placeholder_title
        self._sessions: dict[str, ChatSession] = {}
        self._order: list[str] = []
        self._active_id: Optional[str] = None
        self._last_stamp = 0
        self._subscribers: set[asyncio.Queue] = set()
        self._writer = SnapshotWriter(storage, SESSIONS_KEY)

    # --- Queries ---

    def get(self, session_id: str) -> Optional[ChatSession]:
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> ChatSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(f"Session {session_id} not found")
        return session

    def list_sessions(self) -> list[ChatSession]:
        """Sessions in display order, most recent first."""
        return [self._sessions[session_id] for session_id in self._order]

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active(self) -> Optional[ChatSession]:
        return self._sessions.get(self._active_id) if self._active_id else None

    def __len__(self) -> int:
        return len(self._order)

    # --- Lifecycle ---

    def _new_id(self) -> str:
        stamp = max(int(time.time() * 1000), self._last_stamp + 1)
        self._last_stamp = stamp
        return f"session-{stamp}"

    def create(self) -> ChatSession:
        """Open a new empty session at the front of the list and make it active."""
        session = ChatSession(
            id=self._new_id(),
            title=self.placeholder_title,
            chat=self.client.create_conversation(),
        )
        self._sessions[session.id] = session
        self._order.insert(0, session.id)
        self._active_id = session.id
        logger.info(f"Created session {session.id}")
        self._changed(session.id)
        return session

    def select(self, session_id: str) -> None:
        """Activate a session; unknown ids are ignored."""
        if session_id not in self._sessions:
            logger.debug(f"Ignoring select of unknown session {session_id}")
            return
        self._active_id = session_id
        self._changed(session_id)

    def delete(self, session_id: str) -> bool:
        """Remove a session and its record. Returns False for unknown ids."""
        if self._sessions.pop(session_id, None) is None:
            return False
        self._order.remove(session_id)
        if self._active_id == session_id:
            self._active_id = self._order[0] if self._order else None
        logger.info(f"Deleted session {session_id}")
        self._changed(session_id)
        return True

    def clear(self) -> None:
        """Drop every in-memory session without touching durable records."""
        self._sessions.clear()
        self._order.clear()
        self._active_id = None
        self._notify(None)

    async def load(self) -> list[ChatSession]:
        """
        Read stored records and restore them. Corrupt data is cleared.

        Raises StorageUnavailableError when the stored list cannot be read, so
        no write-through replaces records that were never loaded.
        """
        try:
            raw = await self.storage.get(SESSIONS_KEY)
        except Exception as e:
            logger.error(f"Failed to read stored sessions: {e}")
            raise StorageUnavailableError(f"Stored sessions could not be read: {e}") from e
        if raw is None:
            return []

        try:
            records = self.codec.decode(raw)
        except StorageCorruptionError as e:
            logger.warning(f"Discarding stored sessions: {e}")
            await self.storage.remove(SESSIONS_KEY)
            return []
        return self.restore(records)

    def restore(self, records: Iterable[SessionRecord]) -> list[ChatSession]:
        """
        Rebuild live sessions from durable records, each with a fresh backend
        handle. A record that fails to restore is skipped; the rest proceed.
        """
        restored: list[ChatSession] = []
        seen = set(self._sessions)
        for record in records:
            if record.id in seen:
                logger.warning(f"Skipping duplicate session record {record.id}")
                continue
            try:
                restored.append(self.codec.from_record(record, self.client))
                seen.add(record.id)
            except Exception as e:
                logger.warning(f"Failed to restore session {record.id}: {e}")

        for session in restored:
            self._sessions[session.id] = session
        self._order = [s.id for s in restored] + self._order
        if restored:
            self._active_id = restored[0].id
        logger.info(f"Restored {len(restored)} session(s)")
        self._changed(None)
        return restored

    # --- Transcript mutations ---

    def append_messages(self, session_id: str, *messages: Message) -> ChatSession:
        session = self.require(session_id)
        return self._replace(session.evolve(messages=session.messages + tuple(messages)))

    def replace_messages(self, session_id: str, messages: Iterable[Message]) -> ChatSession:
        session = self.require(session_id)
        return self._replace(session.evolve(messages=tuple(messages)))

    def update_trailing(self, session_id: str, **changes) -> Optional[ChatSession]:
        """
        Update the trailing assistant message while it is still loading.
        Finished messages are immutable; such updates are ignored.
        """
        session = self._sessions.get(session_id)
        if session is None or not session.in_flight or session.trailing.is_user:
            logger.debug(f"No in-flight message to update in session {session_id}")
            return None
        updated = session.trailing.model_copy(update=changes)
        return self._replace(session.evolve(messages=session.messages[:-1] + (updated,)))

    def set_title(self, session_id: str, title: str) -> Optional[ChatSession]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return self._replace(session.evolve(title=title, titled=True))

    def mark_titled(self, session_id: str) -> bool:
        """Claim the one title generation for a session. Returns False if already claimed."""
        session = self._sessions.get(session_id)
        if session is None or session.titled:
            return False
        self._replace(session.evolve(titled=True))
        return True

    def release_title(self, session_id: str) -> None:
        """Give back an unused title claim so the next finished exchange can title the session."""
        session = self._sessions.get(session_id)
        if session is None or not session.titled:
            return
        self._replace(session.evolve(titled=False))

    def rebuild_conversation(self, session_id: str, upto: int | None = None) -> ChatSession:
        """Replace the backend handle with one seeded from the visible transcript."""
        session = self.require(session_id)
        messages = session.messages if upto is None else session.messages[:upto]
        conversation = self.client.create_conversation(replay_history(messages))
        return self._replace(session.evolve(chat=conversation), persist=False)

    # --- Persistence & events ---

    def _replace(self, session: ChatSession, persist: bool = True) -> ChatSession:
        self._sessions[session.id] = session
        if persist:
            self._changed(session.id)
        else:
            self._notify(session.id)
        return session

    def _changed(self, session_id: Optional[str]) -> None:
        self._writer.submit(self.codec.encode(self.list_sessions()))
        self._notify(session_id)

    def _notify(self, session_id: Optional[str]) -> None:
        for queue in self._subscribers:
            queue.put_nowait(session_id)

    def subscribe(self) -> asyncio.Queue:
        """Receive the id of every changed session (None for list-wide changes)."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    async def flush(self) -> None:
        await self._writer.flush()

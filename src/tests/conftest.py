"""
Shared fixtures: an in-process fake backend client and a SQLite-backed store.
"""

import asyncio
from typing import Any, Callable, Optional

import pytest

from chatstream.advisory import AdvisoryState
from chatstream.database import DatabaseManager
from chatstream.llm.client import Capabilities, Conversation
from chatstream.sessions.codec import PersistenceCodec
from chatstream.sessions.orchestrator import StreamingOrchestrator
from chatstream.sessions.retry import RetryCoordinator
from chatstream.sessions.store import SessionStore
from chatstream.sessions.throttle import ManualClock
from chatstream.sessions.title import TitleGenerator
from chatstream.user_config import create_app_config


class FakeClient:
    """Backend client double that streams a fixed list of chunks."""

    def __init__(
        self,
        chunks: Optional[list[str]] = None,
        error: Optional[Exception] = None,
        title: str = "Friendly Greeting",
        title_error: Optional[Exception] = None,
    ):
        self.chunks = list(chunks or [])
        self.error = error
        self.title = title
        self.title_error = title_error
        self.on_chunk: Optional[Callable[[int], None]] = None
        self.block: Optional[asyncio.Event] = None
        self.title_block: Optional[asyncio.Event] = None
        self.stream_calls: list[dict[str, Any]] = []
        self.title_prompts: list[str] = []
        self.conversations: list[Conversation] = []

    def create_conversation(self, history=None, model_id=None) -> Conversation:
        conversation = Conversation(model_id or "fake-model", history)
        self.conversations.append(conversation)
        return conversation

    async def stream_turn(self, conversation, parts, capabilities=Capabilities()):
        self.stream_calls.append({
            "history": list(conversation.history),
            "parts": parts,
            "capabilities": capabilities,
        })
        if self.block is not None:
            await self.block.wait()
        for index, chunk in enumerate(self.chunks):
            if self.on_chunk is not None:
                self.on_chunk(index)
            await asyncio.sleep(0)
            yield chunk
        if self.error is not None:
            raise self.error

    async def one_shot_complete(self, prompt: str, model_id=None) -> str:
        self.title_prompts.append(prompt)
        if self.title_block is not None:
            await self.title_block.wait()
        if self.title_error is not None:
            raise self.title_error
        return self.title


@pytest.fixture
def config():
    return create_app_config(config_id="test")


@pytest.fixture
def client():
    return FakeClient(chunks=["Hi", " there", "!"])


@pytest.fixture
async def database(tmp_path):
    db = DatabaseManager(str(tmp_path / "test.db"))
    await db.initialize()
    return db


@pytest.fixture
def codec(config):
    return PersistenceCodec(config.placeholder_title)


@pytest.fixture
def store(database, codec, client, config):
    return SessionStore(database, codec, client, config.placeholder_title)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def advisory():
    return AdvisoryState()


@pytest.fixture
def titles(client, store, config):
    return TitleGenerator(client, store, config)


@pytest.fixture
def orchestrator(store, client, titles, advisory, config, clock):
    return StreamingOrchestrator(store, client, titles, advisory, config, clock=clock)


@pytest.fixture
def retry(store, orchestrator):
    return RetryCoordinator(store, orchestrator)

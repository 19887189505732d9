"""
Persistence Codec

Converts between live ChatSession snapshots and durable SessionRecords, and
rebuilds backend conversation history from a stored transcript.
"""

import json
from collections.abc import Iterable
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from loguru import logger
from pydantic import ValidationError

from ..exceptions import StorageCorruptionError
from .models import ChatSession, Message, SessionRecord


def content_parts(message: Message) -> list[dict[str, Any]]:
    """
    Build the multimodal content for a user turn.
    The image part, when present, always precedes the text part.
    """
    parts: list[dict[str, Any]] = []
    if message.image is not None:
        parts.append({
            "type": "image_url",
            "image_url": {"url": f"data:{message.image.mime_type};base64,{message.image.data}"},
        })
    if message.text:
        parts.append({"type": "text", "text": message.text})
    return parts


def replay_history(messages: Iterable[Message]) -> list[BaseMessage]:
    """
    Convert a visible transcript into backend history. Error, image
    generation and unfinished messages are not valid turns and are skipped.
    """
    history: list[BaseMessage] = []
    for message in messages:
        if not message.replayable:
            continue
        if message.is_user:
            if message.image is not None:
                history.append(HumanMessage(content=content_parts(message)))
            else:
                history.append(HumanMessage(content=message.text))
        else:
            history.append(AIMessage(content=message.text))
    return history


class PersistenceCodec:
    """Encodes the session list for storage and decodes it back."""

    def __init__(self, placeholder_title: str = "New Chat"):
        self.placeholder_title = placeholder_title

    def to_record(self, session: ChatSession) -> SessionRecord:
        return SessionRecord(
            id=session.id,
            title=session.title,
            messages=list(session.messages),
            titled=session.titled,
        )

    def encode(self, sessions: Iterable[ChatSession]) -> bytes:
        """Serialize sessions as a JSON array of records, dropping live handles."""
        payload = [self.to_record(session).to_json_dict() for session in sessions]
        return json.dumps(payload).encode("utf-8")

    def decode(self, raw: bytes) -> list[SessionRecord]:
        """
        Parse stored session data.

        Raises StorageCorruptionError when the payload as a whole is unreadable.
        Individual records that fail validation are skipped.
        """
        try:
            payload = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as e:
            raise StorageCorruptionError(f"Unreadable session data: {e}") from e
        if not isinstance(payload, list):
            raise StorageCorruptionError(f"Expected a list of sessions, got {type(payload).__name__}")

        records = []
        for index, item in enumerate(payload):
            try:
                records.append(SessionRecord.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable session record #{index}: {e.error_count()} error(s)")
        return records

    def from_record(self, record: SessionRecord, client) -> ChatSession:
        """
        Rebuild a live session. Messages still marked loading belong to a
        generation that never finished and are dropped.
        """
        messages = tuple(m for m in record.messages if not m.is_loading)
        titled = record.titled if record.titled is not None else record.title != self.placeholder_title
        return ChatSession(
            id=record.id,
            title=record.title,
            messages=messages,
            titled=titled,
            chat=client.create_conversation(replay_history(messages)),
        )

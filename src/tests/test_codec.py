"""
Tests for the persistence codec and backend history replay.
"""

import json

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from chatstream.exceptions import ErrorKind, StorageCorruptionError
from chatstream.sessions.codec import content_parts, replay_history
from chatstream.sessions.models import ChatSession, GeneratedImage, ImagePart, Message, Sender, SessionRecord


class TestEncoding:
    def test_records_use_camel_case_keys(self, codec):
        session = ChatSession(
            id="session-1",
            title="Cats",
            messages=(
                Message.user("Show me", image=ImagePart(mime_type="image/png", data="AAAA")),
                Message(sender=Sender.ASSISTANT, text="Oops", is_error=True, error_kind=ErrorKind.QUOTA),
            ),
            titled=True,
            chat=object(),
        )

        payload = json.loads(codec.encode([session]))

        assert payload == [{
            "id": "session-1",
            "title": "Cats",
            "titled": True,
            "messages": [
                {
                    "sender": "user",
                    "text": "Show me",
                    "image": {"mimeType": "image/png", "data": "AAAA"},
                    "isLoading": False,
                    "isError": False,
                    "isImageGeneration": False,
                },
                {
                    "sender": "ai",
                    "text": "Oops",
                    "isLoading": False,
                    "isError": True,
                    "isImageGeneration": False,
                    "errorKind": "quota",
                },
            ],
        }]

    def test_live_handle_is_not_serialized(self, codec):
        session = ChatSession(id="session-1", title="New Chat", chat=object())
        assert "chat" not in json.loads(codec.encode([session]))[0]


class TestDecoding:
    def test_browser_format_is_accepted(self, codec):
        raw = json.dumps([{
            "id": "session-1700000000000",
            "title": "Trip ideas",
            "messages": [
                {"sender": "user", "text": "Where to go?"},
                {
                    "sender": "ai",
                    "text": "Here's your generated image.",
                    "generatedImage": {"url": "https://x/y", "prompt": "beach", "model": "Pollinations AI"},
                },
            ],
        }]).encode()

        records = codec.decode(raw)

        assert len(records) == 1
        assert records[0].titled is None
        assert records[0].messages[1].generated_image == GeneratedImage(
            url="https://x/y", prompt="beach", model="Pollinations AI"
        )

    @pytest.mark.parametrize("raw", [b"not json", b"{\"id\": 1}", b"\xff\xfe"])
    def test_corrupt_payload_raises(self, codec, raw):
        with pytest.raises(StorageCorruptionError):
            codec.decode(raw)

    def test_invalid_records_are_skipped(self, codec):
        raw = json.dumps([
            {"id": "session-1", "title": "Good", "messages": []},
            {"title": "Missing id"},
            {"id": "session-2", "title": "Bad sender", "messages": [{"sender": "robot"}]},
        ]).encode()

        records = codec.decode(raw)

        assert [r.id for r in records] == ["session-1"]


class TestRestore:
    def test_loading_messages_are_dropped(self, codec, client):
        record = SessionRecord(
            id="session-1",
            title="New Chat",
            messages=[Message.user("Hi"), Message.placeholder("half a rep")],
        )

        session = codec.from_record(record, client)

        assert [m.text for m in session.messages] == ["Hi"]
        assert not session.in_flight

    def test_titled_defaults_from_title(self, codec, client):
        untitled = codec.from_record(SessionRecord(id="a", title="New Chat"), client)
        titled = codec.from_record(SessionRecord(id="b", title="Cats"), client)
        explicit = codec.from_record(SessionRecord(id="c", title="New Chat", titled=True), client)

        assert untitled.titled is False
        assert titled.titled is True
        assert explicit.titled is True

    def test_handle_is_seeded_from_transcript(self, codec, client):
        record = SessionRecord(
            id="session-1",
            title="Cats",
            messages=[
                Message.user("Hello"),
                Message(sender=Sender.ASSISTANT, text="Hi!"),
                Message.user("Again"),
                Message(sender=Sender.ASSISTANT, text="Sorry", is_error=True),
            ],
        )

        session = codec.from_record(record, client)

        assert [type(m) for m in session.chat.history] == [HumanMessage, AIMessage, HumanMessage]
        assert session.chat.history[1].content == "Hi!"


class TestHistoryReplay:
    def test_image_part_precedes_text(self):
        message = Message.user("What is it?", image=ImagePart(mime_type="image/jpeg", data="Zm9v"))

        parts = content_parts(message)

        assert parts == [
            {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,Zm9v"}},
            {"type": "text", "text": "What is it?"},
        ]

    def test_image_generation_turns_are_skipped(self):
        history = replay_history([
            Message.user("Generate image: cat", is_image_generation=True),
            Message(sender=Sender.ASSISTANT, text="Here's your generated image.", is_image_generation=True),
            Message.user("Hello"),
        ])

        assert len(history) == 1
        assert history[0].content == "Hello"

    def test_multimodal_turn_keeps_parts(self):
        history = replay_history([Message.user("Look", image=ImagePart(mime_type="image/png", data="AAAA"))])

        assert isinstance(history[0].content, list)
        assert history[0].content[0]["type"] == "image_url"

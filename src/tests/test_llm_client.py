"""
Tests for the LiteLLM-backed generative client.
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage

from chatstream.exceptions import BackendError, CredentialError, ErrorKind
from chatstream.llm import Capabilities, GenerativeClient, LLMFactory
from chatstream.llm.client import chunk_text


class FakeChatModel:
    """Stands in for ChatLiteLLM, recording what it was asked to stream."""

    def __init__(self, contents=(), error=None):
        self.contents = list(contents)
        self.error = error
        self.calls = []
        self.ainvoke = AsyncMock(return_value=AIMessage(content='"Weekend Plans"'))

    async def astream(self, messages, **kwargs):
        self.calls.append({"messages": messages, "kwargs": kwargs})
        for content in self.contents:
            yield AIMessageChunk(content=content)
        if self.error is not None:
            raise self.error


@pytest.fixture
def fake_model():
    return FakeChatModel(contents=["Hel", "", "lo", [{"type": "text", "text": "!"}]])


@pytest.fixture
def backend(config, fake_model):
    with patch.object(LLMFactory, "create_chat_model", return_value=fake_model) as factory:
        client = GenerativeClient("test-key", config)
        client.factory_mock = factory
        yield client


class TestGenerativeClient:
    def test_blank_key_is_rejected(self, config):
        with pytest.raises(CredentialError):
            GenerativeClient("   ", config)

    def test_conversation_is_seeded_with_history(self, config):
        client = GenerativeClient("test-key", config)
        history = [HumanMessage(content="Hi"), AIMessage(content="Hello")]

        conversation = client.create_conversation(history)

        assert conversation.model_id == config.model_name
        assert len(conversation) == 2
        assert conversation.history is not history

    @pytest.mark.asyncio
    async def test_stream_turn_yields_non_empty_text(self, backend, fake_model):
        conversation = backend.create_conversation([HumanMessage(content="Earlier")])

        fragments = [f async for f in backend.stream_turn(conversation, [{"type": "text", "text": "Hi"}])]

        assert fragments == ["Hel", "lo", "!"]
        sent = fake_model.calls[0]["messages"]
        assert sent[0].content == "Earlier"
        assert sent[-1].content == [{"type": "text", "text": "Hi"}]
        assert len(conversation) == 1

    @pytest.mark.asyncio
    async def test_search_capability_requests_tool(self, backend, fake_model):
        conversation = backend.create_conversation()

        [_ async for _ in backend.stream_turn(conversation, [], Capabilities(search=True))]
        [_ async for _ in backend.stream_turn(conversation, [], Capabilities(search=False))]

        assert fake_model.calls[0]["kwargs"] == {"tools": [{"googleSearch": {}}]}
        assert fake_model.calls[1]["kwargs"] == {}

    @pytest.mark.asyncio
    async def test_model_is_created_with_credential(self, backend, config):
        conversation = backend.create_conversation()

        [_ async for _ in backend.stream_turn(conversation, [])]

        llm_config, api_key = backend.factory_mock.call_args.args
        assert api_key == "test-key"
        assert llm_config["model_name"] == config.model_name
        assert backend.factory_mock.call_args.kwargs == {"streaming": True}

    @pytest.mark.asyncio
    async def test_quota_failure_is_classified(self, backend, fake_model):
        fake_model.error = Exception("429 RESOURCE_EXHAUSTED: quota exceeded")
        conversation = backend.create_conversation()

        with pytest.raises(BackendError) as exc_info:
            [_ async for _ in backend.stream_turn(conversation, [])]

        assert exc_info.value.kind == ErrorKind.QUOTA

    @pytest.mark.asyncio
    async def test_other_failure_is_transient(self, backend, fake_model):
        fake_model.error = ConnectionError("reset by peer")
        conversation = backend.create_conversation()

        with pytest.raises(BackendError) as exc_info:
            [_ async for _ in backend.stream_turn(conversation, [])]

        assert exc_info.value.kind == ErrorKind.TRANSIENT
        assert exc_info.value.message == "reset by peer"

    @pytest.mark.asyncio
    async def test_one_shot_complete(self, backend, fake_model, config):
        result = await backend.one_shot_complete("Title please")

        assert result == '"Weekend Plans"'
        fake_model.ainvoke.assert_awaited_once_with("Title please")
        llm_config = backend.factory_mock.call_args.args[0]
        assert llm_config["model_name"] == config.title_model_name
        assert backend.factory_mock.call_args.kwargs == {"streaming": False}


class TestChunkText:
    def test_string_content(self):
        assert chunk_text("abc") == "abc"

    def test_part_list_content(self):
        assert chunk_text([{"type": "text", "text": "a"}, "b", {"type": "image_url"}]) == "ab"

    def test_empty_content(self):
        assert chunk_text(None) == ""


class TestLLMFactory:
    def test_create_chat_model_passes_settings(self, config):
        with patch("chatstream.llm.factory.ChatLiteLLM") as chat_cls:
            chat_cls.return_value = Mock()
            LLMFactory.create_chat_model(config.get_llm_config(), "secret", streaming=True)

        kwargs = chat_cls.call_args.kwargs
        assert kwargs["model"] == "gemini/gemini-2.5-flash"
        assert kwargs["api_key"] == "secret"
        assert kwargs["streaming"] is True
        assert kwargs["request_timeout"] == 60.0
        assert kwargs["max_retries"] == 2

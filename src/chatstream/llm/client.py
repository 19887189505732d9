"""
Generative Backend Client

Exposes the three capabilities the session layer needs: creating a
conversation handle seeded with history, streaming one turn, and a one-shot
completion used for titles. Backend failures are re-raised as BackendError.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from loguru import logger

from ..exceptions import BackendError, CredentialError, classify_error
from ..user_config import AppConfig
from .factory import LLMFactory

GOOGLE_SEARCH_TOOL = {"googleSearch": {}}


@dataclass(frozen=True)
class Capabilities:
    """Optional backend features requested for a streamed turn."""

    search: bool = False


class Conversation:
    """
    Live conversation handle: a model id plus the history replayed to the
    backend on every turn.
    """

    def __init__(self, model_id: str, history: list[BaseMessage] | None = None):
        self.model_id = model_id
        self.history: list[BaseMessage] = list(history or [])

    def add_exchange(self, user_content: str | list[dict[str, Any]], reply: str) -> None:
        self.history.append(HumanMessage(content=user_content))
        self.history.append(AIMessage(content=reply))

    def __len__(self) -> int:
        return len(self.history)


def chunk_text(content: Any) -> str:
    """Extract plain text from a message chunk's content."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content
        )
    return str(content or "")


def to_backend_error(exc: Exception) -> BackendError:
    if isinstance(exc, BackendError):
        return exc
    return BackendError(classify_error(exc), str(exc) or exc.__class__.__name__)


class GenerativeClient:
    """LiteLLM-backed implementation of the backend capability set."""

    def __init__(self, api_key: str, config: AppConfig):
        if not api_key or not api_key.strip():
            raise CredentialError("Invalid API Key")
        self._api_key = api_key.strip()
        self.config = config
        logger.info(f"GenerativeClient initialized for model {config.model_name}")

    def _chat_model(self, model_id: str, streaming: bool):
        llm_config = {**self.config.get_llm_config(), "model_name": model_id}
        return LLMFactory.create_chat_model(llm_config, self._api_key, streaming=streaming)

    def create_conversation(self, history: list[BaseMessage] | None = None, model_id: str | None = None) -> Conversation:
        return Conversation(model_id or self.config.model_name, history)

    async def stream_turn(
        self,
        conversation: Conversation,
        parts: list[dict[str, Any]],
        capabilities: Capabilities = Capabilities(),
    ) -> AsyncIterator[str]:
        """
        Stream the reply to one user turn as text fragments.
        The conversation history is not modified; callers record the exchange.
        """
        llm = self._chat_model(conversation.model_id, streaming=True)
        kwargs: dict[str, Any] = {}
        if capabilities.search:
            kwargs["tools"] = [GOOGLE_SEARCH_TOOL]

        messages = [*conversation.history, HumanMessage(content=parts)]
        try:
            async for chunk in llm.astream(messages, **kwargs):
                text = chunk_text(chunk.content)
                if text:
                    yield text
        except Exception as e:
            raise to_backend_error(e) from e

    async def one_shot_complete(self, prompt: str, model_id: str | None = None) -> str:
        llm = self._chat_model(model_id or self.config.title_model_name, streaming=False)
        try:
            result = await llm.ainvoke(prompt)
        except Exception as e:
            raise to_backend_error(e) from e
        return chunk_text(result.content)

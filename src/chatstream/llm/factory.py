"""
LLM Provider Factory

Simplified factory for creating ChatLiteLLM instances.
"""

from typing import Any

from langchain_litellm import ChatLiteLLM
from loguru import logger


class LLMFactory:
    """Simplified factory for creating ChatLiteLLM instances."""

    @classmethod
    def create_chat_model(cls, config: dict[str, Any], api_key: str, streaming: bool = False) -> ChatLiteLLM:
        """
        Creates a ChatLiteLLM (LangChain wrapper) instance.

        Args:
            config: LLM configuration dictionary (see AppConfig.get_llm_config).
            api_key: Backend credential passed explicitly to LiteLLM.
            streaming: Whether the model should stream by default.

        Returns:
            ChatLiteLLM instance
        """
        llm_args = {
            "model": config["model_name"],
            "api_key": api_key,
            "temperature": config.get("temperature", 0.7),
            "streaming": streaming,
        }

        if config.get("request_timeout") is not None:
            llm_args["request_timeout"] = config["request_timeout"]

        if config.get("max_retries") is not None:
            llm_args["max_retries"] = config["max_retries"]

        logger.debug(f"Creating LLM with args: {[k for k in llm_args if k != 'api_key']}")
        return ChatLiteLLM(**llm_args)

"""
LLM Provider Abstraction Layer

Backend client for streamed conversation turns and one-shot completions,
built on ChatLiteLLM for unified access.
"""

from .client import Capabilities, Conversation, GenerativeClient
from .factory import LLMFactory

__all__ = [
    "Capabilities",
    "Conversation",
    "GenerativeClient",
    "LLMFactory",
]

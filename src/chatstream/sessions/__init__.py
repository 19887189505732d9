"""
Session Management Module

This module provides session orchestration: the session table and its
persistence, streamed generation, retry and automatic titling.
"""

from .models import ChatSession, GeneratedImage, ImagePart, Message, Sender, SessionRecord
from .orchestrator import CancellationToken, StreamingOrchestrator
from .retry import RetryCoordinator
from .store import SessionStore
from .title import TitleGenerator

__all__ = [
    "CancellationToken",
    "ChatSession",
    "GeneratedImage",
    "ImagePart",
    "Message",
    "RetryCoordinator",
    "Sender",
    "SessionRecord",
    "SessionStore",
    "StreamingOrchestrator",
    "TitleGenerator",
]

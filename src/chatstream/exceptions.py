"""
Custom exceptions for the chat service layer.
These exceptions should be caught and converted to HTTP responses in the API layer.
"""

from enum import Enum

import litellm


class ErrorKind(str, Enum):
    """Failure classes a generation or storage operation can end in."""

    CREDENTIAL = "credential"
    QUOTA = "quota"
    TRANSIENT = "transient"
    IMAGE_GENERATION = "image_generation"
    STORAGE = "storage"


QUOTA_MARKERS = ("429", "quota", "RESOURCE_EXHAUSTED")


class ChatServiceError(Exception):
    """Base exception for all chat service errors."""
    pass

class CredentialError(ChatServiceError):
    """Raised when the backend credential is missing or invalid."""
    pass

class SessionNotFound(ChatServiceError):
    """Raised when a session id is not in the session table."""
    pass

class GenerationInProgress(ChatServiceError):
    """Raised when a send is attempted while a generation is still running."""
    pass

class StorageCorruptionError(ChatServiceError):
    """Raised when stored session data cannot be parsed."""
    pass

class StorageUnavailableError(ChatServiceError):
    """Raised when stored session data cannot be read at all."""
    pass

class ImageGenerationError(ChatServiceError):
    """Raised when the image generation collaborator fails."""
    pass

class BackendError(ChatServiceError):
    """A backend failure surfaced as a kind + message pair."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


def classify_error(exc: BaseException) -> ErrorKind:
    """Map any exception raised during a generation onto an ErrorKind."""
    if isinstance(exc, BackendError):
        return exc.kind
    if isinstance(exc, CredentialError):
        return ErrorKind.CREDENTIAL
    if isinstance(exc, ImageGenerationError):
        return ErrorKind.IMAGE_GENERATION

    if isinstance(exc, litellm.RateLimitError):
        return ErrorKind.QUOTA
    if isinstance(exc, litellm.AuthenticationError):
        return ErrorKind.CREDENTIAL

    message = str(exc)
    if any(marker in message for marker in QUOTA_MARKERS):
        return ErrorKind.QUOTA
    return ErrorKind.TRANSIENT

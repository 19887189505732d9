"""
Session Data Classes

Messages and durable records are immutable pydantic models serialized with the
camelCase keys of the browser-stored format. A live ChatSession is a frozen
dataclass; every change produces a new snapshot.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..exceptions import ErrorKind

# These need a different corrective action: re-enter the key or submit a new prompt.
NON_RETRYABLE_KINDS = (ErrorKind.CREDENTIAL, ErrorKind.IMAGE_GENERATION)


class Sender(str, Enum):
    USER = "user"
    ASSISTANT = "ai"


class RecordModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ImagePart(RecordModel):
    """Inline image attached to a user turn."""

    mime_type: str
    data: str = Field(..., description="Base64-encoded image bytes")


class GeneratedImage(RecordModel):
    """Reference to an image produced by the image generation collaborator."""

    url: str
    prompt: str
    model: str


class Message(RecordModel):
    """
    One transcript entry. User messages never change once created; an
    assistant message only changes while is_loading is set.
    """

    sender: Sender
    text: str = ""
    image: Optional[ImagePart] = None
    generated_image: Optional[GeneratedImage] = None
    is_loading: bool = False
    is_error: bool = False
    is_image_generation: bool = False
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def user(cls, text: str, image: Optional[ImagePart] = None, **flags) -> "Message":
        return cls(sender=Sender.USER, text=text, image=image, **flags)

    @classmethod
    def placeholder(cls, text: str = "", **flags) -> "Message":
        """A loading assistant message awaiting content."""
        return cls(sender=Sender.ASSISTANT, text=text, is_loading=True, **flags)

    @property
    def is_user(self) -> bool:
        return self.sender == Sender.USER

    @property
    def offers_retry(self) -> bool:
        """Whether this failure can be fixed by re-running the same turn."""
        return self.is_error and not self.is_image_generation and self.error_kind not in NON_RETRYABLE_KINDS

    @property
    def replayable(self) -> bool:
        """Whether this message is a valid backend turn when rebuilding history."""
        return not (self.is_error or self.is_image_generation or self.is_loading)


class SessionRecord(RecordModel):
    """Durable form of a session: everything except the live backend handle."""

    id: str
    title: str
    messages: list[Message] = Field(default_factory=list)
    titled: Optional[bool] = None


@dataclass(frozen=True)
class ChatSession:
    """
    A live session snapshot.

    `chat` is the transient backend conversation handle. It is never
    serialized and is re-created from the message history on restore.
    """
    id: str
    title: str
    messages: tuple[Message, ...] = ()
    titled: bool = False
    chat: Any = field(default=None, compare=False, repr=False)

    @property
    def trailing(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None

    @property
    def in_flight(self) -> bool:
        trailing = self.trailing
        return trailing is not None and trailing.is_loading

    @property
    def can_retry(self) -> bool:
        """Only a transcript that ends in a retryable failure offers retry."""
        trailing = self.trailing
        return trailing is not None and trailing.offers_retry

    def first_user_message(self) -> Optional[Message]:
        return next((m for m in self.messages if m.is_user), None)

    def evolve(self, **changes) -> "ChatSession":
        """Return a new snapshot with the given fields replaced."""
        return replace(self, **changes)

"""
Image Generation

A stateless URL-template image service plus the exchange that records an
image request and its result in a session transcript.
"""

from typing import Optional
from urllib.parse import quote

from loguru import logger

from ..constants import IMAGE_DONE_TEXT, IMAGE_ERROR_PREFIX, IMAGE_LOADING_TEXT, IMAGE_REQUEST_PREFIX
from ..exceptions import ErrorKind, GenerationInProgress, ImageGenerationError
from ..sessions.models import GeneratedImage, Message
from ..sessions.store import SessionStore
from ..user_config import AppConfig

# Characters JavaScript's encodeURIComponent leaves unescaped.
URI_COMPONENT_SAFE = "-_.!~*'()"


class ImageGenerationService:
    """Builds image URLs for a prompt; the image itself is rendered by the remote service."""

    def __init__(self, config: AppConfig):
        self.base_url = config.image_base_url
        self.prompt_suffix = config.image_prompt_suffix
        self.model_tag = config.image_model_tag

    async def generate(self, prompt: str) -> GeneratedImage:
        if not prompt or not prompt.strip():
            raise ImageGenerationError("Prompt cannot be empty")
        try:
            enhanced = f"{prompt}{self.prompt_suffix}"
            url = f"{self.base_url}{quote(enhanced, safe=URI_COMPONENT_SAFE)}"
        except Exception as e:
            raise ImageGenerationError(f"Failed to generate image: {e}") from e
        return GeneratedImage(url=url, prompt=prompt, model=self.model_tag)


class ImageExchange:
    """Runs one image request inside a session transcript."""

    def __init__(self, store: SessionStore, service: ImageGenerationService, config: AppConfig):
        self.store = store
        self.service = service
        self.config = config

    async def generate(self, session_id: str, prompt: str) -> Optional[Message]:
        session = self.store.require(session_id)
        if session.in_flight:
            raise GenerationInProgress(f"Session {session_id} already has a message in flight")

        self.store.append_messages(
            session_id,
            Message.user(f"{IMAGE_REQUEST_PREFIX}{prompt}", is_image_generation=True),
            Message.placeholder(IMAGE_LOADING_TEXT, is_image_generation=True),
        )

        try:
            image = await self.service.generate(prompt)
        except Exception as e:
            logger.error(f"Image generation failed for session {session_id}: {e}")
            detail = str(e) or "Please try again."
            updated = self.store.update_trailing(
                session_id,
                text=f"{IMAGE_ERROR_PREFIX} {detail}",
                is_loading=False,
                is_error=True,
                error_kind=ErrorKind.IMAGE_GENERATION,
            )
        else:
            updated = self.store.update_trailing(
                session_id,
                text=IMAGE_DONE_TEXT,
                generated_image=image,
                is_loading=False,
            )
            if self.store.mark_titled(session_id):
                self.store.set_title(session_id, prompt[: self.config.image_title_length])

        return updated.trailing if updated is not None else None

"""
Application Configuration Models

Generation, titling, throttling and image settings for the chat service.
Uses LiteLLM model naming convention where provider is included in model_name.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AppConfig(BaseModel):
    """
    Persisted application configuration.
    The backend credential is not part of this model; it lives in the key-value store.
    """

    # === LLM Configuration ===
    model_name: str = Field(
        default="gemini/gemini-2.5-flash",
        title="LiteLLM Model Name",
        description="Model used for streamed conversation turns",
    )
    title_model_name: str = Field(
        default="gemini/gemini-2.5-flash",
        title="Title Model Name",
        description="Model used for the one-shot title completion",
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, title="Temperature")
    request_timeout: float = Field(default=60.0, gt=0, title="Request Timeout (s)")
    max_retries: int = Field(default=2, ge=0, title="Max Retries")
    search_enabled: bool = Field(
        default=True,
        title="Search Augmentation",
        description="Request the backend's search grounding tool on every streamed turn",
    )

    # === Streaming ===
    throttle_window: float = Field(
        default=0.1,
        gt=0,
        title="Throttle Window (s)",
        description="Minimum interval between visible transcript updates while streaming",
    )

    # === Titles ===
    placeholder_title: str = Field(default="New Chat", title="Placeholder Title")
    title_max_length: int = Field(default=40, ge=1, title="Generated Title Max Length")
    fallback_title_length: int = Field(default=30, ge=1, title="Fallback Title Length")
    image_title_length: int = Field(default=30, ge=1, title="Image Prompt Title Length")

    # === Image Generation ===
    image_base_url: str = Field(default="https://image.pollinations.ai/prompt/", title="Image Service URL")
    image_prompt_suffix: str = Field(
        default=", professional, high quality, detailed, photorealistic",
        title="Image Prompt Suffix",
    )
    image_model_tag: str = Field(default="Pollinations AI", title="Image Model Tag")

    # === User Context ===
    config_id: str | None = Field(default=None, title="Configuration ID")

    # === Timestamps ===
    created_at: str | None = Field(default=None, title="Created At")
    updated_at: str | None = Field(default=None, title="Updated At")

    model_config = ConfigDict(use_enum_values=False)

    def get_llm_config(self) -> dict[str, Any]:
        """Get LLM-specific configuration for ChatLiteLLM."""
        return {
            "model_name": self.model_name,
            "temperature": self.temperature,
            "request_timeout": self.request_timeout,
            "max_retries": self.max_retries,
        }


def create_app_config(config_id: str | None = None, **overrides) -> AppConfig:
    """Create a configuration with defaults, applying any overrides."""
    return AppConfig(config_id=config_id, **overrides)

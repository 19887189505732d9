"""
Constants for the chat service.
Centralizes storage keys, user-facing strings and path resolution.
"""

import os
import sys


def get_app_data_directory():
    """Get the application data directory, creating it if it doesn't exist."""
    override = os.environ.get("CHATSTREAM_DATA_DIR")
    if override:
        app_data_dir = os.path.expanduser(override)
    elif getattr(sys, "frozen", False):
        # Running as a packaged app
        if sys.platform == "darwin":  # macOS
            app_data_dir = os.path.expanduser("~/Library/Application Support/ChatStream")
        elif sys.platform == "win32":  # Windows
            app_data_dir = os.path.join(os.getenv("APPDATA", ""), "ChatStream")
        else:  # Linux
            app_data_dir = os.path.expanduser("~/.local/share/ChatStream")
    else:
        # Running in development
        script_dir = os.path.dirname(os.path.abspath(__file__))
        project_root = os.path.dirname(os.path.dirname(script_dir))  # Go up two levels from src/chatstream/
        app_data_dir = project_root

    os.makedirs(app_data_dir, exist_ok=True)
    return app_data_dir


def get_database_path():
    """Get the SQLite database path."""
    return os.path.join(get_app_data_directory(), "app_data.db")


# Storage keys
SESSIONS_KEY = "chat-sessions"
CREDENTIAL_KEY = "gemini-api-key"
THEME_KEY = "app-theme"

# Environment
CREDENTIAL_ENV_VAR = "GEMINI_API_KEY"

# Appearance
THEMES = ("light", "dark")
DEFAULT_THEME = "light"

# User-facing text
QUOTA_ADVISORY_MESSAGE = (
    "Your API key has exceeded its quota limit. Please wait a few minutes or use a different API key."
)
QUOTA_ERROR_TEXT = "API quota exceeded. Please try again in a few minutes or change your API key."
GENERIC_ERROR_PREFIX = "Sorry, something went wrong."
IMAGE_REQUEST_PREFIX = "Generate image: "
IMAGE_LOADING_TEXT = "Generating your image..."
IMAGE_DONE_TEXT = "Here's your generated image."
IMAGE_ERROR_PREFIX = "Failed to generate image."
TITLE_PROMPT_TEMPLATE = 'Create a short title (max 4 words) for this chat. No quotes:\n\nUser: "{text}"\n\nTitle:'

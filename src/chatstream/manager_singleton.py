"""
Manager Singleton

Owns the global instances: database, configuration, backend client and the
session orchestration components built on top of it.
"""

import os
from datetime import datetime

from loguru import logger

from .advisory import AdvisoryState
from .constants import CREDENTIAL_ENV_VAR, CREDENTIAL_KEY, DEFAULT_THEME, THEME_KEY, THEMES, get_database_path
from .database import DatabaseManager
from .exceptions import CredentialError, StorageUnavailableError
from .images import ImageExchange, ImageGenerationService
from .llm import GenerativeClient
from .sessions.codec import PersistenceCodec
from .sessions.orchestrator import StreamingOrchestrator
from .sessions.retry import RetryCoordinator
from .sessions.store import SessionStore
from .sessions.title import TitleGenerator
from .user_config.models import AppConfig, create_app_config


class ManagerSingleton:
    _database_manager: DatabaseManager | None = None
    _app_config: AppConfig | None = None
    _advisory: AdvisoryState = AdvisoryState()
    _client: GenerativeClient | None = None
    _session_store: SessionStore | None = None
    _orchestrator: StreamingOrchestrator | None = None
    _retry: RetryCoordinator | None = None
    _images: ImageExchange | None = None
    _api_key: str | None = None
    _credential_error: str | None = None
    _initialized: bool = False

    @classmethod
    async def initialize(cls, db_path: str | None = None):
        if cls._initialized:
            return

        logger.info("Initializing ManagerSingleton...")

        db_path = db_path or get_database_path()
        logger.info(f"Using database path: {db_path}")
        cls._database_manager = DatabaseManager(db_path=db_path)
        await cls._database_manager.initialize()

        # Load or create config
        try:
            config_data = await cls._database_manager.get_user_config("default")
            if config_data:
                cls._app_config = AppConfig(**config_data)
                logger.info("✅ App config loaded from database.")
            else:
                logger.warning("No app config found, creating default.")
                cls._app_config = create_app_config(config_id="default")
                await cls._database_manager.save_user_config("default", cls._app_config.model_dump())
        except Exception as e:
            logger.error(f"Error loading app config: {e}. Using defaults.")
            cls._app_config = create_app_config(config_id="default")

        cls._initialized = True
        await cls._connect()
        logger.info("✅ ManagerSingleton initialized successfully.")

    @classmethod
    async def _resolve_credential(cls) -> str | None:
        env_key = os.environ.get(CREDENTIAL_ENV_VAR, "").strip()
        if env_key and env_key != "undefined":
            return env_key
        stored = await cls._database_manager.get(CREDENTIAL_KEY)
        if stored and stored.decode("utf-8").strip():
            return stored.decode("utf-8").strip()
        return None

    @classmethod
    async def _connect(cls, api_key: str | None = None) -> None:
        """Build the backend client and session components, then restore stored sessions."""
        api_key = api_key or await cls._resolve_credential()
        if not api_key:
            logger.warning("No API key configured; waiting for credential.")
            return

        try:
            cls._client = GenerativeClient(api_key, cls._app_config)
        except CredentialError as e:
            logger.error(f"Failed to initialize backend client: {e}")
            cls._credential_error = str(e)
            await cls._database_manager.remove(CREDENTIAL_KEY)
            return
        cls._api_key = api_key
        cls._credential_error = None

        config = cls._app_config
        codec = PersistenceCodec(config.placeholder_title)
        cls._session_store = SessionStore(cls._database_manager, codec, cls._client, config.placeholder_title)
        titles = TitleGenerator(cls._client, cls._session_store, config)
        cls._orchestrator = StreamingOrchestrator(cls._session_store, cls._client, titles, cls._advisory, config)
        cls._retry = RetryCoordinator(cls._session_store, cls._orchestrator)
        cls._images = ImageExchange(cls._session_store, ImageGenerationService(config), config)

        try:
            await cls._session_store.load()
        except StorageUnavailableError:
            # Without the stored list any write-through would overwrite it.
            cls._client = None
            cls._session_store = None
            cls._orchestrator = None
            cls._retry = None
            cls._images = None
            raise
        logger.info("✅ Session components initialized.")

    @classmethod
    async def _disconnect(cls) -> None:
        """Stop generations and drop all in-memory sessions and the advisory."""
        if cls._orchestrator:
            await cls._orchestrator.aclose()
        if cls._session_store:
            await cls._session_store.flush()
            cls._session_store.clear()
        cls._advisory.dismiss()
        cls._client = None
        cls._api_key = None
        cls._session_store = None
        cls._orchestrator = None
        cls._retry = None
        cls._images = None

    @classmethod
    async def get_database_manager(cls) -> DatabaseManager:
        if not cls._database_manager:
            await cls.initialize()
        return cls._database_manager

    @classmethod
    async def get_app_config(cls) -> AppConfig:
        if not cls._app_config:
            await cls.initialize()
        return cls._app_config

    @classmethod
    async def get_advisory(cls) -> AdvisoryState:
        await cls.initialize()
        return cls._advisory

    @classmethod
    async def get_session_store(cls) -> SessionStore:
        await cls.initialize()
        if cls._session_store is None:
            raise CredentialError(cls._credential_error or "API key required")
        return cls._session_store

    @classmethod
    async def get_orchestrator(cls) -> StreamingOrchestrator:
        await cls.get_session_store()
        return cls._orchestrator

    @classmethod
    async def get_retry_coordinator(cls) -> RetryCoordinator:
        await cls.get_session_store()
        return cls._retry

    @classmethod
    async def get_image_exchange(cls) -> ImageExchange:
        await cls.get_session_store()
        return cls._images

    @classmethod
    async def credential_status(cls) -> dict:
        await cls.initialize()
        return {
            "configured": cls._client is not None,
            "from_environment": bool(os.environ.get(CREDENTIAL_ENV_VAR, "").strip()),
            "error": cls._credential_error,
        }

    @classmethod
    async def set_credential(cls, api_key: str) -> None:
        """Store a new credential, rebuild the backend client and restore sessions."""
        await cls.initialize()
        if not api_key or not api_key.strip():
            raise CredentialError("Please enter a valid API key")

        api_key = api_key.strip()
        await cls._disconnect()
        await cls._database_manager.set(CREDENTIAL_KEY, api_key.encode("utf-8"))
        await cls._connect(api_key)
        if cls._client is None:
            raise CredentialError(cls._credential_error or "Invalid API Key")
        logger.info("Credential updated")

    @classmethod
    async def change_credential(cls) -> None:
        """Forget the stored credential and reset all in-memory session state."""
        await cls.initialize()
        await cls._disconnect()
        await cls._database_manager.remove(CREDENTIAL_KEY)
        logger.info("Credential cleared; in-memory sessions reset")

    @classmethod
    async def update_app_config(cls, **updates) -> AppConfig:
        """Update the global config and persist it; components pick it up on reconnect."""
        current = await cls.get_app_config()
        current_dict = current.model_dump()
        current_dict.update(updates)
        current_dict["updated_at"] = datetime.now().isoformat()

        cls._app_config = AppConfig(**current_dict)
        await cls._database_manager.save_user_config(cls._app_config.config_id or "default", cls._app_config.model_dump())

        if cls._client is not None:
            api_key = cls._api_key
            await cls._disconnect()
            await cls._connect(api_key)
        logger.info("Updated app config and rebuilt session components")
        return cls._app_config

    @classmethod
    async def get_theme(cls) -> str:
        db_manager = await cls.get_database_manager()
        stored = await db_manager.get(THEME_KEY)
        theme = stored.decode("utf-8") if stored else DEFAULT_THEME
        return theme if theme in THEMES else DEFAULT_THEME

    @classmethod
    async def set_theme(cls, theme: str) -> str:
        if theme not in THEMES:
            raise ValueError(f"Unknown theme: {theme}")
        db_manager = await cls.get_database_manager()
        await db_manager.set(THEME_KEY, theme.encode("utf-8"))
        return theme

    @classmethod
    async def close_all(cls):
        """Close all singleton instances."""
        await cls._disconnect()
        cls._database_manager = None
        cls._app_config = None
        cls._credential_error = None
        cls._initialized = False
        logger.info("✅ All singleton instances closed")

"""
Manager Singleton

Process-wide instances of the storage backend, session store, persister and
chat runner.
"""

from loguru import logger

from .constants import DEFAULT_SESSION_TITLE, DEFAULT_SYSTEM_PROMPT
from .database import KeyValueStorage, SqliteStorage
from .runner.runner import ChatRunner
from .sessions.manager import SessionStore
from .sessions.persistence import StorePersister
from .sessions.session import MessageRole
from .user_config import AppConfig, load_app_config_from_env


class ManagerSingleton:
    _app_config: AppConfig | None = None
    _storage: KeyValueStorage | None = None
    _store: SessionStore | None = None
    _persister: StorePersister | None = None
    _runner: ChatRunner | None = None
    _initialized: bool = False

    @classmethod
    async def initialize(cls, app_config: AppConfig | None = None, storage: KeyValueStorage | None = None):
        if cls._initialized:
            return

        logger.info("Initializing ManagerSingleton...")

        cls._app_config = app_config or load_app_config_from_env()
        cls._storage = storage or SqliteStorage(cls._app_config.db_path)
        logger.info(f"Using storage {type(cls._storage).__name__}")

        cls._store = SessionStore()
        cls._persister = StorePersister(cls._store, cls._storage, key=cls._app_config.storage_key)
        try:
            await cls._persister.hydrate()
        except Exception as e:
            logger.error(f"Error loading persisted state: {e}. Starting empty.")
        cls._persister.attach()

        if cls._app_config.seed_default_session and not cls._store.list_sessions():
            cls._store.create_session(DEFAULT_SESSION_TITLE)
            cls._store.add_message(role=MessageRole.SYSTEM, content=DEFAULT_SYSTEM_PROMPT, index=0)
            logger.info("✅ Seeded default session.")

        cls._runner = ChatRunner(cls._store)
        logger.info("✅ ChatRunner initialized.")

        cls._initialized = True
        logger.info("✅ ManagerSingleton initialized successfully.")

    @classmethod
    async def get_app_config(cls) -> AppConfig:
        if not cls._app_config:
            await cls.initialize()
        return cls._app_config

    @classmethod
    async def get_store(cls) -> SessionStore:
        if not cls._store:
            await cls.initialize()
        return cls._store

    @classmethod
    async def get_runner(cls) -> ChatRunner:
        if not cls._runner:
            await cls.initialize()
        return cls._runner

    @classmethod
    async def get_persister(cls) -> StorePersister:
        if not cls._persister:
            await cls.initialize()
        return cls._persister

    @classmethod
    async def close_all(cls):
        """Stop any active run, flush pending writes and release storage."""
        if cls._runner is not None and cls._runner.is_running:
            logger.info("Stopping active run before shutdown...")
            cls._runner.stop()
            try:
                await cls._runner.wait()
            except Exception as e:
                logger.error(f"Error while waiting for the active run: {e}")

        if cls._persister is not None:
            try:
                await cls._persister.flush()
                cls._persister.detach()
                logger.info("✅ Pending state flushed")
            except Exception as e:
                logger.error(f"Error flushing state: {e}")

        if cls._storage is not None:
            await cls._storage.close()

        cls._app_config = None
        cls._storage = None
        cls._store = None
        cls._persister = None
        cls._runner = None
        cls._initialized = False

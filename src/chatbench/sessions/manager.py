"""
Session Store

Owns every session, the current-session pointer, the model configuration list
and the process-wide generating flag. All mutations are synchronous and run
under one lock, so a delta applied by a run and an edit made through the API
never interleave partially. Listeners are notified after each committed change.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from ..constants import AUTO_TITLE_ELLIPSIS, AUTO_TITLE_MAX_CHARS, COPY_TITLE_SUFFIX, DEFAULT_SESSION_TITLE
from ..user_config import ModelConfig
from ..utils import generate_id, now_ms
from .session import ChatSession, Message, MessageRole

# Fields of a message that update_message is allowed to merge
UPDATABLE_MESSAGE_FIELDS = {"content", "role", "meta"}


@dataclass(frozen=True)
class StoreChange:
    """Describes one committed mutation."""

    action: str
    session_id: str | None = None
    message_id: str | None = None
    config_id: str | None = None


StoreListener = Callable[[StoreChange], None]


def derive_auto_title(session: ChatSession, message: Message) -> str | None:
    """
    Title derived from a user message while the session still has the default title.
    Returns None when the title must stay as it is.
    """
    if session.title != DEFAULT_SESSION_TITLE or message.role != MessageRole.USER:
        return None
    clean_content = message.content.strip()
    if not clean_content:
        return None
    title = clean_content[:AUTO_TITLE_MAX_CHARS]
    if len(clean_content) > AUTO_TITLE_MAX_CHARS:
        title += AUTO_TITLE_ELLIPSIS
    return title


class SessionStore:
    """Single-writer store for sessions and model configurations."""

    def __init__(self):
        self._lock = threading.RLock()
        self._sessions: dict[str, ChatSession] = {}
        self._current_session_id: str | None = None
        self._model_configs: list[ModelConfig] = []
        self._is_generating = False
        self._listeners: list[StoreListener] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: StoreChange):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(change)
            except Exception as e:
                logger.error(f"Store listener failed on '{change.action}': {e}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def current_session_id(self) -> str | None:
        return self._current_session_id

    @property
    def is_generating(self) -> bool:
        return self._is_generating

    @property
    def current_session(self) -> ChatSession | None:
        with self._lock:
            session = self._sessions.get(self._current_session_id) if self._current_session_id else None
            return session.model_copy(deep=True) if session else None

    def get_session(self, session_id: str) -> ChatSession | None:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    def list_sessions(self) -> list[ChatSession]:
        """All sessions, most recently updated first."""
        with self._lock:
            sessions = [session.model_copy(deep=True) for session in self._sessions.values()]
        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return sessions

    def get_message(self, message_id: str, session_id: str | None = None) -> Message | None:
        with self._lock:
            session = self._resolve_session(session_id)
            if session is None:
                return None
            message = session.find_message(message_id)
            return message.model_copy(deep=True) if message else None

    @property
    def model_configs(self) -> list[ModelConfig]:
        with self._lock:
            return [config.model_copy(deep=True) for config in self._model_configs]

    def get_model_config(self, config_id: str) -> ModelConfig | None:
        with self._lock:
            for config in self._model_configs:
                if config.id == config_id:
                    return config.model_copy(deep=True)
        return None

    def _resolve_session(self, session_id: str | None) -> ChatSession | None:
        target_id = session_id if session_id is not None else self._current_session_id
        if not target_id:
            return None
        return self._sessions.get(target_id)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def create_session(self, title: str | None = None) -> str:
        """Create an empty session, make it current and return its id."""
        session = ChatSession(title=title or DEFAULT_SESSION_TITLE)
        with self._lock:
            self._sessions[session.id] = session
            self._current_session_id = session.id
        logger.debug(f"Created session {session.id}")
        self._notify(StoreChange("create_session", session.id))
        return session.id

    def switch_session(self, session_id: str):
        with self._lock:
            if session_id not in self._sessions:
                logger.debug(f"Ignoring switch to unknown session {session_id}")
                return
            self._current_session_id = session_id
        self._notify(StoreChange("switch_session", session_id))

    def delete_session(self, session_id: str):
        """Remove a session; deleting the current one leaves no session selected."""
        with self._lock:
            removed = self._sessions.pop(session_id, None)
            if self._current_session_id == session_id:
                self._current_session_id = None
        if removed is None:
            return
        logger.debug(f"Deleted session {session_id}")
        self._notify(StoreChange("delete_session", session_id))

    def rename_session(self, session_id: str, title: str):
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return
            session.title = title
            session.updated_at = now_ms()
        self._notify(StoreChange("rename_session", session_id))

    def duplicate_session(self, session_id: str) -> str | None:
        """
        Deep-copy a session under a new id with fresh message ids and make it current.
        Returns the new session id, or None if the source does not exist.
        """
        with self._lock:
            source = self._sessions.get(session_id)
            if source is None:
                return None
            copy = source.model_copy(deep=True)
            copy.id = generate_id()
            copy.title = f"{source.title}{COPY_TITLE_SUFFIX}"
            copy.updated_at = now_ms()
            for message in copy.messages:
                message.id = generate_id()
            self._sessions[copy.id] = copy
            self._current_session_id = copy.id
        logger.debug(f"Duplicated session {session_id} as {copy.id}")
        self._notify(StoreChange("duplicate_session", copy.id))
        return copy.id

    def put_session(self, session: ChatSession, make_current: bool = False):
        """Insert a fully built session (used by imports); replaces a session with the same id."""
        with self._lock:
            self._sessions[session.id] = session.model_copy(deep=True)
            if make_current:
                self._current_session_id = session.id
        self._notify(StoreChange("put_session", session.id))

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(
        self,
        role: MessageRole | str,
        content: str = "",
        index: int | None = None,
        id: str | None = None,
        meta: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> str | None:
        """
        Insert a message into the current session (or `session_id` when given).

        An index outside [0, len] appends. A supplied id is used verbatim so the
        caller can reference the message before it observes the insert.
        Returns the message id, or None when there is no target session.
        """
        message = Message(id=id or generate_id(), role=MessageRole(role), content=content, meta=meta)
        with self._lock:
            session = self._resolve_session(session_id)
            if session is None:
                logger.debug("add_message ignored: no target session")
                return None

            if index is not None and 0 <= index <= len(session.messages):
                session.messages.insert(index, message)
            else:
                session.messages.append(message)

            new_title = derive_auto_title(session, message)
            if new_title is not None:
                session.title = new_title
            session.updated_at = now_ms()
            target_session_id = session.id

        self._notify(StoreChange("add_message", target_session_id, message.id))
        return message.id

    def update_message(self, message_id: str, session_id: str | None = None, **updates) -> bool:
        """
        Merge `content`, `role` and/or `meta` into a message.

        Fields not named in `updates` are left untouched, so a content-only
        update never clobbers a concurrent role change. An update that changes
        nothing is a no-op. Returns True if the message was modified.
        """
        unknown = set(updates) - UPDATABLE_MESSAGE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update message fields: {sorted(unknown)}")
        if "role" in updates:
            updates["role"] = MessageRole(updates["role"])

        with self._lock:
            session = self._resolve_session(session_id)
            if session is None:
                return False

            for position, message in enumerate(session.messages):
                if message.id == message_id:
                    break
            else:
                return False

            updated = message.model_copy(update=updates)
            if updated == message:
                return False
            session.messages[position] = updated

            new_title = derive_auto_title(session, updated)
            if new_title is not None:
                session.title = new_title
            session.updated_at = now_ms()
            target_session_id = session.id

        self._notify(StoreChange("update_message", target_session_id, message_id))
        return True

    def delete_message(self, message_id: str, session_id: str | None = None):
        with self._lock:
            session = self._resolve_session(session_id)
            if session is None:
                return
            remaining = [m for m in session.messages if m.id != message_id]
            if len(remaining) == len(session.messages):
                return
            session.messages = remaining
            session.updated_at = now_ms()
            target_session_id = session.id
        self._notify(StoreChange("delete_message", target_session_id, message_id))

    def clear_messages(self, session_id: str | None = None):
        with self._lock:
            session = self._resolve_session(session_id)
            if session is None:
                return
            session.messages = []
            session.updated_at = now_ms()
            target_session_id = session.id
        self._notify(StoreChange("clear_messages", target_session_id))

    # ------------------------------------------------------------------
    # Model configs
    # ------------------------------------------------------------------

    def add_model_config(self, config: ModelConfig):
        with self._lock:
            self._model_configs.append(config.model_copy(deep=True))
        self._notify(StoreChange("add_model_config", config_id=config.id))

    def update_model_config(self, config: ModelConfig):
        with self._lock:
            self._model_configs = [
                config.model_copy(deep=True) if existing.id == config.id else existing
                for existing in self._model_configs
            ]
        self._notify(StoreChange("update_model_config", config_id=config.id))

    def upsert_model_config(self, config: ModelConfig):
        if self.get_model_config(config.id) is None:
            self.add_model_config(config)
        else:
            self.update_model_config(config)

    def remove_model_config(self, config_id: str):
        with self._lock:
            self._model_configs = [c for c in self._model_configs if c.id != config_id]
        self._notify(StoreChange("remove_model_config", config_id=config_id))

    # ------------------------------------------------------------------
    # Run flag
    # ------------------------------------------------------------------

    def set_generating(self, is_generating: bool):
        with self._lock:
            if self._is_generating == is_generating:
                return
            self._is_generating = is_generating
        self._notify(StoreChange("set_generating"))

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """The persisted part of the state, in export field names."""
        with self._lock:
            return {
                "sessions": {sid: session.to_export() for sid, session in self._sessions.items()},
                "currentSessionId": self._current_session_id,
                "modelConfigs": [config.to_export() for config in self._model_configs],
            }

    def load_snapshot(self, data: dict[str, Any]):
        """Replace the persisted part of the state with `data` (as produced by snapshot)."""
        sessions = {}
        for raw in (data.get("sessions") or {}).values():
            session = ChatSession.model_validate(raw)
            sessions[session.id] = session
        configs = [ModelConfig.model_validate(raw) for raw in data.get("modelConfigs") or []]
        current = data.get("currentSessionId")
        with self._lock:
            self._sessions = sessions
            self._model_configs = configs
            self._current_session_id = current if current in sessions else None
            self._is_generating = False
        logger.debug(f"Loaded {len(sessions)} sessions and {len(configs)} model configs")
        self._notify(StoreChange("load_snapshot"))

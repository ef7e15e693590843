"""
Session Export and Backup

Serializes single sessions and full backups to JSON-ready dicts and reads
them back into the store.
"""

from typing import Any

from loguru import logger
from pydantic import ValidationError

from ..constants import BACKUP_VERSION
from ..exceptions import ImportFormatError, SessionNotFound
from ..user_config import ModelConfig
from ..utils import generate_id, now_ms
from .manager import SessionStore
from .session import ChatSession


def export_session(store: SessionStore, session_id: str) -> dict[str, Any]:
    """Export one session with stable camelCase field names."""
    session = store.get_session(session_id)
    if session is None:
        raise SessionNotFound(f"Session '{session_id}' not found")
    return session.to_export()


def export_backup(store: SessionStore) -> dict[str, Any]:
    """Export every session and model config, wrapped with version and timestamp."""
    snapshot = store.snapshot()
    return {
        "version": BACKUP_VERSION,
        "exportedAt": now_ms(),
        "modelConfigs": snapshot["modelConfigs"],
        "sessions": snapshot["sessions"],
    }


def _remint_ids(session: ChatSession) -> ChatSession:
    session.id = generate_id()
    for message in session.messages:
        message.id = generate_id()
    return session


def _parse_session(data: Any) -> ChatSession:
    try:
        return ChatSession.model_validate(data)
    except ValidationError as e:
        raise ImportFormatError(f"Invalid session export: {e}") from e


def _insert_session(store: SessionStore, session: ChatSession, make_current: bool) -> str:
    if store.has_session(session.id):
        old_id = session.id
        session = _remint_ids(session)
        logger.info(f"Imported session {old_id} already exists, stored as {session.id}")

    store.put_session(session, make_current=make_current)
    return session.id


def import_session(store: SessionStore, data: dict[str, Any], make_current: bool = True) -> str:
    """
    Import an exported session and return its id in the store.

    When a session with the same id already exists, the imported copy gets a new
    session id and new message ids so that ids stay unique.
    """
    return _insert_session(store, _parse_session(data), make_current)


def restore_backup(store: SessionStore, data: dict[str, Any]) -> dict[str, int]:
    """
    Merge a full backup into the store.

    The whole backup is validated before anything is written, so a bad entry
    leaves the store untouched. Model configs are upserted by id; sessions are
    inserted like imports, without changing the current session.
    """
    if not isinstance(data, dict):
        raise ImportFormatError("Backup must be a JSON object")
    version = data.get("version")
    if version != BACKUP_VERSION:
        raise ImportFormatError(f"Unsupported backup version: {version}")

    raw_sessions = data.get("sessions") or {}
    if isinstance(raw_sessions, dict):
        raw_sessions = list(raw_sessions.values())
    if not isinstance(raw_sessions, list):
        raise ImportFormatError("Backup sessions must be a list or an object")

    try:
        configs = [ModelConfig.model_validate(raw) for raw in data.get("modelConfigs") or []]
    except ValidationError as e:
        raise ImportFormatError(f"Invalid model config in backup: {e}") from e

    sessions = [_parse_session(raw) for raw in raw_sessions]

    for config in configs:
        store.upsert_model_config(config)
    for session in sessions:
        _insert_session(store, session, make_current=False)

    logger.info(f"Restored backup with {len(sessions)} sessions and {len(configs)} model configs")
    return {"sessions": len(sessions), "model_configs": len(configs)}

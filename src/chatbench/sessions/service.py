"""
Sessions Service Layer

This module contains the business logic for session management operations,
separated from the API layer for better maintainability.
"""

from datetime import datetime
from typing import Any

from fastapi import HTTPException

from ..exceptions import ImportFormatError, MessageNotFound, SessionNotFound
from .export import export_backup, export_session, import_session, restore_backup
from .manager import SessionStore
from .session import ChatSession, MessageRole


def _summary(session: ChatSession, current_id: str | None) -> dict[str, Any]:
    return {
        "id": session.id,
        "title": session.title,
        "updatedAt": session.updated_at,
        "message_count": len(session.messages),
        "is_current": session.id == current_id,
    }


class SessionsService:
    """Service class for session management operations."""

    @staticmethod
    def _require_session(store: SessionStore, session_id: str) -> ChatSession:
        session = store.get_session(session_id)
        if session is None:
            raise SessionNotFound(f"Session '{session_id}' not found")
        return session

    @staticmethod
    async def list_sessions(store: SessionStore) -> dict[str, Any]:
        """List all sessions sorted by date (newest first)."""
        sessions = store.list_sessions()
        return {
            "sessions": [_summary(s, store.current_session_id) for s in sessions],
            "current_session_id": store.current_session_id,
            "total_count": len(sessions),
            "is_generating": store.is_generating,
            "timestamp": datetime.now().isoformat(),
        }

    @staticmethod
    async def create_session(store: SessionStore, title: str | None = None) -> dict[str, Any]:
        session_id = store.create_session(title)
        return store.get_session(session_id).to_export()

    @staticmethod
    async def get_session(store: SessionStore, session_id: str) -> dict[str, Any]:
        try:
            return SessionsService._require_session(store, session_id).to_export()
        except SessionNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))

    @staticmethod
    async def switch_session(store: SessionStore, session_id: str) -> dict[str, Any]:
        if not store.has_session(session_id):
            raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
        store.switch_session(session_id)
        return {"current_session_id": store.current_session_id}

    @staticmethod
    async def rename_session(store: SessionStore, session_id: str, title: str) -> dict[str, Any]:
        if not store.has_session(session_id):
            raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
        store.rename_session(session_id, title)
        return {
            "message": f"Session '{session_id}' renamed successfully",
            "session_id": session_id,
            "title": title,
            "timestamp": datetime.now().isoformat(),
        }

    @staticmethod
    async def duplicate_session(store: SessionStore, session_id: str) -> dict[str, Any]:
        new_id = store.duplicate_session(session_id)
        if new_id is None:
            raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
        return store.get_session(new_id).to_export()

    @staticmethod
    async def delete_session(store: SessionStore, session_id: str) -> dict[str, Any]:
        if not store.has_session(session_id):
            raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
        store.delete_session(session_id)
        return {
            "message": f"Session '{session_id}' deleted successfully",
            "session_id": session_id,
            "timestamp": datetime.now().isoformat(),
        }

    @staticmethod
    async def clear_messages(store: SessionStore, session_id: str) -> dict[str, Any]:
        if not store.has_session(session_id):
            raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
        store.clear_messages(session_id=session_id)
        return {"session_id": session_id, "message_count": 0}

    @staticmethod
    async def add_message(
        store: SessionStore,
        session_id: str,
        role: MessageRole,
        content: str = "",
        index: int | None = None,
        message_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if not store.has_session(session_id):
            raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
        if message_id and store.get_message(message_id, session_id=session_id) is not None:
            raise HTTPException(status_code=409, detail=f"Message '{message_id}' already exists")
        new_id = store.add_message(
            role=role, content=content, index=index, id=message_id, meta=meta, session_id=session_id
        )
        return store.get_message(new_id, session_id=session_id).model_dump(mode="json", by_alias=True)

    @staticmethod
    async def update_message(
        store: SessionStore, session_id: str, message_id: str, updates: dict[str, Any]
    ) -> dict[str, Any]:
        try:
            SessionsService._require_session(store, session_id)
            if store.get_message(message_id, session_id=session_id) is None:
                raise MessageNotFound(f"Message '{message_id}' not found in session '{session_id}'")
        except (SessionNotFound, MessageNotFound) as e:
            raise HTTPException(status_code=404, detail=str(e))

        store.update_message(message_id, session_id=session_id, **updates)
        return store.get_message(message_id, session_id=session_id).model_dump(mode="json", by_alias=True)

    @staticmethod
    async def delete_message(store: SessionStore, session_id: str, message_id: str) -> dict[str, Any]:
        if store.get_message(message_id, session_id=session_id) is None:
            raise HTTPException(status_code=404, detail=f"Message '{message_id}' not found")
        store.delete_message(message_id, session_id=session_id)
        return {"session_id": session_id, "message_id": message_id, "deleted": True}

    @staticmethod
    async def export_session(store: SessionStore, session_id: str) -> dict[str, Any]:
        try:
            return export_session(store, session_id)
        except SessionNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))

    @staticmethod
    async def import_session(store: SessionStore, data: dict[str, Any]) -> dict[str, Any]:
        try:
            session_id = import_session(store, data)
        except ImportFormatError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"session_id": session_id}

    @staticmethod
    async def export_backup(store: SessionStore) -> dict[str, Any]:
        return export_backup(store)

    @staticmethod
    async def restore_backup(store: SessionStore, data: dict[str, Any]) -> dict[str, Any]:
        try:
            counts = restore_backup(store, data)
        except ImportFormatError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"restored": counts, "timestamp": datetime.now().isoformat()}

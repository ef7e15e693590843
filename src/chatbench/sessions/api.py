"""
Sessions Management API

This module provides API endpoints for managing chat sessions and their
messages, plus session export/import and full backups.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Response
from pydantic import BaseModel, Field

from ..manager_singleton import ManagerSingleton
from ..utils import get_date_string
from .manager import SessionStore
from .service import SessionsService
from .session import MessageRole

# Router setup
router = APIRouter(prefix="/sessions", tags=["Sessions"])
backup_router = APIRouter(prefix="/backup", tags=["Backup"])


class CreateSessionRequest(BaseModel):
    title: str | None = Field(None, description="Initial title; defaults to 'New Chat'")


class RenameSessionRequest(BaseModel):
    title: str = Field(..., description="New session title")


class AddMessageRequest(BaseModel):
    """Request model for inserting a message."""
    role: MessageRole = Field(..., description="Message role")
    content: str = Field("", description="Message content")
    index: int | None = Field(None, description="Insert position; appends when omitted or out of range")
    id: str | None = Field(None, description="Explicit message id")
    meta: dict[str, Any] | None = Field(None, description="Extra message flags")


class UpdateMessageRequest(BaseModel):
    """Request model for a partial message update; omitted fields are left untouched."""
    content: str | None = None
    role: MessageRole | None = None
    meta: dict[str, Any] | None = None


@router.get("")
async def list_sessions(store: SessionStore = Depends(ManagerSingleton.get_store)):
    """List all sessions sorted by date (newest first)."""
    return await SessionsService.list_sessions(store)


@router.post("")
async def create_session(
    request: CreateSessionRequest | None = None,
    store: SessionStore = Depends(ManagerSingleton.get_store),
):
    """Create a new session and make it current."""
    return await SessionsService.create_session(store, request.title if request else None)


@router.post("/import")
async def import_session(
    data: dict[str, Any] = Body(...),
    store: SessionStore = Depends(ManagerSingleton.get_store),
):
    """Import a previously exported session."""
    return await SessionsService.import_session(store, data)


@router.get("/{session_id}")
async def get_session(session_id: str, store: SessionStore = Depends(ManagerSingleton.get_store)):
    return await SessionsService.get_session(store, session_id)


@router.post("/{session_id}/switch")
async def switch_session(session_id: str, store: SessionStore = Depends(ManagerSingleton.get_store)):
    """Make a session the current one."""
    return await SessionsService.switch_session(store, session_id)


@router.post("/{session_id}/title")
async def rename_session(
    session_id: str,
    request: RenameSessionRequest,
    store: SessionStore = Depends(ManagerSingleton.get_store),
):
    """Update the title of a specific session."""
    return await SessionsService.rename_session(store, session_id, request.title)


@router.post("/{session_id}/duplicate")
async def duplicate_session(session_id: str, store: SessionStore = Depends(ManagerSingleton.get_store)):
    """Copy a session with fresh ids and make the copy current."""
    return await SessionsService.duplicate_session(store, session_id)


@router.delete("/{session_id}")
async def delete_session(session_id: str, store: SessionStore = Depends(ManagerSingleton.get_store)):
    """Delete a specific session."""
    return await SessionsService.delete_session(store, session_id)


@router.get("/{session_id}/export")
async def export_session(session_id: str, store: SessionStore = Depends(ManagerSingleton.get_store)):
    return await SessionsService.export_session(store, session_id)


@router.post("/{session_id}/messages")
async def add_message(
    session_id: str,
    request: AddMessageRequest,
    store: SessionStore = Depends(ManagerSingleton.get_store),
):
    """Insert a message at `index` (or append)."""
    return await SessionsService.add_message(
        store,
        session_id,
        role=request.role,
        content=request.content,
        index=request.index,
        message_id=request.id,
        meta=request.meta,
    )


@router.delete("/{session_id}/messages")
async def clear_messages(session_id: str, store: SessionStore = Depends(ManagerSingleton.get_store)):
    """Remove every message of a session."""
    return await SessionsService.clear_messages(store, session_id)


@router.patch("/{session_id}/messages/{message_id}")
async def update_message(
    session_id: str,
    message_id: str,
    request: UpdateMessageRequest,
    store: SessionStore = Depends(ManagerSingleton.get_store),
):
    """Merge the given fields into a message."""
    updates = request.model_dump(exclude_unset=True, exclude_none=True)
    return await SessionsService.update_message(store, session_id, message_id, updates)


@router.delete("/{session_id}/messages/{message_id}")
async def delete_message(
    session_id: str,
    message_id: str,
    store: SessionStore = Depends(ManagerSingleton.get_store),
):
    return await SessionsService.delete_message(store, session_id, message_id)


@backup_router.get("")
async def export_backup(response: Response, store: SessionStore = Depends(ManagerSingleton.get_store)):
    """Export every session and model configuration."""
    response.headers["Content-Disposition"] = f'attachment; filename="chat-backup-{get_date_string()}.json"'
    return await SessionsService.export_backup(store)


@backup_router.post("")
async def restore_backup(
    data: dict[str, Any] = Body(...),
    store: SessionStore = Depends(ManagerSingleton.get_store),
):
    """Merge a full backup into the current state."""
    return await SessionsService.restore_backup(store, data)

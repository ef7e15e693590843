"""
Session Management Module

This module provides the session store, its data models, persistence and
export/import of sessions.
"""

from .manager import SessionStore, StoreChange, derive_auto_title
from .session import ChatSession, Message, MessageRole

__all__ = ["SessionStore", "StoreChange", "derive_auto_title", "ChatSession", "Message", "MessageRole"]

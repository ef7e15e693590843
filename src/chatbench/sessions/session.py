"""
Session Data Models

Messages and sessions as held by the session store and written to exports.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..constants import DEFAULT_SESSION_TITLE
from ..utils import generate_id, now_ms


class MessageRole(str, Enum):
    """Roles a message can take in a session."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    THINK = "think"
    NOTE = "note"
    ERROR = "error"


class Message(BaseModel):
    """A single message owned by exactly one session."""

    id: str = Field(default_factory=generate_id)
    role: MessageRole
    content: str = ""
    meta: dict[str, Any] | None = Field(default=None, description="Extra flags, e.g. isExpanded or errorDetails")
    created_at: int = Field(default_factory=now_ms, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)


class ChatSession(BaseModel):
    """
    A titled, ordered list of messages.
    The list order is the conversation order.
    """

    id: str = Field(default_factory=generate_id)
    title: str = DEFAULT_SESSION_TITLE
    messages: list[Message] = Field(default_factory=list)
    updated_at: int = Field(default_factory=now_ms, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)

    def find_message(self, message_id: str) -> Message | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def to_export(self) -> dict[str, Any]:
        """Serialize with the camelCase field names used by exports and persistence."""
        return self.model_dump(mode="json", by_alias=True)

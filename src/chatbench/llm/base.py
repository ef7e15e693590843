"""
Base Provider Interface
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from ..constants import API_ROLES, PRIMARY_DELTA_FIELD
from ..sessions.session import Message
from ..user_config import ModelConfig, ProviderId


class StreamEventKind(str, Enum):
    DELTA = "delta"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class StreamEvent:
    """
    One event of a provider stream: a text delta, the end of the stream with
    the full text, or a fatal error message.
    """

    kind: StreamEventKind
    text: str = ""
    source: str = PRIMARY_DELTA_FIELD
    error: str | None = None

    @classmethod
    def delta(cls, text: str, source: str = PRIMARY_DELTA_FIELD) -> "StreamEvent":
        return cls(StreamEventKind.DELTA, text=text, source=source)

    @classmethod
    def done(cls, full_text: str) -> "StreamEvent":
        return cls(StreamEventKind.DONE, text=full_text)

    @classmethod
    def failure(cls, message: str) -> "StreamEvent":
        return cls(StreamEventKind.ERROR, error=message)


class ChatStatus(str, Enum):
    """Completion signal returned by BaseProvider.chat()."""

    FINISHED = "finished"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ChatCallbacks:
    on_update: Callable[[str], Any]
    on_finish: Callable[[str], Any]
    on_error: Callable[[str], Any]


def to_api_messages(messages: list[Message]) -> list[dict[str, str]]:
    """Keep the roles chat APIs understand, in {role, content} form."""
    return [
        {"role": message.role.value, "content": message.content}
        for message in messages
        if message.role.value in API_ROLES
    ]


class BaseProvider(ABC):
    """
    Abstract base class for provider adapters.
    """

    id: ProviderId
    name: str

    @abstractmethod
    def get_default_settings(self) -> dict[str, Any]:
        """Settings used to seed a new model config for this provider."""
        pass

    @abstractmethod
    async def stream(
        self,
        messages: list[Message],
        config: ModelConfig,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """
        Stream a completion for `messages`.

        Yields DELTA events in arrival order, then exactly one DONE or ERROR,
        unless `cancel_event` is set, in which case the stream stops without
        a final event. Malformed individual records are not errors.
        """
        yield StreamEvent.done("")

    async def chat(
        self,
        messages: list[Message],
        config: ModelConfig,
        callbacks: ChatCallbacks,
        cancel_event: asyncio.Event | None = None,
    ) -> ChatStatus:
        """Callback-style wrapper around stream()."""
        async for event in self.stream(messages, config, cancel_event):
            if event.kind == StreamEventKind.DELTA:
                callbacks.on_update(event.text)
            elif event.kind == StreamEventKind.DONE:
                callbacks.on_finish(event.text)
                return ChatStatus.FINISHED
            elif event.kind == StreamEventKind.ERROR:
                callbacks.on_error(event.error or "Unknown error")
                return ChatStatus.FAILED

        logger.debug(f"{self.name}: stream ended without a final event (cancelled)")
        return ChatStatus.CANCELLED

"""
Mock Provider

Offline provider for trying the engine without a backend. Streams a scripted
reply (settings `mockReply`) or echoes the last user message.
"""

import asyncio
from collections.abc import AsyncGenerator
from typing import Any

from ..sessions.session import Message, MessageRole
from ..user_config import ModelConfig, ProviderId
from .base import BaseProvider, StreamEvent


class MockProvider(BaseProvider):
    id = ProviderId.TEST_MOCK
    name = "Test Mock"

    def get_default_settings(self) -> dict[str, Any]:
        return {
            "endpoint": "",
            "apiKey": "",
            "modelName": "mock",
            "temperature": 0.0,
            "contextWindow": 4096,
            "mockReply": None,
            "mockChunkSize": 4,
            "mockDelay": 0.02,
        }

    @staticmethod
    def build_reply(messages: list[Message], config: ModelConfig) -> str:
        extra = config.settings.model_extra or {}
        reply = extra.get("mockReply")
        if reply:
            return reply
        for message in reversed(messages):
            if message.role == MessageRole.USER:
                return f"Echo: {message.content}"
        return "Hello from the mock provider."

    async def stream(
        self,
        messages: list[Message],
        config: ModelConfig,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        extra = config.settings.model_extra or {}
        chunk_size = max(1, int(extra.get("mockChunkSize") or 4))
        delay = float(extra.get("mockDelay") or 0.0)

        reply = self.build_reply(messages, config)
        for start in range(0, len(reply), chunk_size):
            if cancel_event is not None and cancel_event.is_set():
                return
            if delay:
                await asyncio.sleep(delay)
            yield StreamEvent.delta(reply[start:start + chunk_size])

        yield StreamEvent.done(reply)

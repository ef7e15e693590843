"""
OpenAI-Compatible Provider

Streams chat completions from any endpoint implementing the OpenAI
`/chat/completions` streaming protocol (OpenAI, DeepSeek, vLLM, ...).
Reasoning-capable backends may send `reasoning_content` deltas; they are
passed through in the same stream as regular content.
"""

import asyncio
from collections.abc import AsyncGenerator
from typing import Any

import aiohttp
from loguru import logger

from ..sessions.session import Message
from ..user_config import ModelConfig, ProviderId
from .base import BaseProvider, StreamEvent, to_api_messages
from .stream_parser import DeltaKind, parse_stream


class OpenAICompatibleProvider(BaseProvider):
    """Provider adapter speaking the OpenAI chat completions protocol over aiohttp."""

    id = ProviderId.OPENAI_COMPATIBLE
    name = "OpenAI Compatible"

    def __init__(self, connect_timeout: float = 30.0):
        self.connect_timeout = connect_timeout

    def get_default_settings(self) -> dict[str, Any]:
        return {
            "endpoint": "https://api.deepseek.com",
            "apiKey": "",
            "modelName": "deepseek-chat",
            "temperature": 1.0,
            "contextWindow": 4096,
        }

    @staticmethod
    def build_url(config: ModelConfig) -> str:
        endpoint = (config.settings.endpoint or "").rstrip("/")
        return f"{endpoint}/chat/completions"

    @staticmethod
    def build_headers(config: ModelConfig) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {config.settings.api_key or ''}",
        }

    @staticmethod
    def build_payload(messages: list[Message], config: ModelConfig) -> dict[str, Any]:
        return {
            "model": config.settings.model_name,
            "messages": to_api_messages(messages),
            "temperature": config.settings.temperature,
            "stream": True,
        }

    async def stream(
        self,
        messages: list[Message],
        config: ModelConfig,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        url = self.build_url(config)
        payload = self.build_payload(messages, config)
        # No total timeout: long generations are ended by cancellation, not deadlines
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=self.connect_timeout)

        full_content = []
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload, headers=self.build_headers(config)) as response:
                    if response.status < 200 or response.status >= 300:
                        error_text = await response.text()
                        logger.warning(f"{self.name}: request to {url} failed with {response.status}")
                        yield StreamEvent.failure(f"API Error {response.status}: {error_text}")
                        return

                    received_bytes = 0

                    async def body():
                        nonlocal received_bytes
                        async for chunk in response.content.iter_any():
                            received_bytes += len(chunk)
                            yield chunk

                    async for event in parse_stream(body(), cancel_event):
                        if event.kind == DeltaKind.TEXT_DELTA:
                            full_content.append(event.value)
                            yield StreamEvent.delta(event.value, event.source)
                        elif event.kind == DeltaKind.MALFORMED:
                            logger.warning(f"{self.name}: skipping malformed stream record: {event.raw!r}")
                        elif event.kind == DeltaKind.DONE:
                            break

                    if cancel_event is not None and cancel_event.is_set():
                        logger.info(f"{self.name}: stream cancelled")
                        return

                    if received_bytes == 0:
                        yield StreamEvent.failure("Response body is empty")
                        return

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"{self.name}: chat request failed: {e}")
            yield StreamEvent.failure(str(e) or e.__class__.__name__)
            return

        yield StreamEvent.done("".join(full_content))

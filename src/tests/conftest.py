import json
from unittest.mock import AsyncMock, Mock

import pytest

from chatbench.sessions.manager import SessionStore
from chatbench.user_config import ModelConfig, ModelSettings, ProviderId


def sse_line(content=None, reasoning=None) -> bytes:
    """Encode one streamed completion record as a `data:` line."""
    delta = {}
    if content is not None:
        delta["content"] = content
    if reasoning is not None:
        delta["reasoning_content"] = reasoning
    record = {"choices": [{"delta": delta, "finish_reason": None}]}
    return f"data: {json.dumps(record, ensure_ascii=False)}\n".encode("utf-8")


DONE_LINE = b"data: [DONE]\n"


def streaming_response(*chunks: bytes, status: int = 200, text: str = ""):
    """Build a mocked aiohttp response whose body yields `chunks`."""

    async def body():
        for chunk in chunks:
            yield chunk

    response = Mock()
    response.status = status
    response.text = AsyncMock(return_value=text)
    response.content.iter_any = Mock(side_effect=lambda: body())
    return response


def patch_post(mock_post, response):
    """Make a patched `aiohttp.ClientSession.post` return `response` as a context manager."""
    mock_post.return_value.__aenter__ = AsyncMock(return_value=response)
    mock_post.return_value.__aexit__ = AsyncMock(return_value=None)


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def openai_config():
    return ModelConfig(
        id="cfg-openai",
        name="Test DeepSeek",
        provider_id=ProviderId.OPENAI_COMPATIBLE,
        settings=ModelSettings(
            endpoint="http://test-llm:8000/v1/",
            api_key="sk-test",
            model_name="deepseek-chat",
            temperature=1.0,
        ),
    )


@pytest.fixture
def mock_config():
    return ModelConfig(
        id="cfg-mock",
        name="Mock",
        provider_id=ProviderId.TEST_MOCK,
        settings=ModelSettings(model_name="mock", mockReply="Hi there", mockChunkSize=3, mockDelay=0),
    )

"""
Provider Factory

Maps provider ids to adapter instances.
"""

from loguru import logger

from ..user_config import ProviderId
from .base import BaseProvider
from .mock import MockProvider
from .openai_compatible import OpenAICompatibleProvider

_openai_provider = OpenAICompatibleProvider()

PROVIDER_REGISTRY: dict[ProviderId, BaseProvider] = {
    ProviderId.OPENAI_COMPATIBLE: _openai_provider,
    ProviderId.DEEPSEEK_OFFICIAL: _openai_provider,  # same protocol, kept separate for future tuning
    ProviderId.TEST_MOCK: MockProvider(),
}


def get_provider(provider_id: ProviderId | str) -> BaseProvider | None:
    """Return the adapter for `provider_id`, or None if it is unknown."""
    try:
        return PROVIDER_REGISTRY.get(ProviderId(provider_id))
    except ValueError:
        logger.warning(f"Unknown provider id: {provider_id}")
        return None


def get_supported_providers() -> list[dict[str, str]]:
    """Provider ids with display names."""
    return [{"id": pid.value, "name": provider.name} for pid, provider in PROVIDER_REGISTRY.items()]

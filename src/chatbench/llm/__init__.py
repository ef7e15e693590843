"""
LLM Provider Module

Provider adapters and the streaming delta parser they share.
"""

from .base import BaseProvider, ChatCallbacks, ChatStatus, StreamEvent, StreamEventKind, to_api_messages
from .factory import PROVIDER_REGISTRY, get_provider, get_supported_providers
from .stream_parser import DeltaEvent, DeltaKind, DeltaParser, iter_until_cancelled, parse_stream

__all__ = [
    "BaseProvider",
    "ChatCallbacks",
    "ChatStatus",
    "StreamEvent",
    "StreamEventKind",
    "to_api_messages",
    "PROVIDER_REGISTRY",
    "get_provider",
    "get_supported_providers",
    "DeltaEvent",
    "DeltaKind",
    "DeltaParser",
    "iter_until_cancelled",
    "parse_stream",
]

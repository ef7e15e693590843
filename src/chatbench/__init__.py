"""
ChatBench

Streaming chat engine: session store, delta parser, provider adapters and
the chat runner that ties them together.
"""

__version__ = "0.1.0"

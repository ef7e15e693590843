"""
Custom exceptions for the chat engine.
These exceptions should be caught and converted to HTTP responses in the API layer.
"""


class ChatBenchError(Exception):
    """Base exception for all chat engine errors."""
    pass


class ConfigurationError(ChatBenchError):
    """Raised when a run cannot start: missing model config, session or provider."""
    pass


class RunInProgressError(ChatBenchError):
    """Raised when a run is started while another one is still streaming."""
    pass


class SessionNotFound(ChatBenchError):
    """Raised when a session id does not exist in the store."""
    pass


class MessageNotFound(ChatBenchError):
    """Raised when a message id does not exist in the targeted session."""
    pass


class ImportFormatError(ChatBenchError):
    """Raised when an exported session or backup cannot be imported."""
    pass

"""
Constants for the chat engine.
Centralizes magic strings and configuration values.
"""

import os
import sys


def get_app_data_directory():
    """Get the application data directory, creating it if it doesn't exist."""
    if getattr(sys, "frozen", False):
        # Running as a packaged app
        if sys.platform == "darwin":  # macOS
            app_data_dir = os.path.expanduser("~/Library/Application Support/ChatBench")
        elif sys.platform == "win32":  # Windows
            app_data_dir = os.path.join(os.getenv("APPDATA", ""), "ChatBench")
        else:  # Linux
            app_data_dir = os.path.expanduser("~/.local/share/ChatBench")
    else:
        # Running in development
        script_dir = os.path.dirname(os.path.abspath(__file__))
        project_root = os.path.dirname(os.path.dirname(script_dir))  # Go up two levels from src/chatbench/
        app_data_dir = project_root

    os.makedirs(app_data_dir, exist_ok=True)
    return app_data_dir


def get_database_path():
    """Get the SQLite database path."""
    return os.path.join(get_app_data_directory(), "chat_data.db")


# Persistence
STORAGE_KEY = "chat-storage"
STORAGE_VERSION = 0
BACKUP_VERSION = 1

# Sessions
DEFAULT_SESSION_TITLE = "New Chat"
AUTO_TITLE_MAX_CHARS = 20
AUTO_TITLE_ELLIPSIS = "..."
COPY_TITLE_SUFFIX = " (Copy)"
DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."

# Stream wire format
DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
PRIMARY_DELTA_FIELD = "content"
REASONING_DELTA_FIELD = "reasoning_content"

# Roles the provider APIs understand
API_ROLES = ("system", "user", "assistant")

# Error message prefix for failed runs
RUN_ERROR_PREFIX = "API Error: "

"""
Small shared helpers.
"""

import time
import uuid
from datetime import datetime


def generate_id() -> str:
    """Generate a unique id for sessions, messages and model configs."""
    return str(uuid.uuid4())


def now_ms() -> int:
    """Current time as unix epoch milliseconds."""
    return int(time.time() * 1000)


def get_date_string() -> str:
    """Timestamp string used in export file names, e.g. 2024-10-01_12-30."""
    now = datetime.now()
    return f"{now.year}-{now.month}-{now.day}_{now.hour}-{now.minute}"

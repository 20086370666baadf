"""
User Service Global Constants

Centralized location for all system-wide constants used across the application.
"""

from datetime import datetime, timezone


# Timestamp Functions
def get_current_timestamp() -> datetime:
    """Get current timestamp with UTC timezone.

    Returns:
        datetime: Current UTC timestamp

    Note: Use this function instead of a constant to get real-time timestamps.
    """
    return datetime.now(timezone.utc)


# Application Constants
APP_NAME = "User Service"
APP_VERSION = "0.1.0"

# Entity constraints
MAX_USER_ID_LENGTH = 64
MAX_USER_NAME_LENGTH = 255

# Cache layout (entry key "<prefix>:<id>", id index set "<prefix>")
DEFAULT_CACHE_KEY_PREFIX = "users"

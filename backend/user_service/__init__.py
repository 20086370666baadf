"""
User Service

Async CRUD service for users with a Redis cache in front of a relational
store of record.
"""

from .constants import APP_NAME, APP_VERSION

__version__ = APP_VERSION

__all__ = ["APP_NAME", "APP_VERSION", "__version__"]

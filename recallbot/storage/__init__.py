# recallbot/storage/__init__.py
"""Storage backends."""

from .sqlite_vector import SQLiteMessageStore

__all__ = ["SQLiteMessageStore"]

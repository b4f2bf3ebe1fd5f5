# recallbot/models/__init__.py
"""Data models."""

from .message import MessageRecord
from .search import (
    SearchResult,
    FusedSearchResult,
    SearchConfidence,
    SearchOptions,
    SearchResponse,
    ClassifiedQuery,
)
from .context import ContextMessage, WindowMessage, ContextWindow, MessageWindow
from .indexing import IndexingStats, IndexingResult

__all__ = [
    'MessageRecord',
    'SearchResult',
    'FusedSearchResult',
    'SearchConfidence',
    'SearchOptions',
    'SearchResponse',
    'ClassifiedQuery',
    'ContextMessage',
    'WindowMessage',
    'ContextWindow',
    'MessageWindow',
    'IndexingStats',
    'IndexingResult',
]

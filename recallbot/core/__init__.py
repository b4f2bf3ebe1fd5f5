# recallbot/core/__init__.py
"""Core infrastructure: configuration, registry, errors, logging, text helpers."""

from .config import ConfigLoader, SearchSettings, ContextSettings, IndexingSettings
from .errors import RecallBotError, ConfigError, StoreError, EmbeddingError, RateLimitError
from .registry import ComponentRegistry

__all__ = [
    'ConfigLoader',
    'SearchSettings',
    'ContextSettings',
    'IndexingSettings',
    'RecallBotError',
    'ConfigError',
    'StoreError',
    'EmbeddingError',
    'RateLimitError',
    'ComponentRegistry',
]

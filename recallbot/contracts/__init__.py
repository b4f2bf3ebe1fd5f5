# recallbot/contracts/__init__.py
"""Abstract contracts for pluggable components."""

from .storage import IMessageStore
from .vectorizer import IVectorizer
from .handler import IEmbeddingHandler
from .importer import IImporter

__all__ = [
    "IMessageStore",
    "IVectorizer",
    "IEmbeddingHandler",
    "IImporter",
]

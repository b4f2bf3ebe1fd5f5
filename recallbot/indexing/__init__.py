# recallbot/indexing/__init__.py
"""Embedding indexing pipeline."""

from .metrics import IndexingMetrics
from .batch_processor import BatchProcessor
from .message_handler import MessageEmbeddingHandler
from .context_builder import ContextEmbeddingBuilder
from .context_handler import ContextEmbeddingHandler
from .orchestrator import IndexingOrchestrator
from .service import BackgroundIndexer

__all__ = [
    "IndexingMetrics",
    "BatchProcessor",
    "MessageEmbeddingHandler",
    "ContextEmbeddingBuilder",
    "ContextEmbeddingHandler",
    "IndexingOrchestrator",
    "BackgroundIndexer",
]

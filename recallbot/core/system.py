# recallbot/core/system.py
"""Caller-facing facade wiring the store, vectorizer, search and indexing."""

import logging
import threading
from pathlib import Path
from typing import Dict, Any, List, Optional, Sequence

from .config import ConfigLoader, SearchSettings, ContextSettings, IndexingSettings
from .registry import ComponentRegistry
from ..contracts.storage import IMessageStore
from ..contracts.vectorizer import IVectorizer
from ..indexing.batch_processor import BatchProcessor
from ..indexing.context_builder import ContextEmbeddingBuilder
from ..indexing.context_handler import ContextEmbeddingHandler
from ..indexing.message_handler import MessageEmbeddingHandler
from ..indexing.metrics import IndexingMetrics
from ..indexing.orchestrator import IndexingOrchestrator
from ..indexing.service import BackgroundIndexer
from ..models.context import ContextWindow
from ..models.indexing import IndexingStats
from ..models.search import SearchOptions, SearchResponse
from ..search.context_windows import ContextWindowAssembler
from ..search.engine import FusionSearchEngine

logger = logging.getLogger(__name__)

DEFAULT_STORAGE = {
    'class': 'recallbot.storage.sqlite_vector.SQLiteMessageStore',
    'config': {'database': 'data/recallbot.db'},
}
DEFAULT_VECTORIZER = {
    'class': 'recallbot.vectorizers.http_embeddings.HttpEmbeddingVectorizer',
    'config': {},
}


class RecallSystem:
    """
    One object holding everything a chat bot needs to answer from history.

    Build it from a config dict (or file) with from_config(), or hand in a
    store and vectorizer directly.
    """

    def __init__(
        self,
        store: IMessageStore,
        vectorizer: IVectorizer,
        search_settings: Optional[SearchSettings] = None,
        context_settings: Optional[ContextSettings] = None,
        indexing_settings: Optional[IndexingSettings] = None,
    ):
        self.store = store
        self.vectorizer = vectorizer
        self.search_settings = search_settings or SearchSettings()
        self.context_settings = context_settings or ContextSettings()
        self.indexing_settings = indexing_settings or IndexingSettings()

        self.engine = FusionSearchEngine(store, vectorizer, self.search_settings)

        ctx = self.context_settings
        self.assembler = ContextWindowAssembler(
            store,
            window_size=ctx.window_size,
            max_targets=ctx.max_targets,
            center_max_chars=ctx.center_max_chars,
            context_max_chars=ctx.context_max_chars,
            char_budget=ctx.char_budget,
        )

        idx = self.indexing_settings
        self.metrics = IndexingMetrics()
        handlers = [
            MessageEmbeddingHandler(store, vectorizer, enabled=idx.enabled),
            ContextEmbeddingHandler(
                store,
                ContextEmbeddingBuilder(store, vectorizer, idx),
                enabled=idx.enabled and idx.context_enabled,
            ),
        ]
        self.orchestrator = IndexingOrchestrator(handlers, BatchProcessor(idx, self.metrics))

    @classmethod
    def from_config(
        cls,
        config: Optional[Dict[str, Any]] = None,
        config_path: Optional[Path] = None,
        registry: Optional[ComponentRegistry] = None,
    ) -> "RecallSystem":
        """
        Create the system from a config dict, or load one from config_path.

        Raises:
            ConfigError: On invalid settings or unloadable component classes
        """
        if config is None:
            config = ConfigLoader.load(config_path)

        search_settings = SearchSettings.from_dict(config.get('search'))
        context_settings = ContextSettings.from_dict(config.get('context'))
        indexing_settings = IndexingSettings.from_dict(config.get('indexing'))

        registry = registry or ComponentRegistry()
        components = config.get('components') or {}

        store = registry.create_component('storage', components.get('storage', DEFAULT_STORAGE))
        vectorizer = registry.create_component('vectorizer', components.get('vectorizer', DEFAULT_VECTORIZER))
        store.initialize()
        logger.info("Recall system ready: %s + %s", type(store).__name__, type(vectorizer).__name__)

        return cls(store, vectorizer, search_settings, context_settings, indexing_settings)

    # Search

    def search(self, question: str, chat_id: int, options: Optional[SearchOptions] = None) -> SearchResponse:
        return self.engine.search(question, chat_id, options)

    def get_merged_context_windows(
        self,
        chat_id: int,
        message_ids: Sequence[int],
        window_size: Optional[int] = None,
    ) -> List[ContextWindow]:
        return self.assembler.get_merged_context_windows(chat_id, message_ids, window_size)

    def build_context(self, response: SearchResponse, chat_id: int) -> str:
        """Prompt-ready dialog blocks around the results of a search."""
        if not response.results:
            return ""
        message_ids = [r.message_id for r in response.results]
        windows = self.get_merged_context_windows(chat_id, message_ids)
        return self.assembler.build_context(windows)

    # Indexing

    def run_indexing_tick(self, cancel_event: Optional[threading.Event] = None) -> bool:
        """Run every handler once; True when more work remains."""
        return self.orchestrator.run_pipeline(cancel_event)

    def get_indexing_stats(self) -> Dict[str, IndexingStats]:
        return self.orchestrator.get_all_stats()

    def background_indexer(self) -> BackgroundIndexer:
        return BackgroundIndexer(self.orchestrator, self.indexing_settings)

    def close(self) -> None:
        self.engine.close()
        self.vectorizer.unload()
        self.store.close()

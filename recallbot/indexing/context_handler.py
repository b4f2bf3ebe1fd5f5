# recallbot/indexing/context_handler.py
"""Context-window embedding handler sweeping chats one at a time."""

import logging
import threading
import time
from typing import List, Optional

from ..contracts.handler import IEmbeddingHandler
from ..contracts.storage import IMessageStore
from ..models.indexing import IndexingStats, IndexingResult
from .context_builder import ContextEmbeddingBuilder

logger = logging.getLogger(__name__)


class ContextEmbeddingHandler(IEmbeddingHandler):
    """
    Each process_batch() call builds the windows of exactly one chat.

    The cursor (stale chat ids + position) is loaded lazily at the start of a
    sweep and reset to None once every chat has been visited, so the next
    call starts a fresh sweep.
    """

    def __init__(
        self,
        store: IMessageStore,
        builder: ContextEmbeddingBuilder,
        enabled: bool = True,
        windows_per_chat: int = 100,
    ):
        self.store = store
        self.builder = builder
        self._enabled = enabled
        self.windows_per_chat = windows_per_chat

        self._chat_ids: Optional[List[int]] = None
        self._current_index = 0

    @property
    def name(self) -> str:
        return "context"

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def cursor(self) -> Optional[int]:
        """Position in the current sweep, None between sweeps."""
        return None if self._chat_ids is None else self._current_index

    def get_stats(self) -> IndexingStats:
        return self.store.get_context_stats()

    def reset(self) -> None:
        self._chat_ids = None
        self._current_index = 0

    def process_batch(
        self,
        batch_size: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> IndexingResult:
        started = time.perf_counter()

        if self._chat_ids is None:
            self._chat_ids = self.store.get_stale_context_chat_ids()
            self._current_index = 0
            logger.debug("Context sweep over %d stale chat(s)", len(self._chat_ids))

        if self._current_index >= len(self._chat_ids):
            self.reset()
            return IndexingResult.nothing(time.perf_counter() - started)

        chat_id = self._chat_ids[self._current_index]
        # Advance before building so a failing chat is skipped next time
        self._current_index += 1
        has_more = self._current_index < len(self._chat_ids)
        if not has_more:
            self.reset()

        try:
            self.builder.build_for_chat(chat_id, min(batch_size, self.windows_per_chat), cancel_event)
        except Exception as e:
            logger.warning("Failed to build context embeddings for chat %s: %s", chat_id, e)
            raise

        return IndexingResult(
            processed_count=1,
            elapsed_time=time.perf_counter() - started,
            has_more_work=has_more,
        )

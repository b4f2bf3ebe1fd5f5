# recallbot/indexing/message_handler.py
"""Per-message embedding handler."""

import logging
import threading
import time
from typing import Optional

from ..contracts.handler import IEmbeddingHandler
from ..contracts.storage import IMessageStore
from ..contracts.vectorizer import IVectorizer
from ..core.errors import EmbeddingError
from ..models.indexing import IndexingStats, IndexingResult

logger = logging.getLogger(__name__)


class MessageEmbeddingHandler(IEmbeddingHandler):
    """Embeds messages that have no original embedding yet, one batch per call."""

    def __init__(self, store: IMessageStore, vectorizer: IVectorizer, enabled: bool = True):
        self.store = store
        self.vectorizer = vectorizer
        self._enabled = enabled

    @property
    def name(self) -> str:
        return "message"

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    def get_stats(self) -> IndexingStats:
        return self.store.get_embedding_stats()

    def process_batch(
        self,
        batch_size: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> IndexingResult:
        started = time.perf_counter()

        messages = self.store.get_messages_without_embeddings(batch_size)
        if not messages:
            return IndexingResult.nothing(time.perf_counter() - started)

        vectors = self.vectorizer.vectorize_batch([m.text for m in messages])
        if len(vectors) != len(messages):
            raise EmbeddingError(f"Vectorizer returned {len(vectors)} vectors for {len(messages)} messages")

        stored = self.store.upsert_embeddings_batch(list(zip(messages, vectors)))
        logger.debug("Embedded %d message(s)", stored)

        return IndexingResult(
            processed_count=len(messages),
            elapsed_time=time.perf_counter() - started,
            has_more_work=len(messages) >= batch_size,
        )

# recallbot/contracts/handler.py
"""Abstract interface for embedding indexing handlers."""

import threading
from abc import ABC, abstractmethod
from typing import Optional

from ..models.indexing import IndexingStats, IndexingResult


class IEmbeddingHandler(ABC):
    """
    One kind of embedding work (per-message vectors, sliding-window context vectors).

    Handlers are driven one batch at a time by the BatchProcessor and are
    never called re-entrantly.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable handler name, e.g. 'message' or 'context'."""
        pass

    @property
    @abstractmethod
    def is_enabled(self) -> bool:
        """Disabled handlers are skipped without touching the store."""
        pass

    @abstractmethod
    def get_stats(self) -> IndexingStats:
        """
        Report progress.

        Returns:
            IndexingStats with pending == max(0, total - indexed)
        """
        pass

    @abstractmethod
    def process_batch(
        self,
        batch_size: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> IndexingResult:
        """
        Process one bounded batch of work.

        Args:
            batch_size: Upper bound on items fetched for this batch
            cancel_event: Set when the caller is shutting down

        Returns:
            IndexingResult; processed_count == 0 ends the run

        Raises:
            RateLimitError: Provider throttling, the same batch will be retried
        """
        pass

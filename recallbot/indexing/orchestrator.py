# recallbot/indexing/orchestrator.py
"""Runs every embedding handler once per tick, in dependency order."""

import logging
import threading
from typing import Dict, Iterable, List, Optional

from ..contracts.handler import IEmbeddingHandler
from ..models.indexing import IndexingStats
from .batch_processor import BatchProcessor

logger = logging.getLogger(__name__)

# Context windows are built from already-embedded messages
HANDLER_ORDER = {"message": 0, "context": 1}


class IndexingOrchestrator:
    """
    Holds the handlers sorted message -> context -> others and drives each
    through the batch processor. A failing handler never stops the others.
    """

    def __init__(self, handlers: Iterable[IEmbeddingHandler], batch_processor: BatchProcessor):
        self.batch_processor = batch_processor
        self.handlers: List[IEmbeddingHandler] = sorted(
            handlers, key=lambda h: HANDLER_ORDER.get(h.name, len(HANDLER_ORDER))
        )
        logger.info(
            "Indexing orchestrator with %d handler(s): %s",
            len(self.handlers), ", ".join(h.name for h in self.handlers),
        )

    def run_pipeline(self, cancel_event: Optional[threading.Event] = None) -> bool:
        """
        One tick over all handlers.

        Returns:
            True if any handler reported more work
        """
        has_more_work = False

        for handler in self.handlers:
            if cancel_event is not None and cancel_event.is_set():
                break
            try:
                handler_has_more = self.batch_processor.process_batches(handler, cancel_event)
            except Exception:
                logger.exception("Handler %s failed, continuing with next handler", handler.name)
                continue

            logger.debug("Handler %s done: has_more=%s", handler.name, handler_has_more)
            has_more_work = has_more_work or handler_has_more

        logger.info("Indexing tick complete: has_more_work=%s", has_more_work)
        return has_more_work

    def get_all_stats(self) -> Dict[str, IndexingStats]:
        """Stats per handler name; a handler whose stats fail reports zeros."""
        stats: Dict[str, IndexingStats] = {}
        for handler in self.handlers:
            try:
                stats[handler.name] = handler.get_stats()
            except Exception as e:
                logger.warning("Failed to get stats for handler %s: %s", handler.name, e)
                stats[handler.name] = IndexingStats.empty()
        return stats

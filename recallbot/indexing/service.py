# recallbot/indexing/service.py
"""Long-running background indexing loop."""

import logging
import threading
from typing import Optional

from ..core.config import IndexingSettings
from .orchestrator import IndexingOrchestrator

logger = logging.getLogger(__name__)


class BackgroundIndexer:
    """
    Ticks the orchestrator until stopped.

    The delay after a tick adapts to the outcome: active_interval while work
    remains, idle_interval when caught up, error_retry_delay after an
    unexpected failure. All waits end early when stop_event is set.
    """

    def __init__(self, orchestrator: IndexingOrchestrator, settings: Optional[IndexingSettings] = None):
        self.orchestrator = orchestrator
        self.settings = settings or IndexingSettings()
        self.ticks = 0

    def next_delay(self, has_more_work: bool) -> float:
        return self.settings.active_interval if has_more_work else self.settings.idle_interval

    def run(self, stop_event: threading.Event, max_ticks: Optional[int] = None) -> None:
        if not self.settings.enabled:
            logger.warning("Background indexing is disabled in config")
            return

        logger.info("Background indexing starts in %.0fs", self.settings.startup_delay)
        if stop_event.wait(self.settings.startup_delay):
            return

        while not stop_event.is_set():
            try:
                has_more_work = self.orchestrator.run_pipeline(stop_event)
                delay = self.next_delay(has_more_work)
            except Exception:
                logger.exception("Indexing tick failed")
                delay = self.settings.error_retry_delay

            self.ticks += 1
            if max_ticks is not None and self.ticks >= max_ticks:
                break

            logger.debug("Next indexing tick in %.0fs", delay)
            if stop_event.wait(delay):
                break

        logger.info("Background indexing stopped after %d tick(s)", self.ticks)

    def start(self, stop_event: threading.Event) -> threading.Thread:
        """Run the loop on a daemon thread."""
        thread = threading.Thread(target=self.run, args=(stop_event,), name="recall-indexer", daemon=True)
        thread.start()
        return thread

# recallbot/indexing/batch_processor.py
"""Drives one handler through repeated batches with rate-limit backoff."""

import logging
import threading
import time
from typing import Callable, Optional

from ..contracts.handler import IEmbeddingHandler
from ..core.config import IndexingSettings
from ..core.errors import RateLimitError
from ..models.indexing import IndexingResult
from .metrics import IndexingMetrics

logger = logging.getLogger(__name__)


class BatchProcessor:
    """
    Runs handler.process_batch() until the handler is drained, the per-run
    batch cap is reached, or the run is cancelled.

    A RateLimitError retries the same batch after an exponential backoff
    (base rate_limit_retry_delay, capped at rate_limit_max_delay, provider
    Retry-After wins when given). After max_rate_limit_retries consecutive
    throttles the error propagates. Any other error is recorded and re-raised.
    """

    def __init__(
        self,
        settings: Optional[IndexingSettings] = None,
        metrics: Optional[IndexingMetrics] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.settings = settings or IndexingSettings()
        self.metrics = metrics or IndexingMetrics()
        self._sleep = sleep

    def backoff_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Delay before retry number `attempt` (1-based)."""
        cap = self.settings.rate_limit_max_delay
        if retry_after is not None:
            return min(max(retry_after, 0.0), cap)
        return min(self.settings.rate_limit_retry_delay * (2 ** (attempt - 1)), cap)

    def process_batches(
        self,
        handler: IEmbeddingHandler,
        cancel_event: Optional[threading.Event] = None,
    ) -> bool:
        """
        Returns:
            True when more work may exist for this handler
        """
        if not handler.is_enabled:
            logger.debug("Handler %s is disabled, skipping", handler.name)
            return False

        stats = handler.get_stats()
        if stats.pending == 0:
            logger.debug("Handler %s: no pending work (%d/%d)", handler.name, stats.indexed, stats.total)
            return False

        logger.info(
            "Handler %s: starting run with %d pending (%d/%d indexed)",
            handler.name, stats.pending, stats.indexed, stats.total,
        )

        max_batches = self.settings.max_batches_per_run
        batches = 0
        total_processed = 0
        rate_limit_attempts = 0
        last: Optional[IndexingResult] = None
        started = time.perf_counter()

        while batches < max_batches:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Handler %s: cancelled before batch %d", handler.name, batches + 1)
                break

            try:
                result = handler.process_batch(self.settings.batch_size, cancel_event)
            except RateLimitError as e:
                self.metrics.record_error(handler.name, "rate_limit")
                rate_limit_attempts += 1
                if rate_limit_attempts > self.settings.max_rate_limit_retries:
                    logger.error(
                        "Handler %s: still rate limited after %d retries, giving up on batch %d",
                        handler.name, rate_limit_attempts - 1, batches + 1,
                    )
                    raise

                delay = self.backoff_delay(rate_limit_attempts, e.retry_after)
                logger.warning(
                    "Handler %s: rate limited on batch %d, retry %d in %.1fs",
                    handler.name, batches + 1, rate_limit_attempts, delay,
                )
                self._wait(delay, cancel_event)
                continue
            except Exception as e:
                self.metrics.record_error(handler.name, type(e).__name__)
                logger.error("Handler %s: error processing batch %d: %s", handler.name, batches + 1, e)
                raise

            rate_limit_attempts = 0
            last = result
            if result.processed_count == 0:
                break

            batches += 1
            total_processed += result.processed_count
            self.metrics.record_batch(handler.name, result.processed_count, result.elapsed_time)
            logger.info(
                "Handler %s: batch %d: +%d in %.0fms | progress %d/%d (%.1f%%)",
                handler.name, batches, result.processed_count, result.elapsed_time * 1000,
                total_processed, stats.pending, min(100.0, total_processed * 100.0 / stats.pending),
            )

            if not result.has_more_work:
                break
            if batches < max_batches:
                self._wait(self.settings.delay_between_batches, cancel_event)

        elapsed = time.perf_counter() - started
        if total_processed:
            logger.info(
                "Handler %s: run complete, %d items in %d batches, %.1fs",
                handler.name, total_processed, batches, elapsed,
            )

        if last is None:
            # Cancelled before any batch ran
            return True
        return last.has_more_work

    def _wait(self, seconds: float, cancel_event: Optional[threading.Event]) -> None:
        if seconds <= 0:
            return
        if self._sleep is not None:
            self._sleep(seconds)
        elif cancel_event is not None:
            cancel_event.wait(seconds)
        else:
            time.sleep(seconds)

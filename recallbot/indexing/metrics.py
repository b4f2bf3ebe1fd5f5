# recallbot/indexing/metrics.py
"""In-process counters for the indexing pipeline."""

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict


@dataclass
class HandlerMetrics:
    items_processed: int = 0
    batches_processed: int = 0
    total_batch_seconds: float = 0.0
    max_batch_seconds: float = 0.0
    errors: Dict[str, int] = field(default_factory=dict)

    @property
    def avg_batch_seconds(self) -> float:
        if not self.batches_processed:
            return 0.0
        return self.total_batch_seconds / self.batches_processed


class IndexingMetrics:
    """Thread-safe per-handler counters: items, batches, durations, errors by type."""

    def __init__(self):
        self._lock = threading.Lock()
        self._handlers: Dict[str, HandlerMetrics] = defaultdict(HandlerMetrics)

    def record_batch(self, handler_name: str, items_processed: int, elapsed_seconds: float) -> None:
        with self._lock:
            metrics = self._handlers[handler_name]
            metrics.items_processed += items_processed
            metrics.batches_processed += 1
            metrics.total_batch_seconds += elapsed_seconds
            metrics.max_batch_seconds = max(metrics.max_batch_seconds, elapsed_seconds)

    def record_error(self, handler_name: str, error_type: str) -> None:
        with self._lock:
            errors = self._handlers[handler_name].errors
            errors[error_type] = errors.get(error_type, 0) + 1

    def get(self, handler_name: str) -> HandlerMetrics:
        """Copy of one handler's counters."""
        with self._lock:
            current = self._handlers.get(handler_name, HandlerMetrics())
            return HandlerMetrics(
                items_processed=current.items_processed,
                batches_processed=current.batches_processed,
                total_batch_seconds=current.total_batch_seconds,
                max_batch_seconds=current.max_batch_seconds,
                errors=dict(current.errors),
            )

    def snapshot(self) -> Dict[str, dict]:
        with self._lock:
            names = list(self._handlers)
        return {
            name: {
                'items_processed': m.items_processed,
                'batches_processed': m.batches_processed,
                'avg_batch_seconds': m.avg_batch_seconds,
                'max_batch_seconds': m.max_batch_seconds,
                'errors': m.errors,
            }
            for name, m in ((name, self.get(name)) for name in names)
        }

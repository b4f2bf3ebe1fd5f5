# recallbot/models/indexing.py
"""Indexing pipeline stats and batch results."""

from dataclasses import dataclass


@dataclass(frozen=True)
class IndexingStats:
    """Progress of one handler. pending == 0 means there is nothing to do."""

    total: int = 0
    indexed: int = 0
    pending: int = 0

    @classmethod
    def from_counts(cls, total: int, indexed: int) -> 'IndexingStats':
        """Derive pending from total and indexed, never negative."""
        return cls(total=total, indexed=indexed, pending=max(0, total - indexed))

    @classmethod
    def empty(cls) -> 'IndexingStats':
        return cls(0, 0, 0)

    @property
    def progress_percent(self) -> float:
        if self.total <= 0:
            return 100.0
        return min(100.0, self.indexed * 100.0 / self.total)

    def to_dict(self) -> dict:
        return {'total': self.total, 'indexed': self.indexed, 'pending': self.pending}


@dataclass(frozen=True)
class IndexingResult:
    """Outcome of a single process_batch() call."""

    processed_count: int
    elapsed_time: float = 0.0  # seconds
    has_more_work: bool = False

    def __post_init__(self):
        if self.processed_count < 0:
            raise ValueError("processed_count must be >= 0")
        if self.processed_count == 0 and self.has_more_work:
            raise ValueError("A batch that processed nothing cannot report more work")

    @classmethod
    def nothing(cls, elapsed_time: float = 0.0) -> 'IndexingResult':
        return cls(processed_count=0, elapsed_time=elapsed_time, has_more_work=False)

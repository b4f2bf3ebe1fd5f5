"""Tests for the batch processor and its rate-limit handling."""

import threading

import pytest

from recallbot.contracts.handler import IEmbeddingHandler
from recallbot.core.config import IndexingSettings
from recallbot.core.errors import RateLimitError, StoreError
from recallbot.indexing.batch_processor import BatchProcessor
from recallbot.indexing.metrics import IndexingMetrics
from recallbot.models.indexing import IndexingResult, IndexingStats


class ScriptedHandler(IEmbeddingHandler):
    """Handler with `items` pending work, processing one item per batch.

    `failures` maps a 1-based call number to the exception raised on that call.
    """

    def __init__(self, items=10, failures=None, enabled=True, name="message"):
        self.items = items
        self.done = 0
        self.calls = 0
        self.failures = failures or {}
        self._enabled = enabled
        self._name = name

    @property
    def name(self):
        return self._name

    @property
    def is_enabled(self):
        return self._enabled

    def get_stats(self):
        return IndexingStats.from_counts(self.items, self.done)

    def process_batch(self, batch_size, cancel_event=None):
        self.calls += 1
        if self.calls in self.failures:
            raise self.failures[self.calls]
        if self.done >= self.items:
            return IndexingResult.nothing()
        self.done += 1
        return IndexingResult(processed_count=1, elapsed_time=0.01, has_more_work=self.done < self.items)


def make_processor(sleeps, **overrides):
    settings = dict(
        batch_size=1,
        max_batches_per_run=10,
        delay_between_batches=2.0,
        rate_limit_retry_delay=60.0,
        rate_limit_max_delay=600.0,
        max_rate_limit_retries=3,
    )
    settings.update(overrides)
    return BatchProcessor(IndexingSettings(**settings), IndexingMetrics(), sleep=sleeps.append)


class TestProcessBatches:
    def test_rate_limit_on_third_batch_is_retried(self):
        sleeps = []
        processor = make_processor(sleeps)
        handler = ScriptedHandler(items=10, failures={3: RateLimitError()})

        has_more = processor.process_batches(handler)

        assert handler.done == 10
        assert not has_more
        assert sleeps == [2.0, 2.0, 60.0, 2.0, 2.0, 2.0, 2.0, 2.0, 2.0, 2.0]
        metrics = processor.metrics.get("message")
        assert metrics.batches_processed == 10
        assert metrics.items_processed == 10
        assert metrics.errors == {"rate_limit": 1}

    def test_exponential_backoff_capped(self):
        sleeps = []
        processor = make_processor(sleeps, rate_limit_max_delay=150.0, max_rate_limit_retries=5)
        failures = {n: RateLimitError() for n in (1, 2, 3)}
        handler = ScriptedHandler(items=1, failures=failures)

        processor.process_batches(handler)
        assert sleeps == [60.0, 120.0, 150.0]
        assert handler.done == 1

    def test_retry_after_header_wins(self):
        sleeps = []
        processor = make_processor(sleeps)
        handler = ScriptedHandler(items=1, failures={1: RateLimitError(retry_after=7.5)})

        processor.process_batches(handler)
        assert sleeps == [7.5]

    def test_retries_are_bounded(self):
        sleeps = []
        processor = make_processor(sleeps, max_rate_limit_retries=2)
        failures = {n: RateLimitError() for n in range(1, 10)}
        handler = ScriptedHandler(items=5, failures=failures)

        with pytest.raises(RateLimitError):
            processor.process_batches(handler)
        assert handler.calls == 3
        assert sleeps == [60.0, 120.0]
        assert processor.metrics.get("message").errors == {"rate_limit": 3}

    def test_rate_limit_counter_resets_after_success(self):
        sleeps = []
        processor = make_processor(sleeps, max_rate_limit_retries=1)
        handler = ScriptedHandler(items=3, failures={1: RateLimitError(), 3: RateLimitError()})

        assert not processor.process_batches(handler)
        assert handler.done == 3
        assert sleeps == [60.0, 2.0, 60.0, 2.0]

    def test_other_errors_propagate(self):
        processor = make_processor([])
        handler = ScriptedHandler(items=5, failures={2: StoreError("disk I/O error")})

        with pytest.raises(StoreError):
            processor.process_batches(handler)
        assert handler.done == 1
        assert processor.metrics.get("message").errors == {"StoreError": 1}

    def test_disabled_handler(self):
        handler = ScriptedHandler(enabled=False)
        assert not make_processor([]).process_batches(handler)
        assert handler.calls == 0

    def test_nothing_pending(self):
        handler = ScriptedHandler(items=0)
        assert not make_processor([]).process_batches(handler)
        assert handler.calls == 0

    def test_batch_cap_reports_more_work(self):
        sleeps = []
        handler = ScriptedHandler(items=10)
        assert make_processor(sleeps, max_batches_per_run=4).process_batches(handler)
        assert handler.done == 4
        # No delay after the last allowed batch
        assert sleeps == [2.0, 2.0, 2.0]

    def test_cancel_before_first_batch(self):
        cancel = threading.Event()
        cancel.set()
        handler = ScriptedHandler(items=3)
        assert make_processor([]).process_batches(handler, cancel)
        assert handler.calls == 0

    def test_cancel_mid_run(self):
        cancel = threading.Event()

        def sleep(seconds):
            cancel.set()

        processor = BatchProcessor(IndexingSettings(batch_size=1), sleep=sleep)
        handler = ScriptedHandler(items=5)
        assert processor.process_batches(handler, cancel)
        assert handler.done == 1

    def test_waits_on_cancel_event_without_sleep(self):
        cancel = threading.Event()
        cancel.set()
        processor = BatchProcessor(IndexingSettings(batch_size=1, delay_between_batches=30.0))
        # A set event returns immediately instead of blocking 30s
        processor._wait(30.0, cancel)


class TestBackoffDelay:
    @pytest.mark.parametrize(
        ("attempt", "expected"),
        [(1, 60.0), (2, 120.0), (3, 240.0), (4, 480.0), (5, 600.0), (9, 600.0)],
    )
    def test_doubling_with_cap(self, attempt, expected):
        assert BatchProcessor(IndexingSettings()).backoff_delay(attempt) == expected

    def test_retry_after_capped(self):
        assert BatchProcessor(IndexingSettings()).backoff_delay(1, retry_after=9999) == 600.0

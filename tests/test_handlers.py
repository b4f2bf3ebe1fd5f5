"""Tests for the message and context embedding handlers."""

import threading
from datetime import timedelta

import pytest

from recallbot.core.config import IndexingSettings
from recallbot.core.errors import EmbeddingError, StoreError
from recallbot.indexing.context_builder import (
    ContextEmbeddingBuilder,
    build_sliding_windows,
    format_window_for_embedding,
    segment_into_dialogs,
)
from recallbot.indexing.context_handler import ContextEmbeddingHandler
from recallbot.indexing.message_handler import MessageEmbeddingHandler
from recallbot.models.context import WindowMessage

from conftest import BASE_TIME, FakeVectorizer, make_message


def wm(message_id, minutes=None, text="some long text"):
    return WindowMessage(
        message_id=message_id,
        chat_id=100,
        author="Alice",
        text=text,
        date_utc=BASE_TIME + timedelta(minutes=message_id if minutes is None else minutes),
    )


class TestMessageEmbeddingHandler:
    def test_batches_until_done(self, store, vectorizer):
        store.save_messages([make_message(i, f"message text {i}") for i in range(1, 6)])
        handler = MessageEmbeddingHandler(store, vectorizer)

        first = handler.process_batch(3)
        assert (first.processed_count, first.has_more_work) == (3, True)

        second = handler.process_batch(3)
        assert (second.processed_count, second.has_more_work) == (2, False)

        assert handler.process_batch(3).processed_count == 0
        assert handler.get_stats().pending == 0

    def test_vector_count_mismatch(self, store):
        class ShortVectorizer(FakeVectorizer):
            def vectorize_batch(self, texts):
                return super().vectorize_batch(texts)[:-1]

        store.save_messages([make_message(1, "one text"), make_message(2, "two text")])
        with pytest.raises(EmbeddingError):
            MessageEmbeddingHandler(store, ShortVectorizer()).process_batch(10)
        assert store.get_embedding_stats().indexed == 0

    def test_name_and_enabled(self, store, vectorizer):
        handler = MessageEmbeddingHandler(store, vectorizer, enabled=False)
        assert handler.name == "message"
        assert not handler.is_enabled


class TestDialogSegmentation:
    def test_split_on_long_gap(self):
        messages = [wm(1, 0), wm(2, 10), wm(3, 41), wm(4, 50)]
        dialogs = segment_into_dialogs(messages, gap_minutes=30)
        assert [[m.message_id for m in d] for d in dialogs] == [[1, 2], [3, 4]]

    def test_exact_gap_stays_together(self):
        dialogs = segment_into_dialogs([wm(1, 0), wm(2, 30)], gap_minutes=30)
        assert len(dialogs) == 1

    def test_empty(self):
        assert segment_into_dialogs([]) == []


class TestSlidingWindows:
    def test_short_dialog_single_window(self):
        windows = build_sliding_windows(100, [wm(i) for i in range(1, 8)])
        assert len(windows) == 1
        assert (windows[0].window_start_id, windows[0].window_end_id) == (1, 7)
        assert windows[0].center_message_id == 4

    def test_too_short_dialogs_skipped(self):
        messages = [wm(i, i) for i in range(1, 5)] + [wm(i, 100 + i) for i in range(5, 11)]
        windows = build_sliding_windows(100, messages, gap_minutes=30)
        assert len(windows) == 1
        assert windows[0].window_start_id == 5

    def test_long_dialog_steps_and_tail(self):
        windows = build_sliding_windows(100, [wm(i) for i in range(1, 21)])
        assert [(w.window_start_id, w.window_end_id) for w in windows] == [(1, 15), (4, 18), (6, 20)]
        assert all(len(w.messages) == 15 for w in windows)

    def test_no_tail_when_covered(self):
        windows = build_sliding_windows(100, [wm(i) for i in range(1, 19)])
        assert [(w.window_start_id, w.window_end_id) for w in windows] == [(1, 15), (4, 18)]

    def test_format_for_embedding(self):
        window = build_sliding_windows(100, [wm(i, text=f"line {i} text") for i in range(1, 6)])[0]
        assert format_window_for_embedding(window).split("\n")[0] == "Alice: line 1 text"


class TestContextEmbeddingBuilder:
    def test_builds_and_resumes(self, store, vectorizer):
        store.save_messages([make_message(i, f"dialog message {i}") for i in range(1, 21)])
        builder = ContextEmbeddingBuilder(store, vectorizer)

        assert builder.build_for_chat(100, batch_size=100) == 3
        assert store.get_context_stats().pending == 0
        # Continuing after the newest center adds one trailing window, then nothing
        assert builder.build_for_chat(100, batch_size=100) == 1
        assert builder.build_for_chat(100, batch_size=100) == 0
        assert store.get_statistics()['context_embeddings'] == 4

    def test_only_short_dialogs_moves_resume_marker(self, store, vectorizer):
        # Every message is its own dialog
        store.save_messages([make_message(i, f"lonely message {i}", minutes=i * 60) for i in range(1, 7)])
        settings = IndexingSettings(context_window_step=1)
        builder = ContextEmbeddingBuilder(store, vectorizer, settings)

        assert builder.build_for_chat(100, batch_size=3) == 0
        assert store.get_context_resume_id(100) == 3
        assert builder.build_for_chat(100, batch_size=3) == 0
        assert store.get_context_resume_id(100) == 6

    def test_cancelled_before_embedding(self, store, vectorizer):
        store.save_messages([make_message(i, f"dialog message {i}") for i in range(1, 8)])
        cancel = threading.Event()
        cancel.set()
        assert ContextEmbeddingBuilder(store, vectorizer).build_for_chat(100, 100, cancel) == 0
        assert vectorizer.calls == []


class TestContextEmbeddingHandler:
    def test_one_chat_per_batch(self, store, vectorizer):
        for chat_id in (1, 2):
            store.save_messages([make_message(i, f"chat {chat_id} message {i}", chat_id=chat_id) for i in range(1, 8)])
        handler = ContextEmbeddingHandler(store, ContextEmbeddingBuilder(store, vectorizer))
        assert handler.cursor is None

        first = handler.process_batch(100)
        assert (first.processed_count, first.has_more_work) == (1, True)
        assert handler.cursor == 1

        second = handler.process_batch(100)
        assert (second.processed_count, second.has_more_work) == (1, False)
        assert handler.cursor is None
        assert handler.get_stats().pending == 0

    def test_no_chats(self, store, vectorizer):
        handler = ContextEmbeddingHandler(store, ContextEmbeddingBuilder(store, vectorizer))
        result = handler.process_batch(10)
        assert result.processed_count == 0
        assert not result.has_more_work

    def test_failure_skips_chat_next_time(self, store, vectorizer):
        for chat_id in (1, 2):
            store.save_messages([make_message(1, "long message", chat_id=chat_id)])

        class FailingBuilder:
            def __init__(self):
                self.chats = []

            def build_for_chat(self, chat_id, batch_size, cancel_event=None):
                self.chats.append(chat_id)
                if chat_id == 1:
                    raise StoreError("disk full")
                return 0

        builder = FailingBuilder()
        handler = ContextEmbeddingHandler(store, builder)
        with pytest.raises(StoreError):
            handler.process_batch(10)
        handler.process_batch(10)
        assert builder.chats == [1, 2]

    def test_reset_restarts_sweep(self, store, vectorizer):
        for chat_id in (1, 2, 3):
            store.save_messages([make_message(1, "long message", chat_id=chat_id)])
        handler = ContextEmbeddingHandler(store, ContextEmbeddingBuilder(store, vectorizer))
        handler.process_batch(10)
        handler.reset()
        assert handler.cursor is None

    def test_nothing_pending_means_no_work(self, store, vectorizer):
        for chat_id in (1, 2):
            store.save_messages([make_message(i, f"chat {chat_id} message {i}", chat_id=chat_id) for i in range(1, 8)])
        handler = ContextEmbeddingHandler(store, ContextEmbeddingBuilder(store, vectorizer))
        handler.process_batch(100)
        handler.process_batch(100)
        assert handler.get_stats().pending == 0
        calls = len(vectorizer.calls)

        result = handler.process_batch(100)

        assert result.processed_count == 0
        assert not result.has_more_work
        assert len(vectorizer.calls) == calls

    def test_sweep_visits_only_stale_chats(self, store, vectorizer):
        for chat_id in (1, 2, 3):
            store.save_messages([make_message(i, f"chat {chat_id} message {i}", chat_id=chat_id) for i in range(1, 8)])
        store.set_context_progress(1, 7)
        store.set_context_progress(3, 7)
        handler = ContextEmbeddingHandler(store, ContextEmbeddingBuilder(store, vectorizer))

        result = handler.process_batch(100)

        assert (result.processed_count, result.has_more_work) == (1, False)
        assert store.get_last_context_center_id(2) is not None
        assert store.get_last_context_center_id(1) is None

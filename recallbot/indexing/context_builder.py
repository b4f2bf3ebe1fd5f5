# recallbot/indexing/context_builder.py
"""Dialog-aware sliding windows embedded as context vectors."""

import logging
import threading
from datetime import timedelta
from typing import List, Optional

from ..contracts.storage import IMessageStore
from ..contracts.vectorizer import IVectorizer
from ..core.config import IndexingSettings
from ..models.context import WindowMessage, MessageWindow

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 5


def segment_into_dialogs(messages: List[WindowMessage], gap_minutes: float = 30.0) -> List[List[WindowMessage]]:
    """Split a time-ordered message list wherever the silence exceeds gap_minutes."""
    dialogs: List[List[WindowMessage]] = []
    current: List[WindowMessage] = []
    gap = timedelta(minutes=gap_minutes)

    for message in messages:
        if current and message.date_utc - current[-1].date_utc > gap:
            dialogs.append(current)
            current = []
        current.append(message)

    if current:
        dialogs.append(current)
    return dialogs


def _window(chat_id: int, messages: List[WindowMessage]) -> MessageWindow:
    return MessageWindow(
        chat_id=chat_id,
        center_message_id=messages[len(messages) // 2].message_id,
        window_start_id=messages[0].message_id,
        window_end_id=messages[-1].message_id,
        messages=list(messages),
    )


def build_sliding_windows(
    chat_id: int,
    messages: List[WindowMessage],
    min_window: int = 5,
    max_window: int = 15,
    step: int = 3,
    gap_minutes: float = 30.0,
) -> List[MessageWindow]:
    """
    Windows over the dialogs found in messages.

    Dialogs shorter than min_window are skipped, dialogs up to max_window
    become one window, longer ones get max_window-sized windows every
    `step` messages plus a tail window covering the last messages.
    """
    windows: List[MessageWindow] = []
    if len(messages) < min_window:
        return windows

    for dialog in segment_into_dialogs(messages, gap_minutes):
        if len(dialog) < min_window:
            continue
        if len(dialog) <= max_window:
            windows.append(_window(chat_id, dialog))
            continue

        last_start = -1
        for start in range(0, len(dialog) - max_window + 1, step):
            windows.append(_window(chat_id, dialog[start:start + max_window]))
            last_start = start

        if last_start + max_window < len(dialog):
            windows.append(_window(chat_id, dialog[-max_window:]))

    return windows


def format_window_for_embedding(window: MessageWindow) -> str:
    """'Author: text' lines without timestamps."""
    return "\n".join(f"{m.author}: {m.text}" for m in window.messages).strip()


class ContextEmbeddingBuilder:
    """Builds and stores the context embeddings of one chat per call."""

    def __init__(
        self,
        store: IMessageStore,
        vectorizer: IVectorizer,
        settings: Optional[IndexingSettings] = None,
    ):
        self.store = store
        self.vectorizer = vectorizer
        self.settings = settings or IndexingSettings()

    def build_for_chat(
        self,
        chat_id: int,
        batch_size: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """
        Continue the chat's windows from the last stored center.

        Returns:
            Number of new context embeddings stored
        """
        settings = self.settings
        after_id = self.store.get_last_context_center_id(chat_id)
        resume_id = self.store.get_context_resume_id(chat_id)
        if resume_id is not None and (after_id is None or resume_id > after_id):
            after_id = resume_id

        limit = batch_size * settings.context_window_step
        messages = self.store.get_messages_for_windows(chat_id, after_id, limit, MIN_TEXT_LENGTH)
        if not messages:
            return 0

        newest_id = max(m.message_id for m in messages)
        windows = build_sliding_windows(
            chat_id,
            messages,
            min_window=settings.context_min_window,
            max_window=settings.context_max_window,
            step=settings.context_window_step,
            gap_minutes=settings.dialog_gap_minutes,
        )

        # A full batch without a single window would be fetched again forever
        resume_after = newest_id if not windows and len(messages) >= limit else None

        new_windows = [w for w in windows if not self.store.context_embedding_exists(chat_id, w.center_message_id)]
        stored = 0
        if new_windows:
            if cancel_event is not None and cancel_event.is_set():
                return 0

            vectors = self.vectorizer.vectorize_batch([format_window_for_embedding(w) for w in new_windows])
            for window, vector in zip(new_windows, vectors):
                self.store.store_context_embedding(window, format_window_for_embedding(window), vector)
                stored += 1

        self.store.set_context_progress(chat_id, newest_id, resume_after)
        logger.info(
            "Context windows for chat %s: %d message(s) -> %d window(s), %d new",
            chat_id, len(messages), len(windows), stored,
        )
        return stored

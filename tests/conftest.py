"""Shared fixtures: a deterministic vectorizer and a temporary SQLite store."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import numpy as np
import pytest

from recallbot.contracts.vectorizer import IVectorizer
from recallbot.core.text import tokenize
from recallbot.models.message import MessageRecord
from recallbot.storage.sqlite_vector import SQLiteMessageStore

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeVectorizer(IVectorizer):
    """Bag-of-words vectors over a growing vocabulary: one dimension per distinct token."""

    def __init__(self, dim: int = 512):
        self.dim = dim
        self.vocabulary: Dict[str, int] = {}
        self.calls: List[List[str]] = []
        self._lock = threading.Lock()

    def _index(self, token: str) -> int:
        with self._lock:
            if token not in self.vocabulary:
                self.vocabulary[token] = len(self.vocabulary) % self.dim
            return self.vocabulary[token]

    def vectorize(self, text: str) -> np.ndarray:
        return self.vectorize_batch([text])[0]

    def vectorize_batch(self, texts: List[str]) -> np.ndarray:
        self.calls.append(list(texts))
        vectors = np.zeros((len(texts), self.dim), dtype=np.float32)
        for row, text in enumerate(texts):
            for token in tokenize(text):
                vectors[row, self._index(token)] += 1.0
            norm = np.linalg.norm(vectors[row])
            if norm > 0:
                vectors[row] /= norm
        return vectors

    def get_embedding_dim(self) -> int:
        return self.dim

    def load(self) -> None:
        pass

    def unload(self) -> None:
        pass


def make_message(message_id: int, text: str, chat_id: int = 100, minutes: Optional[float] = None, **kwargs) -> MessageRecord:
    """Message posted `minutes` after BASE_TIME (defaults to one minute per id)."""
    offset = message_id if minutes is None else minutes
    kwargs.setdefault('from_user_id', 7)
    kwargs.setdefault('display_name', 'Alice')
    return MessageRecord(
        chat_id=chat_id,
        id=message_id,
        text=text,
        date_utc=BASE_TIME + timedelta(minutes=offset),
        **kwargs,
    )


@pytest.fixture
def vectorizer():
    return FakeVectorizer()


@pytest.fixture
def store(tmp_path):
    """Initialized store on a temporary database file."""
    store = SQLiteMessageStore(config={'database': str(tmp_path / "recall.db")})
    store.initialize()
    yield store
    store.close()

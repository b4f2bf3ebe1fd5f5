# recallbot/contracts/storage.py
"""Abstract interface for the message / embedding store."""

from abc import ABC, abstractmethod
from typing import List, Optional, Dict, Any, Iterable, Tuple
import numpy as np

from ..models.message import MessageRecord
from ..models.search import SearchResult
from ..models.context import ContextMessage, WindowMessage, MessageWindow
from ..models.indexing import IndexingStats


class IMessageStore(ABC):
    """
    Persists chat messages and their embeddings, and answers the queries
    the search engine and the indexing pipeline need.

    Implementations can use:
    - SQLite with FTS5 (bundled)
    - PostgreSQL with pgvector
    """

    @abstractmethod
    def initialize(self) -> None:
        """Create schema/indexes. Safe to call repeatedly."""
        pass

    @abstractmethod
    def save_messages(self, messages: Iterable[MessageRecord]) -> int:
        """
        Insert or update messages (keyed by chat_id + id).

        Returns:
            Number of messages written
        """
        pass

    # Search surface

    @abstractmethod
    def search_by_vector(
        self,
        query_vector: np.ndarray,
        chat_id: int,
        limit: int = 20,
        include_question_embeddings: bool = True,
    ) -> List[SearchResult]:
        """
        Similarity top-K over message embeddings of one chat.

        Returns:
            Results ranked by cosine similarity, best first
        """
        pass

    @abstractmethod
    def search_by_text(
        self,
        keywords: List[str],
        chat_id: int,
        limit: int = 20,
        query_vector: Optional[np.ndarray] = None,
    ) -> List[SearchResult]:
        """
        Full-text search for messages containing any of the keywords.

        Args:
            query_vector: When given, similarity is the cosine to the
                message's own embedding (0.0 when it has none)

        Returns:
            Results ranked by text relevance, best first
        """
        pass

    @abstractmethod
    def search_context_by_vector(
        self,
        query_vector: np.ndarray,
        chat_id: int,
        limit: int = 10,
    ) -> List[SearchResult]:
        """Similarity top-K over sliding-window context embeddings; message_id is the window center."""
        pass

    @abstractmethod
    def get_message_window(
        self,
        chat_id: int,
        message_id: int,
        before: int,
        after: int,
    ) -> List[ContextMessage]:
        """
        Target message plus up to `before` preceding and `after` following
        non-empty messages, ordered by date_utc. Empty if the target is missing.
        """
        pass

    # Message embeddings

    @abstractmethod
    def get_messages_without_embeddings(self, limit: int) -> List[MessageRecord]:
        """Oldest non-empty messages that lack an original (chunk 0) embedding."""
        pass

    @abstractmethod
    def upsert_embedding(
        self,
        chat_id: int,
        message_id: int,
        vector: np.ndarray,
        chunk_index: int = 0,
        chunk_text: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Insert or replace one embedding. Negative chunk_index marks a question-bridge embedding."""
        pass

    @abstractmethod
    def upsert_embeddings_batch(
        self,
        items: List[Tuple[MessageRecord, np.ndarray]],
    ) -> int:
        """Store original embeddings for many messages in one transaction."""
        pass

    @abstractmethod
    def get_embedding_stats(self) -> IndexingStats:
        """Messages with text vs. messages with an original embedding."""
        pass

    # Context (sliding-window) embeddings

    @abstractmethod
    def get_messages_for_windows(
        self,
        chat_id: int,
        after_message_id: Optional[int],
        limit: int,
        min_text_length: int = 5,
    ) -> List[WindowMessage]:
        """Messages after a given id with text longer than min_text_length, oldest first."""
        pass

    @abstractmethod
    def get_last_context_center_id(self, chat_id: int) -> Optional[int]:
        pass

    @abstractmethod
    def context_embedding_exists(self, chat_id: int, center_message_id: int) -> bool:
        pass

    @abstractmethod
    def store_context_embedding(
        self,
        window: MessageWindow,
        context_text: str,
        vector: np.ndarray,
    ) -> None:
        pass

    @abstractmethod
    def set_context_progress(
        self,
        chat_id: int,
        last_message_id: int,
        resume_after_id: Optional[int] = None,
    ) -> None:
        """
        Remember the newest message considered for windows in a chat.

        resume_after_id lets the next build skip a stretch that produced no
        windows (all dialogs too short).
        """
        pass

    @abstractmethod
    def get_context_resume_id(self, chat_id: int) -> Optional[int]:
        pass

    @abstractmethod
    def get_stale_context_chat_ids(self) -> List[int]:
        """Chats holding an eligible message newer than their context progress marker."""
        pass

    @abstractmethod
    def get_context_stats(self) -> IndexingStats:
        """Chats in total vs. chats whose context windows are up to date."""
        pass

    @abstractmethod
    def get_statistics(self) -> dict:
        """Return storage statistics for display."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close connections and cleanup."""
        pass

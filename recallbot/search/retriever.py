# recallbot/search/retriever.py
"""Parallel fan-out of vector and full-text searches for one question."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Callable

import numpy as np

from ..contracts.storage import IMessageStore
from ..contracts.vectorizer import IVectorizer
from ..models.search import SearchResult

logger = logging.getLogger(__name__)

KIND_VECTOR = "vector"
KIND_TEXT = "text"
KIND_CONTEXT = "context"


@dataclass
class RankedList:
    """Results of one contributing query, identified by a stable zero-based index."""

    index: int
    kind: str
    query: str
    results: List[SearchResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_full_text(self) -> bool:
        return self.kind == KIND_TEXT

    @property
    def failed(self) -> bool:
        return self.error is not None


class MultiQueryRetriever:
    """
    Runs one similarity search per query text (original question first, then
    variants), one full-text search over the keywords and, optionally, a
    context-window search for the original question.

    Index layout: 0 = original question, 1..n = variants, then the full-text
    list, then the context-window list. A failing call yields an empty list
    with `error` set; the others are unaffected.
    """

    def __init__(
        self,
        store: IMessageStore,
        vectorizer: IVectorizer,
        results_per_query: int = 20,
        max_workers: int = 4,
    ):
        self.store = store
        self.vectorizer = vectorizer
        self.results_per_query = results_per_query
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="recall-search")

    def retrieve(
        self,
        chat_id: int,
        question: str,
        variants: List[str],
        keywords: List[str],
        search_context_windows: bool = False,
        results_per_query: Optional[int] = None,
    ) -> List[RankedList]:
        limit = results_per_query or self.results_per_query
        queries = [question] + list(variants)

        vectors: Optional[np.ndarray] = None
        embed_error: Optional[str] = None
        try:
            vectors = self.vectorizer.vectorize_batch(queries)
        except Exception as e:
            embed_error = f"embedding failed: {e}"
            logger.warning("Query embedding failed, falling back to full-text only: %s", e)

        lists: List[RankedList] = []
        calls: List[Optional[Callable[[], List[SearchResult]]]] = []

        for i, query in enumerate(queries):
            ranked = RankedList(index=i, kind=KIND_VECTOR, query=query, error=embed_error)
            lists.append(ranked)
            if vectors is not None:
                calls.append(self._vector_call(vectors[i], chat_id, limit))
            else:
                calls.append(None)

        if keywords:
            lists.append(RankedList(index=len(lists), kind=KIND_TEXT, query=" ".join(keywords)))
            query_vector = vectors[0] if vectors is not None else None
            calls.append(lambda: self.store.search_by_text(keywords, chat_id, limit, query_vector=query_vector))

        if search_context_windows and vectors is not None:
            lists.append(RankedList(index=len(lists), kind=KIND_CONTEXT, query=question))
            calls.append(lambda: self.store.search_context_by_vector(vectors[0], chat_id, limit))

        futures = {
            ranked.index: self._executor.submit(call)
            for ranked, call in zip(lists, calls)
            if call is not None
        }

        for ranked in lists:
            future = futures.get(ranked.index)
            if future is None:
                continue
            try:
                ranked.results = future.result()
            except Exception as e:
                ranked.error = str(e) or type(e).__name__
                logger.warning(
                    "Search #%d (%s) failed for %r: %s", ranked.index, ranked.kind, ranked.query, e
                )

        return lists

    def _vector_call(self, vector: np.ndarray, chat_id: int, limit: int) -> Callable[[], List[SearchResult]]:
        return lambda: self.store.search_by_vector(vector, chat_id, limit)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

# recallbot/search/engine.py
"""Fusion search: expand, fan out, fuse, grade."""

import logging
import time
from typing import Optional

from ..contracts.storage import IMessageStore
from ..contracts.vectorizer import IVectorizer
from ..core.config import SearchSettings
from ..models.search import SearchConfidence, SearchOptions, SearchResponse
from .confidence import ConfidenceEvaluator
from .fusion import apply_entity_boost, apply_rrf_fusion
from .query_expander import QueryExpander
from .retriever import MultiQueryRetriever

logger = logging.getLogger(__name__)


class FusionSearchEngine:
    """
    Answers a question with ranked, deduplicated, confidence-graded messages.

    search() never raises: failures come back as a NONE response with the
    reason, so the caller can fall back to a safe reply.
    """

    def __init__(
        self,
        store: IMessageStore,
        vectorizer: IVectorizer,
        settings: Optional[SearchSettings] = None,
    ):
        self.settings = settings or SearchSettings()
        self.store = store
        self.expander = QueryExpander(
            max_variants=self.settings.max_variants,
            remove_emoji=self.settings.remove_emoji,
        )
        self.retriever = MultiQueryRetriever(
            store,
            vectorizer,
            results_per_query=self.settings.results_per_query,
            max_workers=self.settings.max_workers,
        )
        self.evaluator = ConfidenceEvaluator(
            high_threshold=self.settings.high_threshold,
            low_threshold=self.settings.low_threshold,
            min_corroboration=self.settings.min_corroboration,
        )

    def search(self, question: str, chat_id: int, options: Optional[SearchOptions] = None) -> SearchResponse:
        started = time.perf_counter()
        try:
            response = self._search(question, chat_id, options or SearchOptions())
        except Exception as e:
            logger.exception("Search failed for chat %s", chat_id)
            response = SearchResponse(
                confidence=SearchConfidence.NONE,
                confidence_reason=f"Search failed: {e}",
                original_query=question or "",
            )

        response.total_time_ms = (time.perf_counter() - started) * 1000
        return response

    def _search(self, question: str, chat_id: int, options: SearchOptions) -> SearchResponse:
        normalized = self.expander.normalize(question)
        if not normalized:
            return SearchResponse(
                confidence=SearchConfidence.NONE,
                confidence_reason="Empty question",
                original_query=question or "",
            )

        variants, _ = self.expander.expand(normalized)
        keywords = self.expander.extract_keywords(normalized, variants).split()

        search_context = self.settings.search_context_windows
        if options.search_context_windows is not None:
            search_context = options.search_context_windows

        ranked_lists = self.retriever.retrieve(
            chat_id,
            normalized,
            variants,
            keywords,
            search_context_windows=search_context,
            results_per_query=options.results_per_query,
        )
        failed = sum(1 for ranked in ranked_lists if ranked.failed)
        if failed == len(ranked_lists):
            errors = "; ".join(sorted({ranked.error for ranked in ranked_lists}))
            return SearchResponse(
                confidence=SearchConfidence.NONE,
                confidence_reason=f"All searches failed: {errors}",
                original_query=normalized,
                query_variations=variants,
                keywords=keywords,
                failed_queries=failed,
            )

        limit = options.result_limit or self.settings.result_limit
        # Fuse the full candidate set, then filter, then cap
        fused = apply_rrf_fusion(ranked_lists, rrf_k=self.settings.rrf_k)

        classified = options.classified_query
        if classified is not None and classified.entities:
            fused = apply_entity_boost(fused, classified.entities, self.settings.entity_boost)

        if self.settings.filter_near_duplicates:
            threshold = self.settings.near_duplicate_similarity
            kept = [r for r in fused if r.similarity < threshold]
            if len(kept) != len(fused):
                logger.debug("Dropped %d near-exact match(es) of the question", len(fused) - len(kept))
            fused = kept

        if not options.include_news_dumps:
            fused = [r for r in fused if not r.is_news_dump]

        fused = fused[:limit]

        full_text_indices = {ranked.index for ranked in ranked_lists if ranked.is_full_text}
        response = self.evaluator.assess(fused, full_text_indices)
        response.original_query = normalized
        response.query_variations = variants
        response.keywords = keywords
        response.failed_queries = failed

        logger.info(
            "Search chat=%s q=%r: %d lists (%d failed) -> %d results, %s (%s)",
            chat_id, normalized, len(ranked_lists), failed, len(fused),
            response.confidence.name, response.confidence_reason,
        )
        return response

    def close(self) -> None:
        self.retriever.shutdown()

# recallbot/search/confidence.py
"""Confidence gate for fused search results."""

from typing import List, Optional, Set

from ..models.search import FusedSearchResult, SearchConfidence, SearchResponse

GAP_RANK = 5  # score_gap compares the best hit with the 5th one


class ConfidenceEvaluator:
    """
    Grades fused results as NONE / LOW / MEDIUM / HIGH.

    HIGH needs a strong best similarity corroborated by at least
    `min_corroboration` independent lists; LOW is a weak best similarity or a
    top hit seen by a single list. Thresholds are tunables.
    """

    def __init__(
        self,
        high_threshold: float = 0.5,
        low_threshold: float = 0.35,
        min_corroboration: int = 2,
    ):
        if not 0.0 <= low_threshold <= high_threshold:
            raise ValueError("low_threshold must be between 0 and high_threshold")
        if min_corroboration < 1:
            raise ValueError("min_corroboration must be >= 1")

        self.high_threshold = high_threshold
        self.low_threshold = low_threshold
        self.min_corroboration = min_corroboration

    def assess(
        self,
        results: List[FusedSearchResult],
        full_text_indices: Optional[Set[int]] = None,
    ) -> SearchResponse:
        if not results:
            return SearchResponse(
                results=[],
                confidence=SearchConfidence.NONE,
                confidence_reason="No matching messages found",
            )

        top = results[0]
        best_score = top.similarity
        reference = results[GAP_RANK - 1].similarity if len(results) >= GAP_RANK else 0.0
        score_gap = max(0.0, best_score - reference)
        has_full_text_match = bool(full_text_indices and top.matched_query_indices & full_text_indices)

        corroboration = top.matched_query_count
        if best_score >= self.high_threshold and corroboration >= self.min_corroboration:
            confidence = SearchConfidence.HIGH
            reason = f"Strong match (sim={best_score:.3f}) confirmed by {corroboration} queries"
        elif best_score < self.low_threshold:
            confidence = SearchConfidence.LOW
            reason = f"Weak best match (sim={best_score:.3f} < {self.low_threshold:.2f})"
        elif corroboration <= 1:
            confidence = SearchConfidence.LOW
            reason = f"Top match found by a single query only (sim={best_score:.3f})"
        else:
            confidence = SearchConfidence.MEDIUM
            reason = f"Moderate match (sim={best_score:.3f}, {corroboration} queries, gap={score_gap:.3f})"

        if has_full_text_match:
            reason += ", keyword match"

        return SearchResponse(
            results=results,
            confidence=confidence,
            confidence_reason=reason,
            best_score=best_score,
            score_gap=score_gap,
            has_full_text_match=has_full_text_match,
        )

# recallbot/search/fusion.py
"""Reciprocal Rank Fusion and per-message deduplication."""

from typing import Dict, List, Optional, Sequence, Tuple

from ..models.search import SearchResult, FusedSearchResult
from .retriever import RankedList

DEFAULT_RRF_K = 60


def select_better_result(current: SearchResult, candidate: SearchResult) -> SearchResult:
    """
    Pick the representative of two hits for the same message.

    A message's own embedding always beats a question-bridge embedding,
    whatever the similarities. Between hits of the same kind the strictly
    higher similarity wins and ties keep `current`.
    """
    if current.is_question_embedding != candidate.is_question_embedding:
        return candidate if current.is_question_embedding else current

    if candidate.similarity > current.similarity:
        return candidate
    return current


def rrf_score(rank: int, rrf_k: int = DEFAULT_RRF_K) -> float:
    """Contribution of a 1-based rank."""
    return 1.0 / (rrf_k + rank)


def _sort_key(result: FusedSearchResult) -> Tuple:
    return (
        -result.fused_score,
        -result.similarity,
        result.is_question_embedding,
        result.message_id,
        result.chat_id,
    )


def apply_rrf_fusion(
    ranked_lists: Sequence[RankedList],
    rrf_k: int = DEFAULT_RRF_K,
    limit: Optional[int] = None,
) -> List[FusedSearchResult]:
    """
    Fuse ranked lists into one list with a single entry per message.

    Each list adds 1 / (rrf_k + rank) for the first time it ranks a message;
    later hits of the same message in that list only compete for the
    representative entry. Output is sorted by fused score, then similarity,
    then original embeddings before question-bridge ones, then message id.
    """
    fused: Dict[Tuple[int, int], FusedSearchResult] = {}

    for ranked in ranked_lists:
        scored_in_list = set()
        for rank, result in enumerate(ranked.results, 1):
            key = result.key
            entry = fused.get(key)
            if entry is None:
                entry = FusedSearchResult.from_result(result)
                fused[key] = entry
            elif select_better_result(entry, result) is result:
                entry.adopt(result)

            if key in scored_in_list:
                continue
            scored_in_list.add(key)
            entry.fused_score += rrf_score(rank, rrf_k)
            entry.matched_query_indices.add(ranked.index)

    results = list(fused.values())
    for entry in results:
        entry.matched_query_count = len(entry.matched_query_indices)

    results.sort(key=_sort_key)
    if limit is not None:
        results = results[:limit]
    return results


def apply_entity_boost(
    results: List[FusedSearchResult],
    entities: Sequence[str],
    multiplier: float,
) -> List[FusedSearchResult]:
    """
    Multiply the fused score of hits mentioning any entity, then re-sort.

    Matching is a case-insensitive substring test on the hit text.
    """
    names = [e.casefold() for e in entities if e and e.strip()]
    if not names or multiplier == 1.0:
        return results

    boosted = 0
    for result in results:
        text = result.chunk_text.casefold()
        if any(name in text for name in names):
            result.fused_score *= multiplier
            boosted += 1

    if boosted:
        results = sorted(results, key=_sort_key)
    return results

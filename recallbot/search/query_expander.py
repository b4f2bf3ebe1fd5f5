# recallbot/search/query_expander.py
"""Structural query expansion over significant words."""

import logging
from typing import List, Set, Tuple

from ..core.text import normalize_query, extract_significant_words

logger = logging.getLogger(__name__)

MAX_VARIANTS = 3


class QueryExpander:
    """
    Builds up to three alternative phrasings of a question by reordering and
    truncating its significant words, plus the keyword set for full-text search.

    Expansion is purely structural: no synonyms, stemming or identity terms
    are added. A question like "ты разочарован из-за своей глупой цели?" will
    never produce "бот" or "создан" unless those words are in it.
    """

    def __init__(self, max_variants: int = MAX_VARIANTS, remove_emoji: bool = False):
        self.max_variants = max(0, min(max_variants, MAX_VARIANTS))
        self.remove_emoji = remove_emoji

    def normalize(self, question: str) -> str:
        return normalize_query(question, remove_emoji=self.remove_emoji)

    def expand(self, question: str) -> Tuple[List[str], Set[str]]:
        """
        Expand a question into query variants and keywords.

        Returns:
            (variants, keywords); ([], set()) for empty input
        """
        normalized = self.normalize(question)
        if not normalized:
            return [], set()

        words = extract_significant_words(normalized)
        variants = self._structural_variants(normalized, words)

        logger.debug("Expanded %r into %d variant(s), %d keyword(s)", normalized, len(variants), len(words))
        return variants, set(words)

    def extract_keywords(self, question: str, variants: List[str]) -> str:
        """
        Space-joined significant words of the original question.

        Variants are accepted for call symmetry but contribute nothing:
        every variant word already comes from the question.
        """
        return " ".join(extract_significant_words(self.normalize(question)))

    def _structural_variants(self, normalized: str, words: List[str]) -> List[str]:
        if not words:
            return []

        candidates = [
            " ".join(words),                    # keywords only
            " ".join(reversed(words)),          # reversed order
            " ".join(words[1:]),                # drop leading word
        ]
        if len(words) > 3:
            candidates.append(" ".join(words[:-1]))  # drop trailing word

        original = normalized.casefold()
        variants: List[str] = []
        for candidate in candidates:
            if not candidate or candidate == original or candidate in variants:
                continue
            variants.append(candidate)
            if len(variants) >= self.max_variants:
                break

        return variants

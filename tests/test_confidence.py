"""Tests for the confidence gate."""

import pytest

from recallbot.models.search import FusedSearchResult, SearchConfidence
from recallbot.search.confidence import ConfidenceEvaluator


def fused(message_id, similarity, indices):
    result = FusedSearchResult(chat_id=1, message_id=message_id, chunk_text="t", similarity=similarity)
    result.matched_query_indices = set(indices)
    result.matched_query_count = len(result.matched_query_indices)
    return result


@pytest.fixture
def evaluator():
    return ConfidenceEvaluator()


class TestAssess:
    def test_empty_is_none(self, evaluator):
        response = evaluator.assess([])
        assert response.confidence == SearchConfidence.NONE
        assert not response.should_answer
        assert response.best_score == 0.0

    def test_high(self, evaluator):
        response = evaluator.assess([fused(1, 0.72, {0, 1, 2})])
        assert response.confidence == SearchConfidence.HIGH

    def test_strong_but_single_list_is_low(self, evaluator):
        response = evaluator.assess([fused(1, 0.9, {0})])
        assert response.confidence == SearchConfidence.LOW
        assert response.needs_caveat

    def test_weak_similarity_is_low(self, evaluator):
        response = evaluator.assess([fused(1, 0.2, {0, 1, 2})])
        assert response.confidence == SearchConfidence.LOW

    def test_medium(self, evaluator):
        response = evaluator.assess([fused(1, 0.42, {0, 1})])
        assert response.confidence == SearchConfidence.MEDIUM
        assert response.should_answer
        assert not response.needs_caveat

    def test_score_gap_against_fifth(self, evaluator):
        results = [fused(i, s, {0, 1}) for i, s in enumerate([0.8, 0.7, 0.6, 0.5, 0.3, 0.2])]
        response = evaluator.assess(results)
        assert response.best_score == pytest.approx(0.8)
        assert response.score_gap == pytest.approx(0.5)

    def test_score_gap_is_best_with_few_results(self, evaluator):
        response = evaluator.assess([fused(1, 0.8, {0, 1}), fused(2, 0.7, {0})])
        assert response.score_gap == 0.8

    def test_score_gap_never_negative(self, evaluator):
        results = [fused(i, s, {0, 1}) for i, s in enumerate([0.3, 0.4, 0.5, 0.6, 0.9])]
        assert evaluator.assess(results).score_gap == 0.0

    def test_full_text_match(self, evaluator):
        response = evaluator.assess([fused(1, 0.6, {0, 3})], full_text_indices={3})
        assert response.has_full_text_match
        response = evaluator.assess([fused(1, 0.6, {0, 1})], full_text_indices={3})
        assert not response.has_full_text_match

    def test_thresholds_are_tunable(self):
        strict = ConfidenceEvaluator(high_threshold=0.9, low_threshold=0.6, min_corroboration=3)
        assert strict.assess([fused(1, 0.72, {0, 1, 2})]).confidence == SearchConfidence.MEDIUM

    def test_invalid_thresholds(self):
        with pytest.raises(ValueError):
            ConfidenceEvaluator(high_threshold=0.2, low_threshold=0.5)

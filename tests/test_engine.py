"""End-to-end tests for the fusion search engine over a real store."""

import pytest

from recallbot.core.config import SearchSettings
from recallbot.core.errors import EmbeddingError, StoreError
from recallbot.indexing.message_handler import MessageEmbeddingHandler
from recallbot.models.search import ClassifiedQuery, SearchConfidence, SearchOptions
from recallbot.search.engine import FusionSearchEngine

from conftest import FakeVectorizer, make_message

CHAT = 100

HISTORY = [
    "ты создан чтобы отвечать на вопросы",
    "сегодня хорошая погода в городе",
    "кто пойдёт обедать в пиццерию",
    "завтра релиз новой версии приложения",
    "напомни купить молоко вечером",
]


@pytest.fixture
def indexed_store(store, vectorizer):
    store.save_messages([make_message(i, text, chat_id=CHAT) for i, text in enumerate(HISTORY, 1)])
    MessageEmbeddingHandler(store, vectorizer).process_batch(100)
    return store


@pytest.fixture
def engine(indexed_store, vectorizer):
    engine = FusionSearchEngine(indexed_store, vectorizer, SearchSettings())
    yield engine
    engine.close()


class TestFusionSearchEngine:
    def test_purpose_question_finds_answer(self, engine):
        response = engine.search("для чего ты создан?", CHAT)

        assert response.results[0].message_id == 1
        assert response.has_full_text_match
        assert "создан" in response.keywords
        assert any("создан" in v for v in response.query_variations)
        assert response.should_answer

    def test_corroborated_by_every_list(self, engine):
        response = engine.search("для чего ты создан?", CHAT)
        top = response.results[0]
        # original question, one variant, full-text
        assert top.matched_query_count == 3
        assert response.confidence == SearchConfidence.MEDIUM

    def test_one_entry_per_message(self, engine):
        response = engine.search("погода релиз приложения молоко", CHAT)
        keys = [r.key for r in response.results]
        assert len(keys) == len(set(keys))

    def test_other_chat_returns_none(self, engine):
        response = engine.search("для чего ты создан?", 999)
        assert response.results == []
        assert response.confidence == SearchConfidence.NONE

    def test_empty_question(self, engine):
        response = engine.search("   ", CHAT)
        assert response.confidence == SearchConfidence.NONE
        assert response.confidence_reason == "Empty question"

    def test_result_limit(self, engine):
        response = engine.search("погода релиз приложения молоко", CHAT, SearchOptions(result_limit=2))
        assert len(response.results) <= 2

    def test_near_exact_copy_of_question_filtered(self, indexed_store, vectorizer):
        indexed_store.save_messages([make_message(10, "когда релиз новой версии", chat_id=CHAT)])
        MessageEmbeddingHandler(indexed_store, vectorizer).process_batch(100)

        engine = FusionSearchEngine(indexed_store, vectorizer, SearchSettings())
        response = engine.search("когда релиз новой версии", CHAT)
        engine.close()

        assert 10 not in [r.message_id for r in response.results]
        assert 4 in [r.message_id for r in response.results]

    def test_classified_entities_boost_mentions(self, indexed_store, vectorizer):
        indexed_store.save_messages([make_message(6, "Алиса сказала что любит пиццерию", chat_id=CHAT)])
        MessageEmbeddingHandler(indexed_store, vectorizer).process_batch(100)
        engine = FusionSearchEngine(indexed_store, vectorizer, SearchSettings())

        plain = engine.search("кто любит пиццерию?", CHAT)
        classified = ClassifiedQuery(intent="who", entities=["алиса"])
        boosted = engine.search("кто любит пиццерию?", CHAT, SearchOptions(classified_query=classified))
        engine.close()

        plain_scores = {r.message_id: r.fused_score for r in plain.results}
        boosted_scores = {r.message_id: r.fused_score for r in boosted.results}
        assert boosted_scores[6] == pytest.approx(plain_scores[6] * 1.5)
        assert boosted_scores[3] == pytest.approx(plain_scores[3])

        plain_ids = [r.message_id for r in plain.results]
        boosted_ids = [r.message_id for r in boosted.results]
        assert boosted_ids.index(6) <= plain_ids.index(6)
        assert [r.fused_score for r in boosted.results] == sorted(boosted_scores.values(), reverse=True)

    def test_diagnostics(self, engine):
        response = engine.search("для чего ты создан?", CHAT)
        assert response.original_query == "для чего ты создан?"
        assert response.failed_queries == 0
        assert response.total_time_ms > 0
        assert response.to_dict()['confidence'] == response.confidence.name


class BrokenVectorizer(FakeVectorizer):
    def vectorize_batch(self, texts):
        raise EmbeddingError("provider down")


class TestDegradedSearch:
    def test_embedding_failure_falls_back_to_full_text(self, indexed_store):
        engine = FusionSearchEngine(indexed_store, BrokenVectorizer())
        response = engine.search("для чего ты создан?", CHAT)
        engine.close()

        assert [r.message_id for r in response.results] == [1]
        assert response.failed_queries == 2
        assert response.has_full_text_match
        # A single list cannot corroborate
        assert response.confidence == SearchConfidence.LOW

    def test_all_searches_failed(self, vectorizer):
        class DeadStore:
            def search_by_vector(self, *args, **kwargs):
                raise StoreError("database is locked")

            def search_by_text(self, *args, **kwargs):
                raise StoreError("database is locked")

        engine = FusionSearchEngine(DeadStore(), vectorizer)
        response = engine.search("для чего ты создан?", CHAT)
        engine.close()

        assert response.confidence == SearchConfidence.NONE
        assert "All searches failed" in response.confidence_reason
        assert response.results == []

    def test_unexpected_error_never_raises(self, indexed_store, vectorizer, monkeypatch):
        engine = FusionSearchEngine(indexed_store, vectorizer)

        def explode(*args, **kwargs):
            raise RuntimeError("bug")

        monkeypatch.setattr(engine.evaluator, "assess", explode)
        response = engine.search("для чего ты создан?", CHAT)
        engine.close()

        assert response.confidence == SearchConfidence.NONE
        assert "bug" in response.confidence_reason

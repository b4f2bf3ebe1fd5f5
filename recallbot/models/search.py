# recallbot/models/search.py
"""Search result models."""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, Dict, Any, List, Set


@dataclass
class SearchResult:
    """One hit from a single ranked list (vector, full-text or context-window search)."""

    chat_id: int
    message_id: int
    chunk_text: str
    similarity: float  # Cosine similarity, authoritative (higher is better)
    chunk_index: int = 0  # Negative for question-bridge embeddings
    distance: Optional[float] = None
    is_news_dump: bool = False
    is_context_window: bool = False
    is_question_embedding: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.chunk_index < 0:
            self.is_question_embedding = True
        if self.distance is None:
            self.distance = 1.0 - self.similarity

    @property
    def key(self):
        """Identity of the logical message this hit points at."""
        return (self.chat_id, self.message_id)


@dataclass
class FusedSearchResult(SearchResult):
    """A deduplicated hit carrying its Reciprocal Rank Fusion score."""

    fused_score: float = 0.0
    matched_query_count: int = 0
    matched_query_indices: Set[int] = field(default_factory=set)

    @classmethod
    def from_result(cls, result: SearchResult) -> "FusedSearchResult":
        return cls(
            chat_id=result.chat_id,
            message_id=result.message_id,
            chunk_text=result.chunk_text,
            similarity=result.similarity,
            chunk_index=result.chunk_index,
            distance=result.distance,
            is_news_dump=result.is_news_dump,
            is_context_window=result.is_context_window,
            is_question_embedding=result.is_question_embedding,
            metadata=dict(result.metadata),
        )

    def adopt(self, result: SearchResult) -> None:
        """Take over the representative fields of a better entry, keeping fusion state."""
        self.chunk_text = result.chunk_text
        self.similarity = result.similarity
        self.chunk_index = result.chunk_index
        self.distance = result.distance
        self.is_news_dump = result.is_news_dump
        self.is_context_window = result.is_context_window
        self.is_question_embedding = result.is_question_embedding
        self.metadata = dict(result.metadata)


class SearchConfidence(IntEnum):
    """Ordered confidence verdict: NONE < LOW < MEDIUM < HIGH."""

    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3


@dataclass
class ClassifiedQuery:
    """Optional upstream classification of the question."""

    intent: str = "general"
    entities: List[str] = field(default_factory=list)
    temporal_ref: Optional[str] = None


@dataclass
class SearchOptions:
    """Per-call overrides for a search."""

    result_limit: Optional[int] = None
    results_per_query: Optional[int] = None
    search_context_windows: Optional[bool] = None
    include_news_dumps: bool = True
    classified_query: Optional[ClassifiedQuery] = None


@dataclass
class SearchResponse:
    """Fused results plus the confidence gate for the answer generator."""

    results: List[FusedSearchResult] = field(default_factory=list)
    confidence: SearchConfidence = SearchConfidence.NONE
    confidence_reason: str = ""
    best_score: float = 0.0
    score_gap: float = 0.0
    has_full_text_match: bool = False

    # Diagnostics
    original_query: str = ""
    query_variations: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    failed_queries: int = 0
    total_time_ms: float = 0.0

    @property
    def should_answer(self) -> bool:
        """NONE means the results must not be handed to the answer generator."""
        return self.confidence > SearchConfidence.NONE

    @property
    def needs_caveat(self) -> bool:
        return self.confidence == SearchConfidence.LOW

    def to_dict(self) -> dict:
        return {
            'confidence': self.confidence.name,
            'confidence_reason': self.confidence_reason,
            'best_score': self.best_score,
            'score_gap': self.score_gap,
            'has_full_text_match': self.has_full_text_match,
            'original_query': self.original_query,
            'query_variations': list(self.query_variations),
            'keywords': list(self.keywords),
            'failed_queries': self.failed_queries,
            'total_time_ms': self.total_time_ms,
            'results': [
                {
                    'chat_id': r.chat_id,
                    'message_id': r.message_id,
                    'similarity': r.similarity,
                    'fused_score': r.fused_score,
                    'matched_query_count': r.matched_query_count,
                    'is_question_embedding': r.is_question_embedding,
                    'text': r.chunk_text,
                }
                for r in self.results
            ],
        }

# recallbot/search/__init__.py
"""Fusion search engine."""

from .query_expander import QueryExpander
from .retriever import MultiQueryRetriever, RankedList
from .fusion import apply_rrf_fusion, select_better_result
from .confidence import ConfidenceEvaluator
from .context_windows import ContextWindowAssembler, merge_windows
from .engine import FusionSearchEngine

__all__ = [
    "QueryExpander",
    "MultiQueryRetriever",
    "RankedList",
    "apply_rrf_fusion",
    "select_better_result",
    "ConfidenceEvaluator",
    "ContextWindowAssembler",
    "merge_windows",
    "FusionSearchEngine",
]

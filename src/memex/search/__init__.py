"""Semantic search over saved memories."""

from memex.search.composer import SearchResponse, SearchSource, compose, extract_citations
from memex.search.intent import (
    DecisionKind,
    IntentType,
    QueryIntent,
    SearchDecision,
    classify_intent,
    decide,
    deduplicate_results,
)
from memex.search.ranker import RankedMemory, cosine_similarity, rank
from memex.search.service import SearchService, normalize_query
from memex.search.settings import SearchSettings

__all__ = [
    "DecisionKind",
    "IntentType",
    "QueryIntent",
    "RankedMemory",
    "SearchDecision",
    "SearchResponse",
    "SearchService",
    "SearchSettings",
    "SearchSource",
    "classify_intent",
    "compose",
    "cosine_similarity",
    "decide",
    "deduplicate_results",
    "extract_citations",
    "normalize_query",
    "rank",
]

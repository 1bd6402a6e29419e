"""Generative collaborators consumed by the search and ingestion pipelines."""

from memex.generative.cache import LRUCache, content_hash
from memex.generative.collaborators import GenerativeCollaborators, format_sources_for_ai
from memex.generative.rate_limit import RateGate

__all__ = [
    "GenerativeCollaborators",
    "LRUCache",
    "RateGate",
    "content_hash",
    "format_sources_for_ai",
]

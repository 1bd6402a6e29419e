"""Search entry point: embed, rank, gate, compose and cache per owner."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Optional

from memex.core.exceptions import MemexError
from memex.generative.collaborators import GenerativeCollaborators
from memex.retrieval import check_connection
from memex.search.composer import OFFLINE_ANSWER, SearchResponse, compose
from memex.search.intent import decide, deduplicate_results
from memex.search.ranker import rank
from memex.search.settings import SearchSettings
from memex.storage.interface import MemoryRepository, SearchCacheEntry

logger = logging.getLogger(__name__)

_WHITESPACE_PATTERN = re.compile(r"\s+")


def normalize_query(query: str) -> str:
    return _WHITESPACE_PATTERN.sub(" ", (query or "").strip().lower())


class SearchService:
    """Answers queries against one repository."""

    def __init__(
        self,
        repository: MemoryRepository,
        collaborators: GenerativeCollaborators,
        settings: Optional[SearchSettings] = None,
        connection_check: Optional[Callable[[], bool]] = None,
    ):
        self.repository = repository
        self.collaborators = collaborators
        self.settings = settings or SearchSettings.from_config()
        self.connection_check = connection_check or check_connection

    def search(self, owner: str, query: str) -> SearchResponse:
        """Compute a fresh response, bypassing the cache."""
        if not query or not query.strip():
            raise MemexError("Query must not be empty")
        if not self.connection_check():
            return SearchResponse(answer=OFFLINE_ANSWER, confidence=None)

        query_embedding = self.collaborators.embed(query)
        ranked = rank(query_embedding, self.repository.list_memories(owner), self.settings)
        deduped = deduplicate_results(ranked, self.settings)
        decision = decide(query, deduped, self.settings)
        logger.info(
            "search owner=%s ranked=%d deduped=%d decision=%s intent=%s top=%.3f",
            owner,
            len(ranked),
            len(deduped),
            decision.kind.value,
            decision.intent.type.value if decision.intent else None,
            decision.top_similarity,
        )
        return compose(
            query,
            decision,
            deduped,
            self.collaborators.synthesize_answer,
            self.settings,
        )

    def search_with_cache(self, owner: str, query: str) -> SearchResponse:
        """Serve the cached response while the owner's corpus is unchanged."""
        normalized = normalize_query(query)
        snapshot = self.repository.memory_snapshot(owner)

        cached = self.repository.get_cached_search(owner, normalized)
        if cached is not None and cached.memory_snapshot == snapshot:
            logger.debug("search cache hit owner=%s query=%r", owner, normalized)
            return SearchResponse.from_json(cached.response_json)

        response = self.search(owner, query)
        # Offline answers carry no confidence and must not be cached.
        if response.confidence is not None:
            self.repository.upsert_cached_search(
                SearchCacheEntry(
                    owner=owner,
                    normalized_query=normalized,
                    original_query=query,
                    response_json=response.to_json(),
                    memory_snapshot=snapshot,
                    top_similarity=response.top_similarity,
                    used_ai=response.used_ai,
                )
            )
        return response

    def recent_searches(self, owner: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return self.repository.recent_searches(
            owner, limit if limit is not None else self.settings.recent_searches_limit
        )

    def stats(self, owner: str) -> Dict[str, Any]:
        return self.repository.search_stats(owner)

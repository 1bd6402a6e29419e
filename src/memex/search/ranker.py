"""Brute-force similarity ranking over one owner's memories."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from memex.core.humanize import DAY_MS, now_ms
from memex.search.settings import SearchSettings
from memex.storage.interface import Memory


@dataclass
class RankedMemory:
    """A memory scored against one query. Never persisted."""

    memory: Memory
    similarity: float
    recency_score: float
    final_score: float

    @property
    def id(self) -> Optional[int]:
        return self.memory.id

    @property
    def url(self) -> str:
        return self.memory.url

    @property
    def title(self) -> str:
        return self.memory.title

    @property
    def summary(self) -> str:
        return self.memory.summary


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between ``a`` and ``b``; 0.0 for zero or mismatched vectors."""
    if not a or not b or len(a) != len(b):
        return 0.0

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


def recency_score(created_at_ms: int, now: int, decay_days: float) -> float:
    days_since = max(0.0, (now - created_at_ms) / DAY_MS)
    return math.exp(-days_since / decay_days)


def rank(
    query_embedding: Sequence[float],
    memories: Iterable[Memory],
    settings: Optional[SearchSettings] = None,
    now: Optional[int] = None,
) -> List[RankedMemory]:
    """Score memories against the query, best first, truncated to top-K.

    Memories without an embedding, with a different dimensionality, or below
    the similarity floor are left out.
    """
    settings = settings or SearchSettings()
    current = now_ms() if now is None else now
    results: List[RankedMemory] = []

    for memory in memories:
        if not memory.embedding or len(memory.embedding) != len(query_embedding):
            continue
        similarity = cosine_similarity(query_embedding, memory.embedding)
        if similarity < settings.min_similarity:
            continue
        recency = recency_score(memory.created_at, current, settings.recency_decay_days)
        final_score = (
            similarity * settings.similarity_weight + recency * settings.recency_weight
        )
        results.append(RankedMemory(memory, similarity, recency, final_score))

    results.sort(key=lambda item: (-item.final_score, item.id or 0))
    return results[: settings.top_k_results]

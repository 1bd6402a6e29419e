"""Tunable thresholds for ranking and answer gating."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class SearchSettings:
    top_k_results: int = 50
    max_results_to_user: int = 5
    max_weak_results: int = 3
    max_sources_for_ai: int = 5

    min_similarity: float = 0.3
    weak_match_threshold: float = 0.42

    similarity_weight: float = 0.7
    recency_weight: float = 0.25
    recency_decay_days: float = 60.0

    perfect_match_threshold: float = 0.9
    navigational_threshold: float = 0.7
    default_threshold: float = 0.75
    high_confidence_threshold: float = 0.75
    ambiguity_gap: float = 0.05
    ambiguity_min_results: int = 3

    duplicate_title_similarity: float = 0.8
    duplicate_title_min_word_length: int = 4

    recent_searches_limit: int = 5

    @classmethod
    def from_config(cls, section: Optional[Dict[str, Any]] = None) -> "SearchSettings":
        """Build settings from the ``[search]`` table, ignoring unknown keys."""
        if section is None:
            from memex.config import SEARCH

            section = SEARCH
        known = {field.name for field in fields(cls)}
        return cls(**{key: value for key, value in section.items() if key in known})

"""Result deduplication, query-intent classification and the answer gate.

``decide`` turns a query plus its deduplicated results into a
``SearchDecision``: no results, a weak match, a recall-only answer, or a
generative answer. Rules run in a fixed priority order so the outcome is a
pure function of the query text and the similarity scores.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from memex.search.ranker import RankedMemory
from memex.search.settings import SearchSettings
from memex.url_utils import url_hostname

QUESTION_WORDS = ("who", "what", "when", "where", "why", "how", "which", "whose")
SYNTHESIS_KEYWORDS = (
    "compare",
    "comparison",
    "difference between",
    "vs",
    "versus",
    "pros and cons",
    "tradeoff",
    "tradeoffs",
    "summarize",
    "summary",
    "overview",
    "synthesize",
    "connect",
    "relationship between",
    "what did i learn",
    "tell me about",
    "explain",
)
NAVIGATIONAL_KEYWORDS = (
    "find",
    "show me",
    "get",
    "open",
    "article about",
    "page about",
    "link to",
    "where is",
    "do i have",
)


def _keyword_pattern(keywords: Sequence[str]) -> "re.Pattern[str]":
    alternatives = "|".join(re.escape(keyword) for keyword in keywords)
    return re.compile(rf"\b(?:{alternatives})\b")


_QUESTION_PATTERN = _keyword_pattern(QUESTION_WORDS)
_SYNTHESIS_PATTERN = _keyword_pattern(SYNTHESIS_KEYWORDS)
_NAVIGATIONAL_PATTERN = _keyword_pattern(NAVIGATIONAL_KEYWORDS)

HIGH = "high"
MEDIUM = "medium"
LOW = "low"


class IntentType(str, Enum):
    QUESTION = "question"
    SYNTHESIS = "synthesis"
    NAVIGATIONAL = "navigational"
    GENERAL = "general"


class DecisionKind(str, Enum):
    NO_RESULTS = "no_results"
    WEAK_MATCH = "weak_match"
    RECALL_ONLY = "recall_only"
    GENERATIVE = "generative"


@dataclass(frozen=True)
class QueryIntent:
    type: IntentType
    needs_ai_answer: bool
    confidence: str


@dataclass(frozen=True)
class SearchDecision:
    kind: DecisionKind
    top_similarity: float = 0.0
    intent: Optional[QueryIntent] = None
    is_confident_match: bool = False
    is_ambiguous: bool = False

    @property
    def uses_ai(self) -> bool:
        return self.kind is DecisionKind.GENERATIVE


def title_similarity(title_a: str, title_b: str, min_word_length: int = 4) -> float:
    """Jaccard overlap of the lowercase title words of at least ``min_word_length`` chars."""
    words_a = {word for word in (title_a or "").lower().split() if len(word) >= min_word_length}
    words_b = {word for word in (title_b or "").lower().split() if len(word) >= min_word_length}
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def _is_duplicate(
    candidate: RankedMemory, kept: RankedMemory, settings: SearchSettings
) -> bool:
    host = url_hostname(candidate.url)
    if host is None or host != url_hostname(kept.url):
        return False
    overlap = title_similarity(
        candidate.title, kept.title, settings.duplicate_title_min_word_length
    )
    return overlap > settings.duplicate_title_similarity


def deduplicate_results(
    results: Sequence[RankedMemory], settings: Optional[SearchSettings] = None
) -> List[RankedMemory]:
    """Greedy pass keeping the first result of each same-host, same-title cluster."""
    settings = settings or SearchSettings()
    kept: List[RankedMemory] = []
    for result in results:
        if not any(_is_duplicate(result, existing, settings) for existing in kept):
            kept.append(result)
    return kept


def classify_intent(
    query: str,
    top_similarity: float,
    deduped_count: int,
    settings: Optional[SearchSettings] = None,
) -> QueryIntent:
    """Classify ``query``; the first matching rule wins."""
    settings = settings or SearchSettings()
    lowered = (query or "").lower().strip()
    has_synthesis = bool(_SYNTHESIS_PATTERN.search(lowered))
    high_or_medium = HIGH if top_similarity >= settings.high_confidence_threshold else MEDIUM

    if _QUESTION_PATTERN.search(lowered) or "?" in (query or ""):
        skip_ai = top_similarity >= settings.perfect_match_threshold and not has_synthesis
        return QueryIntent(IntentType.QUESTION, not skip_ai, high_or_medium)

    if has_synthesis:
        skip_ai = (
            top_similarity >= settings.perfect_match_threshold and deduped_count == 1
        )
        return QueryIntent(
            IntentType.SYNTHESIS, not skip_ai, HIGH if deduped_count >= 2 else MEDIUM
        )

    if _NAVIGATIONAL_PATTERN.search(lowered):
        skip_ai = top_similarity >= settings.navigational_threshold
        return QueryIntent(
            IntentType.NAVIGATIONAL,
            not skip_ai,
            HIGH if top_similarity >= settings.navigational_threshold else MEDIUM,
        )

    skip_ai = top_similarity >= settings.default_threshold
    return QueryIntent(IntentType.GENERAL, not skip_ai, high_or_medium)


def is_ambiguous(deduped: Sequence[RankedMemory], settings: SearchSettings) -> bool:
    """Several results with the leader barely ahead of the runner-up."""
    if len(deduped) < max(2, settings.ambiguity_min_results):
        return False
    gap = deduped[0].similarity - deduped[1].similarity
    return gap < settings.ambiguity_gap


def decide(
    query: str,
    deduped: Sequence[RankedMemory],
    settings: Optional[SearchSettings] = None,
) -> SearchDecision:
    settings = settings or SearchSettings()
    if not deduped:
        return SearchDecision(DecisionKind.NO_RESULTS)

    top_similarity = deduped[0].similarity
    if top_similarity < settings.weak_match_threshold:
        return SearchDecision(DecisionKind.WEAK_MATCH, top_similarity=top_similarity)

    intent = classify_intent(query, top_similarity, len(deduped), settings)
    ambiguous = is_ambiguous(deduped, settings)
    use_ai = intent.needs_ai_answer or ambiguous
    return SearchDecision(
        kind=DecisionKind.GENERATIVE if use_ai else DecisionKind.RECALL_ONLY,
        top_similarity=top_similarity,
        intent=intent,
        is_confident_match=not use_ai,
        is_ambiguous=ambiguous,
    )

"""Build the final answer for a search decision."""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from memex.generative.collaborators import format_sources_for_ai
from memex.search.intent import LOW, HIGH, DecisionKind, SearchDecision
from memex.search.ranker import RankedMemory
from memex.search.settings import SearchSettings

NO_RESULTS_ANSWER = (
    "I couldn't find any relevant articles. Try saving more content to build your memory!"
)
RECALL_ONLY_ANSWER = "Here's what I found in your saved articles:"
WEAK_MATCH_ANSWER = (
    "I found some loosely related articles, but I'm not very confident they match "
    '"{query}". Consider saving more specific content about this topic.'
)
OFFLINE_ANSWER = "Please check your internet connection."

CITATION_PATTERN = re.compile(r"\[(\d+)\]")

Synthesizer = Callable[[str, str], str]


@dataclass
class SearchSource:
    id: Optional[int]
    url: str
    title: str
    summary: str
    similarity: float
    created_at: int
    intent: Optional[str] = None


@dataclass
class SearchResponse:
    answer: str
    sources: List[SearchSource] = field(default_factory=list)
    confidence: Optional[str] = None
    used_ai: bool = False

    @property
    def top_similarity(self) -> float:
        return self.sources[0].similarity if self.sources else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str) -> "SearchResponse":
        data = json.loads(raw)
        return cls(
            answer=data["answer"],
            sources=[SearchSource(**source) for source in data.get("sources", [])],
            confidence=data.get("confidence"),
            used_ai=bool(data.get("used_ai")),
        )


def format_source(result: RankedMemory) -> SearchSource:
    return SearchSource(
        id=result.id,
        url=result.url,
        title=result.title,
        summary=result.summary,
        similarity=result.similarity,
        created_at=result.memory.created_at,
        intent=result.memory.intent,
    )


def extract_citations(answer: str, source_count: int) -> List[int]:
    """Zero-based indices of the ``[n]`` citations that point at a real source."""
    cited = set()
    for match in CITATION_PATTERN.finditer(answer or ""):
        index = int(match.group(1)) - 1
        if 0 <= index < source_count:
            cited.add(index)
    return sorted(cited)


def recall_only_response(
    results: Sequence[RankedMemory], settings: SearchSettings
) -> SearchResponse:
    return SearchResponse(
        answer=RECALL_ONLY_ANSWER,
        sources=[format_source(result) for result in results[: settings.max_results_to_user]],
        confidence=HIGH,
        used_ai=False,
    )


def compose(
    query: str,
    decision: SearchDecision,
    deduped: Sequence[RankedMemory],
    synthesizer: Synthesizer,
    settings: Optional[SearchSettings] = None,
) -> SearchResponse:
    """Produce the response for ``decision``; only the generative path calls ``synthesizer``.

    A generative answer that cites none of the sources it was given is
    discarded in favour of the recall-only response.
    """
    settings = settings or SearchSettings()

    if decision.kind is DecisionKind.NO_RESULTS or not deduped:
        return SearchResponse(answer=NO_RESULTS_ANSWER, confidence=LOW)

    if decision.kind is DecisionKind.WEAK_MATCH:
        return SearchResponse(
            answer=WEAK_MATCH_ANSWER.format(query=query),
            sources=[format_source(result) for result in deduped[: settings.max_weak_results]],
            confidence=LOW,
        )

    if decision.kind is DecisionKind.RECALL_ONLY:
        return recall_only_response(deduped, settings)

    ai_sources = list(deduped[: settings.max_sources_for_ai])
    answer = synthesizer(query, format_sources_for_ai(ai_sources))
    citations = extract_citations(answer, len(ai_sources))
    if not answer.strip() or not citations:
        return recall_only_response(deduped, settings)

    confidence = decision.intent.confidence if decision.intent else HIGH
    return SearchResponse(
        answer=answer,
        sources=[format_source(ai_sources[index]) for index in citations],
        confidence=confidence,
        used_ai=True,
    )

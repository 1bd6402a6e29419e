"""Generative collaborators: summarize, embed, rank URLs, synthesize answers.

All four calls are fallible (``GenerativeError``), pass through a shared
``RateGate`` keyed per operation, and reuse results through content-hash
caches. Caches and the gate are injected so tests can run without any model.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Sequence

from memex.config import (
    ANSWER_MODEL,
    ANSWER_SYSTEM_PROMPT,
    ANSWER_USER_PROMPT,
    GENERATIVE_CACHE_CAPACITY,
    GENERATIVE_MAX_INPUT_CHARS,
    GENERATIVE_RATE_LIMIT_MS,
    RANK_SYSTEM_PROMPT,
    RANK_USER_PROMPT,
    RANKING_MODEL,
    SUMMARIZATION_MODEL,
    SUMMARIZE_SYSTEM_PROMPT,
    SUMMARIZE_USER_PROMPT,
)
from memex.core.api_client import UsageTracker, get_llm_msg
from memex.core.exceptions import GenerativeError
from memex.generative.cache import LRUCache, content_hash
from memex.generative.embeddings import EmbeddingClient
from memex.generative.rate_limit import RateGate
from memex.html import strip_think_tags

logger = logging.getLogger(__name__)

LLMFunc = Callable[..., Dict[str, Any]]
CODE_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

SUMMARIZE_KEY = "summarize"
EMBED_KEY = "embed"
RANK_KEY = "rank"
ANSWER_KEY = "answer"


def _validate_input(text: str, max_chars: int) -> None:
    if not text or not isinstance(text, str) or not text.strip():
        raise GenerativeError("Invalid input: text must be a non-empty string")
    if len(text.strip()) > max_chars:
        raise GenerativeError(f"Text too long. Maximum {max_chars:,} characters")


def parse_url_list(raw: str, limit: Optional[int] = None) -> List[str]:
    """Parse a ranking reply into a URL list; anything malformed yields []."""
    cleaned = CODE_FENCE_PATTERN.sub("", (raw or "").strip())
    try:
        parsed = json.loads(cleaned)
    except (TypeError, ValueError):
        return []
    if not isinstance(parsed, list):
        return []
    urls: List[str] = []
    for item in parsed:
        if not isinstance(item, str) or not item.strip():
            return []
        if item.strip() not in urls:
            urls.append(item.strip())
    return urls[:limit] if limit is not None else urls


class GenerativeCollaborators:
    """Facade over the four generative calls used by the pipelines."""

    def __init__(
        self,
        llm_func: Optional[LLMFunc] = None,
        embedding_client: Optional[Any] = None,
        rate_gate: Optional[RateGate] = None,
        summary_cache: Optional[LRUCache[str]] = None,
        embedding_cache: Optional[LRUCache[List[float]]] = None,
        max_input_chars: int = GENERATIVE_MAX_INPUT_CHARS,
        usage_tracker: Optional[UsageTracker] = None,
    ) -> None:
        self.llm_func = llm_func or get_llm_msg
        self._embedding_client = embedding_client
        self.rate_gate = rate_gate or RateGate(GENERATIVE_RATE_LIMIT_MS)
        self.summary_cache = summary_cache or LRUCache(GENERATIVE_CACHE_CAPACITY)
        self.embedding_cache = embedding_cache or LRUCache(GENERATIVE_CACHE_CAPACITY)
        self.max_input_chars = max_input_chars
        self.usage_tracker = usage_tracker or UsageTracker()

    @property
    def embedding_client(self) -> Any:
        if self._embedding_client is None:
            self._embedding_client = EmbeddingClient()
        return self._embedding_client

    def _complete(self, model_alias: str, system: str, user: str) -> str:
        message = self.llm_func(
            model_alias,
            [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            usage_tracker=self.usage_tracker,
        )
        return strip_think_tags(message.get("content") or "")

    def summarize(self, text: str) -> str:
        """Return a 2-3 sentence synopsis of ``text``."""
        _validate_input(text, self.max_input_chars)
        key = content_hash(text)
        cached = self.summary_cache.get(key)
        if cached is not None:
            return cached

        self.rate_gate.wait(SUMMARIZE_KEY)
        summary = self._complete(
            SUMMARIZATION_MODEL,
            SUMMARIZE_SYSTEM_PROMPT,
            SUMMARIZE_USER_PROMPT.format(text=text),
        ).strip()
        if not summary:
            raise GenerativeError("Summarizer returned an empty response")
        self.summary_cache.put(key, summary)
        return summary

    def embed(self, text: str) -> List[float]:
        """Return the embedding vector for ``text``."""
        _validate_input(text, self.max_input_chars)
        key = content_hash(text)
        cached = self.embedding_cache.get(key)
        if cached is not None:
            return cached

        self.rate_gate.wait(EMBED_KEY)
        try:
            embedding = self.embedding_client.embed_single(text)
        except GenerativeError:
            raise
        except Exception as exc:
            raise GenerativeError(f"Embedding failed: {exc}") from exc
        if not embedding:
            raise GenerativeError("Invalid embedding returned by the embedding model")
        self.embedding_cache.put(key, embedding)
        return embedding

    def rank_urls(self, url_data: str, desired: int) -> List[str]:
        """Ask the ranking model for the ``desired`` best URLs out of ``url_data``."""
        self.rate_gate.wait(RANK_KEY)
        raw = self._complete(
            RANKING_MODEL,
            RANK_SYSTEM_PROMPT.format(desired=desired),
            RANK_USER_PROMPT.format(url_data=url_data, desired=desired),
        )
        urls = parse_url_list(raw, limit=desired)
        if not urls and raw.strip() not in ("", "[]"):
            logger.warning("ranking reply could not be parsed: %.200s", raw)
        return urls

    def synthesize_answer(self, query: str, sources_text: str) -> str:
        """Answer ``query`` from numbered source excerpts; citations are ``[n]``."""
        self.rate_gate.wait(ANSWER_KEY)
        return self._complete(
            ANSWER_MODEL,
            ANSWER_SYSTEM_PROMPT,
            ANSWER_USER_PROMPT.format(sources=sources_text, query=query),
        ).strip()


def format_sources_for_ai(sources: Sequence[Any]) -> str:
    """Render memories as numbered excerpts: title, URL and summary."""
    blocks = []
    for position, memory in enumerate(sources, start=1):
        blocks.append(
            f"[{position}] {memory.title}\nURL: {memory.url}\nSummary: {memory.summary}"
        )
    return "\n\n".join(blocks)

"""App-side handling of pages captured by the browser extension."""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Optional

from memex.bridge.validator import validate_payload_limits
from memex.config import EXCERPT_CHARS, WORDS_PER_MINUTE
from memex.core.exceptions import DuplicateMemoryError, MemexError
from memex.core.humanize import time_ago
from memex.generative.collaborators import GenerativeCollaborators
from memex.ingestion.persist import save_memory
from memex.retrieval import count_words, extract_from_html
from memex.storage.interface import MemoryRepository, SourceType
from memex.url_utils import canonicalize_url

logger = logging.getLogger(__name__)

EMPTY_CAPTURE = "Nothing to save: the capture has no text."


class CaptureHandler:
    """Turn a control-channel capture request into a stored memory."""

    def __init__(
        self,
        repository: MemoryRepository,
        collaborators: GenerativeCollaborators,
        owner: str,
    ):
        self.repository = repository
        self.collaborators = collaborators
        self.owner = owner

    def _duplicate_reply(self, request_id: str, memory_id: Any, saved_ago: str) -> Dict[str, Any]:
        return {
            "id": request_id,
            "ok": False,
            "reason": f"You saved this {saved_ago}.",
            "processed": {"savedId": memory_id},
        }

    def handle(self, request: Dict[str, Any]) -> Dict[str, Any]:
        request_id = request["id"]
        url = request.get("url") or ""
        selected_only = bool(request.get("selectedOnly"))
        canonical_url: Optional[str] = canonicalize_url(url) if url else None

        limits_check = validate_payload_limits(request)
        if not limits_check.ok:
            return {"id": request_id, "ok": False, "reason": limits_check.reason}

        if canonical_url and not selected_only:
            existing = self.repository.find_by_canonical_url(self.owner, canonical_url)
            if existing is not None:
                return self._duplicate_reply(
                    request_id, existing.id, time_ago(existing.created_at)
                )

        title = request.get("title") or ""
        content = request.get("text") or ""
        word_count = request.get("wordCount") or count_words(content)
        byline = None
        excerpt = ""
        reading_time = None

        html = request.get("html") or ""
        if html:
            extracted = extract_from_html(html, url=url or None, min_content_length=0)
            if extracted is not None:
                title = extracted.title or title
                content = extracted.content or content
                byline = extracted.byline
                excerpt = extracted.excerpt
                word_count = extracted.word_count or word_count
                reading_time = extracted.reading_time

        if not excerpt:
            excerpt = content[:EXCERPT_CHARS]
        if reading_time is None and word_count:
            reading_time = math.ceil(word_count / WORDS_PER_MINUTE)
        content = content.strip()
        if not content:
            return {"id": request_id, "ok": False, "reason": EMPTY_CAPTURE}

        try:
            memory = save_memory(
                self.repository,
                self.collaborators,
                self.owner,
                url=url,
                canonical_url=canonical_url,
                title=title,
                content=content,
                source_type=SourceType.WEB_CAPTURE,
                save_type="selection" if selected_only else "auto",
            )
        except DuplicateMemoryError as exc:
            return self._duplicate_reply(request_id, exc.memory_id, exc.saved_ago)
        except MemexError as exc:
            logger.error("capture id=%s url=%s failed: %s", request_id, url, exc)
            return {"id": request_id, "ok": False, "reason": str(exc)}

        return {
            "id": request_id,
            "ok": True,
            "processed": {
                "url": url,
                "canonicalUrl": canonical_url,
                "title": title,
                "content": content,
                "wordCount": word_count,
                "excerpt": excerpt.strip(),
                "byline": byline,
                "readingTime": reading_time,
                "savedId": memory.id,
            },
        }

"""Turning extracted pages into stored memories.

Every ingestion path (history import, manual URL, bookmark import, browser
capture) ends in ``save_memory``: clean, trim, summarize, embed the summary,
then insert unless the owner already saved the canonical URL.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from memex.config import (
    ADD_MEMORY_TIMEOUT,
    MAX_PROCESSING_CHARS,
    SINGLE_URL_TIMEOUT,
)
from memex.core.exceptions import (
    DuplicateMemoryError,
    FetchError,
    MemexError,
)
from memex.core.humanize import time_ago
from memex.generative.collaborators import GenerativeCollaborators
from memex.ingestion.fetch_pool import ExtractFunc
from memex.ingestion.history_filter import is_blocked
from memex.retrieval import extract
from memex.storage.interface import Memory, MemoryRepository, SourceType
from memex.url_utils import canonicalize_url, is_http_url

logger = logging.getLogger(__name__)

BLOCKED_URL_MESSAGE = (
    "This URL is blocked (social media, login pages, or documentation sites are filtered out)"
)
FETCH_FAILED_MESSAGE = (
    "Failed to fetch content from URL. The page might be inaccessible or contain "
    "insufficient content."
)
INVALID_URL_MESSAGE = "Please enter a valid http(s) URL"
SAVE_FAILED_MESSAGE = "Failed to save to database"
SAVED_MESSAGE = "Memory saved successfully!"
CONTENT_TOO_SHORT_MESSAGE = "Content too short - Not enough meaningful content"

_WHITESPACE_PATTERN = re.compile(r"\s+")
_NOISE_PATTERNS = (
    re.compile(r"Copyright.*$", re.IGNORECASE),
    re.compile(r"All rights reserved.*$", re.IGNORECASE),
    re.compile(r"subscribe to our newsletter.*", re.IGNORECASE),
    re.compile(r"follow us on.*$", re.IGNORECASE),
    re.compile(r"sign up to read more.*", re.IGNORECASE),
)


@dataclass
class SaveResult:
    """Outcome of a user-initiated save."""

    success: bool
    message: str
    memory_id: Optional[int] = None


def clean_content(text: str) -> str:
    """Collapse whitespace and cut footer, newsletter and paywall noise."""
    cleaned = _WHITESPACE_PATTERN.sub(" ", text or "")
    for pattern in _NOISE_PATTERNS:
        cleaned = pattern.sub("", cleaned, count=1)
    return cleaned.strip()


def trim_for_processing(text: str, max_chars: int = MAX_PROCESSING_CHARS) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars]


def ensure_not_saved(repository: MemoryRepository, owner: str, canonical_url: str) -> None:
    existing = repository.find_by_canonical_url(owner, canonical_url)
    if existing is not None:
        raise DuplicateMemoryError(existing.id, time_ago(existing.created_at))


def save_memory(
    repository: MemoryRepository,
    collaborators: GenerativeCollaborators,
    owner: str,
    *,
    url: str,
    title: str,
    content: str,
    source_type: SourceType,
    intent: Optional[str] = None,
    save_type: str = "auto",
    canonical_url: Optional[str] = None,
) -> Memory:
    """Summarize, embed and store one page.

    Raises ``DuplicateMemoryError`` when the canonical URL is already saved and
    ``GenerativeError`` when summarizing or embedding fails.
    """
    canonical = canonical_url or canonicalize_url(url)
    ensure_not_saved(repository, owner, canonical)

    trimmed = trim_for_processing(clean_content(content))
    if not trimmed:
        raise MemexError("Nothing to save: the page has no text content")

    summary = collaborators.summarize(trimmed)
    embedding = collaborators.embed(summary)

    memory = Memory(
        owner=owner,
        url=url,
        canonical_url=canonical,
        title=title or url,
        content=content,
        summary=summary,
        intent=intent,
        embedding=embedding,
        source_type=SourceType(source_type).value,
        save_type=save_type,
    )
    repository.insert_memory(memory)
    logger.info(
        "saved memory id=%s owner=%s source=%s url=%s",
        memory.id,
        owner,
        memory.source_type,
        url,
    )
    return memory


def _normalize_intent(intent: Optional[str]) -> Optional[str]:
    if intent is None or not intent.strip():
        return None
    return intent


def save_single_url(
    repository: MemoryRepository,
    collaborators: GenerativeCollaborators,
    owner: str,
    url: str,
    intent: Optional[str] = None,
    extract_func: Optional[ExtractFunc] = None,
    timeout: float = ADD_MEMORY_TIMEOUT,
) -> SaveResult:
    """Save a URL the user typed in, answering with a user-facing message."""
    if not is_http_url(url):
        return SaveResult(success=False, message=INVALID_URL_MESSAGE)
    if is_blocked(url):
        return SaveResult(success=False, message=BLOCKED_URL_MESSAGE)

    canonical = canonicalize_url(url)
    try:
        ensure_not_saved(repository, owner, canonical)
    except DuplicateMemoryError as exc:
        return SaveResult(success=False, message=str(exc), memory_id=exc.memory_id)

    extract_func = extract_func or extract
    try:
        extracted = extract_func(url, timeout=timeout)
    except FetchError as exc:
        logger.info("single url fetch failed url=%s reason=%s", url, exc.reason)
        extracted = None
    if extracted is None:
        return SaveResult(success=False, message=FETCH_FAILED_MESSAGE)

    try:
        memory = save_memory(
            repository,
            collaborators,
            owner,
            url=url,
            canonical_url=canonical,
            title=extracted.title or "Untitled",
            content=extracted.content,
            source_type=SourceType.MANUAL,
            intent=_normalize_intent(intent),
        )
    except DuplicateMemoryError as exc:
        return SaveResult(success=False, message=str(exc), memory_id=exc.memory_id)
    except MemexError as exc:
        logger.error("failed to save %s: %s", url, exc)
        return SaveResult(success=False, message=SAVE_FAILED_MESSAGE)
    return SaveResult(success=True, message=SAVED_MESSAGE, memory_id=memory.id)


def import_bookmark(
    repository: MemoryRepository,
    collaborators: GenerativeCollaborators,
    owner: str,
    url: str,
    extract_func: Optional[ExtractFunc] = None,
    timeout: float = SINGLE_URL_TIMEOUT,
) -> Memory:
    """Fetch and store one bookmark.

    Failures raise: ``FetchError`` carries the mapped network reason,
    ``MemexError`` reports thin pages, ``DuplicateMemoryError`` reports a
    bookmark that is already saved.
    """
    extract_func = extract_func or extract
    extracted = extract_func(url, timeout=timeout)
    if extracted is None:
        raise MemexError(CONTENT_TOO_SHORT_MESSAGE)
    return save_memory(
        repository,
        collaborators,
        owner,
        url=url,
        title=extracted.title or url,
        content=extracted.content,
        source_type=SourceType.BOOKMARK_IMPORT,
    )

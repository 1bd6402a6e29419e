"""Request checks applied before a capture is forwarded to the app."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from memex.config import (
    BRIDGE_LIMIT_HTML_BYTES,
    BRIDGE_LIMIT_NODE_COUNT,
    BRIDGE_LIMIT_TEXT_CHARS,
    BRIDGE_LIMIT_WORDS,
)
from memex.retrieval import count_words

TOO_MANY_WORDS = "Page contains too many words to process."
HTML_TOO_LARGE = "HTML size too large to process."
TOO_MANY_NODES = "Page has too many DOM nodes to process."
TEXT_TOO_LONG = "Text content too long to process."
SELECTION_TOO_LONG = "Selected text too long to process."
INVALID_PAYLOAD = "invalid_payload"

REQUIRED_FIELDS = ("id", "url", "title")


@dataclass(frozen=True)
class PayloadLimits:
    text_chars: int = BRIDGE_LIMIT_TEXT_CHARS
    html_bytes: int = BRIDGE_LIMIT_HTML_BYTES
    words: int = BRIDGE_LIMIT_WORDS
    node_count: int = BRIDGE_LIMIT_NODE_COUNT


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    reason: Optional[str] = None


def validate_request(message: Any) -> bool:
    """Shape check: ``id``, ``url`` and ``title`` are non-empty strings."""
    if not isinstance(message, dict):
        return False
    for name in REQUIRED_FIELDS:
        value = message.get(name)
        if not isinstance(value, str) or not value.strip():
            return False
    for name in ("text", "html"):
        if message.get(name) is not None and not isinstance(message[name], str):
            return False
    return True


def _int_field(message: Dict[str, Any], name: str) -> Optional[int]:
    value = message.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def validate_payload_limits(
    message: Any, limits: Optional[PayloadLimits] = None
) -> ValidationResult:
    """Reject captures too large to process; selections only have a text cap."""
    if not isinstance(message, dict):
        return ValidationResult(False, INVALID_PAYLOAD)
    limits = limits or PayloadLimits()
    text = message.get("text") or ""

    if message.get("selectedOnly"):
        if len(text) > limits.text_chars:
            return ValidationResult(False, SELECTION_TOO_LONG)
        return ValidationResult(True)

    word_count = _int_field(message, "wordCount")
    if word_count is None:
        word_count = count_words(text)
    if word_count > limits.words:
        return ValidationResult(False, TOO_MANY_WORDS)

    html_size = _int_field(message, "htmlSize")
    if html_size is None:
        html_size = len((message.get("html") or "").encode("utf-8"))
    if html_size > limits.html_bytes:
        return ValidationResult(False, HTML_TOO_LARGE)

    if (_int_field(message, "nodeCount") or 0) > limits.node_count:
        return ValidationResult(False, TOO_MANY_NODES)

    if len(text) > limits.text_chars:
        return ValidationResult(False, TEXT_TOO_LONG)
    return ValidationResult(True)

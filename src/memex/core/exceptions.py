"""Core exception types for memex."""

from __future__ import annotations

from typing import Optional


class MemexError(Exception):
    """Base error for memex runtime failures."""


class FetchError(MemexError):
    """Raised when a page cannot be retrieved; ``reason`` is user-legible."""

    def __init__(self, reason: str, *, url: str = "", code: Optional[str] = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.url = url
        self.code = code


class NoConnectionError(MemexError):
    """Raised when the connectivity probe fails before network-bound work."""

    def __init__(self, message: str = "No internet connection") -> None:
        super().__init__(message)


class GenerativeError(MemexError):
    """Raised when a generative collaborator call fails or returns garbage."""


class DuplicateMemoryError(MemexError):
    """Raised when the owner already saved the same canonical URL."""

    def __init__(self, memory_id: int, saved_ago: str) -> None:
        self.memory_id = memory_id
        self.saved_ago = saved_ago
        super().__init__(f"You saved this {saved_ago}.")

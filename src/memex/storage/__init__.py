"""Storage package for memex."""

from memex.storage.interface import (
    Memory,
    MemoryRepository,
    SearchCacheEntry,
    SourceType,
)
from memex.storage.sqlite import EMPTY_SNAPSHOT, SQLiteMemoryRepository

__all__ = [
    "EMPTY_SNAPSHOT",
    "Memory",
    "MemoryRepository",
    "SQLiteMemoryRepository",
    "SearchCacheEntry",
    "SourceType",
]

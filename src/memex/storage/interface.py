"""Storage interfaces and data models for memex."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class SourceType(str, Enum):
    """How a memory entered the store."""

    BROWSER_HISTORY = "browser-history"
    MANUAL = "manual"
    BOOKMARK_IMPORT = "bookmark-import"
    WEB_CAPTURE = "web-capture"


@dataclass
class Memory:
    """A saved page. Created once, never updated, deleted only by its owner."""

    owner: str
    url: str
    canonical_url: str
    title: str
    content: str
    summary: str = ""
    intent: Optional[str] = None
    embedding: List[float] = field(default_factory=list)
    created_at: int = 0  # epoch milliseconds
    source_type: str = SourceType.MANUAL.value
    save_type: str = "auto"
    id: Optional[int] = None


@dataclass
class SearchCacheEntry:
    """Last response computed for one (owner, normalized query) pair."""

    owner: str
    normalized_query: str
    original_query: str
    response_json: str
    memory_snapshot: str
    top_similarity: float = 0.0
    used_ai: bool = False
    created_at: int = 0


class MemoryRepository(ABC):
    """Abstract interface for memory and search-cache storage."""

    @abstractmethod
    def init_db(self) -> None:
        pass

    @abstractmethod
    def find_by_canonical_url(self, owner: str, canonical_url: str) -> Optional[Memory]:
        pass

    @abstractmethod
    def insert_memory(self, memory: Memory) -> int:
        pass

    @abstractmethod
    def list_memories(self, owner: str) -> List[Memory]:
        pass

    @abstractmethod
    def delete_memory(self, owner: str, memory_id: int) -> bool:
        pass

    @abstractmethod
    def memory_snapshot(self, owner: str) -> str:
        pass

    @abstractmethod
    def get_cached_search(
        self, owner: str, normalized_query: str
    ) -> Optional[SearchCacheEntry]:
        pass

    @abstractmethod
    def upsert_cached_search(self, entry: SearchCacheEntry) -> None:
        pass

    @abstractmethod
    def recent_searches(self, owner: str, limit: int) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def search_stats(self, owner: str) -> Dict[str, Any]:
        pass

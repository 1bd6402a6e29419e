"""Core runtime pieces shared by the search and ingestion pipelines."""

from memex.core.api_client import UsageTracker, get_llm_msg
from memex.core.exceptions import (
    DuplicateMemoryError,
    FetchError,
    GenerativeError,
    MemexError,
    NoConnectionError,
)

__all__ = [
    "DuplicateMemoryError",
    "FetchError",
    "GenerativeError",
    "MemexError",
    "NoConnectionError",
    "UsageTracker",
    "get_llm_msg",
]

"""Content ingestion: history filtering, bounded fetching and persistence."""

from memex.ingestion.fetch_pool import FetchEvent, FetchPool
from memex.ingestion.history_filter import (
    HistoryEntry,
    apply_blocklist,
    deduplicate_by_url,
    select_candidates,
)
from memex.ingestion.persist import (
    SaveResult,
    clean_content,
    import_bookmark,
    save_memory,
    save_single_url,
    trim_for_processing,
)
from memex.ingestion.pipeline import (
    FunnelStats,
    IngestionPipeline,
    IngestionStage,
    ProcessingProgress,
    ProcessingResult,
)

__all__ = [
    "FetchEvent",
    "FetchPool",
    "FunnelStats",
    "HistoryEntry",
    "IngestionPipeline",
    "IngestionStage",
    "ProcessingProgress",
    "ProcessingResult",
    "SaveResult",
    "apply_blocklist",
    "clean_content",
    "deduplicate_by_url",
    "import_bookmark",
    "save_memory",
    "save_single_url",
    "select_candidates",
    "trim_for_processing",
]

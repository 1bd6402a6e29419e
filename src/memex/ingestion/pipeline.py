"""Browsing-history ingestion state machine.

filtering -> ai-selection -> fetching -> complete, with ``error`` reachable
from any stage. Every transition is reported to an observer callback as a
``ProcessingProgress`` so callers can assert on stage names.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from memex.config import (
    AI_DESIRED_SELECTION,
    FETCH_TIMEOUT,
    FINAL_PROCESS_TARGET,
    MAX_URLS_TO_SEND_AI,
    PARALLEL_WORKERS,
)
from memex.core.exceptions import DuplicateMemoryError, MemexError, NoConnectionError
from memex.generative.collaborators import GenerativeCollaborators
from memex.ingestion.fetch_pool import ExtractFunc, FetchPool
from memex.ingestion.history_filter import (
    HistoryEntry,
    apply_blocklist,
    deduplicate_by_url,
    prepare_ranking_payload,
    rank_urls,
)
from memex.ingestion.persist import save_memory
from memex.retrieval import check_connection
from memex.storage.interface import MemoryRepository, SourceType
from memex.url_utils import normalize_history_url

logger = logging.getLogger(__name__)

NOTHING_TO_PROCESS_MESSAGE = "No processable browsing history found."
NO_QUALITY_CONTENT_MESSAGE = "No quality content found in browsing history."
NOTHING_EXTRACTED_MESSAGE = "Could not extract content from selected URLs."

FETCH_PROGRESS_START = 50
FETCH_PROGRESS_SPAN = 45


class IngestionStage(str, Enum):
    FILTERING = "filtering"
    AI_SELECTION = "ai-selection"
    FETCHING = "fetching"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class FunnelStats:
    """Counts at each funnel stage; reported on every terminal event."""

    total_input: int = 0
    after_blocklist: int = 0
    sent_to_ai: int = 0
    ai_selected: int = 0
    successfully_fetched: int = 0
    final_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class ProcessingProgress:
    stage: IngestionStage
    message: str
    progress: float
    stats: Optional[FunnelStats] = None
    current_url: Optional[str] = None


@dataclass
class ProcessedEntry:
    """A fetched history entry, carrying the visit metadata it came with."""

    url: str
    title: str
    content: str
    content_length: int
    word_count: int
    visit_count: int
    memory_id: Optional[int] = None


@dataclass
class ProcessingResult:
    success: bool
    message: str
    stats: FunnelStats
    processed_entries: List[ProcessedEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "stats": self.stats.to_dict(),
            "processed_count": len(self.processed_entries),
        }


ProgressCallback = Callable[[ProcessingProgress], None]


def _completion_message(final_count: int, target: int) -> str:
    if final_count == 0:
        return NOTHING_EXTRACTED_MESSAGE
    if final_count < target:
        return f"Successfully processed {final_count} articles."
    return f"Successfully processed {final_count} high-quality articles."


class IngestionPipeline:
    """Select, fetch and store the worthwhile pages of a browsing history."""

    def __init__(
        self,
        repository: MemoryRepository,
        collaborators: GenerativeCollaborators,
        extract_func: Optional[ExtractFunc] = None,
        connection_check: Optional[Callable[[], bool]] = None,
        concurrency: int = PARALLEL_WORKERS,
        fetch_timeout: float = FETCH_TIMEOUT,
        max_send: int = MAX_URLS_TO_SEND_AI,
        desired: int = AI_DESIRED_SELECTION,
        final_target: int = FINAL_PROCESS_TARGET,
    ):
        self.repository = repository
        self.collaborators = collaborators
        self.extract_func = extract_func
        self.connection_check = connection_check or check_connection
        self.concurrency = concurrency
        self.fetch_timeout = fetch_timeout
        self.max_send = max_send
        self.desired = desired
        self.final_target = final_target

    def run(
        self,
        owner: str,
        entries: Iterable[HistoryEntry],
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessingResult:
        entries = list(entries)
        stats = FunnelStats(total_input=len(entries))

        def emit(
            stage: IngestionStage,
            message: str,
            progress: float,
            current_url: Optional[str] = None,
        ) -> None:
            if on_progress is None:
                return
            on_progress(
                ProcessingProgress(
                    stage=stage,
                    message=message,
                    progress=progress,
                    stats=FunnelStats(**stats.to_dict()),
                    current_url=current_url,
                )
            )

        try:
            emit(IngestionStage.FILTERING, "Filtering browsing history...", 10)
            emit(IngestionStage.FILTERING, "Checking internet connection...", 15)
            if not self.connection_check():
                raise NoConnectionError()

            emit(IngestionStage.FILTERING, "Applying filters...", 20)
            filtered = apply_blocklist(entries)
            stats.after_blocklist = len(filtered)
            if not filtered:
                emit(IngestionStage.COMPLETE, "No processable history found", 100)
                return ProcessingResult(True, NOTHING_TO_PROCESS_MESSAGE, stats)

            filtered = deduplicate_by_url(filtered)
            payload, sent = prepare_ranking_payload(filtered, max_send=self.max_send)
            stats.sent_to_ai = len(sent)
            emit(IngestionStage.AI_SELECTION, f"Analyzing {stats.sent_to_ai} URLs...", 30)

            selected = rank_urls(payload, self.collaborators.rank_urls, self.desired)
            stats.ai_selected = len(selected)
            if not selected:
                emit(IngestionStage.COMPLETE, "No quality content found", 100)
                return ProcessingResult(True, NO_QUALITY_CONTENT_MESSAGE, stats)
            emit(
                IngestionStage.AI_SELECTION,
                f"Selected {len(selected)} quality URLs",
                40,
            )
        except Exception as exc:
            logger.error("ingestion failed for owner=%s: %s", owner, exc)
            emit(IngestionStage.ERROR, str(exc) or "Processing failed", 0)
            raise

        emit(IngestionStage.FETCHING, "Fetching content from selected URLs...", FETCH_PROGRESS_START)
        fetched = self._fetch(selected, filtered, emit)
        stats.successfully_fetched = len(fetched)

        for entry in fetched:
            try:
                memory = save_memory(
                    self.repository,
                    self.collaborators,
                    owner,
                    url=entry.url,
                    title=entry.title,
                    content=entry.content,
                    source_type=SourceType.BROWSER_HISTORY,
                )
            except DuplicateMemoryError as exc:
                logger.info("skipping %s: %s", entry.url, exc)
                continue
            except MemexError as exc:
                logger.error("Failed saving %s: %s", entry.url, exc)
                continue
            except Exception:
                logger.exception("Failed saving %s", entry.url)
                continue
            entry.memory_id = memory.id
            stats.final_count += 1

        saved = [entry for entry in fetched if entry.memory_id is not None]
        emit(
            IngestionStage.COMPLETE,
            f"Successfully processed {stats.final_count} articles",
            100,
        )
        logger.info("ingestion funnel owner=%s stats=%s", owner, stats.to_dict())
        return ProcessingResult(
            True,
            _completion_message(stats.final_count, self.final_target),
            stats,
            saved,
        )

    def _fetch(
        self,
        selected: List[str],
        candidates: List[HistoryEntry],
        emit: Callable[..., None],
    ) -> List[ProcessedEntry]:
        by_key = {normalize_history_url(entry.url): entry for entry in candidates}
        pool = FetchPool(
            extract_func=self.extract_func,
            concurrency=self.concurrency,
            timeout=self.fetch_timeout,
        )
        total = len(selected)
        completed = 0
        fetched: List[ProcessedEntry] = []
        for event in pool.fetch_all(selected):
            completed += 1
            emit(
                IngestionStage.FETCHING,
                f"Fetching content ({completed}/{total})...",
                FETCH_PROGRESS_START + (completed / total) * FETCH_PROGRESS_SPAN,
                event.url,
            )
            if not event.success or event.content is None:
                continue
            original = by_key.get(normalize_history_url(event.url))
            if original is None:
                logger.debug("selected url not in history, skipping: %s", event.url)
                continue
            fetched.append(
                ProcessedEntry(
                    url=original.url,
                    title=original.title or event.content.title,
                    content=event.content.content,
                    content_length=event.content.content_length,
                    word_count=event.content.word_count,
                    visit_count=original.visit_count,
                )
            )
        return fetched

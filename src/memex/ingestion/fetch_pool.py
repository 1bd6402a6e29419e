"""Bounded-concurrency extraction over a list of URLs."""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from memex.config import FETCH_TIMEOUT, PARALLEL_WORKERS
from memex.core.exceptions import FetchError
from memex.retrieval import ExtractedContent, extract

logger = logging.getLogger(__name__)

ExtractFunc = Callable[..., Optional[ExtractedContent]]

# Extra seconds past the per-job timeout before the pool gives up on a job.
JOB_DEADLINE_GRACE_SECONDS = 1.0
START_POLL_SECONDS = 0.05
INSUFFICIENT_CONTENT = "Insufficient content"


@dataclass
class FetchEvent:
    """Outcome of one job. ``index`` is the URL's position in the input list."""

    index: int
    url: str
    success: bool
    content: Optional[ExtractedContent] = None
    error: Optional[str] = None


class FetchPool:
    """Run ``extract(url, timeout=...)`` with at most ``concurrency`` jobs in flight.

    A pool is single-use: ``fetch_all`` may be called once and returns a lazy
    iterator of ``FetchEvent`` in completion order. Dispatch follows input
    order and a new job starts as soon as any running job finishes.
    """

    def __init__(
        self,
        extract_func: Optional[ExtractFunc] = None,
        concurrency: int = PARALLEL_WORKERS,
        timeout: float = FETCH_TIMEOUT,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.extract_func = extract_func or extract
        self.concurrency = concurrency
        self.timeout = timeout
        self._started = False

    def fetch_all(self, urls: Iterable[str]) -> Iterator[FetchEvent]:
        if self._started:
            raise RuntimeError("FetchPool is single-use; create a new pool per batch")
        self._started = True
        return self._run(list(urls))

    def _run_job(self, index: int, url: str, started: Dict[int, float]) -> Optional[ExtractedContent]:
        started[index] = time.monotonic()
        return self.extract_func(url, timeout=self.timeout)

    def _event_from_future(self, future: Future, index: int, url: str) -> FetchEvent:
        try:
            content = future.result()
        except FetchError as exc:
            logger.debug("fetch failed index=%d url=%s reason=%s", index, url, exc.reason)
            return FetchEvent(index=index, url=url, success=False, error=exc.reason)
        except Exception as exc:
            logger.debug("fetch errored index=%d url=%s error=%s", index, url, exc)
            return FetchEvent(index=index, url=url, success=False, error=str(exc))
        if content is None:
            return FetchEvent(index=index, url=url, success=False, error=INSUFFICIENT_CONTENT)
        return FetchEvent(index=index, url=url, success=True, content=content)

    def _run(self, urls: List[str]) -> Iterator[FetchEvent]:
        if not urls:
            return

        # Abandoned jobs keep their worker thread, so the executor may grow past
        # ``concurrency``; ``pending`` is what caps the jobs in flight.
        executor = ThreadPoolExecutor(
            max_workers=len(urls),
            thread_name_prefix="memex_fetch",
        )
        pending: Dict[Future, Tuple[int, str]] = {}
        started: Dict[int, float] = {}
        next_index = 0
        deadline_window = self.timeout + JOB_DEADLINE_GRACE_SECONDS

        def dispatch() -> None:
            nonlocal next_index
            url = urls[next_index]
            future = executor.submit(self._run_job, next_index, url, started)
            pending[future] = (next_index, url)
            next_index += 1

        def deadline_of(index: int) -> float:
            # A job that has not started yet cannot expire; poll until it does.
            start = started.get(index)
            if start is None:
                return time.monotonic() + START_POLL_SECONDS
            return start + deadline_window

        try:
            while next_index < len(urls) and len(pending) < self.concurrency:
                dispatch()

            while pending:
                earliest = min(deadline_of(index) for index, _ in pending.values())
                done, _ = wait(
                    list(pending),
                    timeout=max(0.0, earliest - time.monotonic()),
                    return_when=FIRST_COMPLETED,
                )

                finished: List[FetchEvent] = []
                for future in done:
                    index, url = pending.pop(future)
                    finished.append(self._event_from_future(future, index, url))

                now = time.monotonic()
                for future, (index, url) in list(pending.items()):
                    start = started.get(index)
                    if start is not None and now >= start + deadline_window:
                        pending.pop(future)
                        future.cancel()
                        logger.debug("fetch timed out index=%d url=%s", index, url)
                        finished.append(
                            FetchEvent(
                                index=index,
                                url=url,
                                success=False,
                                error=f"Timed out after {self.timeout}s",
                            )
                        )

                for _ in finished:
                    if next_index < len(urls):
                        dispatch()
                for event in finished:
                    yield event
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

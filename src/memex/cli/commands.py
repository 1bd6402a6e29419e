"""Command implementations for the memex CLI."""

from __future__ import annotations

import json
import logging
import signal
import threading
from pathlib import Path
from typing import Any, List

from rich.console import Console
from rich.table import Table

from memex.bridge.capture import CaptureHandler
from memex.bridge.server import ControlServer
from memex.core.exceptions import DuplicateMemoryError, FetchError, MemexError
from memex.core.humanize import time_ago
from memex.generative.collaborators import GenerativeCollaborators
from memex.ingestion.history_filter import HistoryEntry
from memex.ingestion.persist import import_bookmark, save_single_url
from memex.ingestion.pipeline import IngestionPipeline, ProcessingProgress
from memex.search.composer import SearchResponse
from memex.search.service import SearchService
from memex.storage.sqlite import SQLiteMemoryRepository

logger = logging.getLogger(__name__)
console = Console()

SUMMARY_PREVIEW_CHARS = 120


def build_repository() -> SQLiteMemoryRepository:
    repository = SQLiteMemoryRepository()
    repository.init_db()
    return repository


def _load_json_list(path: str) -> List[Any]:
    data = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("entries") or data.get("bookmarks") or []
    if not isinstance(data, list):
        raise MemexError(f"{path} does not contain a JSON list")
    return data


def _preview(text: str, limit: int = SUMMARY_PREVIEW_CHARS) -> str:
    text = " ".join((text or "").split())
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def render_search_response(response: SearchResponse) -> None:
    console.print(response.answer)
    if not response.sources:
        return
    table = Table(show_header=True)
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Title", style="green")
    table.add_column("URL", style="blue")
    table.add_column("Similarity", justify="right")
    table.add_column("Saved", style="dim")
    for position, source in enumerate(response.sources, start=1):
        table.add_row(
            str(position),
            source.title,
            source.url,
            f"{source.similarity:.2f}",
            time_ago(source.created_at),
        )
    console.print(table)
    footer = f"confidence: {response.confidence or '-'}"
    if response.used_ai:
        footer += " | generated answer"
    console.print(f"[dim]{footer}[/dim]")


def search_command(owner: str, query: str, use_cache: bool = True) -> int:
    repository = build_repository()
    service = SearchService(repository, GenerativeCollaborators())
    try:
        if use_cache:
            response = service.search_with_cache(owner, query)
        else:
            response = service.search(owner, query)
    except MemexError as exc:
        console.print(f"[red]Search failed:[/red] {exc}")
        return 1
    render_search_response(response)
    return 0


def add_command(owner: str, url: str, intent: str = "") -> int:
    repository = build_repository()
    with console.status(f"Saving {url}..."):
        result = save_single_url(repository, GenerativeCollaborators(), owner, url, intent=intent)
    if result.success:
        console.print(f"[green]{result.message}[/green] (id {result.memory_id})")
        return 0
    console.print(f"[yellow]{result.message}[/yellow]")
    return 1


def _print_progress(progress: ProcessingProgress) -> None:
    console.print(
        f"[dim]{progress.stage.value:>12}[/dim] {progress.progress:5.1f}%  {progress.message}"
    )


def import_history_command(owner: str, path: str) -> int:
    entries = [HistoryEntry.from_dict(row) for row in _load_json_list(path)]
    repository = build_repository()
    pipeline = IngestionPipeline(repository, GenerativeCollaborators())
    try:
        result = pipeline.run(owner, entries, on_progress=_print_progress)
    except MemexError as exc:
        console.print(f"[red]Import failed:[/red] {exc}")
        return 1

    console.print(result.message)
    table = Table(title="Ingestion funnel")
    table.add_column("Stage", style="cyan")
    table.add_column("Count", justify="right")
    for name, value in result.stats.to_dict().items():
        table.add_row(name.replace("_", " "), str(value))
    console.print(table)
    return 0


def import_bookmarks_command(owner: str, path: str) -> int:
    rows = _load_json_list(path)
    repository = build_repository()
    collaborators = GenerativeCollaborators()
    saved = 0
    for row in rows:
        url = row.get("url") if isinstance(row, dict) else row
        if not isinstance(url, str) or not url.strip():
            continue
        try:
            memory = import_bookmark(repository, collaborators, owner, url.strip())
        except DuplicateMemoryError as exc:
            console.print(f"[dim]skip[/dim] {url}: {exc}")
            continue
        except FetchError as exc:
            console.print(f"[yellow]fail[/yellow] {url}: {exc.reason}")
            continue
        except MemexError as exc:
            console.print(f"[yellow]fail[/yellow] {url}: {exc}")
            continue
        saved += 1
        console.print(f"[green]saved[/green] {url} (id {memory.id})")
    console.print(f"Imported {saved} of {len(rows)} bookmarks.")
    return 0


def delete_command(owner: str, memory_id: int) -> int:
    repository = build_repository()
    if repository.delete_memory(owner, memory_id):
        console.print(f"Deleted memory {memory_id}.")
        return 0
    console.print(f"[yellow]No memory with id {memory_id}.[/yellow]")
    return 1


def list_command(owner: str, limit: int) -> int:
    memories = build_repository().list_memories(owner)[:limit]
    if not memories:
        print("No memories saved yet.")
        return 0
    table = Table(title=f"Saved memories (Last {len(memories)})")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Title", style="green")
    table.add_column("Summary", style="blue")
    table.add_column("Source", style="dim")
    table.add_column("Saved", style="dim")
    for memory in memories:
        table.add_row(
            str(memory.id),
            _preview(memory.title, 60),
            _preview(memory.summary),
            memory.source_type,
            time_ago(memory.created_at),
        )
    console.print(table)
    return 0


def recent_command(owner: str, limit: int) -> int:
    rows = build_repository().recent_searches(owner, limit)
    if not rows:
        print("No searches yet.")
        return 0
    for row in rows:
        console.print(f"{row['query']}  [dim]{time_ago(row['date'])}[/dim]")
    return 0


def stats_command(owner: str) -> int:
    stats = build_repository().search_stats(owner)
    console.print(f"Memories: {stats['total_memories']}")
    console.print(f"Average embedding size: {stats['avg_embedding_size']} bytes")
    return 0


def serve_command(owner: str) -> int:
    """Run the control server until interrupted."""
    repository = build_repository()
    handler = CaptureHandler(repository, GenerativeCollaborators(), owner)
    server = ControlServer(handler.handle)
    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    server.start_in_background()
    host, port = server.address
    console.print(f"Listening for captures on {host}:{port} (Ctrl+C to stop)")
    try:
        while not stop.wait(0.5):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()
    return 0

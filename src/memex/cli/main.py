"""Command-line interface for memex."""

import argparse
import logging
import sys
from typing import Optional

from memex.config import DEFAULT_OWNER, LOG_FILE, LOG_LEVEL
from memex.logger import generate_timestamped_log_path, setup_logging

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 20


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="memex",
        description="Save web pages and ask questions about what you read.",
    )
    parser.add_argument(
        "--owner",
        default=DEFAULT_OWNER,
        help="Owner whose memories are used (default: %(default)s)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Write a DEBUG log to a timestamped file",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    search = subparsers.add_parser("search", help="Ask a question about saved pages")
    search.add_argument("query", nargs="+")
    search.add_argument(
        "--no-cache", action="store_true", help="Ignore cached answers for this query"
    )

    add = subparsers.add_parser("add", help="Save one URL")
    add.add_argument("url")
    add.add_argument("--intent", default="", help="Why you are saving this page")

    history = subparsers.add_parser(
        "import-history", help="Pick and save the best pages from a history export"
    )
    history.add_argument("path", help="JSON list of {url, title, visitTime, visitCount}")

    bookmarks = subparsers.add_parser("import-bookmarks", help="Save bookmarked pages")
    bookmarks.add_argument("path", help="JSON list of URLs or {url} objects")

    delete = subparsers.add_parser("delete", help="Delete a memory by id")
    delete.add_argument("memory_id", type=int)

    listing = subparsers.add_parser("list", help="Show saved memories")
    listing.add_argument("-n", "--limit", type=int, default=DEFAULT_LIST_LIMIT)

    recent = subparsers.add_parser("recent", help="Show recent searches")
    recent.add_argument("-n", "--limit", type=int, default=None)

    subparsers.add_parser("stats", help="Show corpus statistics")
    subparsers.add_parser("serve", help="Run the local capture control server")
    subparsers.add_parser(
        "native-host", help="Run as the browser extension's native-messaging host"
    )
    return parser.parse_args(argv)


def run(args: argparse.Namespace) -> int:
    from memex.cli import commands

    owner = args.owner
    if args.command == "search":
        return commands.search_command(owner, " ".join(args.query), use_cache=not args.no_cache)
    if args.command == "add":
        return commands.add_command(owner, args.url, intent=args.intent)
    if args.command == "import-history":
        return commands.import_history_command(owner, args.path)
    if args.command == "import-bookmarks":
        return commands.import_bookmarks_command(owner, args.path)
    if args.command == "delete":
        return commands.delete_command(owner, args.memory_id)
    if args.command == "list":
        return commands.list_command(owner, args.limit)
    if args.command == "recent":
        from memex.search.settings import SearchSettings

        limit = args.limit or SearchSettings.from_config().recent_searches_limit
        return commands.recent_command(owner, limit)
    if args.command == "stats":
        return commands.stats_command(owner)
    if args.command == "serve":
        return commands.serve_command(owner)
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    if args.command == "native-host":
        # Logging for the host goes to its own side file; stdout is protocol only.
        from memex.bridge.host import run_native_host

        sys.exit(run_native_host())

    if args.verbose:
        setup_logging("DEBUG", generate_timestamped_log_path(LOG_FILE))
        logging.debug("Verbose mode enabled. Log level set to DEBUG.")
    else:
        setup_logging(LOG_LEVEL, LOG_FILE)

    sys.exit(run(args))

import json
from unittest.mock import MagicMock, patch

import pytest

from memex.cli import commands, main, parse_args
from memex.cli.main import run
from memex.ingestion.pipeline import FunnelStats, ProcessingResult
from memex.ingestion.persist import SaveResult
from memex.search.composer import SearchResponse, SearchSource
from memex.storage import Memory


@pytest.fixture
def cli_repo(repo):
    with patch("memex.cli.commands.build_repository", return_value=repo):
        yield repo


def _store(repo, url="https://example.com/a", title="Saved page"):
    memory = Memory(
        owner="local",
        url=url,
        canonical_url=url,
        title=title,
        content="body",
        summary="A short summary.",
        embedding=[1.0, 0.0],
    )
    repo.insert_memory(memory)
    return memory


def test_parse_args_search_joins_words():
    args = parse_args(["search", "cooking", "steak", "--no-cache"])
    assert args.command == "search"
    assert args.query == ["cooking", "steak"]
    assert args.no_cache is True
    assert args.owner == "local"


def test_parse_args_owner_and_subcommands():
    args = parse_args(["--owner", "alice", "add", "https://example.com", "--intent", "later"])
    assert (args.owner, args.url, args.intent) == ("alice", "https://example.com", "later")
    assert parse_args(["delete", "7"]).memory_id == 7
    assert parse_args(["list", "-n", "3"]).limit == 3
    assert parse_args(["recent"]).limit is None


def test_parse_args_requires_a_command():
    with pytest.raises(SystemExit):
        parse_args([])


@pytest.mark.parametrize(
    "argv,target,expected_args",
    [
        (["search", "steak"], "search_command", ("local", "steak")),
        (["add", "https://e.com"], "add_command", ("local", "https://e.com")),
        (["import-history", "h.json"], "import_history_command", ("local", "h.json")),
        (["import-bookmarks", "b.json"], "import_bookmarks_command", ("local", "b.json")),
        (["delete", "3"], "delete_command", ("local", 3)),
        (["list"], "list_command", ("local", 20)),
        (["recent"], "recent_command", ("local", 5)),
        (["stats"], "stats_command", ("local",)),
        (["serve"], "serve_command", ("local",)),
    ],
)
def test_run_dispatches_to_commands(argv, target, expected_args):
    with patch(f"memex.cli.commands.{target}", return_value=0) as command:
        assert run(parse_args(argv)) == 0
    assert command.call_args.args == expected_args


def test_main_native_host_skips_cli_logging():
    with (
        patch("memex.bridge.host.run_native_host", return_value=0) as host,
        patch("memex.cli.main.setup_logging") as setup,
    ):
        with pytest.raises(SystemExit) as excinfo:
            main(["native-host"])
    assert excinfo.value.code == 0
    host.assert_called_once()
    setup.assert_not_called()


def test_main_sets_up_logging_and_exits_with_command_code():
    with (
        patch("memex.cli.main.setup_logging") as setup,
        patch("memex.cli.commands.stats_command", return_value=0),
    ):
        with pytest.raises(SystemExit) as excinfo:
            main(["stats"])
    assert excinfo.value.code == 0
    setup.assert_called_once()


def test_list_and_delete_commands(cli_repo, capsys):
    memory = _store(cli_repo)
    assert commands.list_command("local", 10) == 0
    assert "Saved page" in capsys.readouterr().out

    assert commands.delete_command("local", memory.id) == 0
    assert commands.delete_command("local", memory.id) == 1
    assert commands.list_command("local", 10) == 0
    assert "No memories saved yet." in capsys.readouterr().out


def test_stats_and_recent_commands(cli_repo, capsys):
    _store(cli_repo)
    assert commands.stats_command("local") == 0
    out = capsys.readouterr().out
    assert "Memories: 1" in out
    assert "8 bytes" in out

    assert commands.recent_command("local", 5) == 0
    assert "No searches yet." in capsys.readouterr().out


def test_search_command_renders_sources(cli_repo, capsys):
    response = SearchResponse(
        answer="Here's what I found in your saved articles:",
        sources=[
            SearchSource(
                id=1,
                url="https://example.com/a",
                title="Steak",
                summary="s",
                similarity=0.93,
                created_at=0,
            )
        ],
        confidence="high",
    )
    service = MagicMock()
    service.search_with_cache.return_value = response
    with patch("memex.cli.commands.SearchService", return_value=service):
        assert commands.search_command("local", "steak") == 0
    out = capsys.readouterr().out
    assert "Steak" in out
    assert "0.93" in out
    service.search.assert_not_called()


def test_add_command_reports_result(cli_repo, capsys):
    with patch(
        "memex.cli.commands.save_single_url",
        return_value=SaveResult(False, "You saved this 2 days ago.", 4),
    ):
        assert commands.add_command("local", "https://example.com/a") == 1
    assert "You saved this 2 days ago." in capsys.readouterr().out


def test_import_history_command_prints_funnel(cli_repo, tmp_path, capsys):
    history = tmp_path / "history.json"
    history.write_text(json.dumps([{"url": "https://blog.example.com/a", "visitCount": 2}]))
    result = ProcessingResult(True, "Successfully processed 1 articles.", FunnelStats(1, 1, 1, 1, 1, 1))
    pipeline = MagicMock()
    pipeline.run.return_value = result

    with patch("memex.cli.commands.IngestionPipeline", return_value=pipeline):
        assert commands.import_history_command("local", str(history)) == 0

    entries = pipeline.run.call_args.args[1]
    assert entries[0].url == "https://blog.example.com/a"
    assert entries[0].visit_count == 2
    out = capsys.readouterr().out
    assert "Successfully processed 1 articles." in out
    assert "final count" in out


def test_import_bookmarks_command_counts_saves(cli_repo, tmp_path, capsys, extracted_factory):
    bookmarks = tmp_path / "bookmarks.json"
    bookmarks.write_text(json.dumps(["https://example.com/a", {"url": "https://example.com/b"}, 5]))

    def fake_import(repository, collaborators, owner, url):
        return _store(repository, url=url)

    with patch("memex.cli.commands.import_bookmark", side_effect=fake_import):
        assert commands.import_bookmarks_command("local", str(bookmarks)) == 0
    assert "Imported 2 of 3 bookmarks." in capsys.readouterr().out

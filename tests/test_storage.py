import sqlite3

import pytest

from memex.core.exceptions import DuplicateMemoryError
from memex.storage import EMPTY_SNAPSHOT, Memory, SearchCacheEntry, SourceType
from memex.storage.sqlite import SQLiteMemoryRepository


def _memory(owner="alice", url="https://example.com/a", **kwargs):
    defaults = dict(
        canonical_url=url,
        title="Title",
        content="Body",
        summary="Summary",
        embedding=[0.1, 0.2, 0.3],
    )
    defaults.update(kwargs)
    return Memory(owner=owner, url=url, **defaults)


def test_init_db_creates_tables(tmp_path):
    db_path = tmp_path / "nested" / "memex.db"
    repository = SQLiteMemoryRepository(db_path)
    repository.init_db()
    assert db_path.exists()

    conn = sqlite3.connect(db_path)
    c = conn.cursor()
    c.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='memories'")
    assert c.fetchone() is not None
    c.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='search_cache'")
    assert c.fetchone() is not None
    conn.close()


def test_default_path_comes_from_config(monkeypatch, tmp_path):
    monkeypatch.setattr("memex.storage.sqlite.DB_PATH", tmp_path / "configured.db")
    assert SQLiteMemoryRepository().db_path == tmp_path / "configured.db"


def test_insert_and_read_back(repo):
    memory = _memory(intent="dinner ideas", source_type=SourceType.MANUAL.value)
    memory_id = repo.insert_memory(memory)

    assert memory.id == memory_id
    assert memory.created_at > 0

    stored = repo.get_memory("alice", memory_id)
    assert stored.title == "Title"
    assert stored.intent == "dinner ideas"
    assert stored.source_type == "manual"
    assert stored.embedding == pytest.approx([0.1, 0.2, 0.3], rel=1e-6)


def test_insert_duplicate_canonical_url_raises(repo):
    first_id = repo.insert_memory(_memory())
    with pytest.raises(DuplicateMemoryError) as excinfo:
        repo.insert_memory(_memory(url="https://example.com/a"))

    assert excinfo.value.memory_id == first_id
    assert str(excinfo.value) == "You saved this just now."
    assert repo.count_memories("alice") == 1


def test_same_url_for_different_owners_is_allowed(repo):
    repo.insert_memory(_memory(owner="alice"))
    repo.insert_memory(_memory(owner="bob"))
    assert repo.count_memories("alice") == 1
    assert repo.count_memories("bob") == 1


def test_find_by_canonical_url(repo):
    repo.insert_memory(_memory(url="https://example.com/x"))
    found = repo.find_by_canonical_url("alice", "https://example.com/x")
    assert found is not None
    assert found.embedding == []
    assert repo.find_by_canonical_url("bob", "https://example.com/x") is None


def test_list_memories_is_owner_scoped_and_newest_first(repo):
    repo.insert_memory(_memory(url="https://example.com/old", created_at=1_000))
    repo.insert_memory(_memory(url="https://example.com/new", created_at=2_000))
    repo.insert_memory(_memory(owner="bob", url="https://example.com/other"))

    memories = repo.list_memories("alice")
    assert [m.url for m in memories] == ["https://example.com/new", "https://example.com/old"]


def test_delete_memory_only_touches_owner_rows(repo):
    memory_id = repo.insert_memory(_memory())
    assert repo.delete_memory("bob", memory_id) is False
    assert repo.count_memories("alice") == 1
    assert repo.delete_memory("alice", memory_id) is True
    assert repo.count_memories("alice") == 0
    assert repo.delete_memory("alice", memory_id) is False


def test_memory_snapshot_changes_on_insert_and_delete(repo):
    assert repo.memory_snapshot("alice") == EMPTY_SNAPSHOT

    repo.insert_memory(_memory(url="https://example.com/1", created_at=1_000))
    first = repo.memory_snapshot("alice")
    second_id = repo.insert_memory(_memory(url="https://example.com/2", created_at=500))
    second = repo.memory_snapshot("alice")
    assert first != second

    repo.delete_memory("alice", second_id)
    assert repo.memory_snapshot("alice") == first
    assert repo.memory_snapshot("bob") == EMPTY_SNAPSHOT


def test_search_cache_upsert_and_recent_searches(repo):
    entry = SearchCacheEntry(
        owner="alice",
        normalized_query="steak",
        original_query="Steak",
        response_json='{"answer": "a"}',
        memory_snapshot="1:1",
        top_similarity=0.8,
        used_ai=True,
        created_at=1_000,
    )
    repo.upsert_cached_search(entry)
    cached = repo.get_cached_search("alice", "steak")
    assert cached.used_ai is True
    assert cached.top_similarity == pytest.approx(0.8)

    entry.response_json = '{"answer": "b"}'
    entry.original_query = "STEAK"
    entry.created_at = 2_000
    repo.upsert_cached_search(entry)
    assert repo.get_cached_search("alice", "steak").response_json == '{"answer": "b"}'
    assert repo.get_cached_search("bob", "steak") is None

    repo.upsert_cached_search(
        SearchCacheEntry(
            owner="alice",
            normalized_query="pasta",
            original_query="pasta",
            response_json="{}",
            memory_snapshot="0",
            created_at=3_000,
        )
    )
    recent = repo.recent_searches("alice", 5)
    assert recent == [
        {"query": "pasta", "date": 3_000},
        {"query": "STEAK", "date": 2_000},
    ]
    assert repo.recent_searches("alice", 1) == [{"query": "pasta", "date": 3_000}]


def test_search_stats(repo):
    assert repo.search_stats("alice") == {"total_memories": 0, "avg_embedding_size": 0}
    repo.insert_memory(_memory(url="https://example.com/1", embedding=[0.0] * 4))
    repo.insert_memory(_memory(url="https://example.com/2", embedding=[0.0] * 8))
    stats = repo.search_stats("alice")
    assert stats["total_memories"] == 2
    assert stats["avg_embedding_size"] == 24

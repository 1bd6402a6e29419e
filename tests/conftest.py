import os
import tempfile
from typing import Dict, List, Optional
from unittest.mock import patch

import pytest

# memex.config reads (and seeds) its directory at import time, which happens
# during collection before any fixture runs.
os.environ.setdefault(
    "MEMEX_CONFIG_DIR", tempfile.mkdtemp(prefix="memex-test-config-")
)


@pytest.fixture(autouse=True)
def mock_settings_env_vars(tmp_path):
    """Automatically mock HOME and environment variables to ensure test isolation."""
    fake_home = tmp_path / "fake_home"
    fake_home.mkdir()

    with patch("pathlib.Path.home", return_value=fake_home):
        with patch.dict(
            os.environ,
            {"HOME": str(fake_home), "MEMEX_DB_PATH": str(fake_home / "test.db")},
        ):
            yield


class FakeCollaborators:
    """Deterministic stand-in for GenerativeCollaborators.

    ``vectors`` maps exact text to an embedding; anything else gets a vector
    derived from its length so repeated calls stay stable.
    """

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        ranked: Optional[List[str]] = None,
        answer: str = "",
    ):
        self.vectors = dict(vectors or {})
        self.ranked = ranked
        self.answer = answer
        self.summarize_calls: List[str] = []
        self.embed_calls: List[str] = []
        self.rank_calls: List[tuple] = []
        self.synthesize_calls: List[tuple] = []

    def summarize(self, text: str) -> str:
        self.summarize_calls.append(text)
        return f"Summary of {text[:40]}"

    def embed(self, text: str) -> List[float]:
        self.embed_calls.append(text)
        if text in self.vectors:
            return list(self.vectors[text])
        return [1.0, float(len(text) % 7), 0.5]

    def rank_urls(self, url_data: str, desired: int) -> List[str]:
        self.rank_calls.append((url_data, desired))
        return list(self.ranked or [])[:desired]

    def synthesize_answer(self, query: str, sources_text: str) -> str:
        self.synthesize_calls.append((query, sources_text))
        return self.answer


@pytest.fixture
def repo(tmp_path):
    from memex.storage.sqlite import SQLiteMemoryRepository

    repository = SQLiteMemoryRepository(tmp_path / "memex-test.db")
    repository.init_db()
    return repository


@pytest.fixture
def collaborators():
    return FakeCollaborators()


@pytest.fixture
def article_text():
    return " ".join(
        "Slow roasting keeps the steak juicy and evenly cooked from edge to edge."
        for _ in range(12)
    )


def make_extracted(title: str = "A page", content: Optional[str] = None):
    from memex.retrieval import ExtractedContent

    content = content or ("Readable paragraph text. " * 30).strip()
    return ExtractedContent(
        title=title,
        content=content,
        word_count=len(content.split()),
        content_length=len(content),
        excerpt=content[:300],
    )


@pytest.fixture
def extracted_factory():
    return make_extracted


@pytest.fixture
def collaborators_factory():
    return FakeCollaborators

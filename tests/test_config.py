from unittest.mock import patch

import pytest

from memex.config import (
    BRIDGE_LIMIT_HTML_BYTES,
    BRIDGE_PORT,
    FETCH_TIMEOUT,
    MODELS,
    PARALLEL_WORKERS,
    RANK_SYSTEM_PROMPT,
    SEARCH,
)
from memex.config.loader import load_config
from memex.search.settings import SearchSettings


def test_models_config_is_hydrated_from_api_definitions():
    assert {"summarizer", "ranker", "answer"} <= set(MODELS)
    for alias, config in MODELS.items():
        assert config["alias"] == alias
        assert "id" in config
        assert config["base_url"].startswith("https://")
        assert config["api_key_env"] == "OPENAI_API_KEY"


def test_ingestion_and_bridge_defaults():
    assert FETCH_TIMEOUT == 10
    assert PARALLEL_WORKERS == 5
    assert BRIDGE_PORT == 12346
    assert BRIDGE_LIMIT_HTML_BYTES == 350 * 1024


def test_rank_prompt_takes_desired_count():
    assert "{desired}" in RANK_SYSTEM_PROMPT
    assert "5" in RANK_SYSTEM_PROMPT.format(desired=5)


def test_search_settings_match_bundled_thresholds():
    settings = SearchSettings.from_config(SEARCH)
    assert settings == SearchSettings()


def test_search_settings_ignore_unknown_keys():
    settings = SearchSettings.from_config({"min_similarity": 0.5, "unrelated": True})
    assert settings.min_similarity == 0.5


def test_user_overrides_are_merged(tmp_path):
    (tmp_path / "search.toml").write_text("[search]\nmin_similarity = 0.45\n")
    with patch("memex.config.loader._get_config_dir", return_value=tmp_path):
        config = load_config()
    assert config["search"]["min_similarity"] == 0.45
    assert config["search"]["weak_match_threshold"] == 0.42
    assert (tmp_path / "general.toml").exists()


def test_config_dir_env_override(monkeypatch, tmp_path):
    from memex.config.loader import _get_config_dir

    monkeypatch.setenv("MEMEX_CONFIG_DIR", str(tmp_path / "custom"))
    assert _get_config_dir() == tmp_path / "custom"


def test_invalid_config_exits(tmp_path):
    (tmp_path / "general.toml").write_text("invalid_toml = [")
    with patch("memex.config.loader._get_config_dir", return_value=tmp_path):
        with pytest.raises(SystemExit) as excinfo:
            load_config()
    assert excinfo.value.code == 1

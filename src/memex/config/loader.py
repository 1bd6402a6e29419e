"""Configuration loading and hydration logic."""

import os
import shutil
import sys
import tomllib
from importlib import resources
from pathlib import Path
from typing import Any, Dict

CONFIG_DIR_ENV_VAR = "MEMEX_CONFIG_DIR"

CONFIG_FILES = [
    "general.toml",
    "api.toml",
    "models.toml",
    "prompts.toml",
    "search.toml",
    "ingestion.toml",
    "bridge.toml",
]


def _get_config_dir() -> Path:
    """Return the configuration directory path."""
    override = os.environ.get(CONFIG_DIR_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "memex"


def _hydrate_models(config: Dict[str, Any]) -> Dict[str, Any]:
    """Copy API endpoint and credential details into each model definition."""
    api_defs = config.get("api", {})
    models = config.get("models", {})

    for alias, model_data in models.items():
        model_data["alias"] = alias
        api_ref = model_data.get("api")
        if api_ref and api_ref in api_defs:
            api_config = api_defs[api_ref]

            if "url" in api_config and "base_url" not in model_data:
                model_data["base_url"] = api_config["url"]

            if "embeddings_url" in api_config and "embeddings_url" not in model_data:
                model_data["embeddings_url"] = api_config["embeddings_url"]

            if "api_key" in api_config and "api_key" not in model_data:
                model_data["api_key"] = api_config["api_key"]

            if "api_key_env" in api_config and "api_key_env" not in model_data:
                model_data["api_key_env"] = api_config["api_key_env"]

    return config


def _merge(base: Dict[str, Any], update: Dict[str, Any]) -> None:
    for key, value in update.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge(base[key], value)
        else:
            base[key] = value


def load_config() -> Dict[str, Any]:
    """Load configuration from TOML files, falling back to bundled defaults.

    Notices go to stderr: the native messaging host shares this loader and its
    stdout is reserved for protocol frames.
    """
    config_dir = _get_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)

    final_config: Dict[str, Any] = {
        "general": {},
        "api": {},
        "models": {},
        "prompts": {},
        "search": {},
        "ingestion": {},
        "bridge": {},
    }

    # 1. Bundled defaults, copied to the user directory on first run
    for filename in CONFIG_FILES:
        try:
            resource_path = resources.files("memex.data.config").joinpath(filename)
            user_file_path = config_dir / filename

            with resource_path.open("rb") as f:
                _merge(final_config, tomllib.load(f))

            if not user_file_path.exists():
                try:
                    with resources.as_file(resource_path) as source_path:
                        shutil.copy(source_path, user_file_path)
                    print(
                        f"Created default configuration {filename} at {user_file_path}",
                        file=sys.stderr,
                    )
                except Exception as e:
                    print(
                        f"Warning: Failed to create default config {filename}: {e}",
                        file=sys.stderr,
                    )
        except Exception as e:
            print(f"Warning: Failed to load bundled config {filename}: {e}", file=sys.stderr)

    # 2. User overrides
    for filename in CONFIG_FILES:
        user_file_path = config_dir / filename
        if not user_file_path.exists():
            continue
        try:
            with open(user_file_path, "rb") as f:
                _merge(final_config, tomllib.load(f))
        except tomllib.TOMLDecodeError as e:
            print(f"Error: Invalid configuration file at {user_file_path}", file=sys.stderr)
            print(f"Details: {e}", file=sys.stderr)
            sys.exit(1)
        except Exception as e:
            print(
                f"Warning: Failed to load config from {user_file_path}: {e}",
                file=sys.stderr,
            )

    return _hydrate_models(final_config)

"""Configuration constants and re-exports for memex."""

import os
from pathlib import Path

from memex.config.loader import _get_config_dir, load_config

# --- Initialize Configuration ---
_CONFIG = load_config()

# --- Expose Constants ---

# General
_gen = _CONFIG["general"]
DEFAULT_OWNER = _gen.get("default_owner", "local")
USER_AGENT = _gen.get(
    "user_agent",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
)
LOG_LEVEL = _gen.get("log_level", "INFO")
LOG_FILE = _gen.get("log_file", "~/.config/memex/logs/memex.log")
REQUEST_TIMEOUT = _gen.get("request_timeout", 60)
CONNECTIVITY_PROBE_URL = _gen.get("connectivity_probe_url", "https://www.google.com")
CONNECTIVITY_PROBE_TIMEOUT = _gen.get("connectivity_probe_timeout", 5)

# Database
_db_env_var_name = _gen.get("db_path_env_var", "MEMEX_DB_PATH")
_env_path = os.environ.get(_db_env_var_name)

if _env_path:
    DB_PATH = Path(_env_path)
elif "db_path" in _gen and _gen["db_path"]:
    DB_PATH = Path(_gen["db_path"]).expanduser()
else:
    DB_PATH = _get_config_dir() / "memex.db"

# Models
MODELS = _CONFIG["models"]
SUMMARIZATION_MODEL = "summarizer"
RANKING_MODEL = "ranker"
ANSWER_MODEL = "answer"

_embedding = _CONFIG.get("embedding", {})
EMBEDDING_MODEL = _embedding.get("model", "all-MiniLM-L6-v2")
EMBEDDING_BATCH_SIZE = _embedding.get("batch_size", 32)
EMBEDDING_DEVICE = _embedding.get("device", "cpu")
EMBEDDING_NORMALIZE = _embedding.get("normalize", True)
EMBEDDING_LOCAL_FILES_ONLY = _embedding.get("local_files_only", False)

# Prompts
_prompts = _CONFIG["prompts"]
SUMMARIZE_SYSTEM_PROMPT = _prompts.get(
    "summarize_system", "You are a helpful assistant that creates concise summaries."
)
SUMMARIZE_USER_PROMPT = _prompts.get(
    "summarize_user", "Summarize this in 2-3 sentences: {text}"
)
RANK_SYSTEM_PROMPT = _prompts.get("rank_system", "")
RANK_USER_PROMPT = _prompts.get("rank_user", "{url_data}")
ANSWER_SYSTEM_PROMPT = _prompts.get("answer_system", "")
ANSWER_USER_PROMPT = _prompts.get(
    "answer_user", "{sources}\n\nUser's question: {query}"
)

# Search
SEARCH = _CONFIG.get("search", {})

# Ingestion
_ingestion = _CONFIG.get("ingestion", {})
MAX_URLS_TO_SEND_AI = _ingestion.get("max_urls_to_send_ai", 500)
AI_DESIRED_SELECTION = _ingestion.get("ai_desired_selection", 20)
FINAL_PROCESS_TARGET = _ingestion.get("final_process_target", 20)
MIN_CONTENT_LENGTH = _ingestion.get("min_content_length", 400)
FETCH_TIMEOUT = _ingestion.get("fetch_timeout", 10)
SINGLE_URL_TIMEOUT = _ingestion.get("single_url_timeout", 15)
ADD_MEMORY_TIMEOUT = _ingestion.get("add_memory_timeout", 30)
PARALLEL_WORKERS = _ingestion.get("parallel_workers", 5)
MAX_PROCESSING_CHARS = _ingestion.get("max_processing_chars", 20000)
EXCERPT_CHARS = _ingestion.get("excerpt_chars", 300)
WORDS_PER_MINUTE = _ingestion.get("words_per_minute", 200)

_generative = _CONFIG.get("generative", {})
GENERATIVE_MAX_INPUT_CHARS = _generative.get("max_input_chars", 20000)
GENERATIVE_RATE_LIMIT_MS = _generative.get("rate_limit_ms", 1000)
GENERATIVE_CACHE_CAPACITY = _generative.get("cache_capacity", 1000)

# Native bridge
_bridge = _CONFIG.get("bridge", {})
BRIDGE_HOST = _bridge.get("host", "127.0.0.1")
_port_env_var_name = _bridge.get("port_env_var", "MEMEX_BRIDGE_PORT")
BRIDGE_PORT = int(os.environ.get(_port_env_var_name) or _bridge.get("port", 12346))
BRIDGE_MAX_REQUEST_BYTES = _bridge.get("max_request_bytes", 12 * 1024 * 1024)
BRIDGE_MAX_NATIVE_MESSAGE_BYTES = _bridge.get(
    "max_native_message_bytes", 10 * 1024 * 1024
)
BRIDGE_CONNECT_TIMEOUT = _bridge.get("connect_timeout", 0.7)
BRIDGE_RESPONSE_TIMEOUT = _bridge.get("response_timeout", 15)
BRIDGE_LOG_FILE = _bridge.get("log_file", "~/.config/memex/logs/native-host.log")
_bridge_limits = _bridge.get("limits", {})
BRIDGE_LIMIT_TEXT_CHARS = _bridge_limits.get("text_chars", 120000)
BRIDGE_LIMIT_HTML_BYTES = _bridge_limits.get("html_bytes", 350 * 1024)
BRIDGE_LIMIT_WORDS = _bridge_limits.get("words", 25000)
BRIDGE_LIMIT_NODE_COUNT = _bridge_limits.get("node_count", 100000)

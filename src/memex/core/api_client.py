"""Chat-completion API client and token tracking logic."""

import json
import logging
import os
import time
from typing import Any, Dict, List, Optional

import requests

from memex.core.exceptions import GenerativeError

logger = logging.getLogger(__name__)
LOG_CONTENT_PREVIEW_CHARS = 200


class UsageTracker:
    """Track token usage per model alias."""

    def __init__(self):
        # Format: {model_alias: {"input": int, "output": int}}
        self.usage: Dict[str, Dict[str, int]] = {}

    def add_usage(self, model_alias: str, input_tokens: int, output_tokens: int):
        if model_alias not in self.usage:
            self.usage[model_alias] = {"input": 0, "output": 0}
        self.usage[model_alias]["input"] += input_tokens
        self.usage[model_alias]["output"] += output_tokens

    def get_usage_breakdown(self, model_alias: str) -> Dict[str, int]:
        return self.usage.get(model_alias, {"input": 0, "output": 0})


def count_tokens(messages: List[Dict[str, Any]]) -> int:
    """Naive token counting: chars / 4."""
    total_chars = 0
    for m in messages:
        content = m.get("content")
        if isinstance(content, str):
            total_chars += len(content)
        elif content is not None:
            total_chars += len(json.dumps(content))
    return total_chars // 4


def _preview(content: str) -> str:
    if len(content) > LOG_CONTENT_PREVIEW_CHARS:
        return content[:LOG_CONTENT_PREVIEW_CHARS] + "..."
    return content


def resolve_api_key(model_config: Dict[str, Any]) -> Optional[str]:
    if "api_key" in model_config:
        return model_config["api_key"]
    api_key_env_var = model_config.get("api_key_env")
    if not api_key_env_var:
        return None
    api_key = os.environ.get(api_key_env_var)
    if not api_key:
        logger.info("Warning: %s not found in environment variables.", api_key_env_var)
    return api_key


def get_llm_msg(
    model_alias: str,
    messages: List[Dict[str, Any]],
    usage_tracker: Optional[UsageTracker] = None,
    parameters: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Send messages to an OpenAI-compatible endpoint and return the reply message.

    One attempt only: retry policy belongs to the caller. Every transport or
    payload failure surfaces as ``GenerativeError``.
    """
    from memex.config import MODELS, REQUEST_TIMEOUT, USER_AGENT

    model_config = MODELS.get(model_alias)
    if not model_config:
        raise GenerativeError(f"Unknown model alias: {model_alias}")

    url = model_config.get("base_url", "")
    if not url:
        raise GenerativeError(f"No API endpoint configured for model '{model_alias}'")

    headers = {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
    }
    api_key = resolve_api_key(model_config)
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"

    payload: Dict[str, Any] = {
        "model": model_config["id"],
        "messages": messages,
        "stream": False,
    }
    for key in ("temperature", "max_completion_tokens"):
        if model_config.get(key) is not None:
            payload[key] = model_config[key]
    if parameters:
        for key, value in parameters.items():
            if value is not None:
                payload[key] = value

    tokens_sent = count_tokens(messages)
    logger.info("[%s] Sent: %d tokens", model_alias, tokens_sent)
    logger.debug(
        "Payload messages: %s",
        [{"role": m.get("role"), "content": _preview(str(m.get("content", "")))} for m in messages],
    )

    started = time.perf_counter()
    try:
        resp = requests.post(url, json=payload, headers=headers, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        resp_json = resp.json()
        response_message = resp_json["choices"][0]["message"]
        if not isinstance(response_message, dict):
            raise TypeError(f"message is {type(response_message).__name__}, expected an object")
    except requests.exceptions.HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else None
        logger.warning("[%s] HTTP error status=%s: %s", model_alias, status, exc)
        raise GenerativeError(f"Generative API error ({status}): {exc}") from exc
    except requests.exceptions.RequestException as exc:
        logger.warning("[%s] request failed: %s", model_alias, exc)
        raise GenerativeError(f"Generative API request failed: {exc}") from exc
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise GenerativeError(f"Malformed generative API response: {exc}") from exc

    usage = resp_json.get("usage")
    if not isinstance(usage, dict):
        usage = {}
    prompt_tokens = usage.get("prompt_tokens", tokens_sent)
    completion_tokens = usage.get(
        "completion_tokens", len(json.dumps(response_message)) // 4
    )
    logger.debug(
        "[%s] response in %.2fms content=%s",
        model_alias,
        (time.perf_counter() - started) * 1000,
        _preview(str(response_message.get("content") or "")),
    )
    if usage_tracker:
        usage_tracker.add_usage(model_alias, prompt_tokens, completion_tokens)
    return response_message

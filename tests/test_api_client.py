from unittest.mock import MagicMock, patch

import pytest
import requests

from memex.core.api_client import UsageTracker, count_tokens, get_llm_msg, resolve_api_key
from memex.core.exceptions import GenerativeError

TEST_MODEL = {
    "id": "test-model-id",
    "base_url": "http://localhost:9999/v1/chat/completions",
    "api_key_env": "MEMEX_TEST_KEY",
    "temperature": 0.2,
}


def _response(payload, status=200):
    response = MagicMock(status_code=status)
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


def test_count_tokens():
    assert count_tokens([{"role": "user", "content": "x" * 40}]) == 10
    assert count_tokens([{"role": "user", "content": None}]) == 0


def test_usage_tracker_accumulates():
    tracker = UsageTracker()
    tracker.add_usage("answer", 10, 5)
    tracker.add_usage("answer", 1, 1)
    assert tracker.get_usage_breakdown("answer") == {"input": 11, "output": 6}
    assert tracker.get_usage_breakdown("missing") == {"input": 0, "output": 0}


def test_resolve_api_key_prefers_inline_key(monkeypatch):
    monkeypatch.setenv("MEMEX_TEST_KEY", "from-env")
    assert resolve_api_key({"api_key": "inline", "api_key_env": "MEMEX_TEST_KEY"}) == "inline"
    assert resolve_api_key({"api_key_env": "MEMEX_TEST_KEY"}) == "from-env"
    assert resolve_api_key({}) is None


def test_get_llm_msg_posts_payload_and_tracks_usage(monkeypatch):
    monkeypatch.setenv("MEMEX_TEST_KEY", "secret")
    tracker = UsageTracker()
    payload = {
        "choices": [{"message": {"role": "assistant", "content": "hello"}}],
        "usage": {"prompt_tokens": 7, "completion_tokens": 3},
    }
    with (
        patch.dict("memex.config.MODELS", {"test": TEST_MODEL}),
        patch("memex.core.api_client.requests.post", return_value=_response(payload)) as post,
    ):
        message = get_llm_msg("test", [{"role": "user", "content": "hi"}], usage_tracker=tracker)

    assert message["content"] == "hello"
    args, kwargs = post.call_args
    assert args[0] == TEST_MODEL["base_url"]
    assert kwargs["json"]["model"] == "test-model-id"
    assert kwargs["json"]["temperature"] == 0.2
    assert kwargs["json"]["stream"] is False
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    assert tracker.get_usage_breakdown("test") == {"input": 7, "output": 3}


def test_get_llm_msg_unknown_alias():
    with pytest.raises(GenerativeError, match="Unknown model alias"):
        get_llm_msg("does-not-exist", [])


def test_get_llm_msg_wraps_http_errors():
    response = MagicMock(status_code=429)
    response.raise_for_status.side_effect = requests.exceptions.HTTPError(
        "too many", response=response
    )
    with (
        patch.dict("memex.config.MODELS", {"test": TEST_MODEL}),
        patch("memex.core.api_client.requests.post", return_value=response),
    ):
        with pytest.raises(GenerativeError, match="429"):
            get_llm_msg("test", [{"role": "user", "content": "hi"}])


def test_get_llm_msg_single_attempt_on_connection_error():
    with (
        patch.dict("memex.config.MODELS", {"test": TEST_MODEL}),
        patch(
            "memex.core.api_client.requests.post",
            side_effect=requests.exceptions.ConnectionError("down"),
        ) as post,
    ):
        with pytest.raises(GenerativeError):
            get_llm_msg("test", [{"role": "user", "content": "hi"}])
    assert post.call_count == 1


def test_get_llm_msg_malformed_payload():
    with (
        patch.dict("memex.config.MODELS", {"test": TEST_MODEL}),
        patch("memex.core.api_client.requests.post", return_value=_response({"choices": []})),
    ):
        with pytest.raises(GenerativeError, match="Malformed"):
            get_llm_msg("test", [{"role": "user", "content": "hi"}])


@pytest.mark.parametrize("message", [None, "plain text", ["not", "an", "object"]])
def test_get_llm_msg_non_object_message(message):
    body = {"choices": [{"message": message}], "usage": None}
    with (
        patch.dict("memex.config.MODELS", {"test": TEST_MODEL}),
        patch("memex.core.api_client.requests.post", return_value=_response(body)),
    ):
        with pytest.raises(GenerativeError, match="Malformed"):
            get_llm_msg("test", [{"role": "user", "content": "hi"}])


def test_get_llm_msg_tolerates_null_usage():
    body = {"choices": [{"message": {"role": "assistant", "content": "ok"}}], "usage": None}
    with (
        patch.dict("memex.config.MODELS", {"test": TEST_MODEL}),
        patch("memex.core.api_client.requests.post", return_value=_response(body)),
    ):
        assert get_llm_msg("test", [{"role": "user", "content": "hi"}])["content"] == "ok"

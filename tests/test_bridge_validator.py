import pytest

from memex.bridge.validator import (
    HTML_TOO_LARGE,
    INVALID_PAYLOAD,
    SELECTION_TOO_LONG,
    TEXT_TOO_LONG,
    TOO_MANY_NODES,
    TOO_MANY_WORDS,
    PayloadLimits,
    validate_payload_limits,
    validate_request,
)

LIMITS = PayloadLimits(text_chars=50, html_bytes=40, words=5, node_count=10)
BASE = {"id": "req-1", "url": "https://example.com/a", "title": "A"}


@pytest.mark.parametrize(
    "message,expected",
    [
        (BASE, True),
        ({**BASE, "text": "hello", "html": "<p>hello</p>"}, True),
        ({**BASE, "id": ""}, False),
        ({**BASE, "url": 42}, False),
        ({"id": "x", "url": "https://e.com"}, False),
        ({**BASE, "text": ["not", "a", "string"]}, False),
        ("not a dict", False),
        (None, False),
    ],
)
def test_validate_request(message, expected):
    assert validate_request(message) is expected


def test_limits_accept_small_payloads():
    assert validate_payload_limits({**BASE, "text": "one two three"}, LIMITS).ok


def test_too_many_words_uses_reported_count_first():
    result = validate_payload_limits({**BASE, "text": "short", "wordCount": 6}, LIMITS)
    assert result.reason == TOO_MANY_WORDS
    assert validate_payload_limits({**BASE, "text": "a b c d e f"}, LIMITS).reason == TOO_MANY_WORDS


def test_html_size_in_bytes():
    assert validate_payload_limits({**BASE, "html": "é" * 21}, LIMITS).reason == HTML_TOO_LARGE
    assert validate_payload_limits({**BASE, "htmlSize": 41}, LIMITS).reason == HTML_TOO_LARGE


def test_node_count_and_text_length():
    assert validate_payload_limits({**BASE, "nodeCount": 11}, LIMITS).reason == TOO_MANY_NODES
    long_text = "x" * 51
    assert validate_payload_limits({**BASE, "text": long_text}, LIMITS).reason == TEXT_TOO_LONG


def test_selection_only_checks_text_length():
    huge = {**BASE, "selectedOnly": True, "wordCount": 10_000, "nodeCount": 10_000, "text": "x"}
    assert validate_payload_limits(huge, LIMITS).ok
    too_long = {**BASE, "selectedOnly": True, "text": "x" * 51}
    assert validate_payload_limits(too_long, LIMITS).reason == SELECTION_TOO_LONG


def test_non_dict_payload():
    assert validate_payload_limits([], LIMITS).reason == INVALID_PAYLOAD

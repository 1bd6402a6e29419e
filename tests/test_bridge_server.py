import json
import socket

import pytest

from memex.bridge.server import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    MESSAGE_TOO_LARGE,
    ControlServer,
)


@pytest.fixture
def server_factory():
    servers = []

    def build(handler, max_request_bytes=1024):
        server = ControlServer(handler, host="127.0.0.1", port=0, max_request_bytes=max_request_bytes)
        server.start_in_background()
        servers.append(server)
        return server

    yield build
    for server in servers:
        server.stop()


def _exchange(server, payload: bytes, expected_lines: int):
    with socket.create_connection(server.address, timeout=5) as sock:
        sock.sendall(payload)
        buffer = b""
        while buffer.count(b"\n") < expected_lines:
            chunk = sock.recv(65536)
            if not chunk:
                break
            buffer += chunk
    return [json.loads(line) for line in buffer.splitlines() if line.strip()]


def test_lines_on_one_connection_are_answered_in_order(server_factory):
    server = server_factory(lambda request: {"id": request["id"], "ok": True})
    payload = b'{"id": "a"}\n\n{"id": "b"}\n'
    assert _exchange(server, payload, 2) == [{"id": "a", "ok": True}, {"id": "b", "ok": True}]


def test_invalid_lines_get_invalid_request(server_factory):
    server = server_factory(lambda request: {"id": request["id"], "ok": True})
    replies = _exchange(server, b'not json\n{"url": "x"}\n{"id": ""}\n', 3)
    assert replies == [{"id": "unknown", "ok": False, "reason": INVALID_REQUEST}] * 3


def test_handler_failures_become_internal_error(server_factory):
    def handler(request):
        if request["id"] == "none":
            return None
        raise RuntimeError("boom")

    server = server_factory(handler)
    replies = _exchange(server, b'{"id": "boom"}\n{"id": "none"}\n', 2)
    assert replies == [
        {"id": "boom", "ok": False, "reason": INTERNAL_ERROR},
        {"id": "none", "ok": False, "reason": INTERNAL_ERROR},
    ]


def test_oversized_line_closes_connection(server_factory):
    server = server_factory(lambda request: {"id": request["id"], "ok": True}, max_request_bytes=64)
    payload = json.dumps({"id": "big", "text": "x" * 200}).encode() + b"\n"
    replies = _exchange(server, payload, 1)
    assert replies == [{"id": "unknown", "ok": False, "reason": MESSAGE_TOO_LARGE}]


def test_connections_are_independent(server_factory):
    server = server_factory(lambda request: {"id": request["id"], "ok": True})
    with socket.create_connection(server.address, timeout=5) as idle:
        idle.sendall(b'{"id": "partial"')
        assert _exchange(server, b'{"id": "other"}\n', 1) == [{"id": "other", "ok": True}]


def test_dispatch_directly():
    server = ControlServer(lambda request: {"id": request["id"], "ok": True}, host="127.0.0.1", port=0)
    try:
        assert server.dispatch(b'{"id": "x"}') == {"id": "x", "ok": True}
        assert server.dispatch(b"\xff") == {"id": "unknown", "ok": False, "reason": INVALID_REQUEST}
    finally:
        server.server_close()

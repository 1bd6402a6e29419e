"""Native-messaging host: browser extension on stdin/stdout, app over loopback TCP.

stdout carries protocol frames only. Diagnostics go to the side log file set
up by ``run_native_host``.
"""

from __future__ import annotations

import json
import logging
import socket
import sys
from typing import Any, BinaryIO, Callable, Dict, Optional

from memex.bridge.framing import (
    BridgeState,
    ProtocolError,
    read_body,
    read_header,
    write_message,
)
from memex.bridge.validator import (
    PayloadLimits,
    validate_payload_limits,
    validate_request,
)
from memex.config import (
    BRIDGE_CONNECT_TIMEOUT,
    BRIDGE_HOST,
    BRIDGE_LOG_FILE,
    BRIDGE_MAX_NATIVE_MESSAGE_BYTES,
    BRIDGE_MAX_REQUEST_BYTES,
    BRIDGE_PORT,
    BRIDGE_RESPONSE_TIMEOUT,
    LOG_LEVEL,
)
from memex.core.exceptions import MemexError
from memex.logger import setup_logging

logger = logging.getLogger(__name__)

# Failure reasons relayed to the extension. The wire names are shared with
# existing extension builds and must not change.
APP_NOT_RUNNING = "app_not_running"
CONNECT_TIMEOUT = "connect_timeout"
RESPONSE_TIMEOUT = "electron_response_timeout"
INVALID_RESPONSE = "invalid_electron_response"
APP_CLOSED = "electron_closed"
APP_ERROR = "electron_error"
READ_FAILED = "read_failed"
INVALID_REQUEST = "invalid_request"
UNKNOWN_ID = "unknown"

MAX_EXCERPT_CHARS = 1000
RECV_CHUNK_BYTES = 65536

ForwardFunc = Callable[[Dict[str, Any]], Dict[str, Any]]


class BridgeError(MemexError):
    """Forwarding to the app failed; ``reason`` is one of the wire reasons above."""

    def __init__(self, reason: str, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


def forward_to_app(
    message: Dict[str, Any],
    host: str = BRIDGE_HOST,
    port: int = BRIDGE_PORT,
    connect_timeout: float = BRIDGE_CONNECT_TIMEOUT,
    response_timeout: float = BRIDGE_RESPONSE_TIMEOUT,
    max_response_bytes: int = BRIDGE_MAX_REQUEST_BYTES,
) -> Dict[str, Any]:
    """Send one JSON line on a fresh connection and return the single reply line."""
    try:
        sock = socket.create_connection((host, port), timeout=connect_timeout)
    except socket.timeout as exc:
        raise BridgeError(CONNECT_TIMEOUT) from exc
    except OSError as exc:
        raise BridgeError(APP_NOT_RUNNING, str(exc)) from exc

    buffer = b""
    with sock:
        sock.settimeout(response_timeout)
        try:
            sock.sendall(json.dumps(message).encode("utf-8") + b"\n")
            while b"\n" not in buffer:
                chunk = sock.recv(RECV_CHUNK_BYTES)
                if not chunk:
                    raise BridgeError(APP_CLOSED)
                buffer += chunk
                if len(buffer) > max_response_bytes:
                    raise BridgeError(INVALID_RESPONSE, "reply too large")
        except socket.timeout as exc:
            raise BridgeError(RESPONSE_TIMEOUT) from exc
        except OSError as exc:
            raise BridgeError(APP_CLOSED, str(exc)) from exc

    raw = buffer.split(b"\n", 1)[0].strip()
    try:
        reply = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise BridgeError(INVALID_RESPONSE, str(exc)) from exc
    if not isinstance(reply, dict):
        raise BridgeError(INVALID_RESPONSE, "reply is not an object")
    return reply


def single_line(text: Any) -> str:
    return " ".join(str(text or "").split())


def _request_id(message: Any) -> str:
    if isinstance(message, dict) and isinstance(message.get("id"), str) and message["id"]:
        return message["id"]
    return UNKNOWN_ID


class NativeHost:
    """Serve framed requests from the extension until stdin closes."""

    def __init__(
        self,
        stdin: Optional[BinaryIO] = None,
        stdout: Optional[BinaryIO] = None,
        forward: Optional[ForwardFunc] = None,
        limits: Optional[PayloadLimits] = None,
        max_message_bytes: int = BRIDGE_MAX_NATIVE_MESSAGE_BYTES,
    ):
        self.stdin = stdin if stdin is not None else sys.stdin.buffer
        self.stdout = stdout if stdout is not None else sys.stdout.buffer
        self.forward = forward or forward_to_app
        self.limits = limits or PayloadLimits()
        self.max_message_bytes = max_message_bytes
        self.state = BridgeState.IDLE

    def handle_message(self, message: Any) -> Dict[str, Any]:
        """Validate, forward and translate one request into the reply frame."""
        if not validate_request(message):
            logger.warning("Invalid request shape: %.500s", json.dumps(message, default=str))
            return {"id": _request_id(message), "ok": False, "reason": INVALID_REQUEST}

        request_id = message["id"]
        limits_check = validate_payload_limits(message, self.limits)
        if not limits_check.ok:
            logger.info("Rejected id=%s: %s", request_id, limits_check.reason)
            return {"id": request_id, "ok": False, "reason": limits_check.reason}

        logger.info("Forwarding id=%s url=%.200s", request_id, message["url"])
        self.state = BridgeState.DISPATCHED
        try:
            self.state = BridgeState.AWAITING_RESPONSE
            reply = self.forward(message)
        except BridgeError as exc:
            logger.warning("Bridge error for id=%s: %s", request_id, exc)
            return {"id": request_id, "ok": False, "reason": exc.reason}

        ok = bool(reply.get("ok"))
        response: Dict[str, Any] = {"id": request_id, "ok": ok}
        if not ok:
            response["reason"] = reply.get("reason") or APP_ERROR
            return response

        processed = reply.get("processed")
        if isinstance(processed, dict):
            response["processed"] = {
                "url": processed.get("url") or message["url"],
                "title": processed.get("title") or message["title"],
                "content": single_line(processed.get("content")),
                "wordCount": processed.get("wordCount"),
                "excerpt": single_line(str(processed.get("excerpt") or "")[:MAX_EXCERPT_CHARS]),
                "byline": processed.get("byline"),
                "readingTime": processed.get("readingTime"),
                "savedId": processed.get("savedId"),
            }
        return response

    def serve_forever(self) -> int:
        """Run until stdin closes (exit code 0) or the stream is corrupted (1)."""
        logger.info("Native host started")
        while True:
            self.state = BridgeState.READING_HEADER
            try:
                length = read_header(self.stdin, self.max_message_bytes)
                if length is None:
                    logger.info("stdin closed, native host exiting")
                    return 0
                self.state = BridgeState.READING_BODY
                message = read_body(self.stdin, length)
            except ProtocolError as exc:
                logger.error("Read error: %s", exc)
                self._reply({"id": UNKNOWN_ID, "ok": False, "reason": READ_FAILED})
                return 1

            response = self.handle_message(message)
            self.state = BridgeState.RESPONDING
            self._reply(response)
            logger.info("Responded id=%s ok=%s", response.get("id"), response.get("ok"))
            self.state = BridgeState.IDLE

    def _reply(self, response: Dict[str, Any]) -> None:
        try:
            write_message(self.stdout, response)
        except OSError as exc:
            logger.error("Failed writing to stdout: %s", exc)


def run_native_host() -> int:
    """Entry point for the browser's native-messaging launcher."""
    setup_logging(LOG_LEVEL, BRIDGE_LOG_FILE, archive_existing=False)
    try:
        return NativeHost().serve_forever()
    except Exception:
        logger.exception("Native host crashed")
        return 1

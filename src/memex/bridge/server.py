"""Local control channel: newline-delimited JSON over loopback TCP.

Each connection is served on its own thread and its lines are handled one
after another; connections do not share state.
"""

from __future__ import annotations

import json
import logging
import socketserver
import threading
from typing import Any, Callable, Dict, Optional, Tuple

from memex.config import BRIDGE_HOST, BRIDGE_MAX_REQUEST_BYTES, BRIDGE_PORT

logger = logging.getLogger(__name__)

MESSAGE_TOO_LARGE = "message_too_large"
INVALID_REQUEST = "invalid_request"
INTERNAL_ERROR = "internal_error"
UNKNOWN_ID = "unknown"
RECV_CHUNK_BYTES = 65536

RequestHandler = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]


def _error(request_id: str, reason: str) -> Dict[str, Any]:
    return {"id": request_id, "ok": False, "reason": reason}


class ControlRequestHandler(socketserver.BaseRequestHandler):
    server: "ControlServer"

    def handle(self) -> None:
        buffer = b""
        while True:
            try:
                chunk = self.request.recv(RECV_CHUNK_BYTES)
            except OSError as exc:
                logger.debug("control socket error from %s: %s", self.client_address, exc)
                return
            if not chunk:
                return
            buffer += chunk

            while b"\n" in buffer:
                raw, buffer = buffer.split(b"\n", 1)
                if len(raw) > self.server.max_request_bytes:
                    self._send(_error(UNKNOWN_ID, MESSAGE_TOO_LARGE))
                    return
                if not raw.strip():
                    continue
                self._send(self.server.dispatch(raw))

            if len(buffer) > self.server.max_request_bytes:
                self._send(_error(UNKNOWN_ID, MESSAGE_TOO_LARGE))
                return

    def _send(self, response: Dict[str, Any]) -> None:
        self.request.sendall(json.dumps(response).encode("utf-8") + b"\n")


class ControlServer(socketserver.ThreadingTCPServer):
    """Threaded loopback server that passes each parsed request to ``handler``."""

    allow_reuse_address = True
    daemon_threads = True

    def __init__(
        self,
        handler: RequestHandler,
        host: str = BRIDGE_HOST,
        port: int = BRIDGE_PORT,
        max_request_bytes: int = BRIDGE_MAX_REQUEST_BYTES,
    ):
        self.handler = handler
        self.max_request_bytes = max_request_bytes
        self._thread: Optional[threading.Thread] = None
        super().__init__((host, port), ControlRequestHandler)

    @property
    def address(self) -> Tuple[str, int]:
        host, port = self.server_address[:2]
        return host, port

    def dispatch(self, raw: bytes) -> Dict[str, Any]:
        """Parse one line and run the handler, mapping every failure to a reply."""
        try:
            request = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            request = None

        request_id = request.get("id") if isinstance(request, dict) else None
        if not isinstance(request_id, str) or not request_id:
            logger.warning("invalid control request: %.200r", raw)
            return _error(UNKNOWN_ID, INVALID_REQUEST)

        try:
            response = self.handler(request)
        except Exception:
            logger.exception("control handler failed for id=%s", request_id)
            return _error(request_id, INTERNAL_ERROR)
        if response is None:
            return _error(request_id, INTERNAL_ERROR)
        return response

    def start_in_background(self) -> threading.Thread:
        self._thread = threading.Thread(
            target=self.serve_forever, name="memex_control_server", daemon=True
        )
        self._thread.start()
        logger.info("control server listening on %s:%s", *self.address)
        return self._thread

    def stop(self) -> None:
        self.shutdown()
        self.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)

"""Length-prefixed JSON framing used on the native host's stdin/stdout.

Each message is a 4-byte little-endian unsigned length followed by that many
bytes of UTF-8 JSON.
"""

from __future__ import annotations

import json
import struct
from enum import Enum
from typing import Any, BinaryIO, Optional

from memex.config import BRIDGE_MAX_NATIVE_MESSAGE_BYTES
from memex.core.exceptions import MemexError

HEADER = struct.Struct("<I")


class ProtocolError(MemexError):
    """The byte stream does not hold a well-formed message."""


class BridgeState(str, Enum):
    IDLE = "idle"
    READING_HEADER = "reading-header"
    READING_BODY = "reading-body"
    DISPATCHED = "dispatched"
    AWAITING_RESPONSE = "awaiting-response"
    RESPONDING = "responding"


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_header(
    stream: BinaryIO, max_bytes: int = BRIDGE_MAX_NATIVE_MESSAGE_BYTES
) -> Optional[int]:
    """Body length announced by the next header, or None on a clean end of stream."""
    header = _read_exact(stream, HEADER.size)
    if not header:
        return None
    if len(header) < HEADER.size:
        raise ProtocolError(f"Truncated header: got {len(header)} of {HEADER.size} bytes")
    (length,) = HEADER.unpack(header)
    if length <= 0 or length > max_bytes:
        raise ProtocolError(f"Invalid message length: {length}")
    return length


def read_body(stream: BinaryIO, length: int) -> Any:
    body = _read_exact(stream, length)
    if len(body) < length:
        raise ProtocolError(f"Truncated body: got {len(body)} of {length} bytes")
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise ProtocolError(f"Invalid JSON payload: {exc}") from exc


def read_message(
    stream: BinaryIO, max_bytes: int = BRIDGE_MAX_NATIVE_MESSAGE_BYTES
) -> Optional[Any]:
    """Read one framed message; None means the peer closed the stream between messages."""
    length = read_header(stream, max_bytes)
    if length is None:
        return None
    return read_body(stream, length)


def encode_message(message: Any) -> bytes:
    body = json.dumps(message, ensure_ascii=False).encode("utf-8")
    return HEADER.pack(len(body)) + body


def write_message(stream: BinaryIO, message: Any) -> None:
    stream.write(encode_message(message))
    stream.flush()

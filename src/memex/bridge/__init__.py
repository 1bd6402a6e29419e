"""Bridge between the browser extension's native host and the app."""

from memex.bridge.capture import CaptureHandler
from memex.bridge.framing import BridgeState, ProtocolError, read_message, write_message
from memex.bridge.host import BridgeError, NativeHost, forward_to_app, run_native_host
from memex.bridge.server import ControlServer
from memex.bridge.validator import validate_payload_limits, validate_request

__all__ = [
    "BridgeError",
    "BridgeState",
    "CaptureHandler",
    "ControlServer",
    "NativeHost",
    "ProtocolError",
    "forward_to_app",
    "read_message",
    "run_native_host",
    "validate_payload_limits",
    "validate_request",
]

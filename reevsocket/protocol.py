"""Envelope codec for reevsocket frames.

Every structured frame is a JSON object with three fields::

    {"action": "chat", "payload": {...}, "metadata": {...}}

``action`` selects the listeners an inbound frame is dispatched to.
``payload`` is arbitrary JSON (``null`` when the action carries none) and
``metadata`` is whatever the sender attached.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from .errors import MalformedEnvelope

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
OFFLINE_CLOSE_CODE = 1011
HEARTBEAT_FAILURE_CODE = 1013

PING_ACTION = "ping"
ACK_ACTION = "ack"


@dataclass(frozen=True, slots=True)
class Envelope:
    """Decoded message envelope."""

    action: str
    payload: Any = None
    metadata: Any = None


def build_envelope(
    action: str,
    payload: Any = None,
    metadata: Any = None,
) -> dict[str, Any]:
    """Build the canonical envelope dict.

    Args:
        action: Action name used for dispatch on the receiving side.
        payload: JSON-serializable payload, or None when there is none.
            Falsy payloads (``0``, ``""``, ``False``) are kept as-is.
        metadata: JSON-serializable metadata snapshot.

    Returns:
        Envelope dict with ``action``, ``payload`` and ``metadata`` keys.
    """
    return {"action": action, "payload": payload, "metadata": metadata}


def encode_envelope(action: str, payload: Any = None, metadata: Any = None) -> str:
    """Serialize an envelope to a JSON text frame.

    Raises:
        TypeError: If payload or metadata is not JSON-serializable.
        ValueError: If payload or metadata contains circular references.
    """
    return json.dumps(build_envelope(action, payload, metadata))


def decode_envelope(frame: str | bytes | bytearray) -> Envelope:
    """Parse a text frame into an Envelope.

    Raises:
        MalformedEnvelope: If the frame is not JSON, not an object, or has
            no string ``action`` field.
    """
    try:
        data = json.loads(frame)
    except (TypeError, ValueError) as err:
        raise MalformedEnvelope(f"Frame is not valid JSON: {err}") from err

    if not isinstance(data, dict):
        raise MalformedEnvelope("Frame is not a JSON object")

    action = data.get("action")
    if not isinstance(action, str) or not action:
        raise MalformedEnvelope("Frame has no action")

    return Envelope(
        action=action,
        payload=data.get("payload"),
        metadata=data.get("metadata"),
    )


def build_ack(action: str) -> dict[str, str]:
    """Build the payload acknowledging receipt of ``action``."""
    return {"received": action}

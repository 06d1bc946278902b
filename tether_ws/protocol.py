"""JSON helpers for text messages."""

from __future__ import annotations

import json
from typing import Any

from .errors import TetherClientError
from .transport.base import Message


def encode_json(payload: Any) -> str:
    """Encode ``payload`` as a compact JSON text message."""
    return json.dumps(payload, separators=(",", ":"))


def decode_json(message: Message) -> Any:
    """Decode a JSON text message.

    Raises:
        TetherClientError: If ``message`` is binary.
        json.JSONDecodeError: If the text is not valid JSON.
    """
    if not isinstance(message, str):
        raise TetherClientError("Only text messages can be decoded")
    return json.loads(message)

# brickhub/protocol/codec.py
"""
Structured-value codec for hub packets.

The hub speaks compact JSON. Objects keep key insertion order, which matters
for the command envelope ("i", "m", "p").
"""
from __future__ import annotations

import json
from typing import Any

from .errors import DecodeError

DELIMITER = b"\r"


def encode(value: Any) -> str:
    """Encode a structured value as compact JSON text."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def decode(text: str) -> Any:
    """Decode JSON text, raising DecodeError on malformed input."""
    try:
        return json.loads(text)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"invalid packet text: {e}") from None


def packet_text(packet: bytes) -> str:
    """Strip the trailing delimiter and decode UTF-8 (lossy)."""
    if packet.endswith(DELIMITER):
        packet = packet[: -len(DELIMITER)]
    return packet.decode("utf-8", errors="replace")


def encode_packet(value: Any) -> bytes:
    """Encode a structured value into a delimited wire packet."""
    return encode(value).encode("utf-8") + DELIMITER

# brickhub/protocol/messages.py
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Mapping, Optional, Union

from .codec import decode
from .errors import EnvelopeError


class MessageKind(IntEnum):
    """Integer message kinds ("m") emitted by the hub."""
    TELEMETRY = 0
    POWER = 2
    BUTTON = 3
    KNOCK = 4
    HUB_STATE = 14
    BROADCAST = 15


RUNTIME_ERROR = "runtime_error"


@dataclass(frozen=True)
class ResultPacket:
    """Command acknowledgement: {"i": <task id>, "r": <result>}."""
    task_id: str
    result: Any


@dataclass(frozen=True)
class EventPacket:
    """Unsolicited hub message: {"m": <kind>, "p": <payload>}."""
    kind: Union[int, str]
    payload: Any


def parse_packet(text: str) -> Union[ResultPacket, EventPacket]:
    """
    Decode packet text and classify it by envelope shape.

    Raises DecodeError / EnvelopeError; callers in the receive loop drop
    the packet on either.
    """
    value = decode(text)
    if not isinstance(value, dict):
        raise EnvelopeError("packet is not an object", value)

    if "i" in value:
        task_id = value["i"]
        if not isinstance(task_id, str):
            raise EnvelopeError("task id is not a string", value)
        return ResultPacket(task_id=task_id, result=value.get("r"))

    kind = value.get("m")
    if isinstance(kind, bool) or not isinstance(kind, (int, str)):
        raise EnvelopeError("missing or invalid message kind", value)
    return EventPacket(kind=kind, payload=value.get("p"))


def command_envelope(task_id: str, method: str, payload: Optional[Mapping[str, Any]] = None) -> dict:
    return {"i": task_id, "m": method, "p": dict(payload) if payload else {}}

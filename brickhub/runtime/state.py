# brickhub/runtime/state.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class SessionState(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    DISCONNECTING = "disconnecting"
    CLOSED = "closed"


@dataclass(frozen=True)
class DeviceState:
    """
    One attached peripheral as seen in the last telemetry frame.
    """
    port: str
    kind: int
    name: str
    values: Dict[str, int]


@dataclass(frozen=True)
class SessionStatus:
    """
    A snapshot of the full session status, safe to share across threads.
    """
    state: SessionState
    address: str
    last_packet_s: Optional[float]
    packets: int
    decode_errors: int
    pending_tasks: int
    early_results: int
    subscriptions: int
    devices: List[DeviceState]
    hub: Dict[str, Any] = field(default_factory=dict)
    close_reason: Optional[str] = None

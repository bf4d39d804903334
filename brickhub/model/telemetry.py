# brickhub/model/telemetry.py
from __future__ import annotations

from typing import Any, List, Optional, Tuple

from .types import HubState
from .values import opt_bool, opt_float, opt_int, opt_list, triple

DEVICE_SLOTS = 6

# Positions inside a telemetry (m=0) payload.
IDX_ACCELERATION = 7
IDX_ROTATION = 8
IDX_ORIENTATION = 9
IDX_DIAGNOSTIC = 10
IDX_RUNTIME = 11


def device_slot(payload: Any, idx: int) -> Optional[Tuple[int, Any]]:
    """
    Return (kind_code, device_payload) for one port slot.

    A slot is `[kind, [values...]]`. Returns None when the slot itself is
    missing or malformed so the caller can leave that port untouched.
    """
    slot = opt_list(payload, idx)
    if slot is None or not slot:
        return None
    kind = slot[0]
    if isinstance(kind, bool) or not isinstance(kind, int):
        return None
    return kind, (slot[1] if len(slot) > 1 else None)


class HubTelemetry:
    """
    Latest hub-level readings.

    Written only by the session dispatcher. Each attribute is replaced as a
    whole (tuples, not lists), so readers on other threads always see a
    complete value for a single field. There is no consistency guarantee
    across fields of the same frame.
    """

    def __init__(self) -> None:
        self.acceleration: Tuple[int, int, int] = (0, 0, 0)
        self.rotation: Tuple[int, int, int] = (0, 0, 0)
        self.orientation: Optional[Tuple[int, int, int]] = None  # (yaw, pitch, roll)
        self.diagnostic: str = ""
        self.runtime_ms: int = 0

        self.battery_voltage: float = 0.0
        self.battery_percentage: int = 0
        self.plugged_in: bool = False

        self.state: HubState = HubState.UP

    @property
    def yaw(self) -> Optional[int]:
        o = self.orientation
        return o[0] if o else None

    @property
    def pitch(self) -> Optional[int]:
        o = self.orientation
        return o[1] if o else None

    @property
    def roll(self) -> Optional[int]:
        o = self.orientation
        return o[2] if o else None

    def apply_frame(self, payload: Any) -> List[str]:
        """
        Apply hub fields from a telemetry payload. Each field is decoded on
        its own; a missing or malformed one is skipped. Returns the names of
        the fields that were present.
        """
        applied: List[str] = []
        if not isinstance(payload, list):
            return applied

        acc = triple(opt_list(payload, IDX_ACCELERATION))
        if acc is not None:
            self.acceleration = acc
            applied.append("acceleration")

        rot = triple(opt_list(payload, IDX_ROTATION))
        if rot is not None:
            self.rotation = rot
            applied.append("rotation")

        ori = triple(opt_list(payload, IDX_ORIENTATION))
        if ori is not None:
            self.orientation = ori
            applied.append("orientation")

        if len(payload) > IDX_DIAGNOSTIC and isinstance(payload[IDX_DIAGNOSTIC], str):
            self.diagnostic = payload[IDX_DIAGNOSTIC]
            applied.append("diagnostic")

        if len(payload) > IDX_RUNTIME:
            self.runtime_ms = opt_int(payload, IDX_RUNTIME, self.runtime_ms)
            applied.append("runtime_ms")

        return applied

    def apply_power(self, payload: Any) -> bool:
        """Apply a power (m=2) payload: [voltage, percentage, plugged_in]."""
        if not isinstance(payload, list) or not payload:
            return False
        self.battery_voltage = opt_float(payload, 0, self.battery_voltage)
        self.battery_percentage = opt_int(payload, 1, self.battery_percentage)
        self.plugged_in = opt_bool(payload, 2, self.plugged_in)
        return True

    def as_dict(self) -> dict:
        return {
            "acceleration": self.acceleration,
            "rotation": self.rotation,
            "orientation": self.orientation,
            "diagnostic": self.diagnostic,
            "runtime_ms": self.runtime_ms,
            "battery_voltage": self.battery_voltage,
            "battery_percentage": self.battery_percentage,
            "plugged_in": self.plugged_in,
            "state": self.state.name,
        }

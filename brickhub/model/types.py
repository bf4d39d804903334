# brickhub/model/types.py
from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Dict


class Port(IntEnum):
    """Peripheral slots A-F; the value is the slot index in a telemetry frame."""
    A = 0
    B = 1
    C = 2
    D = 3
    E = 4
    F = 5


class DeviceKind(IntEnum):
    """Peripheral type codes reported in telemetry slot[0]."""
    NONE = 0
    COLOR_SENSOR = 61
    DISTANCE_SENSOR = 62
    MOTOR = 75


class HubButton(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    CENTER = "center"


class HubState(IntEnum):
    """Which side of the hub faces up (message kind 14)."""
    FRONT = 0
    BACK = 1
    UP = 2
    DOWN = 3
    LEFT_SIDE = 4
    RIGHT_SIDE = 5


class StopType(IntEnum):
    COAST = 0
    BRAKE = 1
    HOLD = 2


class PathDirection(str, Enum):
    SHORTEST = "shortest"
    CLOCKWISE = "clockwise"
    COUNTERCLOCKWISE = "counterclockwise"


class ColorSensorMode(Enum):
    TUPLES = "tuples"
    RAW = "raw"

    @property
    def mode_params(self) -> Dict[str, Any]:
        if self is ColorSensorMode.TUPLES:
            return {"mode": [1, 0, 0, 0, 5, 0, 5, 1, 5, 2]}
        return {"mode": 2}


class Orientation(IntEnum):
    """Display orientation; sent 1-based on the wire."""
    UPRIGHT = 0
    LEFT = 1
    UPSIDE_DOWN = 2
    RIGHT = 3

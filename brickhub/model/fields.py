# brickhub/model/fields.py
"""Per-device telemetry fields, in payload order."""
from __future__ import annotations

from enum import Enum


class MotorField(str, Enum):
    SPEED = "speed"
    RELATIVE_POSITION = "relative_position"
    POSITION = "position"
    POWER = "power"


class DistanceSensorField(str, Enum):
    DISTANCE = "distance"


class ColorSensorField(str, Enum):
    REFLECTION = "reflection"
    COLOR = "color"
    RED = "red"
    GREEN = "green"
    BLUE = "blue"

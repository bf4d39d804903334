from .types import (
    ColorSensorMode,
    DeviceKind,
    HubButton,
    HubState,
    Orientation,
    PathDirection,
    Port,
    StopType,
)
from .fields import ColorSensorField, DistanceSensorField, MotorField
from .telemetry import HubTelemetry, device_slot

__all__ = ["Port",
           "DeviceKind",
           "HubButton",
           "HubState",
           "StopType",
           "PathDirection",
           "ColorSensorMode",
           "Orientation",
           "MotorField",
           "DistanceSensorField",
           "ColorSensorField",
           "HubTelemetry",
           "device_slot"]

# brickhub/runtime/devices.py
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Tuple, Type

from brickhub.model.fields import ColorSensorField, DistanceSensorField, MotorField
from brickhub.model.types import DeviceKind, Port
from brickhub.model.values import opt_int

from .control import ColorSensorControl, DistanceSensorControl, MotorControl

if TYPE_CHECKING:
    from .session import HubSession


class Device:
    """
    A peripheral attached to one hub port.

    `fields` lists the telemetry values in payload order; `defaults` is the
    sentinel used when a value is missing from the payload. Values are
    updated in place by the session dispatcher.

    A device object goes stale as soon as the hub reports a different kind
    (or nothing) on its port; check is_functional() before using it.
    """

    kind: ClassVar[int] = DeviceKind.NONE
    fields: ClassVar[Tuple[Enum, ...]] = ()
    default: ClassVar[int] = 0

    def __init__(self, session: "HubSession", port: Port):
        self._session = session
        self.port = Port(port)
        self._values: Dict[Enum, int] = {f: self.default for f in self.fields}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(port={self.port.name}, kind={int(self.kind)})"

    @property
    def session(self) -> "HubSession":
        return self._session

    def value(self, field: Enum) -> int:
        return self._values[field]

    def values(self) -> Dict[str, int]:
        return {f.value: v for f, v in self._values.items()}

    def update(self, payload: Any) -> List[Enum]:
        """
        Decode a per-device payload. Returns the fields whose value changed.
        A non-list payload leaves the device untouched.
        """
        changed: List[Enum] = []
        if not isinstance(payload, list):
            return changed

        for idx, field in enumerate(self.fields):
            new = opt_int(payload, idx, self.default)
            if new != self._values[field]:
                self._values[field] = new
                changed.append(field)
        return changed

    def is_functional(self) -> bool:
        """True while the hub still reports this device's kind on its port."""
        return self._session.devices.kind_at(self.port) == self.kind


class Motor(Device):
    kind = DeviceKind.MOTOR
    fields = (
        MotorField.SPEED,
        MotorField.RELATIVE_POSITION,
        MotorField.POSITION,
        MotorField.POWER,
    )
    default = 0

    def __init__(self, session: "HubSession", port: Port):
        super().__init__(session, port)
        self.control = MotorControl(self)

    @property
    def speed(self) -> int:
        return self._values[MotorField.SPEED]

    @property
    def relative_position(self) -> int:
        return self._values[MotorField.RELATIVE_POSITION]

    @property
    def position(self) -> int:
        return self._values[MotorField.POSITION]

    @property
    def power(self) -> int:
        return self._values[MotorField.POWER]


class DistanceSensor(Device):
    kind = DeviceKind.DISTANCE_SENSOR
    fields = (DistanceSensorField.DISTANCE,)
    # 201 = nothing in range
    default = 201

    def __init__(self, session: "HubSession", port: Port):
        super().__init__(session, port)
        self.control = DistanceSensorControl(self)

    @property
    def distance(self) -> int:
        return self._values[DistanceSensorField.DISTANCE]


class ColorSensor(Device):
    kind = DeviceKind.COLOR_SENSOR
    fields = (
        ColorSensorField.REFLECTION,
        ColorSensorField.COLOR,
        ColorSensorField.RED,
        ColorSensorField.GREEN,
        ColorSensorField.BLUE,
    )
    default = -1

    def __init__(self, session: "HubSession", port: Port):
        super().__init__(session, port)
        self.control = ColorSensorControl(self)

    @property
    def reflection(self) -> int:
        return self._values[ColorSensorField.REFLECTION]

    @property
    def color(self) -> int:
        return self._values[ColorSensorField.COLOR]

    @property
    def rgb(self) -> Tuple[int, int, int]:
        v = self._values
        return (v[ColorSensorField.RED], v[ColorSensorField.GREEN], v[ColorSensorField.BLUE])


DEVICE_TYPES: Dict[int, Type[Device]] = {
    DeviceKind.MOTOR: Motor,
    DeviceKind.DISTANCE_SENSOR: DistanceSensor,
    DeviceKind.COLOR_SENSOR: ColorSensor,
}


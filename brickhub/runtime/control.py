# brickhub/runtime/control.py
"""
Command builders for hub and device methods.

Builders that target a device return None when the device is stale, so
call sites can simply do `cmd = motor.control.start(50); cmd and cmd.send()`.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence

from brickhub.model.fields import MotorField
from brickhub.model.types import ColorSensorMode, Orientation, PathDirection, StopType

from .commands import Command, DualMotorCommand, MotorCommand

if TYPE_CHECKING:
    from .commands import CommandChannel
    from .devices import ColorSensor, DistanceSensor, Motor


def _direction(speed: int) -> int:
    return -1 if speed < 0 else 1


class MotorControl:
    def __init__(self, motor: "Motor"):
        self._motor = motor

    def _command(self, method: str, payload: Dict[str, Any]) -> Optional[Command]:
        if not self._motor.is_functional():
            return None
        return Command(self._motor.session, method, {"port": self._motor.port.name, **payload})

    def _motor_command(self, method: str, payload: Dict[str, Any], metric, target: int) -> Optional[MotorCommand]:
        if not self._motor.is_functional():
            return None
        return MotorCommand(
            self._motor.session,
            method,
            {"port": self._motor.port.name, **payload},
            self._motor,
            metric,
            target,
        )

    def run_for_degrees(
        self,
        speed: int,
        degrees: int,
        *,
        stall: bool = True,
        stop: StopType = StopType.BRAKE,
        acceleration: int = 100,
        deceleration: int = 100,
    ) -> Optional[MotorCommand]:
        target = self._motor.relative_position + _direction(speed) * int(degrees)
        return self._motor_command(
            "scratch.motor_run_for_degrees",
            {
                "speed": speed,
                "degrees": degrees,
                "stall": stall,
                "stop": int(stop),
                "acceleration": acceleration,
                "deceleration": deceleration,
            },
            MotorField.RELATIVE_POSITION,
            target,
        )

    def run_timed(
        self,
        speed: int,
        time_ms: int,
        *,
        stall: bool = True,
        stop: StopType = StopType.BRAKE,
        acceleration: int = 100,
        deceleration: int = 100,
    ) -> Optional[Command]:
        return self._command(
            "scratch.motor_run_timed",
            {
                "speed": speed,
                "time": time_ms,
                "stall": stall,
                "stop": int(stop),
                "acceleration": acceleration,
                "deceleration": deceleration,
            },
        )

    def start(self, speed: int, *, stall: bool = True, acceleration: int = 100) -> Optional[Command]:
        return self._command(
            "scratch.motor_start",
            {"speed": speed, "stall": stall, "acceleration": acceleration},
        )

    def stop(self, stop: StopType = StopType.BRAKE, deceleration: int = 100) -> Optional[Command]:
        return self._command("scratch.motor_stop", {"stop": int(stop), "deceleration": deceleration})

    def pwm(self, power: int, *, stall: bool = True, acceleration: int = 100) -> Optional[Command]:
        return self._command(
            "scratch.motor_pwm",
            {"power": power, "stall": stall, "acceleration": acceleration},
        )

    def set_position(self, offset: int) -> Optional[Command]:
        return self._command("scratch.motor_set_position", {"offset": offset})

    def go_to_relative_position(
        self,
        position: int,
        speed: int,
        *,
        stall: bool = True,
        stop: StopType = StopType.BRAKE,
        acceleration: int = 100,
        deceleration: int = 100,
    ) -> Optional[MotorCommand]:
        return self._motor_command(
            "scratch.motor_go_to_relative_position",
            {
                "position": position,
                "speed": speed,
                "stall": stall,
                "stop": int(stop),
                "acceleration": acceleration,
                "deceleration": deceleration,
            },
            MotorField.RELATIVE_POSITION,
            position,
        )

    def go_to_position(
        self,
        position: int,
        speed: int,
        direction: PathDirection = PathDirection.SHORTEST,
        *,
        stall: bool = True,
        stop: StopType = StopType.BRAKE,
        acceleration: int = 100,
        deceleration: int = 100,
    ) -> Optional[MotorCommand]:
        return self._motor_command(
            "scratch.motor_go_direction_to_position",
            {
                "position": position,
                "speed": speed,
                "direction": PathDirection(direction).value,
                "stall": stall,
                "stop": int(stop),
                "acceleration": acceleration,
                "deceleration": deceleration,
            },
            MotorField.POSITION,
            position,
        )


class DistanceSensorControl:
    def __init__(self, sensor: "DistanceSensor"):
        self._sensor = sensor

    def light_up(self, l1: int, l2: int, l3: int, l4: int) -> Optional[Command]:
        if not self._sensor.is_functional():
            return None
        return Command(
            self._sensor.session,
            "scratch.ultrasonic_light_up",
            {"port": self._sensor.port.name, "lights": [l1, l2, l3, l4]},
        )


class ColorSensorControl:
    def __init__(self, sensor: "ColorSensor"):
        self._sensor = sensor

    def set_mode(self, mode: ColorSensorMode) -> Optional[Command]:
        if not self._sensor.is_functional():
            return None
        payload = {"port": self._sensor.port.name, "modetype": mode.value}
        payload.update(mode.mode_params)
        return Command(self._sensor.session, "scratch.set_device_mode", payload)


class HubControl:
    """Hub-wide commands: display, sound, tank moves and broadcasts."""

    def __init__(self, channel: "CommandChannel"):
        self._channel = channel

    def _command(self, method: str, payload: Optional[Dict[str, Any]] = None) -> Command:
        return Command(self._channel, method, payload)

    # --- broadcast ---
    def listen_broadcast(self, enable: bool = True) -> Command:
        return self._command("scratch.broadcast_listen", {"enable": enable})

    def broadcast_signal(self, channel_hash: int, value: str) -> Command:
        return self._command("scratch.broadcast_signal", {"hash": channel_hash, "value": value})

    # --- display ---
    def display_text(self, text: str) -> Command:
        return self._command("scratch.display_text", {"text": text})

    def display_clear(self) -> Command:
        return self._command("scratch.display_clear")

    def display_set_pixel(self, x: int, y: int, brightness: int) -> Command:
        if not (0 <= x <= 4 and 0 <= y <= 4):
            raise ValueError("pixel coordinates must be within 0..4")
        return self._command("scratch.display_set_pixel", {"brightness": brightness, "x": x, "y": y})

    def display_rotate_orientation(self, orientation: Orientation) -> Command:
        return self._command("scratch.display_rotate_orientation", {"orientation": int(orientation) + 1})

    def button_light(self, color: int) -> Command:
        return self._command("scratch.center_button_lights", {"color": color})

    # --- sound ---
    def beep(self, note: int, volume: int, duration_ms: Optional[int] = None) -> Command:
        if duration_ms is None:
            return self._command("scratch.sound_beep", {"note": note, "volume": volume})
        return self._command(
            "scratch.sound_beep_for_time",
            {"duration": duration_ms, "note": note, "volume": volume},
        )

    def sound_off(self) -> Command:
        return self._command("scratch.sound_off")

    # --- tank moves ---
    def tank_degrees(
        self,
        left: "Motor",
        right: "Motor",
        left_speed: int,
        right_speed: int,
        degrees: int,
        *,
        stop: StopType = StopType.BRAKE,
        acceleration: int = 100,
        deceleration: int = 100,
    ) -> Optional[DualMotorCommand]:
        if not _all_functional((left, right)):
            return None
        return DualMotorCommand(
            self._channel,
            "scratch.move_tank_degrees",
            {
                "lmotor": left.port.name,
                "rmotor": right.port.name,
                "lspeed": left_speed,
                "rspeed": right_speed,
                "degrees": degrees,
                "stop": int(stop),
                "acceleration": acceleration,
                "deceleration": deceleration,
            },
            left,
            left.relative_position + _direction(left_speed) * int(degrees),
            right,
            right.relative_position + _direction(right_speed) * int(degrees),
            MotorField.RELATIVE_POSITION,
        )

    def start_speeds(
        self, left: "Motor", right: "Motor", left_speed: int, right_speed: int, acceleration: int = 100
    ) -> Optional[Command]:
        if not _all_functional((left, right)):
            return None
        return self._command(
            "scratch.move_start_speeds",
            {
                "lmotor": left.port.name,
                "rmotor": right.port.name,
                "lspeed": left_speed,
                "rspeed": right_speed,
                "acceleration": acceleration,
            },
        )

    def stop_move(self, left: "Motor", right: "Motor", stop: StopType = StopType.BRAKE) -> Optional[Command]:
        if not _all_functional((left, right)):
            return None
        return self._command(
            "scratch.move_stop",
            {"lmotor": left.port.name, "rmotor": right.port.name, "stop": int(stop)},
        )


def _all_functional(devices: Sequence[Any]) -> bool:
    return all(d.is_functional() for d in devices)

from __future__ import annotations

import pytest

from brickhub.model.fields import MotorField
from brickhub.model.types import ColorSensorMode, Orientation, StopType
from brickhub.protocol._internal.task_registry import TaskRegistry
from brickhub.runtime.commands import Command, DualMotorCommand, MotorCommand
from brickhub.runtime.control import HubControl
from brickhub.runtime.device_registry import DeviceRegistry
from brickhub.runtime.subscriptions import SubscriptionManager

REL = MotorField.RELATIVE_POSITION


class FakeChannel:
    """In-memory CommandChannel backed by the real registries."""

    cmd_timeout_s = 0.1

    def __init__(self, *, accept: bool = True):
        self.accept = accept
        self.tasks = TaskRegistry()
        self.subs = SubscriptionManager()
        self.devices = DeviceRegistry(self)
        self.sent = []
        self.abandoned = []
        self.on_push = None

    def push(self, method, payload):
        if not self.accept:
            return None
        task_id = self.tasks.new_identifier()
        self.sent.append((task_id, method, dict(payload or {})))
        if self.on_push is not None:
            self.on_push(task_id)
        return task_id

    def await_result(self, task_id):
        return self.tasks.await_result(task_id)

    def abandon(self, task_id):
        self.abandoned.append(task_id)
        self.tasks.abandon(task_id)

    def subscribe(self, device, metric, target, tolerance):
        return self.subs.subscribe(device, metric, target, tolerance)

    def cancel_subscription(self, future):
        return self.subs.cancel(future)


@pytest.fixture
def ch():
    return FakeChannel()


# ---------------- Command ----------------
def test_send_returns_hub_result(ch):
    ch.on_push = lambda tid: ch.tasks.deliver(tid, "ok")
    assert Command(ch, "scratch.sound_off").send() == "ok"
    assert ch.sent[0][1] == "scratch.sound_off"
    assert ch.abandoned == []


def test_send_not_sent_returns_none():
    ch = FakeChannel(accept=False)
    cmd = Command(ch, "scratch.sound_off")
    assert cmd.send() is None
    fut = cmd.send_async()
    assert fut.done() and fut.result() is None


def test_send_timeout_abandons_id(ch):
    assert Command(ch, "scratch.display_clear").send(timeout=0.01) is None
    task_id = ch.sent[0][0]
    assert ch.abandoned == [task_id]
    assert ch.tasks.pending_count == 0
    assert not ch.tasks.in_use(task_id)


class LateResultChannel(FakeChannel):
    """The result lands right after the blocking wait gives up."""

    def await_result(self, task_id):
        pending = super().await_result(task_id)
        real_wait = pending.wait
        calls = []

        def wait(timeout=None):
            calls.append(timeout)
            if len(calls) == 1:
                self.tasks.deliver(task_id, "late-ok")
                return None
            return real_wait(timeout)

        pending.wait = wait
        return pending


def test_send_keeps_result_that_lands_after_timeout():
    ch = LateResultChannel()
    assert Command(ch, "scratch.display_clear").send(timeout=0.01) == "late-ok"
    assert ch.abandoned == []


def test_send_async_resolves_later(ch):
    fut = Command(ch, "scratch.display_text", {"text": "hi"}).send_async()
    assert not fut.done()
    ch.tasks.deliver(ch.sent[0][0], None)
    assert fut.done()


# ---------------- MotorCommand ----------------
def _motor(ch, rel=0):
    return ch.devices.reconcile(75, 0, [0, rel, 0, 0])


def test_motor_command_ack_wins(ch):
    motor = _motor(ch)
    ch.on_push = lambda tid: ch.tasks.deliver(tid, "acked")

    cmd = MotorCommand(ch, "scratch.motor_run_for_degrees", {}, motor, REL, 100)
    assert cmd.send() == "acked"
    assert ch.subs.count == 0
    assert ch.abandoned == []


def test_motor_command_value_reached_wins(ch):
    motor = _motor(ch)
    ch.on_push = lambda tid: ch.subs.on_metric_update(motor, REL, 96)

    cmd = MotorCommand(ch, "scratch.motor_run_for_degrees", {}, motor, REL, 100)
    assert cmd.send() == 101
    assert ch.subs.count == 0
    # the ack never came, its id is released
    assert ch.abandoned == [ch.sent[0][0]]
    assert ch.tasks.pending_count == 0


def test_motor_command_timeout_cleans_up(ch):
    motor = _motor(ch)
    cmd = MotorCommand(ch, "scratch.motor_go_to_relative_position", {}, motor, REL, 500)
    assert cmd.send(timeout=0.01) is None
    assert ch.subs.count == 0
    assert ch.tasks.pending_count == 0


def test_motor_command_not_sent_cleans_up():
    ch = FakeChannel(accept=False)
    motor = _motor(ch)
    cmd = MotorCommand(ch, "scratch.motor_run_for_degrees", {}, motor, REL, 100)
    assert cmd.send() is None
    assert ch.subs.count == 0


def test_motor_command_variance(ch):
    motor = _motor(ch)
    ch.on_push = lambda tid: ch.subs.on_metric_update(motor, REL, 98)
    cmd = MotorCommand(ch, "m", {}, motor, REL, 100).set_variance(1)
    assert cmd.send(timeout=0.01) is None

    with pytest.raises(ValueError):
        cmd.set_variance(-1)


def test_dual_motor_command_needs_both(ch):
    left = ch.devices.reconcile(75, 0, [])
    right = ch.devices.reconcile(75, 1, [])

    def reach_both(tid):
        ch.subs.on_metric_update(left, REL, 90)
        ch.subs.on_metric_update(right, REL, -90)

    ch.on_push = reach_both
    cmd = DualMotorCommand(ch, "scratch.move_tank_degrees", {}, left, 90, right, -90, REL)
    assert cmd.send() == [95, -85]
    assert ch.subs.count == 0


def test_dual_motor_command_one_motor_is_not_enough(ch):
    left = ch.devices.reconcile(75, 0, [])
    right = ch.devices.reconcile(75, 1, [])
    ch.on_push = lambda tid: ch.subs.on_metric_update(left, REL, 90)

    cmd = DualMotorCommand(ch, "scratch.move_tank_degrees", {}, left, 90, right, -90, REL)
    assert cmd.send(timeout=0.01) is None
    assert ch.subs.count == 0


# ---------------- builders ----------------
def test_run_for_degrees_targets_relative_position(ch):
    motor = _motor(ch, rel=100)
    cmd = motor.control.run_for_degrees(-50, 90, stop=StopType.HOLD)

    assert isinstance(cmd, MotorCommand)
    assert cmd.target == 10
    assert cmd.metric is REL
    assert cmd.payload["port"] == "A"
    assert cmd.payload["stop"] == 2


def test_builders_return_none_for_stale_device(ch):
    motor = _motor(ch)
    ch.devices.reconcile(0, 0, [])

    assert motor.control.start(50) is None
    assert motor.control.run_for_degrees(50, 10) is None
    assert HubControl(ch).tank_degrees(motor, motor, 10, 10, 90) is None


def test_color_sensor_set_mode_payload(ch):
    sensor = ch.devices.reconcile(61, 2, [])
    cmd = sensor.control.set_mode(ColorSensorMode.RAW)
    assert cmd.method == "scratch.set_device_mode"
    assert cmd.payload == {"port": "C", "modetype": "raw", "mode": 2}


def test_distance_sensor_light_up(ch):
    sensor = ch.devices.reconcile(62, 3, [])
    cmd = sensor.control.light_up(100, 0, 100, 0)
    assert cmd.payload == {"port": "D", "lights": [100, 0, 100, 0]}


def test_hub_control_commands(ch):
    hub = HubControl(ch)

    assert hub.beep(60, 50).method == "scratch.sound_beep"
    assert hub.beep(60, 50, 200).payload == {"duration": 200, "note": 60, "volume": 50}
    assert hub.display_rotate_orientation(Orientation.UPRIGHT).payload == {"orientation": 1}
    assert hub.listen_broadcast().payload == {"enable": True}

    with pytest.raises(ValueError):
        hub.display_set_pixel(5, 0, 100)


def test_tank_degrees_targets_follow_speed_sign(ch):
    left = ch.devices.reconcile(75, 0, [0, 10, 0, 0])
    right = ch.devices.reconcile(75, 1, [0, 20, 0, 0])

    cmd = HubControl(ch).tank_degrees(left, right, 50, -50, 90)

    assert isinstance(cmd, DualMotorCommand)
    assert (cmd.target, cmd.motor1_target) == (100, -70)
    assert cmd.payload["lmotor"] == "A"
    assert cmd.payload["rmotor"] == "B"

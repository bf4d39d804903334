from __future__ import annotations

import base64
import queue
import threading
import time

import pytest

from brickhub.core.errors import HubConnectError
from brickhub.interfaces.hub_listener import HubEventListener
from brickhub.model.fields import MotorField
from brickhub.model.types import HubButton, HubState, Port
from brickhub.protocol.codec import decode, encode_packet, packet_text
from brickhub.runtime.devices import Motor
from brickhub.runtime.session import HubSession
from brickhub.runtime.state import SessionState
from brickhub.transport.base import Transport
from brickhub.transport.errors import TransportOpenError


class FakeTransport(Transport):
    def __init__(self, *, fail_open: bool = False, responder=None):
        self.fail_open = fail_open
        self.responder = responder
        self.inbox: "queue.Queue[bytes]" = queue.Queue()
        self.written = []
        self.opened = 0
        self.closed = 0

    def open(self) -> None:
        if self.fail_open:
            raise TransportOpenError("no such port")
        self.opened += 1

    def close(self) -> None:
        self.closed += 1

    def read(self, n: int) -> bytes:
        try:
            return self.inbox.get_nowait()
        except queue.Empty:
            return b""

    def write(self, data: bytes) -> int:
        self.written.append(decode(packet_text(data)))
        if self.responder is not None:
            reply = self.responder(self.written[-1])
            if reply is not None:
                self.push(reply)
        return len(data)

    def flush(self) -> None: ...

    def push(self, value) -> None:
        self.inbox.put(encode_packet(value))

    def push_raw(self, data: bytes) -> None:
        self.inbox.put(data)

    def methods(self):
        return [w["m"] for w in self.written]


def ack_everything(envelope):
    return {"i": envelope["i"], "r": "ok"}


class Recorder(HubEventListener):
    def __init__(self):
        self.events = []
        self._cv = threading.Condition()

    def _add(self, *event):
        with self._cv:
            self.events.append(event)
            self._cv.notify_all()

    def wait(self, name, timeout=1.0):
        deadline = time.time() + timeout
        with self._cv:
            while True:
                for e in self.events:
                    if e[0] == name:
                        return e
                left = deadline - time.time()
                if left <= 0:
                    return None
                self._cv.wait(left)

    def device_connected(self, device):
        self._add("device_connected", device)

    def device_disconnected(self, device):
        self._add("device_disconnected", device)

    def button_pressed(self, button):
        self._add("button_pressed", button)

    def button_released(self, button, duration_ms):
        self._add("button_released", button, duration_ms)

    def knocked(self):
        self._add("knocked")

    def hub_state_changed(self, state):
        self._add("hub_state_changed", state)

    def broadcast_received(self, channel_hash, message):
        self._add("broadcast_received", channel_hash, message)

    def runtime_error(self, message):
        self._add("runtime_error", message)


def frame(slots=None):
    p = [[0, []] for _ in range(6)]
    for port, slot in (slots or {}).items():
        p[port] = slot
    return {"m": 0, "p": p + [[], [0, 0, 0], [0, 0, 0], [0, 0, 0], "", 0]}


def wait_for(cond, timeout=1.0):
    deadline = time.time() + timeout
    while not cond() and time.time() < deadline:
        time.sleep(0.005)
    return cond()


def make_session(transport, **kw):
    kw.setdefault("connect_settle_s", 0)
    kw.setdefault("poll_interval_s", 0.001)
    kw.setdefault("cmd_timeout_s", 1.0)
    return HubSession(transport, address="test-hub", **kw)


@pytest.fixture
def hub():
    t = FakeTransport(responder=ack_everything)
    s = make_session(t)
    rec = Recorder()
    s.add_listener(rec)
    s.start()
    yield s, t, rec
    s.disconnect()


def test_start_activates_and_enables_broadcast_listening(hub):
    s, t, _ = hub
    assert s.state is SessionState.ACTIVE
    assert t.opened == 1
    assert wait_for(lambda: "scratch.broadcast_listen" in t.methods())
    assert t.written[0]["p"] == {"enable": True}


def test_open_failure_raises_connect_error():
    t = FakeTransport(fail_open=True)
    s = make_session(t)

    with pytest.raises(HubConnectError) as ei:
        s.start()

    assert ei.value.code == "hub_connect_error"
    assert s.state is SessionState.CLOSED


def test_send_when_not_active_fails_fast():
    t = FakeTransport()
    s = make_session(t)
    assert s.send(b"{}\r") is False
    assert s.push("scratch.sound_off") is None
    assert t.written == []


def test_command_round_trip(hub):
    s, t, _ = hub
    assert s.control.display_text("hi").send() == "ok"
    assert s.status().pending_tasks == 0


def test_telemetry_connects_motor(hub):
    s, t, rec = hub
    t.push(frame({0: [75, [1, 2, 3, 4]]}))

    event = rec.wait("device_connected")
    assert event is not None
    motor = event[1]
    assert isinstance(motor, Motor)
    assert motor.port is Port.A
    assert (motor.speed, motor.relative_position, motor.position, motor.power) == (1, 2, 3, 4)
    assert motor.is_functional()
    assert s.devices.get(0) is motor


def test_hub_events_reach_listener(hub):
    s, t, rec = hub
    t.push({"m": 3, "p": ["left", 0]})
    t.push({"m": 3, "p": ["center", 250]})
    t.push({"m": 4, "p": []})
    t.push({"m": 14, "p": 3})
    t.push({"m": 15, "p": [1234, "go"]})
    t.push({"m": "runtime_error", "p": [0, 0, 0, base64.b64encode(b"line 3: oops").decode()]})

    assert rec.wait("button_pressed") == ("button_pressed", HubButton.LEFT)
    assert rec.wait("button_released") == ("button_released", HubButton.CENTER, 250)
    assert rec.wait("knocked") == ("knocked",)
    assert rec.wait("hub_state_changed") == ("hub_state_changed", HubState.DOWN)
    assert rec.wait("broadcast_received") == ("broadcast_received", 1234, "go")
    assert rec.wait("runtime_error") == ("runtime_error", "line 3: oops")
    assert s.telemetry.state is HubState.DOWN


def test_power_frame_updates_battery(hub):
    s, t, _ = hub
    t.push({"m": 2, "p": [8.1, 76, False]})
    assert wait_for(lambda: s.telemetry.battery_percentage == 76)
    assert s.telemetry.plugged_in is False
    assert s.status().hub["battery_percentage"] == 76


def test_bad_packets_are_counted_and_dropped(hub):
    s, t, rec = hub
    t.push_raw(b"not json\r")
    t.push({"m": 14, "p": "sideways"})
    t.push({"m": 99, "p": []})
    t.push({"m": 4, "p": []})

    assert rec.wait("knocked") is not None
    assert wait_for(lambda: s.status().decode_errors == 2)
    assert s.state is SessionState.ACTIVE


def test_motor_command_completes_on_telemetry(hub):
    s, t, _ = hub
    t.responder = None
    t.push(frame({0: [75, [0, 0, 0, 0]]}))
    assert wait_for(lambda: s.devices.get(Port.A) is not None)
    motor = s.devices.get(Port.A)

    def reach_target(envelope):
        if envelope["m"] == "scratch.motor_run_for_degrees":
            return frame({0: [75, [50, 88, 88, 50]]})
        return None

    t.responder = reach_target
    assert motor.control.run_for_degrees(50, 90).send(timeout=1.0) == 93
    assert s.status().subscriptions == 0


def test_device_disconnect_resolves_subscriptions(hub):
    s, t, rec = hub
    t.push(frame({1: [75, []]}))
    assert wait_for(lambda: s.devices.get(Port.B) is not None)
    motor = s.devices.get(Port.B)

    fut = s.subscribe(motor, MotorField.POSITION, 1000, 5)
    t.push(frame())

    assert fut.result(timeout=1.0) is None
    assert rec.wait("device_disconnected") == ("device_disconnected", motor)
    assert not motor.is_functional()
    assert motor.control.start(10) is None


def test_data_listener_sees_changes(hub):
    s, t, _ = hub
    t.push(frame({2: [62, [100]]}))
    assert wait_for(lambda: s.devices.get(Port.C) is not None)
    sensor = s.devices.get(Port.C)

    seen = []
    s.add_data_listener(sensor, sensor.fields[0], seen.append)
    t.push(frame({2: [62, [40]]}))

    assert wait_for(lambda: seen == [40])


def test_keyed_data_listener_pairs_two_devices(hub):
    s, t, _ = hub
    t.push(frame({1: [75, [0, 0, 0, 0]], 2: [62, [100]]}))
    assert wait_for(lambda: s.devices.get(Port.B) is not None and s.devices.get(Port.C) is not None)
    motor, sensor = s.devices.get(Port.B), s.devices.get(Port.C)

    seen = []
    s.add_keyed_data_listener(motor, MotorField.POSITION, sensor, sensor.fields[0], lambda k, v: seen.append((k, v)))
    t.push(frame({1: [75, [0, 0, 45, 0]], 2: [62, [100]]}))
    assert wait_for(lambda: seen == [(45, 100)])

    # only the paired sensor moves: nothing fires
    t.push(frame({1: [75, [0, 0, 45, 0]], 2: [62, [30]]}))
    assert wait_for(lambda: sensor.distance == 30)
    t.push(frame({1: [75, [0, 0, 50, 0]], 2: [62, [30]]}))

    assert wait_for(lambda: seen == [(45, 100), (50, 30)])
    assert s.remove_keyed_data_listener(seen.append) is False


def test_liveness_timeout_disconnects_once():
    closed = []
    t = FakeTransport()
    s = make_session(t, liveness_timeout_s=0.05, on_closed=closed.append)
    s.start()

    assert s.wait_closed(1.0)
    assert s.close_reason == "liveness_timeout"
    assert s.state is SessionState.CLOSED
    assert t.closed == 1

    s.disconnect()
    time.sleep(0.05)
    assert closed == [s]


class NoiseTransport(FakeTransport):
    """Bytes keep flowing but never form a packet."""

    def read(self, n: int) -> bytes:
        return b"\x00"


def test_liveness_timeout_fires_while_undelimited_bytes_arrive():
    t = NoiseTransport()
    s = make_session(t, liveness_timeout_s=0.1, max_packet_size=64)
    s.start()

    assert s.wait_closed(1.0)
    assert s.close_reason == "liveness_timeout"
    assert s.status().packets == 0
    assert t.closed == 1


def test_disconnect_releases_waiters():
    closed = []
    t = FakeTransport()
    s = make_session(t, on_closed=closed.append)
    s.start()

    pending = s.await_result(s.push("scratch.display_clear"))
    s.disconnect()
    s.disconnect()

    assert pending.wait(1.0) is None
    assert closed == [s]
    assert s.send(b"{}\r") is False
    assert s.status().state is SessionState.CLOSED

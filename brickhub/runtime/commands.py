# brickhub/runtime/commands.py
from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, CancelledError, Future, wait
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Protocol, Sequence, Tuple

from brickhub.protocol._internal.pending_task import PendingTask

if TYPE_CHECKING:
    from enum import Enum

    from brickhub.runtime.devices import Device, Motor

DEFAULT_VARIANCE = 5

_log = logging.getLogger(__name__)


class CommandChannel(Protocol):
    """What a command needs from the session that sends it."""

    cmd_timeout_s: float

    def push(self, method: str, payload: Optional[Mapping[str, Any]]) -> Optional[str]: ...
    def await_result(self, task_id: str) -> PendingTask: ...
    def abandon(self, task_id: str) -> None: ...
    def subscribe(self, device: "Device", metric: "Enum", target: int, tolerance: int) -> Future: ...
    def cancel_subscription(self, future: Future) -> bool: ...


class Command:
    """
    One hub method call. Nothing is sent until send()/send_async().

    Every send path returns None on failure (not connected, write failed,
    timed out) instead of raising.
    """

    def __init__(self, channel: CommandChannel, method: str, payload: Optional[Mapping[str, Any]] = None):
        self._channel = channel
        self.method = method
        self.payload: Dict[str, Any] = dict(payload) if payload else {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(method={self.method!r}, payload={self.payload!r})"

    def _push(self) -> Optional[str]:
        return self._channel.push(self.method, self.payload)

    def _timeout(self, timeout: Optional[float]) -> float:
        return self._channel.cmd_timeout_s if timeout is None else float(timeout)

    def send_async(self) -> Future:
        """Send and return a Future for the hub's result (None if not sent)."""
        task_id = self._push()
        if task_id is None:
            fut: Future = Future()
            fut.set_result(None)
            return fut
        return self._channel.await_result(task_id).future

    def send(self, timeout: Optional[float] = None) -> Any:
        """Send and block until the hub acknowledges, or `timeout` expires."""
        task_id = self._push()
        if task_id is None:
            return None

        pending = self._channel.await_result(task_id)
        result = pending.wait(self._timeout(timeout))
        if not pending.done():
            _log.debug("CMD_TIMEOUT method=%s id=%s", self.method, task_id)
            self._channel.abandon(task_id)
            return None
        # the result may have landed between the timeout and done()
        return pending.wait(0) if result is None else result


class MotorCommand(Command):
    """
    Motor command that completes on whichever comes first: the hub's ack,
    or telemetry showing the motor's `metric` within `variance` of `target`.
    """

    def __init__(
        self,
        channel: CommandChannel,
        method: str,
        payload: Optional[Mapping[str, Any]],
        motor: "Motor",
        metric: "Enum",
        target: int,
    ):
        super().__init__(channel, method, payload)
        self.motor = motor
        self.metric = metric
        self.target = int(target)
        self.variance = DEFAULT_VARIANCE

    def set_variance(self, variance: int) -> "MotorCommand":
        if variance < 0:
            raise ValueError("variance must be >= 0")
        self.variance = int(variance)
        return self

    def _targets(self) -> Sequence[Tuple["Device", int]]:
        return [(self.motor, self.target)]

    def send(self, timeout: Optional[float] = None) -> Any:
        subs: list[Future] = []
        task_id: Optional[str] = None
        pending: Optional[PendingTask] = None
        try:
            for device, target in self._targets():
                subs.append(self._channel.subscribe(device, self.metric, target, self.variance))

            task_id = self._push()
            if task_id is None:
                return None
            pending = self._channel.await_result(task_id)

            reached = subs[0] if len(subs) == 1 else _all_of(subs)
            done, _ = wait([reached, pending.future], timeout=self._timeout(timeout), return_when=FIRST_COMPLETED)
            if not done:
                _log.debug("MOTOR_CMD_TIMEOUT method=%s id=%s", self.method, task_id)
                return None

            winner = pending.future if pending.future in done else reached
            try:
                return winner.result(timeout=0)
            except CancelledError:
                return None
        finally:
            for sub in subs:
                self._channel.cancel_subscription(sub)
            if task_id is not None and pending is not None and not pending.done():
                self._channel.abandon(task_id)


class DualMotorCommand(MotorCommand):
    """
    Two-motor variant: completes on the ack, or once both motors have
    reached their targets.
    """

    def __init__(
        self,
        channel: CommandChannel,
        method: str,
        payload: Optional[Mapping[str, Any]],
        motor0: "Motor",
        motor0_target: int,
        motor1: "Motor",
        motor1_target: int,
        metric: "Enum",
    ):
        super().__init__(channel, method, payload, motor0, metric, motor0_target)
        self.motor1 = motor1
        self.motor1_target = int(motor1_target)

    def _targets(self) -> Sequence[Tuple["Device", int]]:
        return [(self.motor, self.target), (self.motor1, self.motor1_target)]


def _all_of(futures: Sequence[Future]) -> Future:
    """Future resolved with the list of results once every input is done."""
    combined: Future = Future()
    remaining = [len(futures)]
    lock = threading.Lock()

    def _on_done(_: Future) -> None:
        with lock:
            remaining[0] -= 1
            last = remaining[0] == 0
        if not last or combined.done():
            return
        results = []
        for f in futures:
            if f.cancelled():
                results.append(None)
            else:
                results.append(f.result())
        combined.set_result(results)

    for f in futures:
        f.add_done_callback(_on_done)
    return combined

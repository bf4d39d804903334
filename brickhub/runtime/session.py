# brickhub/runtime/session.py
from __future__ import annotations

import base64
import binascii
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from brickhub.core.errors import HubConnectError, ProtocolDecodeError
from brickhub.interfaces.hub_listener import HubEventListener
from brickhub.model.telemetry import DEVICE_SLOTS, HubTelemetry, device_slot
from brickhub.model.types import HubButton, HubState
from brickhub.model.values import opt_int, opt_str
from brickhub.protocol.codec import encode_packet, packet_text
from brickhub.protocol.errors import ProtocolError
from brickhub.protocol.framer import PacketFramer
from brickhub.protocol.messages import (
    RUNTIME_ERROR,
    EventPacket,
    MessageKind,
    ResultPacket,
    command_envelope,
    parse_packet,
)
from brickhub.protocol._internal.pending_task import PendingTask
from brickhub.protocol._internal.rx_worker import RxWorker
from brickhub.protocol._internal.task_registry import TaskRegistry
from brickhub.transport.base import Transport
from brickhub.transport.errors import TransportError, TransportOpenError

from .commands import DEFAULT_VARIANCE
from .control import HubControl
from .device_registry import DeviceRegistry
from .devices import Device
from .state import DeviceState, SessionState, SessionStatus
from .subscriptions import DataCallback, KeyedDataCallback, SubscriptionManager

ClosedCallback = Callable[["HubSession"], None]


class HubSession:
    """
    One live connection to a hub.

    Threads:
      - RX worker: frames packets off the transport, stamps liveness and
        queues each packet. It never decodes.
      - dispatcher (single worker): decodes packets in arrival order and
        updates tasks, devices, telemetry and subscriptions.
      - observer pool: runs listener hooks and data callbacks.

    The session ends on disconnect(), on liveness timeout, or when the
    transport read fails. Teardown runs once; hub listeners registered via
    on_closed learn about it exactly once.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        address: str = "",
        cmd_timeout_s: float = 10.0,
        liveness_timeout_s: float = 5.0,
        poll_interval_s: float = 0.01,
        read_chunk_size: int = 4096,
        max_packet_size: int = 65536,
        early_result_ttl_s: float = 30.0,
        connect_settle_s: float = 2.0,
        observer_workers: int = 4,
        listen_broadcast: bool = True,
        on_closed: Optional[ClosedCallback] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self.transport = transport
        self.address = address
        self.cmd_timeout_s = float(cmd_timeout_s)
        self.liveness_timeout_s = float(liveness_timeout_s)
        self._poll_interval_s = float(poll_interval_s)
        self._read_chunk_size = int(read_chunk_size)
        self._connect_settle_s = float(connect_settle_s)
        self._listen_broadcast = bool(listen_broadcast)
        self._on_closed = on_closed
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

        self._lock = threading.RLock()
        self._write_lock = threading.Lock()
        self._state = SessionState.CONNECTING
        self._close_reason: Optional[str] = None
        self._closed_event = threading.Event()

        self._framer = PacketFramer(max_packet_size=max_packet_size, logger=self._log)
        self._rx: Optional[RxWorker] = None
        self._dispatch_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="brickhub-dispatch")
        self._observer_pool = ThreadPoolExecutor(
            max_workers=max(1, int(observer_workers)),
            thread_name_prefix="brickhub-observer",
        )

        self._tasks = TaskRegistry(early_result_ttl_s=early_result_ttl_s, logger=self._log)
        self._subs = SubscriptionManager(dispatch=self._submit_observer, logger=self._log)
        self.devices = DeviceRegistry(
            self,
            on_connected=self._device_connected,
            on_disconnected=self._device_disconnected,
            on_updated=self._device_updated,
            logger=self._log,
        )
        self.telemetry = HubTelemetry()
        self.control = HubControl(self)

        self._listeners: List[HubEventListener] = []

        self._last_packet: Optional[float] = None
        self._packets = 0
        self._decode_errors = 0

        self._handlers: Dict[Union[int, str], Callable[[Any], None]] = {
            MessageKind.TELEMETRY: self._on_telemetry,
            MessageKind.POWER: self._on_power,
            MessageKind.BUTTON: self._on_button,
            MessageKind.KNOCK: self._on_knock,
            MessageKind.HUB_STATE: self._on_hub_state,
            MessageKind.BROADCAST: self._on_broadcast,
            RUNTIME_ERROR: self._on_runtime_error,
        }

    def __repr__(self) -> str:
        return f"HubSession(address={self.address!r}, state={self._state.value})"

    # ---------------- Lifecycle ----------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def close_reason(self) -> Optional[str]:
        return self._close_reason

    def start(self) -> None:
        """
        Open the transport, start receiving and wait for the hub to settle.

        Raises HubConnectError if the transport cannot be opened or the link
        drops before the session becomes active.
        """
        with self._lock:
            if self._state in (SessionState.DISCONNECTING, SessionState.CLOSED):
                raise HubConnectError("Session is closed; create a new one.", details={"address": self.address})
            if self._rx is not None:
                return

        self._log.info("SESSION_START address=%s driver=%s", self.address, self.transport.describe())
        try:
            self.transport.open()
        except TransportOpenError as e:
            self._log.warning("TRANSPORT_OPEN_FAILED address=%s err=%s", self.address, e)
            self._teardown("open_failed", notify=False)
            raise HubConnectError(
                "Could not open hub transport.",
                hint=str(e),
                details={"address": self.address, "driver": self.transport.describe()},
            ) from None
        except TransportError as e:
            self._log.exception("TRANSPORT_OPEN_ERROR address=%s", self.address)
            self._teardown("open_failed", notify=False)
            raise HubConnectError(
                "Transport error while opening hub.",
                hint=str(e),
                details={"address": self.address, "driver": self.transport.describe()},
            ) from None

        self._last_packet = self._clock()
        self._rx = RxWorker(
            self._framer,
            self.transport.read,
            self._on_packet,
            on_poll=self._check_liveness,
            on_closed=self._on_rx_closed,
            chunk_size=self._read_chunk_size,
            backoff_s=self._poll_interval_s,
            logger=self._log,
            name=f"brickhub-rx-{self.address}",
        )
        self._rx.start()

        if self._connect_settle_s > 0:
            self._closed_event.wait(self._connect_settle_s)

        with self._lock:
            if self._state is SessionState.CONNECTING:
                self._state = SessionState.ACTIVE
                activated = True
            else:
                activated = False

        if not activated:
            raise HubConnectError(
                "Hub link dropped while connecting.",
                hint=self._close_reason,
                details={"address": self.address},
            )

        self._log.info("SESSION_ACTIVE address=%s", self.address)
        if self._listen_broadcast:
            self.control.listen_broadcast(True).send_async()

    def disconnect(self) -> None:
        self._teardown("disconnect")

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        return self._closed_event.wait(timeout)

    def __enter__(self) -> "HubSession":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    def _teardown(self, reason: str, *, notify: bool = True) -> None:
        with self._lock:
            if self._state in (SessionState.DISCONNECTING, SessionState.CLOSED):
                return
            self._state = SessionState.DISCONNECTING
            self._close_reason = reason

        self._log.info("SESSION_DISCONNECTING address=%s reason=%s", self.address, reason)

        rx = self._rx
        if rx is not None:
            rx.stop()
            if rx is not threading.current_thread():
                rx.join(timeout=1.0)

        try:
            self.transport.close()
        except Exception:
            self._log.exception("TRANSPORT_CLOSE_FAILED address=%s", self.address)

        self._dispatch_pool.shutdown(wait=False, cancel_futures=True)
        self.devices.clear()
        cancelled = self._tasks.cancel_all()
        dropped = self._subs.cancel_all()
        with self._lock:
            self._listeners.clear()
        self._observer_pool.shutdown(wait=False)

        with self._lock:
            self._state = SessionState.CLOSED
        self._closed_event.set()
        self._log.info(
            "SESSION_CLOSED address=%s reason=%s cancelled_tasks=%d dropped_subs=%d",
            self.address, reason, cancelled, dropped,
        )

        if notify and self._on_closed is not None:
            try:
                self._on_closed(self)
            except Exception:
                self._log.exception("SESSION_ON_CLOSED_ERROR address=%s", self.address)

    # ---------------- Liveness ----------------
    def seconds_since_last_packet(self) -> Optional[float]:
        last = self._last_packet
        return None if last is None else max(0.0, self._clock() - last)

    def _check_liveness(self) -> None:
        idle = self.seconds_since_last_packet()
        if idle is None or idle < self.liveness_timeout_s:
            return
        self._log.warning("SESSION_LIVENESS_TIMEOUT address=%s idle_s=%.2f", self.address, idle)
        self._teardown("liveness_timeout")

    def _on_rx_closed(self, reason: str) -> None:
        self._teardown(reason)

    # ---------------- Outbound ----------------
    def send(self, data: bytes) -> bool:
        """Write one encoded packet. False when not active or the write fails."""
        if self._state is not SessionState.ACTIVE:
            self._log.debug("SEND_REJECTED state=%s", self._state.value)
            return False
        try:
            with self._write_lock:
                self.transport.write_packet(data)
        except TransportError as e:
            self._log.warning("SEND_FAILED address=%s err=%s", self.address, e)
            return False
        return True

    def push(self, method: str, payload: Optional[Mapping[str, Any]] = None) -> Optional[str]:
        """Send a command envelope. Returns its task id, or None if nothing was sent."""
        if self._state is not SessionState.ACTIVE:
            return None
        task_id = self._tasks.new_identifier()
        data = encode_packet(command_envelope(task_id, method, payload))
        self._log.debug("CMD_SEND id=%s method=%s len=%d", task_id, method, len(data))
        if not self.send(data):
            self._tasks.release(task_id)
            return None
        return task_id

    def await_result(self, task_id: str) -> PendingTask:
        return self._tasks.await_result(task_id)

    def abandon(self, task_id: str) -> None:
        self._tasks.abandon(task_id)

    def subscribe(self, device: Device, metric: Any, target: int, tolerance: int = DEFAULT_VARIANCE) -> Future:
        fut = self._subs.subscribe(device, metric, target, tolerance)
        if self._state in (SessionState.DISCONNECTING, SessionState.CLOSED):
            # no telemetry will ever arrive
            self._subs.cancel(fut)
        return fut

    def cancel_subscription(self, future: Future) -> bool:
        return self._subs.cancel(future)

    def add_data_listener(self, device: Device, metric: Any, callback: DataCallback) -> None:
        self._subs.add_data_listener(device, metric, callback)

    def remove_data_listener(self, callback: DataCallback) -> bool:
        return self._subs.remove_data_listener(callback)

    def add_keyed_data_listener(
        self,
        key_device: Device,
        key_metric: Any,
        value_device: Device,
        value_metric: Any,
        callback: KeyedDataCallback,
    ) -> None:
        self._subs.add_keyed_data_listener(key_device, key_metric, value_device, value_metric, callback)

    def remove_keyed_data_listener(self, callback: KeyedDataCallback) -> bool:
        return self._subs.remove_keyed_data_listener(callback)

    # ---------------- Inbound ----------------
    def _on_packet(self, packet: bytes) -> None:
        # RX thread: stamp liveness and hand off, never decode here
        self._last_packet = self._clock()
        self._packets += 1
        if self._state in (SessionState.DISCONNECTING, SessionState.CLOSED):
            return
        try:
            self._dispatch_pool.submit(self._handle_packet, packet)
        except RuntimeError:
            self._log.debug("DISPATCH_REJECTED address=%s", self.address)

    def _handle_packet(self, packet: bytes) -> None:
        text = packet_text(packet)
        try:
            msg = parse_packet(text)
            if isinstance(msg, ResultPacket):
                self._tasks.deliver(msg.task_id, msg.result)
            else:
                self._handle_event(msg)
        except (ProtocolError, ProtocolDecodeError) as e:
            self._decode_errors += 1
            self._log.debug("PACKET_DECODE_FAILED err=%s text=%r", e, text[:120])
        except Exception:
            self._decode_errors += 1
            self._log.exception("PACKET_DISPATCH_FAILED text=%r", text[:120])

    def _handle_event(self, event: EventPacket) -> None:
        handler = self._handlers.get(event.kind)
        if handler is None:
            self._log.info("EVENT_UNKNOWN m=%r p=%r", event.kind, event.payload)
            return
        handler(event.payload)

    def _on_telemetry(self, payload: Any) -> None:
        if not isinstance(payload, list):
            raise ProtocolDecodeError("telemetry payload is not a list", details={"payload": payload})
        for idx in range(DEVICE_SLOTS):
            slot = device_slot(payload, idx)
            if slot is None:
                continue
            kind, device_payload = slot
            self.devices.reconcile(kind, idx, device_payload)
        self.telemetry.apply_frame(payload)

    def _on_power(self, payload: Any) -> None:
        if not self.telemetry.apply_power(payload):
            raise ProtocolDecodeError("power payload is not a list", details={"payload": payload})

    def _on_button(self, payload: Any) -> None:
        if not isinstance(payload, list) or not payload:
            raise ProtocolDecodeError("button payload is not a list", details={"payload": payload})
        try:
            button = HubButton(payload[0])
        except ValueError:
            self._log.debug("BUTTON_UNKNOWN name=%r", payload[0])
            return
        duration = opt_int(payload, 1, 0)
        if duration > 0:
            self._notify("button_released", button, duration)
        else:
            self._notify("button_pressed", button)

    def _on_knock(self, payload: Any) -> None:
        self._notify("knocked")

    def _on_hub_state(self, payload: Any) -> None:
        if isinstance(payload, bool) or not isinstance(payload, int):
            raise ProtocolDecodeError("hub state is not an index", details={"payload": payload})
        try:
            state = HubState(payload)
        except ValueError:
            raise ProtocolDecodeError("hub state index out of range", details={"payload": payload}) from None
        self.telemetry.state = state
        self._notify("hub_state_changed", state)

    def _on_broadcast(self, payload: Any) -> None:
        if not isinstance(payload, list) or len(payload) < 2:
            raise ProtocolDecodeError("broadcast payload must be [hash, message]", details={"payload": payload})
        self._notify("broadcast_received", opt_int(payload, 0), opt_str(payload, 1))

    def _on_runtime_error(self, payload: Any) -> None:
        if not isinstance(payload, list) or len(payload) < 4 or not isinstance(payload[3], str):
            raise ProtocolDecodeError("runtime_error payload has no message", details={"payload": payload})
        try:
            message = base64.b64decode(payload[3], validate=True).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError):
            raise ProtocolDecodeError("runtime_error message is not base64", details={"payload": payload}) from None
        self._log.warning("HUB_RUNTIME_ERROR address=%s msg=%s", self.address, message)
        self._notify("runtime_error", message)

    # ---------------- Devices ----------------
    def _device_connected(self, device: Device) -> None:
        self._notify("device_connected", device)

    def _device_disconnected(self, device: Device) -> None:
        self._subs.drop_device(device)
        self._notify("device_disconnected", device)

    def _device_updated(self, device: Device, changed: List[Any]) -> None:
        for field in device.fields:
            self._subs.on_metric_update(device, field, device.value(field))
        for field in changed:
            self._subs.notify_change(device, field, device.value(field))

    # ---------------- Observers ----------------
    def add_listener(self, listener: HubEventListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: HubEventListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, hook: str, *args: Any) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            fn = getattr(listener, hook, None)
            if fn is not None:
                self._submit_observer(lambda fn=fn: fn(*args))

    def _submit_observer(self, fn: Callable[[], None]) -> None:
        def _run() -> None:
            try:
                fn()
            except Exception:
                self._log.exception("OBSERVER_ERROR address=%s", self.address)

        try:
            self._observer_pool.submit(_run)
        except RuntimeError:
            self._log.debug("OBSERVER_REJECTED address=%s", self.address)

    # ---------------- Status ----------------
    def status(self) -> SessionStatus:
        devices = [
            DeviceState(
                port=d.port.name,
                kind=int(d.kind),
                name=type(d).__name__,
                values=d.values(),
            )
            for d in self.devices.devices()
        ]
        return SessionStatus(
            state=self._state,
            address=self.address,
            last_packet_s=self.seconds_since_last_packet(),
            packets=self._packets,
            decode_errors=self._decode_errors,
            pending_tasks=self._tasks.pending_count,
            early_results=self._tasks.early_count,
            subscriptions=self._subs.count,
            devices=devices,
            hub=self.telemetry.as_dict(),
            close_reason=self._close_reason,
        )


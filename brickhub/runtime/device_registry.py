# brickhub/runtime/device_registry.py
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Type, Union

from brickhub.model.types import DeviceKind, Port

from .devices import DEVICE_TYPES, Device

DeviceCallback = Callable[[Device], None]
UpdateCallback = Callable[[Device, List[Any]], None]  # (device, changed_fields)


class DeviceRegistry:
    """
    Port -> Device mapping, reconciled against every telemetry frame.

    Connect/disconnect/update callbacks are invoked after the lock is
    released, in the order the changes were applied.
    """

    def __init__(
        self,
        owner: Any,
        *,
        on_connected: Optional[DeviceCallback] = None,
        on_disconnected: Optional[DeviceCallback] = None,
        on_updated: Optional[UpdateCallback] = None,
        device_types: Optional[Mapping[int, Type[Device]]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._owner = owner
        self._on_connected = on_connected
        self._on_disconnected = on_disconnected
        self._on_updated = on_updated
        self._types: Dict[int, Type[Device]] = dict(device_types if device_types is not None else DEVICE_TYPES)
        self._log = logger or logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._devices: Dict[Port, Device] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def get(self, port: Union[Port, int]) -> Optional[Device]:
        with self._lock:
            return self._devices.get(Port(port))

    def kind_at(self, port: Union[Port, int]) -> int:
        """Kind code currently reported on `port` (0 when empty)."""
        dev = self.get(port)
        return int(dev.kind) if dev is not None else int(DeviceKind.NONE)

    def devices(self) -> List[Device]:
        with self._lock:
            return [self._devices[p] for p in sorted(self._devices)]

    def reconcile(self, kind: int, port: Union[Port, int], payload: Any) -> Optional[Device]:
        """
        Bring `port` in line with the reported `kind`.

        - same kind: update values in place
        - kind 0: remove the device (disconnect)
        - different kind: disconnect the old device, connect a new one
        - unknown kind: nothing is constructed

        Returns the device now on the port, if any.
        """
        port = Port(port)
        kind = int(kind)
        removed: Optional[Device] = None
        added: Optional[Device] = None
        changed: List[Any] = []

        with self._lock:
            current = self._devices.get(port)

            if current is not None and int(current.kind) == kind:
                changed = current.update(payload)
                result: Optional[Device] = current
            else:
                if current is not None:
                    removed = self._devices.pop(port)

                cls = self._types.get(kind) if kind != DeviceKind.NONE else None
                if cls is not None:
                    added = cls(self._owner, port)
                    added.update(payload)
                    self._devices[port] = added
                elif kind != DeviceKind.NONE:
                    self._log.debug("DEVICE_KIND_UNKNOWN port=%s kind=%d", port.name, kind)
                result = added

        if removed is not None:
            self._log.info("DEVICE_DISCONNECTED port=%s kind=%d", port.name, int(removed.kind))
            if self._on_disconnected is not None:
                self._on_disconnected(removed)
        if added is not None:
            self._log.info("DEVICE_CONNECTED port=%s kind=%d", port.name, kind)
            if self._on_connected is not None:
                self._on_connected(added)
        if result is not None and self._on_updated is not None:
            # a freshly connected device reports all of its fields
            self._on_updated(result, changed if added is None else list(result.fields))

        return result

    def clear(self) -> List[Device]:
        """Drop every device without emitting disconnect events."""
        with self._lock:
            dropped = list(self._devices.values())
            self._devices.clear()
        return dropped

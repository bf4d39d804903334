# brickhub/runtime/subscriptions.py
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .commands import DEFAULT_VARIANCE

DataCallback = Callable[[int], None]
KeyedDataCallback = Callable[[int, int], None]
Dispatch = Callable[[Callable[[], None]], None]
PoolKey = Tuple[int, Any]


@dataclass(eq=False)
class Subscription:
    """Waits for `device.metric` to land within `tolerance` of `target`."""

    device: Any
    metric: Any
    target: int
    tolerance: int
    future: Future = field(default_factory=Future)

    def matches(self, value: int) -> bool:
        return self.target - self.tolerance <= value <= self.target + self.tolerance


@dataclass(eq=False)
class DataListener:
    device: Any
    metric: Any
    callback: DataCallback


@dataclass(eq=False)
class KeyedDataListener:
    """Fires on changes of the key metric and reports another device's value alongside."""

    key_device: Any
    key_metric: Any
    value_device: Any
    value_metric: Any
    callback: KeyedDataCallback

    def involves(self, device: Any) -> bool:
        return self.key_device is device or self.value_device is device


def _run_inline(fn: Callable[[], None]) -> None:
    fn()


def _pool_key(device: Any, metric: Any) -> PoolKey:
    # a pooled entry holds its device, so the id cannot be recycled while it is listed
    return (id(device), metric)


class SubscriptionManager:
    """
    Value-reached subscriptions and data listeners.

    Subscriptions are pooled per (device, metric), so a field update only
    looks at the subscriptions waiting on that field. A subscription is
    removed from its pool before its future is resolved, so it can resolve
    at most once even if updates race with cancel().
    """

    def __init__(self, *, dispatch: Optional[Dispatch] = None, logger: Optional[logging.Logger] = None):
        self._dispatch = dispatch or _run_inline
        self._log = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._pools: Dict[PoolKey, List[Subscription]] = {}
        self._owner: Dict[Future, PoolKey] = {}
        self._listeners: List[DataListener] = []
        self._keyed: List[KeyedDataListener] = []

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._owner)

    # ---------------- value-reached ----------------
    def subscribe(self, device: Any, metric: Any, target: int, tolerance: int = DEFAULT_VARIANCE) -> Future:
        if tolerance < 0:
            raise ValueError("tolerance must be >= 0")
        sub = Subscription(device=device, metric=metric, target=int(target), tolerance=int(tolerance))
        key = _pool_key(device, metric)
        with self._lock:
            self._pools.setdefault(key, []).append(sub)
            self._owner[sub.future] = key
        self._log.debug(
            "SUB_ADDED port=%s metric=%s target=%d tol=%d",
            getattr(device.port, "name", device.port), getattr(metric, "value", metric), sub.target, sub.tolerance,
        )
        return sub.future

    def on_metric_update(self, device: Any, metric: Any, value: int) -> int:
        """Resolve every matching subscription with `value + tolerance`. Returns how many fired."""
        key = _pool_key(device, metric)
        with self._lock:
            pool = self._pools.get(key)
            if not pool:
                return 0
            hits = [s for s in pool if s.matches(value)]
            if hits:
                rest = [s for s in pool if not s.matches(value)]
                if rest:
                    self._pools[key] = rest
                else:
                    del self._pools[key]
                for sub in hits:
                    self._owner.pop(sub.future, None)

        for sub in hits:
            if not sub.future.done():
                sub.future.set_result(value + sub.tolerance)
        return len(hits)

    def cancel(self, future: Future) -> bool:
        """Remove the subscription owning `future` without resolving it."""
        with self._lock:
            key = self._owner.pop(future, None)
            if key is None:
                return False
            pool = [s for s in self._pools.get(key, []) if s.future is not future]
            if pool:
                self._pools[key] = pool
            else:
                self._pools.pop(key, None)
        future.cancel()
        return True

    def drop_device(self, device: Any) -> int:
        """Device went away: resolve its subscriptions with None and forget its listeners."""
        with self._lock:
            keys = [k for k, pool in self._pools.items() if pool[0].device is device]
            gone: List[Subscription] = []
            for key in keys:
                gone.extend(self._pools.pop(key))
            for sub in gone:
                self._owner.pop(sub.future, None)
            self._listeners = [l for l in self._listeners if l.device is not device]
            self._keyed = [l for l in self._keyed if not l.involves(device)]

        for sub in gone:
            if not sub.future.done():
                sub.future.set_result(None)
        return len(gone)

    def cancel_all(self) -> int:
        with self._lock:
            gone = [s for pool in self._pools.values() for s in pool]
            self._pools = {}
            self._owner = {}
            self._listeners = []
            self._keyed = []
        for sub in gone:
            if not sub.future.done():
                sub.future.set_result(None)
        return len(gone)

    # ---------------- data listeners ----------------
    def add_data_listener(self, device: Any, metric: Any, callback: DataCallback) -> None:
        with self._lock:
            self._listeners.append(DataListener(device=device, metric=metric, callback=callback))

    def remove_data_listener(self, callback: DataCallback) -> bool:
        with self._lock:
            before = len(self._listeners)
            self._listeners = [l for l in self._listeners if l.callback is not callback]
            return len(self._listeners) != before

    def add_keyed_data_listener(
        self,
        key_device: Any,
        key_metric: Any,
        value_device: Any,
        value_metric: Any,
        callback: KeyedDataCallback,
    ) -> None:
        """Call `callback(key_value, value)` whenever `key_device.key_metric` changes."""
        listener = KeyedDataListener(
            key_device=key_device,
            key_metric=key_metric,
            value_device=value_device,
            value_metric=value_metric,
            callback=callback,
        )
        with self._lock:
            self._keyed.append(listener)

    def remove_keyed_data_listener(self, callback: KeyedDataCallback) -> bool:
        with self._lock:
            before = len(self._keyed)
            self._keyed = [l for l in self._keyed if l.callback is not callback]
            return len(self._keyed) != before

    def notify_change(self, device: Any, metric: Any, value: int) -> int:
        """Hand a changed value to its data listeners. Returns how many were scheduled."""
        with self._lock:
            targets = [l.callback for l in self._listeners if l.device is device and l.metric == metric]
            keyed = [l for l in self._keyed if l.key_device is device and l.key_metric == metric]

        for cb in targets:
            self._dispatch(lambda cb=cb: cb(value))
        for l in keyed:
            paired = l.value_device.value(l.value_metric)
            self._dispatch(lambda cb=l.callback, paired=paired: cb(value, paired))
        return len(targets) + len(keyed)

from __future__ import annotations

import logging
import random
import string
import threading
import time
from typing import Any, Callable, Dict, Optional, Set, Tuple

from .pending_task import PendingTask

TASK_ID_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase
TASK_ID_LENGTH = 4

_MISSING = object()


class TaskRegistry:
    """
    Correlates command results ("i" field) with the callers waiting on them.

    - new_identifier() allocates a short random id not currently in use.
    - await_result(id) hands out a PendingTask; if the result already
      arrived it resolves immediately.
    - deliver(id, result) resolves the waiter, or caches an early result.

    Unclaimed early results and recently-resolved ids expire after
    early_result_ttl_s. Resolved ids are remembered that long so that a
    duplicate result is ignored instead of being cached.
    """

    def __init__(
        self,
        *,
        early_result_ttl_s: float = 30.0,
        id_length: int = TASK_ID_LENGTH,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self.early_result_ttl_s = float(early_result_ttl_s)
        self._id_length = int(id_length)
        self._rng = rng or random.Random()
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._in_use: Set[str] = set()
        self._waiting: Dict[str, PendingTask] = {}
        self._early: Dict[str, Tuple[Any, float]] = {}
        self._resolved: Dict[str, float] = {}

    # ---------------- Introspection ----------------
    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._waiting)

    @property
    def early_count(self) -> int:
        with self._lock:
            return len(self._early)

    def in_use(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._in_use

    # ---------------- Allocation ----------------
    def new_identifier(self) -> str:
        with self._lock:
            self._evict_expired()
            while True:
                task_id = "".join(self._rng.choices(TASK_ID_ALPHABET, k=self._id_length))
                if task_id in self._in_use or task_id in self._resolved:
                    continue
                self._in_use.add(task_id)
                return task_id

    def release(self, task_id: str) -> None:
        """Free an id whose command was never sent."""
        with self._lock:
            self._in_use.discard(task_id)
            self._waiting.pop(task_id, None)

    # ---------------- Correlation ----------------
    def await_result(self, task_id: str) -> PendingTask:
        pending = PendingTask(task_id)
        result: Any = _MISSING

        with self._lock:
            cached = self._early.pop(task_id, None)
            if cached is not None:
                result = cached[0]
                self._in_use.discard(task_id)
                self._resolved[task_id] = self._clock()
            else:
                self._waiting[task_id] = pending

        if result is not _MISSING:
            self._log.debug("TASK_EARLY_RESULT_CLAIMED id=%s", task_id)
            pending.set_result(result)
        return pending

    def deliver(self, task_id: str, result: Any) -> bool:
        """
        Route a result to its waiter. Returns True if a waiter was resolved.
        """
        with self._lock:
            self._evict_expired()
            pending = self._waiting.pop(task_id, None)
            if pending is None:
                if task_id in self._resolved or task_id in self._early:
                    self._log.debug("TASK_DUPLICATE_RESULT id=%s", task_id)
                    return False
                self._early[task_id] = (result, self._clock())
                self._in_use.add(task_id)
                self._log.debug("TASK_EARLY_RESULT id=%s", task_id)
                return False

            self._in_use.discard(task_id)
            self._resolved[task_id] = self._clock()

        pending.set_result(result)
        return True

    def abandon(self, task_id: str) -> None:
        """
        Drop the waiter for a command whose caller gave up (timeout).
        A late result for this id is cached like any early result and
        expires with the TTL.
        """
        with self._lock:
            pending = self._waiting.pop(task_id, None)
            self._in_use.discard(task_id)
        if pending is not None:
            pending.cancel()
            self._log.debug("TASK_ABANDONED id=%s", task_id)

    def cancel_all(self) -> int:
        """Resolve every outstanding waiter with None and forget all state."""
        with self._lock:
            waiters = list(self._waiting.values())
            self._waiting.clear()
            self._early.clear()
            self._resolved.clear()
            self._in_use.clear()

        for pending in waiters:
            pending.set_result(None)
        return len(waiters)

    # ---------------- Helpers ----------------
    def _evict_expired(self) -> None:
        # Caller holds self._lock. Both dicts are insertion (= time) ordered.
        cutoff = self._clock() - self.early_result_ttl_s

        while self._early:
            task_id, (_, ts) = next(iter(self._early.items()))
            if ts > cutoff:
                break
            del self._early[task_id]
            self._in_use.discard(task_id)
            self._log.warning("TASK_EARLY_RESULT_EXPIRED id=%s", task_id)

        while self._resolved:
            task_id, ts = next(iter(self._resolved.items()))
            if ts > cutoff:
                break
            del self._resolved[task_id]

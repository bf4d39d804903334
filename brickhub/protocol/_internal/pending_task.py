from __future__ import annotations

import time
from concurrent.futures import CancelledError, Future, InvalidStateError, TimeoutError as FutureTimeout
from typing import Any, Callable, Optional


class PendingTask:
    """Holds a Future for the result of one correlated hub command."""

    def __init__(self, task_id: str):
        self.task_id = str(task_id)
        self.created_at = time.perf_counter()
        self.future: Future = Future()

    def add_done_callback(self, cb: Callable[[Future], Any]) -> Any:
        """Forward callback registration to the underlying Future."""
        return self.future.add_done_callback(cb)

    def result(self, *args: Any, **kwargs: Any) -> Any:
        """Forward result() to underlying Future."""
        return self.future.result(*args, **kwargs)

    def done(self) -> bool:
        return self.future.done()

    def cancel(self) -> bool:
        return self.future.cancel()

    def set_result(self, result: Any) -> None:
        """Resolve once; later calls are ignored."""
        if self.future.done():
            return
        try:
            self.future.set_result(result)
        except InvalidStateError:
            # lost a race against cancel()/another set_result()
            pass

    def wait(self, timeout: Optional[float] = None) -> Any:
        """Blocking wait. Returns None on timeout or cancellation."""
        try:
            return self.future.result(timeout=timeout)
        except (FutureTimeout, CancelledError):
            return None

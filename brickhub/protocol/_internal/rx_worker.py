# brickhub/protocol/_internal/rx_worker.py
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from brickhub.protocol.framer import PacketFramer


class RxWorker(threading.Thread):
    """
    Thread that frames packets from a transport and hands each one to on_packet.

    on_packet must not block; it should queue the packet for dispatch.
    on_closed(reason) is called once when the packet stream ends without
    stop() having been requested (transport failure).
    """

    def __init__(
        self,
        framer: PacketFramer,
        read: Callable[[int], bytes],
        on_packet: Callable[[bytes], None],
        *,
        on_poll: Optional[Callable[[], None]] = None,
        on_closed: Optional[Callable[[str], None]] = None,
        chunk_size: int = 4096,
        backoff_s: float = 0.01,
        logger: Optional[logging.Logger] = None,
        name: str = "brickhub-rx",
    ):
        super().__init__(daemon=True, name=name)
        self.framer = framer
        self._read = read
        self._on_packet = on_packet
        self._on_poll = on_poll
        self._on_closed = on_closed
        self._chunk_size = int(chunk_size)
        self._backoff_s = float(backoff_s)
        self._log = logger or logging.getLogger(__name__)
        self._stop_event = threading.Event()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                for packet in self.framer.stream(
                    self._read,
                    chunk_size=self._chunk_size,
                    backoff_s=self._backoff_s,
                    stop=self._stop_event,
                    on_poll=self._on_poll,
                ):
                    self._on_packet(packet)
            except Exception:
                self._log.exception("RX_WORKER_EXCEPTION buffered=%d", len(self.framer.buffer))
                self._stop_event.wait(0.01)
            else:
                break

        if not self._stop_event.is_set() and self._on_closed is not None:
            try:
                self._on_closed("transport_error")
            except Exception:
                self._log.exception("RX_ON_CLOSED_ERROR")

    def stop(self) -> None:
        self._stop_event.set()

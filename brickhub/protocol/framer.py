from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterator, Optional

from brickhub.transport.errors import TransportError
from .codec import DELIMITER


class PacketFramer:
    """
    Splits a byte stream into delimiter-terminated packets.

    A packet is the run of bytes up to and including the delimiter. Partial
    data stays buffered until its delimiter arrives, so the output does not
    depend on how the input was chunked.
    """

    def __init__(
        self,
        *,
        delimiter: bytes = DELIMITER,
        max_packet_size: int = 65536,
        logger: Optional[logging.Logger] = None,
    ):
        if len(delimiter) != 1:
            raise ValueError("delimiter must be a single byte")
        self.delimiter = delimiter
        self.max_packet_size = int(max_packet_size)
        self.buffer = bytearray()
        self.dropped_bytes = 0
        self._log = logger or logging.getLogger(__name__)

    # ---------------- Public API ----------------
    def feed(self, data: bytes) -> None:
        """Feed raw bytes into the framer buffer."""
        self.buffer.extend(data)

    def get_packet(self) -> Optional[bytes]:
        """Return the next complete packet (delimiter included), if available."""
        idx = self.buffer.find(self.delimiter)
        if idx < 0:
            if len(self.buffer) > self.max_packet_size:
                self._log.warning(
                    "PACKET_OVERSIZE dropped=%d max=%d",
                    len(self.buffer),
                    self.max_packet_size,
                )
                self.dropped_bytes += len(self.buffer)
                self.buffer.clear()
            return None

        packet = bytes(self.buffer[: idx + 1])
        del self.buffer[: idx + 1]
        return packet

    def stream(
        self,
        read: Callable[[int], bytes],
        *,
        chunk_size: int = 4096,
        backoff_s: float = 0.01,
        stop: Optional[threading.Event] = None,
        on_poll: Optional[Callable[[], None]] = None,
    ) -> Iterator[bytes]:
        """
        Lazily yield packets from a polling read primitive.

        on_poll is called after every read that did not complete a packet,
        whether it returned bytes or not. An empty read is "no data yet": the
        framer polls again after backoff_s. The sequence ends when `stop` is
        set or the transport raises. Buffered bytes survive, so calling
        stream() again resumes where the previous iteration left off.
        """
        while stop is None or not stop.is_set():
            packet = self.get_packet()
            if packet is not None:
                yield packet
                continue

            try:
                data = read(chunk_size)
            except (TransportError, OSError) as e:
                self._log.warning("FRAMER_READ_FAILED err=%s", e)
                return

            if data:
                self.feed(data)
                packet = self.get_packet()
                if packet is not None:
                    yield packet
                    continue

            if on_poll is not None:
                on_poll()

            if data:
                continue
            if stop is not None:
                stop.wait(backoff_s)
            else:
                time.sleep(backoff_s)

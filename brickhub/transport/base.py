# brickhub/transport/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .errors import TransportIOError


class Transport(ABC):
    """
    Byte-stream link to one hub (serial port, Bluetooth SPP, test double).

    read(n) returns up to n bytes and b"" when nothing has arrived yet; an
    empty read is never end-of-stream. A lost link raises TransportIOError
    from read/write/flush.
    """

    @abstractmethod
    def open(self) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

    @abstractmethod
    def read(self, n: int) -> bytes: ...

    @abstractmethod
    def write(self, data: bytes) -> int: ...

    @abstractmethod
    def flush(self) -> None: ...

    def describe(self) -> str:
        """Short label for logs."""
        return type(self).__name__

    def write_packet(self, data: bytes) -> None:
        """Write all of `data` (retrying short writes), then flush."""
        view = memoryview(data)
        while view:
            n = self.write(bytes(view))
            if not n or n < 0:
                raise TransportIOError(f"{self.describe()}: write made no progress")
            view = view[n:]
        self.flush()

    def __enter__(self) -> "Transport":
        self.open()
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        self.close()

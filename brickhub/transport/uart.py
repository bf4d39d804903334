# brickhub/transport/uart.py
from __future__ import annotations

from typing import Optional

import serial
from serial import SerialException

from .base import Transport
from .errors import TransportIOError, TransportOpenError


class UARTTransport(Transport):
    """
    Serial transport implemented via pyserial.

    The hub's Bluetooth serial profile shows up as a regular serial port
    (COMx / /dev/rfcommN), so the same driver covers wired and wireless links.

    read(n) returns whatever is buffered (up to n bytes). When nothing is
    buffered it waits at most `timeout` for a single byte and may return b"".
    """

    def __init__(self, port: str, baudrate: int = 115200, timeout: float = 0.05):
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.ser: Optional[serial.Serial] = None

    def open(self) -> None:
        try:
            self.ser = serial.Serial(
                self.port,
                baudrate=self.baudrate,
                timeout=self.timeout,
                write_timeout=self.timeout * 20,
            )
            self.ser.reset_input_buffer()
            self.ser.reset_output_buffer()
        except SerialException as e:
            self.ser = None
            raise TransportOpenError(str(e)) from None

    def close(self) -> None:
        if self.ser is not None:
            try:
                self.ser.close()
            finally:
                self.ser = None

    def describe(self) -> str:
        return f"uart:{self.port}@{self.baudrate}"

    def is_open(self) -> bool:
        return self.ser is not None and self.ser.is_open

    def read(self, n: int) -> bytes:
        if self.ser is None:
            raise TransportIOError("read while transport not open")

        try:
            waiting = self.ser.in_waiting
            return self.ser.read(max(1, min(n, waiting)))
        except (SerialException, OSError) as e:
            self.ser = None
            raise TransportIOError(f"serial read failed: {e}") from None

    def write(self, data: bytes) -> int:
        if self.ser is None:
            raise TransportIOError("write while transport not open")

        try:
            return self.ser.write(data)
        except (SerialException, OSError) as e:
            self.ser = None
            raise TransportIOError(f"serial write failed: {e}") from None

    def flush(self) -> None:
        if self.ser is None:
            raise TransportIOError("flush while transport not open")

        try:
            self.ser.flush()
        except (SerialException, OSError) as e:
            self.ser = None
            raise TransportIOError(f"serial flush failed: {e}") from None

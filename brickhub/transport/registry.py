from __future__ import annotations

from typing import Any, Dict, Mapping, Type

from .base import Transport
from .uart import UARTTransport
from .errors import TransportError


class TransportDriverRegistry:
    """
    Maps driver keys -> concrete transport classes.

    The hub session only ever sees the Transport contract; the registry lets
    applications (and tests) plug in their own drivers by key.
    """

    def __init__(self, drivers: Mapping[str, Type[Transport]]):
        # normalize keys to be case-insensitive
        self._drivers: Dict[str, Type[Transport]] = {k.lower(): v for k, v in drivers.items()}

    @classmethod
    def default(cls) -> "TransportDriverRegistry":
        return cls(drivers={"uart": UARTTransport})

    def register(self, driver: str, transport_cls: Type[Transport]) -> None:
        self._drivers[driver.lower()] = transport_cls

    def has(self, driver: str) -> bool:
        return driver.lower() in self._drivers

    def get_class(self, driver: str) -> Type[Transport]:
        key = driver.lower()
        if key not in self._drivers:
            raise TransportError(f"Transport driver '{driver}' not registered")
        return self._drivers[key]

    def create(self, driver: str, address: str, **params: Any) -> Transport:
        """
        Instantiate (but do not open) a transport for `address`.
        """
        transport_cls = self.get_class(driver)
        try:
            return transport_cls(address, **params)
        except TypeError as e:
            raise TransportError(f"Invalid params for driver '{driver}': {e}") from None

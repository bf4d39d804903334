# brickhub/interfaces/hub_listener.py
from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from brickhub.model.types import HubButton, HubState
    from brickhub.runtime.devices import Device
    from brickhub.runtime.session import HubSession


class HubEventListener:
    """
    Per-session observer. Override what you need; every hook defaults to a
    no-op. Hooks run on the session's observer pool, never on the RX or
    dispatch thread, so they may block briefly or send commands.
    """

    def device_connected(self, device: "Device") -> None: ...
    def device_disconnected(self, device: "Device") -> None: ...
    def button_pressed(self, button: "HubButton") -> None: ...
    def button_released(self, button: "HubButton", duration_ms: int) -> None: ...
    def knocked(self) -> None: ...
    def hub_state_changed(self, state: "HubState") -> None: ...
    def broadcast_received(self, channel_hash: Any, message: Any) -> None: ...
    def runtime_error(self, message: str) -> None: ...


class HubListener:
    """Manager-level observer for sessions coming and going."""

    def hub_connected(self, session: "HubSession") -> None: ...
    def hub_disconnected(self, session: "HubSession") -> None: ...

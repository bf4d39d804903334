# brickhub/app/manager.py
from __future__ import annotations

import logging
import threading
from typing import List, Optional

from brickhub.app.config import HubConfig
from brickhub.core.errors import BrickHubError, ConfigError
from brickhub.interfaces.hub_listener import HubListener
from brickhub.runtime.session import HubSession
from brickhub.runtime.state import SessionState
from brickhub.transport.base import Transport
from brickhub.transport.errors import TransportError
from brickhub.transport.registry import TransportDriverRegistry


class HubManager:
    """
    Owns every live HubSession in the process.

    connect() builds the transport from the driver registry, starts the
    session and tracks it until it closes. shutdown() (or leaving the
    `with` block) disconnects everything that is still open.
    """

    def __init__(
        self,
        *,
        drivers: Optional[TransportDriverRegistry] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._drivers = drivers or TransportDriverRegistry.default()
        self._log = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._sessions: List[HubSession] = []
        self._listeners: List[HubListener] = []
        self._closed = False

    def __enter__(self) -> "HubManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # ---------------- Listeners ----------------
    def add_listener(self, listener: HubListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: HubListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, hook: str, session: HubSession) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            fn = getattr(listener, hook, None)
            if fn is None:
                continue
            try:
                fn(session)
            except Exception:
                self._log.exception("HUB_LISTENER_ERROR hook=%s address=%s", hook, session.address)

    # ---------------- Sessions ----------------
    def sessions(self) -> List[HubSession]:
        with self._lock:
            return list(self._sessions)

    def connect(self, config: HubConfig, transport: Optional[Transport] = None) -> Optional[HubSession]:
        """
        Open a session to one hub. Returns None (and logs why) on failure.

        `transport` overrides the driver registry, mainly for tests.
        """
        with self._lock:
            if self._closed:
                self._log.warning("CONNECT_REJECTED reason=shutdown address=%s", config.address)
                return None

        try:
            if transport is None:
                transport = self._create_transport(config)
            session = HubSession(transport, on_closed=self._session_closed, logger=self._log, **config.session_kwargs())
            session.start()
        except BrickHubError as e:
            self._log.warning("HUB_CONNECT_FAILED address=%s code=%s msg=%s hint=%s", config.address, e.code, e.message, e.hint)
            return None

        with self._lock:
            late = self._closed
            alive = session.state is SessionState.ACTIVE
            if alive and not late:
                self._sessions.append(session)

        if not alive:
            self._log.warning("HUB_CONNECT_LOST address=%s reason=%s", config.address, session.close_reason)
            return None
        if late:
            session.disconnect()
            return None

        self._log.info("HUB_CONNECTED address=%s", config.address)
        self._notify("hub_connected", session)
        return session

    def _create_transport(self, config: HubConfig) -> Transport:
        if not self._drivers.has(config.driver):
            raise ConfigError(
                f"Unknown transport driver '{config.driver}'.",
                details={"driver": config.driver},
            )
        try:
            return self._drivers.create(config.driver, config.address, **config.transport_params)
        except TransportError as e:
            raise ConfigError(
                "Invalid transport parameters.",
                hint=str(e),
                details={"driver": config.driver, "params": dict(config.transport_params)},
            ) from None

    def _session_closed(self, session: HubSession) -> None:
        with self._lock:
            if session not in self._sessions:
                # failed during connect: never announced
                return
            self._sessions.remove(session)

        self._log.info("HUB_DISCONNECTED address=%s reason=%s", session.address, session.close_reason)
        self._notify("hub_disconnected", session)

    def shutdown(self) -> None:
        with self._lock:
            self._closed = True
            sessions = list(self._sessions)

        self._log.info("MANAGER_SHUTDOWN sessions=%d", len(sessions))
        for session in sessions:
            try:
                session.disconnect()
            except Exception:
                self._log.exception("SESSION_DISCONNECT_FAILED address=%s", session.address)

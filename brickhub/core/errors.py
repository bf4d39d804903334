# brickhub/core/errors.py
from __future__ import annotations


class BrickHubError(Exception):
    """
    Base class for all expected operational errors in brickhub.
    """

    #: Stable machine-readable identifier (for logs, exit mapping, etc.)
    code: str = "unknown"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Configuration / setup errors (no hardware access yet)
# ---------------------------------------------------------------------------

class ConfigError(BrickHubError):
    """
    Hub configuration is invalid.

    Examples:
      - config file missing or not valid YAML
      - unknown config key
      - unknown transport driver
    """
    code = "config_error"


# ---------------------------------------------------------------------------
# Connection lifecycle errors
# ---------------------------------------------------------------------------

class HubConnectError(BrickHubError):
    """
    Transport to the hub could not be opened.

    Examples:
      - serial port not found
      - hub not paired / out of range
      - port already in use
    """
    code = "hub_connect_error"


# ---------------------------------------------------------------------------
# Protocol errors
# ---------------------------------------------------------------------------

class ProtocolDecodeError(BrickHubError):
    """
    A packet was received but could not be decoded.

    Never propagated out of the receive loop; raised by decoders and
    caught by the session dispatcher.
    """
    code = "protocol_decode_error"

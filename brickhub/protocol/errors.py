# brickhub/protocol/errors.py

class ProtocolError(Exception):
    """Base for protocol-level failures (framing/decode/envelope shape)."""

class DecodeError(ProtocolError):
    """Packet text is not a valid structured value."""

class EnvelopeError(ProtocolError):
    """Packet decoded fine but does not have a known envelope shape."""
    def __init__(self, reason: str, value: object = None):
        super().__init__(reason)
        self.reason = reason
        self.value = value

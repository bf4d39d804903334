# protocol/__init__.py

from .codec import DELIMITER, decode, encode, encode_packet, packet_text
from .errors import DecodeError, EnvelopeError, ProtocolError
from .framer import PacketFramer
from .messages import (
    RUNTIME_ERROR,
    EventPacket,
    MessageKind,
    ResultPacket,
    command_envelope,
    parse_packet,
)

__all__ = [
    "DELIMITER", "encode", "decode", "encode_packet", "packet_text",
    "ProtocolError", "DecodeError", "EnvelopeError",
    "PacketFramer",
    "MessageKind", "RUNTIME_ERROR", "ResultPacket", "EventPacket",
    "parse_packet", "command_envelope"]

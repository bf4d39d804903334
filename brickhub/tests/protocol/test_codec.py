from __future__ import annotations

import pytest

from brickhub.protocol.codec import DELIMITER, decode, encode, encode_packet, packet_text
from brickhub.protocol.errors import DecodeError, EnvelopeError
from brickhub.protocol.messages import (
    RUNTIME_ERROR,
    EventPacket,
    MessageKind,
    ResultPacket,
    command_envelope,
    parse_packet,
)


def test_delimiter_is_carriage_return():
    assert DELIMITER == b"\x0d"


def test_encode_is_compact_and_keeps_key_order():
    env = command_envelope("7x2K", "scratch.display_text", {"text": "hi"})
    assert encode(env) == '{"i":"7x2K","m":"scratch.display_text","p":{"text":"hi"}}'


def test_encode_packet_appends_delimiter():
    assert encode_packet({"a": 1}) == b'{"a":1}\r'


def test_command_envelope_defaults_to_empty_payload():
    assert command_envelope("abcd", "scratch.sound_off") == {"i": "abcd", "m": "scratch.sound_off", "p": {}}


def test_decode_invalid_raises_decode_error():
    with pytest.raises(DecodeError):
        decode("{not json")


def test_packet_text_strips_delimiter_and_replaces_bad_utf8():
    assert packet_text(b'{"m":4}\r') == '{"m":4}'
    assert packet_text(b"\xff\r") == "\ufffd"


def test_parse_result_packet():
    msg = parse_packet('{"i":"7x2K","r":true}')
    assert msg == ResultPacket(task_id="7x2K", result=True)


def test_parse_result_packet_without_r_is_none():
    msg = parse_packet('{"i":"9ab1"}')
    assert isinstance(msg, ResultPacket)
    assert msg.result is None


def test_parse_event_packet():
    msg = parse_packet('{"m":14,"p":3}')
    assert msg == EventPacket(kind=MessageKind.HUB_STATE, payload=3)


def test_parse_runtime_error_kind_is_string():
    msg = parse_packet('{"m":"runtime_error","p":[0,0,0,"aGk="]}')
    assert isinstance(msg, EventPacket)
    assert msg.kind == RUNTIME_ERROR


@pytest.mark.parametrize(
    "text",
    [
        "[1,2,3]",
        '{"p":[]}',
        '{"m":true,"p":[]}',
        '{"m":null}',
        '{"i":12,"r":null}',
    ],
)
def test_parse_rejects_unknown_shapes(text):
    with pytest.raises(EnvelopeError):
        parse_packet(text)

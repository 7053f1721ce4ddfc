import io
import struct

import pytest

from nelipy.rtattr import RtAttrHandle, Rtattr, RtBuffer
from nelipy.types import DeError, SerError


def _stream(*words):
    return io.BytesIO(struct.pack(f"={len(words)}H", *words))


def test_rta_deserialize():
    attr = Rtattr.from_bytes(_stream(4, 0))
    assert attr.rta_len() == 4
    assert attr.rta_payload == b""


def test_rta_deserialize_err():
    # 3 bytes is below minimum length
    with pytest.raises(DeError):
        Rtattr.from_bytes(_stream(3, 0))


def test_rtattr_padding():
    attr = Rtattr(0, b"\x00")
    assert attr.rta_len() == 5
    assert len(attr.to_bytes()) == 8


def test_rtbuffer_align():
    buf = RtBuffer([Rtattr(0, b"\x00"), Rtattr(1, b"\x01"), Rtattr(2, b"\x02")])
    assert buf.unpadded_size() == 24


def test_round_trip():
    attr = Rtattr(1, struct.pack("=I", 0x7F000001))
    assert Rtattr.from_bytes(io.BytesIO(attr.to_bytes())) == attr


def test_consecutive_attributes_skip_padding():
    first = Rtattr(1, b"abc")
    second = Rtattr(2, b"de")
    stream = io.BytesIO(first.to_bytes() + second.to_bytes())
    assert Rtattr.from_bytes(stream) == first
    assert Rtattr.from_bytes(stream) == second


def test_truncated_payload_restores_position():
    data = struct.pack("=HH", 10, 1) + b"ab"
    stream = io.BytesIO(data)
    with pytest.raises(DeError):
        Rtattr.from_bytes(stream)
    assert stream.tell() == 0


def test_rtbuffer_round_trip():
    buf = RtBuffer([Rtattr(1, b"a"), Rtattr(2, b"bcdef"), Rtattr(3, "eth0")])
    data = buf.to_bytes()
    assert len(data) == buf.unpadded_size()
    parsed = RtBuffer.from_bytes_with_input(io.BytesIO(data), len(data))
    assert parsed == buf


def test_rtbuffer_length_beyond_stream():
    with pytest.raises(DeError):
        RtBuffer.from_bytes_with_input(io.BytesIO(b"\x04\x00"), 8)


def test_nest():
    inner_a = Rtattr(2, b"ab")
    inner_b = Rtattr(3, b"xyz")
    outer = Rtattr(1, b"").nest(inner_a).nest(inner_b)
    assert outer.rta_len() == 4 + inner_a.padded_size() + inner_b.padded_size()
    handle = outer.get_attr_handle()
    assert [a.rta_type for a in handle] == [2, 3]
    assert handle.get_attribute(3).rta_payload == b"xyz"


def test_set_payload_updates_length():
    attr = Rtattr(1, b"abc")
    attr.set_payload(b"abcdefgh")
    assert attr.rta_len() == 4 + len(b"abcdefgh")
    assert attr.rta_payload == b"abcdefgh"


def test_get_payload_as_struct():
    attr = Rtattr(1, struct.pack("=I", 1234))
    assert attr.get_payload_as("=I") == 1234


def test_get_payload_as_too_short():
    with pytest.raises(DeError):
        Rtattr(1, b"\x01").get_payload_as("=I")


def test_string_payload():
    attr = Rtattr(3, "eth0")
    assert attr.rta_payload.endswith(b"\x00")
    assert attr.get_payload_as_with_len(str) == "eth0"


def test_bytes_payload():
    attr = Rtattr(1, b"\x01\x02\x03\x04\x05\x06")
    assert attr.get_payload_as_with_len(bytes) == b"\x01\x02\x03\x04\x05\x06"


def test_int_payload_rejected():
    with pytest.raises(SerError):
        Rtattr(1, 5)


def test_oversized_attribute():
    with pytest.raises(SerError):
        Rtattr(1, bytes(70000)).to_bytes()


def test_handle_lookup_missing():
    handle = RtAttrHandle([Rtattr(1, b"ab")])
    assert handle.get_attribute(9) is None
    with pytest.raises(DeError):
        handle.get_attr_payload_as(9, "=I")
    with pytest.raises(DeError):
        handle.get_attr_payload_as_with_len(9, str)
    with pytest.raises(DeError):
        handle.get_nested_attributes(9)


def test_handle_nested_attributes():
    outer = Rtattr(5, b"").nest(Rtattr(1, "notify")).nest(Rtattr(2, struct.pack("=I", 7)))
    handle = RtBuffer([outer]).get_attr_handle()
    nested = handle.get_nested_attributes(5)
    assert nested.get_attr_payload_as_with_len(1, str) == "notify"
    assert nested.get_attr_payload_as(2, "=I") == 7


def test_payload_as_rtbuffer():
    outer = Rtattr(5, b"").nest(Rtattr(1, b"x"))
    handle = RtAttrHandle([outer])
    parsed = handle.get_attr_payload_as_with_len(5, RtBuffer)
    assert parsed == RtBuffer([Rtattr(1, b"x")])
from __future__ import annotations

import pytest

from tftpput.packet import (
    Ack,
    Data,
    Error,
    ReadRequest,
    TransmissionMode,
    WriteRequest,
    deserialize,
    serialize,
)


def test_write_request_layout():
    raw = serialize(WriteRequest(name="report.txt", mode=TransmissionMode.OCTET))
    assert raw == b"\x00\x02report.txt\x00octet\x00"


def test_write_request_carries_mode_token():
    raw = serialize(WriteRequest(name="a", mode=TransmissionMode.NETASCII))
    assert raw.endswith(b"\x00netascii\x00")


def test_read_request_layout():
    raw = serialize(ReadRequest(name="boot.img", mode=TransmissionMode.MAIL))
    assert raw == b"\x00\x01boot.img\x00mail\x00"


def test_data_layout():
    raw = serialize(Data(block=258, payload=b"hello"))
    assert raw == b"\x00\x03\x01\x02hello"


def test_empty_data_block():
    assert serialize(Data(block=3)) == b"\x00\x03\x00\x03"


def test_data_payload_too_large():
    with pytest.raises(ValueError):
        Data(block=1, payload=b"x" * 513)


def test_block_out_of_range():
    with pytest.raises(ValueError):
        Data(block=65536)
    with pytest.raises(ValueError):
        Ack(block=-1)


def test_roundtrip_ack():
    p = deserialize(serialize(Ack(block=7)))
    assert p == Ack(block=7)


def test_roundtrip_error():
    p = deserialize(serialize(Error(code=1, message="File already exists")))
    assert p == Error(code=1, message="File already exists")


def test_error_without_nul_terminator():
    p = deserialize(b"\x00\x05\x00\x02Access violation")
    assert p == Error(code=2, message="Access violation")


def test_error_with_code_only():
    assert deserialize(b"\x00\x05\x00\x03") == Error(code=3, message="")


def test_error_too_short():
    assert deserialize(b"\x00\x05\x00") is None


def test_ack_with_trailing_bytes_is_rejected():
    assert deserialize(b"\x00\x04\x00\x01\x00") is None
    assert deserialize(b"\x00\x04\x00") is None


@pytest.mark.parametrize("raw", [b"", b"\x00", b"\x00\x09\x00\x01", b"\xff\xff"])
def test_unknown_or_truncated(raw):
    assert deserialize(raw) is None


def test_outbound_kinds_are_not_accepted_inbound():
    assert deserialize(serialize(WriteRequest(name="x"))) is None
    assert deserialize(serialize(ReadRequest(name="x"))) is None
    assert deserialize(serialize(Data(block=1, payload=b"abc"))) is None


def test_outbound_kinds_decode_directly():
    wrq = WriteRequest.from_bytes(serialize(WriteRequest(name="fw.bin", mode=TransmissionMode.NETASCII))[2:])
    assert wrq == WriteRequest(name="fw.bin", mode=TransmissionMode.NETASCII)
    data = Data.from_bytes(serialize(Data(block=9, payload=b"abc"))[2:])
    assert data == Data(block=9, payload=b"abc")


def test_malformed_request_fields():
    with pytest.raises(ValueError):
        WriteRequest.from_bytes(b"name-without-terminator")

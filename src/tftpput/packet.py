from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Optional, Union

from .constants import (
    ACK,
    BLOCK_SIZE,
    DATA,
    ERROR,
    HEADER_FORMAT,
    MAX_BLOCK,
    OPCODE_FORMAT,
    RRQ,
    WRQ,
)

_OPCODE_LEN = struct.calcsize(OPCODE_FORMAT)
_FIELD_FORMAT = "!H"
_FIELD_LEN = struct.calcsize(_FIELD_FORMAT)


class Opcode(enum.IntEnum):
    RRQ = RRQ
    WRQ = WRQ
    DATA = DATA
    ACK = ACK
    ERROR = ERROR


class TransmissionMode(enum.Enum):
    """Mode token carried by a request. Never interpreted locally."""

    OCTET = "octet"
    NETASCII = "netascii"
    MAIL = "mail"

    @property
    def token(self) -> str:
        return self.value


def _check_u16(name: str, value: int) -> None:
    if not 0 <= value <= MAX_BLOCK:
        raise ValueError(f"{name} out of range: {value}")


def _split_cstrings(body: bytes, count: int) -> list[str]:
    parts = body.split(b"\x00")
    if len(parts) < count + 1 or any(parts[count:]):
        raise ValueError("malformed NUL-terminated fields")
    return [p.decode("utf-8") for p in parts[:count]]


def _request_bytes(opcode: Opcode, name: str, mode: TransmissionMode) -> bytes:
    return (
        struct.pack(OPCODE_FORMAT, opcode)
        + name.encode("utf-8")
        + b"\x00"
        + mode.token.encode("ascii")
        + b"\x00"
    )


@dataclass(frozen=True, slots=True)
class WriteRequest:
    name: str
    mode: TransmissionMode = TransmissionMode.OCTET

    opcode = Opcode.WRQ

    def to_bytes(self) -> bytes:
        return _request_bytes(self.opcode, self.name, self.mode)

    @staticmethod
    def from_bytes(body: bytes) -> "WriteRequest":
        name, mode = _split_cstrings(body, 2)
        return WriteRequest(name=name, mode=TransmissionMode(mode.lower()))


@dataclass(frozen=True, slots=True)
class ReadRequest:
    name: str
    mode: TransmissionMode = TransmissionMode.OCTET

    opcode = Opcode.RRQ

    def to_bytes(self) -> bytes:
        return _request_bytes(self.opcode, self.name, self.mode)

    @staticmethod
    def from_bytes(body: bytes) -> "ReadRequest":
        name, mode = _split_cstrings(body, 2)
        return ReadRequest(name=name, mode=TransmissionMode(mode.lower()))


@dataclass(frozen=True, slots=True)
class Data:
    block: int
    payload: bytes = b""

    opcode = Opcode.DATA

    def __post_init__(self) -> None:
        _check_u16("block", self.block)
        if len(self.payload) > BLOCK_SIZE:
            raise ValueError(f"payload too large: {len(self.payload)}")

    def to_bytes(self) -> bytes:
        return struct.pack(HEADER_FORMAT, self.opcode, self.block) + self.payload

    @staticmethod
    def from_bytes(body: bytes) -> "Data":
        if len(body) < _FIELD_LEN:
            raise ValueError("data packet too short")
        (block,) = struct.unpack_from(_FIELD_FORMAT, body)
        return Data(block=block, payload=bytes(body[_FIELD_LEN:]))


@dataclass(frozen=True, slots=True)
class Ack:
    block: int

    opcode = Opcode.ACK

    def __post_init__(self) -> None:
        _check_u16("block", self.block)

    def to_bytes(self) -> bytes:
        return struct.pack(HEADER_FORMAT, self.opcode, self.block)

    @staticmethod
    def from_bytes(body: bytes) -> "Ack":
        if len(body) != _FIELD_LEN:
            raise ValueError(f"ack body must be {_FIELD_LEN} bytes, got {len(body)}")
        (block,) = struct.unpack(_FIELD_FORMAT, body)
        return Ack(block=block)


@dataclass(frozen=True, slots=True)
class Error:
    code: int
    message: str = ""

    opcode = Opcode.ERROR

    def __post_init__(self) -> None:
        _check_u16("code", self.code)

    def to_bytes(self) -> bytes:
        return (
            struct.pack(HEADER_FORMAT, self.opcode, self.code)
            + self.message.encode("utf-8")
            + b"\x00"
        )

    @staticmethod
    def from_bytes(body: bytes) -> "Error":
        if len(body) < _FIELD_LEN:
            raise ValueError("error packet too short")
        (code,) = struct.unpack_from(_FIELD_FORMAT, body)
        raw_message = body[_FIELD_LEN:]
        if raw_message.endswith(b"\x00"):
            raw_message = raw_message[:-1]
        return Error(code=code, message=raw_message.decode("utf-8", errors="replace"))


Packet = Union[ReadRequest, WriteRequest, Data, Ack, Error]

# Only these kinds are ever accepted from the wire by the upload client.
_INBOUND = {
    Opcode.ACK: Ack.from_bytes,
    Opcode.ERROR: Error.from_bytes,
}


def serialize(packet: Packet) -> bytes:
    return packet.to_bytes()


def deserialize(raw: bytes) -> Optional[Packet]:
    """Decode an inbound datagram, or return None if it is not one we accept."""
    if len(raw) < _OPCODE_LEN:
        return None
    (opcode,) = struct.unpack_from(OPCODE_FORMAT, raw)
    try:
        decode = _INBOUND[Opcode(opcode)]
    except (KeyError, ValueError):
        return None
    try:
        return decode(bytes(raw[_OPCODE_LEN:]))
    except ValueError:
        return None

"""TFTP packet codec (RFC 1350).

A :class:`Packet` is a bounded byte buffer with typed field accessors. The
builders assemble the five message kinds; :func:`decode` and :func:`encode`
convert between packets and the typed message values.
"""
from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Union

from .constants import (
    ACK,
    DATA,
    DATAGRAM_SIZE,
    ERROR,
    HEADER_SIZE,
    RRQ,
    WORD_MAX,
    WRQ,
)
from .errors import MalformedPacketError, PacketEncodeError


class Opcode(enum.IntEnum):
    RRQ = RRQ
    WRQ = WRQ
    DATA = DATA
    ACK = ACK
    ERROR = ERROR


class TransferMode(str, enum.Enum):
    NETASCII = "netascii"
    OCTET = "octet"


class ErrorCode(enum.IntEnum):
    NOT_DEFINED = 0
    FILE_NOT_FOUND = 1
    ACCESS_VIOLATION = 2
    DISK_FULL = 3
    ILLEGAL_OPERATION = 4
    UNKNOWN_TRANSFER_ID = 5
    FILE_EXISTS = 6
    NO_SUCH_USER = 7

    @property
    def description(self) -> str:
        return _ERROR_DESCRIPTIONS[self]


_ERROR_DESCRIPTIONS = {
    ErrorCode.NOT_DEFINED: "Not defined, see error message (if any)",
    ErrorCode.FILE_NOT_FOUND: "File not found",
    ErrorCode.ACCESS_VIOLATION: "Access violation",
    ErrorCode.DISK_FULL: "Disk full or allocation exceeded",
    ErrorCode.ILLEGAL_OPERATION: "Illegal TFTP operation",
    ErrorCode.UNKNOWN_TRANSFER_ID: "Unknown transfer ID",
    ErrorCode.FILE_EXISTS: "File already exists",
    ErrorCode.NO_SUCH_USER: "No such user",
}


class Packet:
    """A datagram of at most ``DATAGRAM_SIZE`` bytes.

    Appends never truncate: an append that would overflow the capacity
    returns ``False`` and leaves the buffer untouched. Once built and handed
    to the endpoint a packet is treated as immutable.
    """

    __slots__ = ("_buf",)

    def __init__(self) -> None:
        self._buf = bytearray()

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Packet":
        if not raw:
            raise MalformedPacketError("empty datagram")
        packet = cls()
        if not packet.append(raw):
            raise MalformedPacketError(f"datagram too large: {len(raw)} bytes")
        if len(packet) < 2:
            raise MalformedPacketError("datagram too short to carry an opcode")

        code = packet.word(0)
        try:
            opcode = Opcode(code)
        except ValueError:
            raise MalformedPacketError(f"unknown opcode {code}") from None

        if opcode in (Opcode.DATA, Opcode.ACK, Opcode.ERROR) and len(packet) < HEADER_SIZE:
            raise MalformedPacketError(f"{opcode.name} packet too short: {len(packet)} bytes")
        return packet

    def append(self, data: bytes, reverse: bool = False) -> bool:
        if len(self._buf) + len(data) > DATAGRAM_SIZE:
            return False
        self._buf += data[::-1] if reverse else data
        return True

    def append_byte(self, value: int) -> bool:
        return self.append(bytes((value,)))

    def append_word(self, value: int) -> bool:
        # little-endian host word, reversed onto the wire: network order
        return self.append(struct.pack("<H", value), reverse=True)

    def append_string(self, text: str) -> bool:
        return self.append(text.encode("utf-8"))

    def _check(self, at: int, length: int) -> None:
        if at < 0 or length < 0 or at + length > len(self._buf):
            raise IndexError(f"read of {length} bytes at offset {at} past end of {len(self._buf)} byte packet")

    def byte(self, at: int) -> int:
        self._check(at, 1)
        return self._buf[at]

    def word(self, at: int) -> int:
        self._check(at, 2)
        return struct.unpack_from("!H", self._buf, at)[0]

    def string(self, at: int, length: int) -> str:
        self._check(at, length)
        return bytes(self._buf[at : at + length]).decode("utf-8", errors="replace")

    def cstring(self, at: int) -> tuple[str, int]:
        """Read a NUL-terminated string; returns it and the offset past the NUL."""
        end = self._buf.find(0, at)
        if end < 0:
            raise MalformedPacketError(f"unterminated string at offset {at}")
        return self.string(at, end - at), end + 1

    @property
    def opcode(self) -> Opcode:
        return Opcode(self.word(0))

    @property
    def block(self) -> int:
        return self.word(2)

    @property
    def payload(self) -> bytes:
        return bytes(self._buf[HEADER_SIZE:])

    @property
    def size(self) -> int:
        return len(self._buf)

    def __len__(self) -> int:
        return len(self._buf)

    def to_bytes(self) -> bytes:
        return bytes(self._buf)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Packet):
            return NotImplemented
        return self._buf == other._buf

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Packet({bytes(self._buf)!r})"

    def __str__(self) -> str:
        if len(self._buf) < 2:
            return "<empty or malformed packet>"
        try:
            message = decode(self)
        except (MalformedPacketError, ValueError, IndexError):
            return "<empty or malformed packet>"
        return describe(message)


@dataclass(frozen=True, slots=True)
class ReadRequest:
    filename: str
    mode: TransferMode = TransferMode.NETASCII


@dataclass(frozen=True, slots=True)
class WriteRequest:
    filename: str
    mode: TransferMode = TransferMode.NETASCII


@dataclass(frozen=True, slots=True)
class Data:
    block: int
    payload: bytes = b""


@dataclass(frozen=True, slots=True)
class Ack:
    block: int


@dataclass(frozen=True, slots=True)
class Error:
    code: int
    message: str = ""


Message = Union[ReadRequest, WriteRequest, Data, Ack, Error]


def _check_word(name: str, value: int) -> None:
    if not 0 <= value <= WORD_MAX:
        raise PacketEncodeError(f"{name} {value} does not fit in 16 bits")


def _check_text(name: str, text: str) -> None:
    if "\x00" in text:
        raise PacketEncodeError(f"{name} must not contain NUL")
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise PacketEncodeError(f"{name} {text!r} is not encodable: {exc.reason}") from None


def _built(packet: Packet, good: bool, what: str) -> Packet:
    if not good:
        raise PacketEncodeError(f"{what} does not fit in a {DATAGRAM_SIZE} byte datagram")
    return packet


def _request(opcode: Opcode, filename: str, mode: TransferMode | str) -> Packet:
    if not filename:
        raise PacketEncodeError("filename must not be empty")
    _check_text("filename", filename)
    mode = TransferMode(mode)

    packet = Packet()
    good = (
        packet.append_word(opcode)
        and packet.append_string(filename)
        and packet.append_byte(0)
        and packet.append_string(mode.value)
        and packet.append_byte(0)
    )
    return _built(packet, good, f"{opcode.name} for {filename!r}")


def build_read_request(filename: str, mode: TransferMode | str = TransferMode.NETASCII) -> Packet:
    return _request(Opcode.RRQ, filename, mode)


def build_write_request(filename: str, mode: TransferMode | str = TransferMode.NETASCII) -> Packet:
    return _request(Opcode.WRQ, filename, mode)


def build_ack(block: int) -> Packet:
    _check_word("block", block)
    packet = Packet()
    good = packet.append_word(Opcode.ACK) and packet.append_word(block)
    return _built(packet, good, "ACK")


def build_data(block: int, payload: bytes) -> Packet:
    _check_word("block", block)
    packet = Packet()
    good = packet.append_word(Opcode.DATA) and packet.append_word(block) and packet.append(payload)
    return _built(packet, good, f"DATA with {len(payload)} byte payload")


def build_error(code: int, message: str = "") -> Packet:
    _check_word("error code", code)
    _check_text("error message", message)
    packet = Packet()
    good = (
        packet.append_word(Opcode.ERROR)
        and packet.append_word(code)
        and packet.append_string(message)
        and packet.append_byte(0)
    )
    return _built(packet, good, "ERROR")


def encode(message: Message) -> Packet:
    match message:
        case ReadRequest(filename, mode):
            return build_read_request(filename, mode)
        case WriteRequest(filename, mode):
            return build_write_request(filename, mode)
        case Data(block, payload):
            return build_data(block, payload)
        case Ack(block):
            return build_ack(block)
        case Error(code, text):
            return build_error(code, text)
    raise TypeError(f"not a TFTP message: {message!r}")


def decode(packet: Packet) -> Message:
    opcode = packet.opcode
    match opcode:
        case Opcode.RRQ | Opcode.WRQ:
            filename, at = packet.cstring(2)
            mode_text, _ = packet.cstring(at)
            try:
                mode = TransferMode(mode_text.lower())
            except ValueError:
                raise MalformedPacketError(f"unknown transfer mode {mode_text!r}") from None
            if opcode is Opcode.RRQ:
                return ReadRequest(filename, mode)
            return WriteRequest(filename, mode)
        case Opcode.DATA:
            return Data(packet.block, packet.payload)
        case Opcode.ACK:
            return Ack(packet.block)
        case Opcode.ERROR:
            # some servers omit the trailing NUL
            try:
                text, _ = packet.cstring(HEADER_SIZE)
            except MalformedPacketError:
                text = packet.string(HEADER_SIZE, len(packet) - HEADER_SIZE)
            return Error(packet.word(2), text)
    raise MalformedPacketError(f"unknown opcode {opcode}")


def describe(message: Message) -> str:
    match message:
        case ReadRequest(filename, mode):
            return f"RRQ {filename!r} ({TransferMode(mode).value})"
        case WriteRequest(filename, mode):
            return f"WRQ {filename!r} ({TransferMode(mode).value})"
        case Data(block, payload):
            return f"DATA block={block} ({len(payload)} bytes)"
        case Ack(block):
            return f"ACK block={block}"
        case Error(code, text):
            try:
                name = ErrorCode(code).description
            except ValueError:
                name = "Unknown error"
            return f"ERROR {code} ({name}): {text}" if text else f"ERROR {code} ({name})"
    return repr(message)

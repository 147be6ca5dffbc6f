"""
TFTP Packet Codec

Design Decision: Packet Representation
======================================

Options Considered:
1. Raw bytes passed around, parsed ad hoc where needed
   - No allocation overhead
   - Offsets and opcode checks duplicated in every state machine

2. One class with optional fields for every packet kind
   - Single type, but most fields meaningless for most kinds

3. One frozen dataclass per packet kind + a codec
   - State machines dispatch with isinstance()
   - Round-trips are plain equality checks in tests

Decision: Frozen dataclasses, encoded/decoded by PacketCodec.
The codec knows the configured block size so it can reject oversized DATA.

Wire Format (all integers big-endian, text ASCII):
```
RRQ/WRQ  | opcode (1B) | filename | 0x00 | mode | 0x00 |
DATA     | opcode (1B) | block (2B) | payload (0..block_size) |
ACK      | opcode (1B) | block (2B) |
ERROR    | opcode (1B) | code (2B)  | message | 0x00 |
```
"""

import enum
import struct
from dataclasses import dataclass
from typing import Union

from ..config import DEFAULT_BLOCK_SIZE, TRANSFER_MODE
from ..errors import MalformedPacket, UnrecognisedOpCode

ENCODING = 'ascii'
HEADER_FORMAT = '!BH'  # opcode, block (or error code)
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)
OPCODE_FORMAT = '!B'
OPCODE_SIZE = struct.calcsize(OPCODE_FORMAT)

BLOCK_MASK = 0xFFFF


class OpCode(enum.IntEnum):
    RRQ = 1
    WRQ = 2
    DATA = 3
    ACK = 4
    ERROR = 5


class ErrorCode(enum.IntEnum):
    """RFC 1350 error codes."""
    NOT_DEFINED = 0
    FILE_NOT_FOUND = 1
    ACCESS_VIOLATION = 2
    DISK_FULL = 3
    ILLEGAL_OPERATION = 4
    UNKNOWN_TID = 5
    FILE_EXISTS = 6
    NO_SUCH_USER = 7


@dataclass(frozen=True)
class ReadRequest:
    filename: str
    mode: str = TRANSFER_MODE


@dataclass(frozen=True)
class WriteRequest:
    filename: str
    mode: str = TRANSFER_MODE


@dataclass(frozen=True)
class Data:
    block: int
    payload: bytes = b''


@dataclass(frozen=True)
class Ack:
    block: int


@dataclass(frozen=True)
class Error:
    code: int = ErrorCode.NOT_DEFINED
    message: str = ''


Packet = Union[ReadRequest, WriteRequest, Data, Ack, Error]


def encode_text(value: str, field: str = 'text') -> bytes:
    """
    Encode a request field as ASCII.

    Raises:
        ValueError: value has non-ASCII characters or an embedded NUL
    """
    try:
        raw = value.encode(ENCODING)
    except UnicodeEncodeError:
        raise ValueError(f"{field} {value!r} is not {ENCODING}") from None
    if b'\x00' in raw:
        raise ValueError(f"{field} {value!r} contains a NUL byte")
    return raw


class PacketCodec:
    """
    Encodes packets to datagrams and decodes datagrams to packets.

    Decoding only ever slices the received datagram, so nothing is sized from
    a length field on the wire.
    """

    def __init__(self, block_size: int = DEFAULT_BLOCK_SIZE):
        self.block_size = block_size

    # === Encoding ===

    def encode(self, packet: Packet) -> bytes:
        """Serialize a packet to bytes."""
        if isinstance(packet, ReadRequest):
            return self._encode_request(OpCode.RRQ, packet.filename, packet.mode)

        if isinstance(packet, WriteRequest):
            return self._encode_request(OpCode.WRQ, packet.filename, packet.mode)

        if isinstance(packet, Data):
            if len(packet.payload) > self.block_size:
                raise ValueError(
                    f"Payload of {len(packet.payload)} bytes exceeds block size {self.block_size}"
                )
            return struct.pack(HEADER_FORMAT, OpCode.DATA, packet.block & BLOCK_MASK) + packet.payload

        if isinstance(packet, Ack):
            return struct.pack(HEADER_FORMAT, OpCode.ACK, packet.block & BLOCK_MASK)

        if isinstance(packet, Error):
            return (
                struct.pack(HEADER_FORMAT, OpCode.ERROR, int(packet.code) & BLOCK_MASK) +
                packet.message.encode(ENCODING, errors='replace') +
                b'\x00'
            )

        raise TypeError(f"Not a TFTP packet: {packet!r}")

    def _encode_request(self, opcode: OpCode, filename: str, mode: str) -> bytes:
        return (
            struct.pack(OPCODE_FORMAT, opcode) +
            encode_text(filename, 'filename') + b'\x00' +
            encode_text(mode, 'mode') + b'\x00'
        )

    # === Decoding ===

    def decode(self, raw: bytes) -> Packet:
        """
        Parse a datagram.

        Raises:
            UnrecognisedOpCode: first byte is not a known opcode
            MalformedPacket: datagram too short or badly formed
        """
        if len(raw) < OPCODE_SIZE:
            raise MalformedPacket("Empty datagram")

        code_byte = raw[0]
        try:
            opcode = OpCode(code_byte)
        except ValueError:
            raise UnrecognisedOpCode(code_byte) from None

        if opcode in (OpCode.RRQ, OpCode.WRQ):
            filename, mode = self._decode_request(raw)
            if opcode == OpCode.RRQ:
                return ReadRequest(filename=filename, mode=mode)
            return WriteRequest(filename=filename, mode=mode)

        if len(raw) < HEADER_SIZE:
            raise MalformedPacket(
                f"{opcode.name} packet of {len(raw)} bytes is shorter than {HEADER_SIZE}"
            )

        _, number = struct.unpack(HEADER_FORMAT, raw[:HEADER_SIZE])
        body = raw[HEADER_SIZE:]

        if opcode == OpCode.DATA:
            if len(body) > self.block_size:
                raise MalformedPacket(
                    f"DATA payload of {len(body)} bytes exceeds block size {self.block_size}"
                )
            return Data(block=number, payload=bytes(body))

        if opcode == OpCode.ACK:
            return Ack(block=number)

        # ERROR: tolerate a missing terminator, the message is the remainder
        message = body.split(b'\x00', 1)[0]
        try:
            code = ErrorCode(number)
        except ValueError:
            code = number
        return Error(code=code, message=message.decode(ENCODING, errors='replace'))

    def _decode_request(self, raw: bytes):
        fields = raw[OPCODE_SIZE:].split(b'\x00')
        # filename, mode and whatever follows the final terminator
        if len(fields) < 3:
            raise MalformedPacket("Request is missing a NUL-terminated field")

        filename_bytes, mode_bytes = fields[0], fields[1]
        if not filename_bytes:
            raise MalformedPacket("Request has an empty filename")
        try:
            filename = filename_bytes.decode(ENCODING)
            mode = mode_bytes.decode(ENCODING)
        except UnicodeDecodeError as e:
            raise MalformedPacket(f"Request text is not {ENCODING}: {e}") from None
        return filename, mode

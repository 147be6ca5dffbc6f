"""
TFTP Errors

Parse-level noise (MalformedPacket, UnrecognisedOpCode, UnknownTransactionId)
is absorbed by the transfer loops. The rest end a single session and are
turned into a TransferResult before reaching the caller.
"""

from typing import Optional, Tuple


class TftpError(Exception):
    """Base class for all TFTP errors."""


class MalformedPacket(TftpError, ValueError):
    """Datagram could not be parsed as a TFTP packet."""


class UnrecognisedOpCode(MalformedPacket):
    """Opcode byte matches none of the known packet kinds."""

    def __init__(self, opcode: int):
        super().__init__(f"Unrecognised OP Code: {opcode}")
        self.opcode = opcode


class UnknownTransactionId(TftpError):
    """Datagram arrived from an (address, port) other than the session's TID."""

    def __init__(self, address: Tuple[str, int],
                 expected: Optional[Tuple[str, int]]):
        super().__init__(f"Unexpected TID {address}, expected {expected}")
        self.address = address
        self.expected = expected


class FileNotFound(TftpError):
    def __init__(self, filename: str):
        super().__init__(f"File not found: {filename}")
        self.filename = filename


class AccessViolation(TftpError):
    def __init__(self, filename: str, reason: str = "access denied"):
        super().__init__(f"Access violation for {filename}: {reason}")
        self.filename = filename


class FileTooLarge(TftpError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"File size {size} exceeded limit {limit}")
        self.size = size
        self.limit = limit


class RetriesExhausted(TftpError):
    def __init__(self, attempts: int):
        super().__init__(f"No response after {attempts} attempts")
        self.attempts = attempts


class PeerError(TftpError):
    """Remote side sent an Error packet."""

    def __init__(self, code: int, message: str):
        super().__init__(f"Peer error {code}: {message}")
        self.code = code
        self.message = message

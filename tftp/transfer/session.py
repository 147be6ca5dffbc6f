"""
Transfer Outcomes

What a finished transfer reports to its caller, on either side.
"""

import time
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional

from ..protocol.binding import Address
from ..protocol.packet import ErrorCode


class FailureReason(Enum):
    RETRIES_EXHAUSTED = 'retries_exhausted'
    PEER_ERROR = 'peer_error'
    FILE_NOT_FOUND = 'file_not_found'
    FILE_TOO_LARGE = 'file_too_large'
    ACCESS_VIOLATION = 'access_violation'
    ILLEGAL_OPERATION = 'illegal_operation'
    LOCAL_ERROR = 'local_error'


# Error code sent to the peer for each locally detected failure
ERROR_CODES = {
    FailureReason.RETRIES_EXHAUSTED: ErrorCode.NOT_DEFINED,
    FailureReason.FILE_NOT_FOUND: ErrorCode.FILE_NOT_FOUND,
    FailureReason.FILE_TOO_LARGE: ErrorCode.NOT_DEFINED,
    FailureReason.ACCESS_VIOLATION: ErrorCode.ACCESS_VIOLATION,
    FailureReason.ILLEGAL_OPERATION: ErrorCode.ILLEGAL_OPERATION,
    FailureReason.LOCAL_ERROR: ErrorCode.DISK_FULL,
}


@dataclass
class TransferResult:
    """
    Final outcome of one transfer.

    success with a byte count, or failure with a reason and message.
    Counters are kept for logging and the CLI summary.
    """
    filename: str
    success: bool = False
    peer: Optional[Address] = None
    bytes_transferred: int = 0
    blocks: int = 0
    reason: Optional[FailureReason] = None
    message: str = ''
    error_code: Optional[int] = None  # code carried by a peer Error packet

    # Counters
    timeouts: int = 0
    retransmits: int = 0
    duplicates: int = 0
    ignored: int = 0  # malformed or foreign-TID datagrams

    started_at: float = field(default_factory=time.monotonic)
    finished_at: Optional[float] = None

    @property
    def duration_s(self) -> float:
        if self.finished_at is None:
            return 0.0
        return max(0.0, self.finished_at - self.started_at)

    @property
    def throughput_bytes_per_sec(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return self.bytes_transferred / self.duration_s

    def succeed(self) -> 'TransferResult':
        self.success = True
        self.reason = None
        self.finished_at = time.monotonic()
        return self

    def fail(self, reason: FailureReason, message: str,
             error_code: Optional[int] = None) -> 'TransferResult':
        self.success = False
        self.reason = reason
        self.message = message
        self.error_code = error_code
        self.finished_at = time.monotonic()
        return self

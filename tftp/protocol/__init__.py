"""
Protocol Module - Packets, Blocks and Transaction IDs

Pure protocol logic with no I/O.
"""

from .packet import (
    PacketCodec, Packet, OpCode, ErrorCode,
    ReadRequest, WriteRequest, Data, Ack, Error,
)
from .blocks import (
    FileBlocks, block_count, block_at, wire_block,
    next_block, previous_block, is_terminal,
)
from .binding import TransactionBinding, Address, normalize_address

__all__ = [
    'PacketCodec',
    'Packet',
    'OpCode',
    'ErrorCode',
    'ReadRequest',
    'WriteRequest',
    'Data',
    'Ack',
    'Error',
    'FileBlocks',
    'block_count',
    'block_at',
    'wire_block',
    'next_block',
    'previous_block',
    'is_terminal',
    'TransactionBinding',
    'Address',
    'normalize_address',
]

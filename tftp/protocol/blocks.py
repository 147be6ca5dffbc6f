"""
Block Sequencer

Design Decision: End of File
============================

Options Considered:
1. ceil(size / block_size) blocks, last block may be full
   - Receiver cannot tell a full final block from a full middle block
     when the size is an exact multiple of the block size

2. Always follow the data with a short block
   - One extra empty Data packet for exact multiples
   - The first short block is an unambiguous end-of-file signal

Decision: Always emit a short (possibly empty) terminal block,
so block_count = size // block_size + 1.

Block Numbering:
- Block 1 is the first data block, block 0 means "nothing yet"
- Wire numbers wrap modulo 65536 to match the two-byte field,
  so the block after 65535 goes out as block 0
"""

from typing import Iterator, Tuple

BLOCK_MODULUS = 0x10000


def block_count(file_size: int, block_size: int) -> int:
    """Number of Data packets needed for a file, terminal block included."""
    if file_size < 0:
        raise ValueError(f"file_size must not be negative, got {file_size}")
    return file_size // block_size + 1


def block_at(file_bytes: bytes, index: int, block_size: int) -> bytes:
    """
    Get the payload of a block.

    Args:
        file_bytes: The whole file
        index: 1-based block index (not wrapped)
        block_size: Payload size of a full block

    Raises:
        IndexError: index outside 1..block_count
    """
    count = block_count(len(file_bytes), block_size)
    if index < 1 or index > count:
        raise IndexError(f"Block {index} out of range 1..{count}")

    start = (index - 1) * block_size
    return bytes(file_bytes[start:start + block_size])


def wire_block(index: int) -> int:
    """Block number as it appears in the two-byte header."""
    return index % BLOCK_MODULUS


def next_block(block: int) -> int:
    return (block + 1) % BLOCK_MODULUS


def previous_block(block: int) -> int:
    return (block - 1) % BLOCK_MODULUS


def is_terminal(payload: bytes, block_size: int) -> bool:
    """A payload shorter than a full block ends the transfer."""
    return len(payload) < block_size


class FileBlocks:
    """
    Immutable, ordered block payloads of one file.

    Built once when a request is accepted and owned by that transfer.
    Indexing is 1-based to line up with block numbers.
    """

    __slots__ = ('_blocks', 'block_size', 'size')

    def __init__(self, blocks: Tuple[bytes, ...], block_size: int, size: int):
        self._blocks = blocks
        self.block_size = block_size
        self.size = size

    @classmethod
    def from_bytes(cls, data: bytes, block_size: int) -> 'FileBlocks':
        count = block_count(len(data), block_size)
        blocks = tuple(
            bytes(data[i * block_size:(i + 1) * block_size])
            for i in range(count)
        )
        return cls(blocks, block_size, len(data))

    def __len__(self) -> int:
        return len(self._blocks)

    def __iter__(self) -> Iterator[Tuple[int, bytes]]:
        """Yield (wire block number, payload) pairs in order."""
        for index, payload in enumerate(self._blocks, start=1):
            yield wire_block(index), payload

    def payload(self, index: int) -> bytes:
        if index < 1 or index > len(self._blocks):
            raise IndexError(f"Block {index} out of range 1..{len(self._blocks)}")
        return self._blocks[index - 1]

    def block_number(self, index: int) -> int:
        return wire_block(index)

    def is_last(self, index: int) -> bool:
        return index == len(self._blocks)

import pytest

from tftp.protocol.blocks import (
    FileBlocks, block_at, block_count, is_terminal, next_block, previous_block, wire_block,
)


@pytest.mark.parametrize("size, expected", [
    (0, 1),
    (1, 1),
    (511, 1),
    (512, 2),
    (1000, 2),
    (1024, 3),
])
def test_block_count(size, expected):
    assert block_count(size, 512) == expected


def test_block_count_rejects_negative():
    with pytest.raises(ValueError):
        block_count(-1, 512)


def test_block_at_slices_file():
    data = bytes(range(20))
    assert block_at(data, 1, 8) == data[:8]
    assert block_at(data, 2, 8) == data[8:16]
    assert block_at(data, 3, 8) == data[16:]


def test_block_at_terminal_empty_block():
    data = b"x" * 16
    assert block_at(data, 3, 8) == b""


@pytest.mark.parametrize("index", [0, 4, -1])
def test_block_at_out_of_range(index):
    with pytest.raises(IndexError):
        block_at(b"x" * 16, index, 8)


def test_block_numbers_wrap():
    assert wire_block(65535) == 65535
    assert wire_block(65536) == 0
    assert wire_block(65537) == 1
    assert next_block(65535) == 0
    assert previous_block(0) == 65535
    assert previous_block(1) == 0


def test_is_terminal():
    assert is_terminal(b"", 8)
    assert is_terminal(b"x" * 7, 8)
    assert not is_terminal(b"x" * 8, 8)


def test_file_blocks_concatenate_to_file():
    data = bytes(range(256)) * 3
    blocks = FileBlocks.from_bytes(data, 100)

    assert len(blocks) == block_count(len(data), 100)
    assert b"".join(payload for _, payload in blocks) == data
    assert [number for number, _ in blocks] == list(range(1, len(blocks) + 1))
    assert is_terminal(blocks.payload(len(blocks)), 100)
    assert all(len(blocks.payload(i)) == 100 for i in range(1, len(blocks)))


def test_file_blocks_exact_multiple_ends_with_empty_block():
    blocks = FileBlocks.from_bytes(b"a" * 512, 512)
    assert len(blocks) == 2
    assert blocks.payload(2) == b""
    assert blocks.is_last(2)
    assert not blocks.is_last(1)


def test_file_blocks_empty_file():
    blocks = FileBlocks.from_bytes(b"", 512)
    assert list(blocks) == [(1, b"")]
    assert blocks.size == 0


def test_file_blocks_wire_numbers_wrap():
    blocks = FileBlocks.from_bytes(b"x" * 65536, 1)
    assert len(blocks) == 65537
    assert blocks.block_number(65535) == 65535
    assert blocks.block_number(65536) == 0
    assert blocks.block_number(65537) == 1
    assert blocks.payload(65537) == b""

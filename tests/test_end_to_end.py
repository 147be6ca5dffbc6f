"""Real UDP transfers over the loopback interface."""

import asyncio
import os

import pytest

from tftp.config import TransferSettings
from tftp.protocol.packet import Error, ErrorCode, PacketCodec, ReadRequest, WriteRequest
from tftp.transfer import DatagramEndpoint, FailureReason, TftpServer, download_file

LOCALHOST = '127.0.0.1'
SETTINGS = TransferSettings(block_size=512, max_attempts=3, timeout_ms=200)


@pytest.fixture
def root(tmp_path):
    root = tmp_path / "server"
    root.mkdir()
    return root


@pytest.fixture
def output(tmp_path):
    return tmp_path / "downloads"


async def fetch(port, filename, output, settings=SETTINGS, progress=None):
    return await download_file(LOCALHOST, filename, output, port=port, settings=settings,
                               progress_callback=progress, local_host=LOCALHOST)


async def with_server(root, body, settings=SETTINGS, max_sessions=64):
    server = TftpServer(root, host=LOCALHOST, port=0, settings=settings,
                        max_sessions=max_sessions)
    await server.start()
    try:
        value = await body(server.address[1])
        await server.pool.wait()
        return value, server.get_stats()
    finally:
        await server.stop()


def test_file_spanning_two_blocks(root, output):
    data = os.urandom(1000)
    (root / "cat.txt").write_bytes(data)
    progress = []

    async def body(port):
        return await fetch(port, "cat.txt", output,
                           progress=lambda size, blocks: progress.append(size))

    result, stats = asyncio.run(with_server(root, body))

    assert result.success
    assert result.blocks == 2
    assert progress == [512, 1000]
    assert (output / "cat.txt").read_bytes() == data
    assert not (output / "cat.txt.part").exists()
    assert stats['sessions_completed'] == 1
    assert stats['bytes_sent'] == 1000


def test_exact_block_multiple(root, output):
    data = b"b" * 512
    (root / "block.bin").write_bytes(data)
    progress = []

    async def body(port):
        return await fetch(port, "block.bin", output,
                           progress=lambda size, blocks: progress.append(size))

    result, _ = asyncio.run(with_server(root, body))

    assert result.success
    assert result.blocks == 2
    assert progress == [512, 512]
    assert (output / "block.bin").read_bytes() == data


def test_empty_file(root, output):
    (root / "empty").write_bytes(b"")

    result, _ = asyncio.run(with_server(root, lambda port: fetch(port, "empty", output)))

    assert result.success
    assert result.blocks == 1
    assert (output / "empty").read_bytes() == b""


def test_missing_file(root, output):
    result, stats = asyncio.run(with_server(root, lambda port: fetch(port, "absent", output)))

    assert result.reason is FailureReason.PEER_ERROR
    assert result.error_code == ErrorCode.FILE_NOT_FOUND
    assert "not found" in result.message.lower()
    assert result.retransmits == 0
    assert not (output / "absent").exists()
    assert stats['requests_rejected'] == 1


def test_silent_server(output):
    settings = TransferSettings(max_attempts=3, timeout_ms=50)

    async def run():
        silent = await DatagramEndpoint.bind(LOCALHOST, 0)
        async with silent:
            return await fetch(silent.local_address[1], "x.bin", output, settings=settings)

    result = asyncio.run(run())

    assert result.reason is FailureReason.RETRIES_EXHAUSTED
    assert result.timeouts == 3
    assert not (output / "x.bin").exists()
    assert (output / "x.bin.part").exists()


def test_concurrent_downloads(root, output):
    files = {f"file{i}.bin": os.urandom(700 + i * 300) for i in range(4)}
    for name, data in files.items():
        (root / name).write_bytes(data)

    async def body(port):
        return await asyncio.gather(*(fetch(port, name, output) for name in files))

    results, stats = asyncio.run(with_server(root, body))

    assert all(result.success for result in results)
    assert len({result.peer for result in results}) == len(files)
    for name, data in files.items():
        assert (output / name).read_bytes() == data
    assert stats['sessions_completed'] == len(files)


def test_nested_path_saved_under_base_name(root, output):
    (root / "boot").mkdir()
    (root / "boot" / "kernel.img").write_bytes(b"k" * 2000)

    result, _ = asyncio.run(with_server(root, lambda port: fetch(port, "boot/kernel.img", output)))

    assert result.success
    assert (output / "kernel.img").read_bytes() == b"k" * 2000


def test_write_request_is_refused(root):
    codec = PacketCodec(512)

    async def body(port):
        async with await DatagramEndpoint.bind(LOCALHOST, 0) as client:
            client.send(codec.encode(WriteRequest("upload.bin")), (LOCALHOST, port))
            reply = await client.receive(timeout=2.0)
        return reply, port

    (reply, port), stats = asyncio.run(with_server(root, body))

    assert reply is not None
    assert reply.address == (LOCALHOST, port)
    assert codec.decode(reply.data) == Error(ErrorCode.ILLEGAL_OPERATION, "Write not supported")
    assert stats['requests_rejected'] == 1
    assert not (root / "upload.bin").exists()


def test_busy_server_refuses(root, output):
    (root / "a.bin").write_bytes(b"a" * 100)
    codec = PacketCodec(512)

    async def body(port):
        # Nobody acknowledges this transfer, so it holds the only slot
        async with await DatagramEndpoint.bind(LOCALHOST, 0) as hog:
            hog.send(codec.encode(ReadRequest("a.bin")), (LOCALHOST, port))
            await hog.receive(timeout=2.0)
            return await fetch(port, "a.bin", output)

    result, _ = asyncio.run(with_server(root, body, max_sessions=1))

    assert result.reason is FailureReason.PEER_ERROR
    assert result.message == "Server busy"


def test_endpoint_refuses_to_send_once_closed():
    async def run():
        async with await DatagramEndpoint.bind(LOCALHOST, 0) as endpoint:
            assert not endpoint.closed
        return endpoint

    endpoint = asyncio.run(run())

    assert endpoint.closed
    with pytest.raises(ConnectionError):
        endpoint.send(b"late", (LOCALHOST, 9))

import asyncio

import pytest

from tftp.errors import AccessViolation, FileNotFound, FileTooLarge
from tftp.file.storage import FileSink, read_all_bytes, resolve_path


def test_resolve_path_inside_root(tmp_path):
    (tmp_path / "sub").mkdir()
    assert resolve_path(tmp_path, "sub/a.txt") == (tmp_path / "sub" / "a.txt").resolve()


@pytest.mark.parametrize("name", ["../secret", "sub/../../secret", "/etc/passwd", "."])
def test_resolve_path_rejects_escapes(tmp_path, name):
    with pytest.raises(AccessViolation):
        resolve_path(tmp_path, name)


def test_read_all_bytes(tmp_path):
    path = tmp_path / "a.bin"
    path.write_bytes(b"hello")
    assert asyncio.run(read_all_bytes(path)) == b"hello"


def test_read_missing_file(tmp_path):
    with pytest.raises(FileNotFound):
        asyncio.run(read_all_bytes(tmp_path / "missing"))


def test_read_directory_is_not_found(tmp_path):
    (tmp_path / "dir").mkdir()
    with pytest.raises(FileNotFound):
        asyncio.run(read_all_bytes(tmp_path / "dir"))


def test_read_too_large(tmp_path):
    path = tmp_path / "big.bin"
    path.write_bytes(b"x" * 11)
    assert asyncio.run(read_all_bytes(path, max_bytes=11)) == b"x" * 11
    with pytest.raises(FileTooLarge) as info:
        asyncio.run(read_all_bytes(path, max_bytes=10))
    assert info.value.size == 11


def test_sink_commit_moves_file_into_place(tmp_path):
    target = tmp_path / "out.bin"

    async def run():
        sink = await FileSink(target).open()
        await sink.write(b"abc")
        await sink.write(b"def")
        assert sink.partial_path.exists()
        assert not target.exists()
        await sink.commit()
        return sink

    sink = asyncio.run(run())
    assert target.read_bytes() == b"abcdef"
    assert not sink.partial_path.exists()
    assert sink.committed
    assert sink.closed
    assert sink.bytes_written == 6


def test_sink_abort_keeps_partial(tmp_path):
    target = tmp_path / "out.bin"

    async def run():
        sink = await FileSink(target).open()
        await sink.write(b"abc")
        await sink.abort()
        await sink.abort()
        return sink

    sink = asyncio.run(run())
    assert not target.exists()
    assert sink.partial_path.read_bytes() == b"abc"
    assert sink.partial_path.name == "out.bin.part"
    assert not sink.committed


def test_sink_abort_can_discard_partial(tmp_path):
    target = tmp_path / "out.bin"

    async def run():
        sink = await FileSink(target, keep_partial=False).open()
        await sink.write(b"abc")
        await sink.abort()
        return sink

    sink = asyncio.run(run())
    assert not target.exists()
    assert not sink.partial_path.exists()


def test_sink_rejects_use_after_close(tmp_path):
    async def run():
        sink = await FileSink(tmp_path / "out.bin").open()
        await sink.abort()
        with pytest.raises(ValueError):
            await sink.write(b"late")
        with pytest.raises(ValueError):
            await sink.commit()

    asyncio.run(run())


def test_sink_context_manager_aborts_unless_committed(tmp_path):
    target = tmp_path / "out.bin"

    async def run():
        async with FileSink(target) as sink:
            await sink.write(b"x")
        return sink

    sink = asyncio.run(run())
    assert sink.closed
    assert not target.exists()
    assert sink.partial_path.exists()

"""
File Storage

Design Decision: Download Sink
==============================

Options Considered:
1. Write straight to the target file
   - Simple
   - A failed transfer leaves a truncated file that looks complete

2. Buffer the whole file in memory, write on success
   - No partial files
   - Memory grows with file size, nothing left to inspect on failure

3. Write to <target>.part, rename on success
   - Target only ever appears complete
   - The .part file marks a failed transfer and can be inspected

Decision: Option 3 (write to temp, then rename).

Serving side: files are read whole (they are capped at max_blocks * block_size)
and resolved strictly inside the served root directory.
"""

import logging
import stat
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from ..errors import AccessViolation, FileNotFound, FileTooLarge

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = '.part'


def resolve_path(root: Path, filename: str) -> Path:
    """
    Resolve a requested filename inside the served directory.

    Raises:
        AccessViolation: the name points outside the root
    """
    root = Path(root).resolve()
    candidate = (root / filename).resolve()
    try:
        candidate.relative_to(root)
    except ValueError:
        raise AccessViolation(filename, "path escapes the served directory") from None
    if candidate == root:
        raise AccessViolation(filename, "not a file")
    return candidate


async def read_all_bytes(path: Path, max_bytes: Optional[int] = None) -> bytes:
    """
    Read a whole file.

    Raises:
        FileNotFound: missing or not a regular file
        FileTooLarge: size above max_bytes
        AccessViolation: unreadable
    """
    path = Path(path)
    try:
        st = await aiofiles.os.stat(path)
    except FileNotFoundError:
        raise FileNotFound(path.name) from None
    except PermissionError:
        raise AccessViolation(path.name, "permission denied") from None

    if not stat.S_ISREG(st.st_mode):
        raise FileNotFound(path.name)

    if max_bytes is not None and st.st_size > max_bytes:
        raise FileTooLarge(st.st_size, max_bytes)

    try:
        async with aiofiles.open(path, 'rb') as f:
            data = await f.read()
    except FileNotFoundError:
        raise FileNotFound(path.name) from None
    except PermissionError:
        raise AccessViolation(path.name, "permission denied") from None

    # File may have grown between stat and read
    if max_bytes is not None and len(data) > max_bytes:
        raise FileTooLarge(len(data), max_bytes)

    return data


class FileSink:
    """
    Output for a download.

    Bytes go to `<target>.part`; commit() renames it to the target,
    abort() leaves it behind as the failure marker (or removes it when
    keep_partial is False). Either one closes the sink, exactly once.
    """

    def __init__(self, target: Path, keep_partial: bool = True):
        self.target = Path(target)
        self.partial_path = self.target.with_name(self.target.name + PARTIAL_SUFFIX)
        self.keep_partial = keep_partial
        self.bytes_written = 0
        self._file = None
        self._closed = False
        self.committed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> 'FileSink':
        self._file = await aiofiles.open(self.partial_path, 'wb')
        return self

    async def write(self, chunk: bytes):
        if self._closed or self._file is None:
            raise ValueError("Sink is not open")
        await self._file.write(chunk)
        self.bytes_written += len(chunk)

    async def commit(self) -> Path:
        """Finish a successful transfer and move the file into place."""
        if self._closed:
            raise ValueError("Sink already closed")
        await self._close_file()
        await aiofiles.os.replace(self.partial_path, self.target)
        self.committed = True
        logger.debug(f"Saved {self.bytes_written:,} bytes to {self.target}")
        return self.target

    async def abort(self):
        """Close after a failed transfer. Safe to call more than once."""
        if self._closed:
            return
        await self._close_file()
        if not self.keep_partial:
            try:
                await aiofiles.os.remove(self.partial_path)
            except FileNotFoundError:
                pass
        else:
            logger.debug(f"Partial download left at {self.partial_path}")

    async def _close_file(self):
        self._closed = True
        if self._file is not None:
            await self._file.close()
            self._file = None

    async def __aenter__(self) -> 'FileSink':
        if self._file is None:
            await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.abort()

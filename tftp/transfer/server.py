"""
TFTP Server

Listens on the well-known port and hands every read request to its own
TransferWorker. The listener only ever waits for the next request;
transfers run in the session pool on their own ephemeral sockets.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from ..config import DEFAULT_PORT, TransferSettings
from ..errors import MalformedPacket
from ..protocol.binding import Address
from ..protocol.packet import Error, ErrorCode, PacketCodec, ReadRequest, WriteRequest
from .endpoint import Datagram, DatagramEndpoint
from .pool import SessionPool
from .session import FailureReason, TransferResult
from .worker import TransferWorker

logger = logging.getLogger(__name__)

# Failures that happen before a session socket exists
REJECTIONS = {
    FailureReason.FILE_NOT_FOUND,
    FailureReason.FILE_TOO_LARGE,
    FailureReason.ACCESS_VIOLATION,
    FailureReason.ILLEGAL_OPERATION,
}


class TftpServer:
    """
    Read-only TFTP server for one directory.

    Usage:
        server = TftpServer(Path('server'), port=6969)
        await server.start()
        ...
        await server.stop()
    """

    def __init__(self, root: Path, host: str = '0.0.0.0', port: int = DEFAULT_PORT,
                 settings: Optional[TransferSettings] = None, max_sessions: int = 64):
        self.root = Path(root)
        self.host = host
        self.port = port
        self.settings = settings or TransferSettings()
        self.codec = PacketCodec(self.settings.block_size)
        self.pool = SessionPool(max_sessions=max_sessions)

        self.endpoint: Optional[DatagramEndpoint] = None
        self._listen_task: Optional[asyncio.Task] = None
        self._running = False

        # Statistics
        self.requests_received = 0
        self.requests_rejected = 0
        self.sessions_started = 0
        self.sessions_completed = 0
        self.sessions_failed = 0
        self.bytes_sent = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Address:
        """Bound (host, port); the real port when started with port 0."""
        if self.endpoint is None:
            return (self.host, self.port)
        return self.endpoint.local_address

    async def start(self):
        """Bind the well-known port and start accepting requests."""
        if self._running:
            return

        self.endpoint = await DatagramEndpoint.bind(self.host, self.port)
        self._running = True
        self._listen_task = asyncio.create_task(self._listen())

        host, port = self.address
        logger.info(f"TFTP server listening on {host}:{port}, serving {self.root}")

    async def stop(self):
        """Stop listening and abandon in-flight transfers."""
        if not self._running:
            return

        self._running = False

        if self._listen_task:
            self._listen_task.cancel()
            try:
                await self._listen_task
            except asyncio.CancelledError:
                pass
            self._listen_task = None

        await self.pool.shutdown()

        if self.endpoint:
            self.endpoint.close()
            self.endpoint = None

        logger.info(f"TFTP server stopped. Served {self.sessions_completed} files, "
                    f"{self.bytes_sent:,} bytes")

    async def serve_forever(self):
        """Run until cancelled."""
        await self.start()
        await self._listen_task

    async def _listen(self):
        while self._running:
            datagram = await self.endpoint.receive()
            if datagram is not None:
                self._handle_datagram(datagram)

    def _handle_datagram(self, datagram: Datagram):
        """Dispatch one datagram received on the well-known port."""
        try:
            packet = self.codec.decode(datagram.data)
        except MalformedPacket as e:
            logger.debug(f"Dropping malformed request from {datagram.address}: {e}")
            return

        if isinstance(packet, WriteRequest):
            self.requests_received += 1
            self._refuse(datagram.address, ErrorCode.ILLEGAL_OPERATION, "Write not supported")
            return

        if not isinstance(packet, ReadRequest):
            logger.debug(f"Ignoring {type(packet).__name__} on the request port "
                         f"from {datagram.address}")
            return

        self.requests_received += 1

        if self.pool.is_full:
            self._refuse(datagram.address, ErrorCode.NOT_DEFINED, "Server busy")
            return

        logger.debug(f"RRQ {packet.filename} ({packet.mode}) from {datagram.address}")
        worker = TransferWorker(
            request=packet,
            peer=datagram.address,
            root=self.root,
            listener=self.endpoint,
            settings=self.settings,
            bind_host=self.address[0],
        )
        self.sessions_started += 1
        self.pool.spawn(
            self._run_session(worker),
            name=f"rrq-{datagram.address[0]}:{datagram.address[1]}",
        )

    async def _run_session(self, worker: TransferWorker) -> TransferResult:
        result = await worker.run()
        if result.success:
            self.sessions_completed += 1
            self.bytes_sent += result.bytes_transferred
        elif result.reason in REJECTIONS:
            self.requests_rejected += 1
        else:
            self.sessions_failed += 1
        return result

    def _refuse(self, address: Address, code: ErrorCode, message: str):
        self.requests_rejected += 1
        self.endpoint.send(self.codec.encode(Error(code=code, message=message)), address)
        logger.warning(f"Refused request from {address[0]}:{address[1]}: {message}")

    def get_stats(self) -> dict:
        """Get server statistics."""
        return {
            'address': f"{self.address[0]}:{self.address[1]}",
            'root': str(self.root),
            'running': self._running,
            'active_sessions': self.pool.active,
            'requests_received': self.requests_received,
            'requests_rejected': self.requests_rejected,
            'sessions_started': self.sessions_started,
            'sessions_completed': self.sessions_completed,
            'sessions_failed': self.sessions_failed,
            'bytes_sent': self.bytes_sent,
        }

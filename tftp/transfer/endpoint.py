"""
UDP Datagram Endpoint

Design Decision: Receiving with a Timeout
=========================================

Options Considered:
1. Blocking socket with settimeout() per worker thread
   - One OS thread per transfer
   - Shutdown has to wait for every socket timeout

2. loop.sock_recvfrom() on a non-blocking socket
   - Works, but needs manual socket setup per endpoint

3. asyncio DatagramProtocol feeding a queue
   - Transport owns the socket, clean close()
   - receive(timeout) is just wait_for() on the queue

Decision: DatagramProtocol + bounded asyncio.Queue.
State machines only see send(data, address) and receive(timeout), which
also makes them easy to drive from scripted endpoints in tests.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..protocol.binding import Address, normalize_address

logger = logging.getLogger(__name__)

# Datagrams buffered per endpoint before new ones are dropped
QUEUE_SIZE = 256


@dataclass(frozen=True)
class Datagram:
    """A received datagram and where it came from."""
    data: bytes
    address: Address


class DatagramQueueProtocol(asyncio.DatagramProtocol):
    """Pushes every received datagram into a queue."""

    def __init__(self, maxsize: int = QUEUE_SIZE):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.transport: Optional[asyncio.DatagramTransport] = None

    def connection_made(self, transport: asyncio.DatagramTransport):
        self.transport = transport

    def datagram_received(self, data: bytes, addr: Tuple):
        try:
            self.queue.put_nowait(Datagram(data=data, address=normalize_address(addr)))
        except asyncio.QueueFull:
            logger.debug(f"Receive queue full, dropping datagram from {addr}")

    def error_received(self, exc):
        # ICMP port unreachable and the like; the peer will time out
        logger.debug(f"Datagram error: {exc}")

    def connection_lost(self, exc):
        self.transport = None


class DatagramEndpoint:
    """
    One bound UDP socket.

    Use as an async context manager so the socket is released on every
    exit path.
    """

    def __init__(self, transport: asyncio.DatagramTransport,
                 protocol: DatagramQueueProtocol):
        self.transport = transport
        self.protocol = protocol
        self._closed = False

    @classmethod
    async def bind(cls, host: str = '0.0.0.0', port: int = 0) -> 'DatagramEndpoint':
        """Bind a UDP socket; port 0 picks an ephemeral port."""
        loop = asyncio.get_running_loop()
        transport, protocol = await loop.create_datagram_endpoint(
            DatagramQueueProtocol,
            local_addr=(host, port),
        )
        return cls(transport, protocol)

    @property
    def local_address(self) -> Address:
        return normalize_address(self.transport.get_extra_info('sockname'))

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, data: bytes, address: Address):
        """Send a datagram (fire and forget)."""
        if self._closed:
            raise ConnectionError("Endpoint closed")
        self.transport.sendto(data, address)

    async def receive(self, timeout: Optional[float] = None) -> Optional[Datagram]:
        """
        Wait for the next datagram.

        Args:
            timeout: Seconds to wait, None waits forever

        Returns:
            The datagram, or None if the timeout expired
        """
        queue = self.protocol.queue
        try:
            return queue.get_nowait()
        except asyncio.QueueEmpty:
            pass

        if timeout is not None and timeout <= 0:
            return None

        try:
            return await asyncio.wait_for(queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def close(self):
        if not self._closed:
            self._closed = True
            self.transport.close()

    async def __aenter__(self) -> 'DatagramEndpoint':
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.close()

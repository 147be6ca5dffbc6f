"""
TFTP Client

Design Decision: Client Loop
============================

Stop-and-wait download driven by a single receive-with-timeout call:

```
IDLE --RRQ--> AWAITING_FIRST_DATA --DATA(1)--> RECEIVING --short DATA--> COMPLETE
                   |      ^                       |   ^
                   |      | timeout: resend RRQ   |   | timeout: resend last ACK
                   |      +-----------------------+   +---- duplicate: resend last ACK
                   +-- ERROR / retries exhausted ------------> FAILED
```

- The first Data packet from the server's host binds the TID
- After that only the TID may talk to us, everything else is ignored
- Duplicates (the server missed our ACK) are answered with the last ACK
  and do not count against the attempt budget
- Only consecutive timeouts consume attempts
"""

import asyncio
import logging
import socket
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from ..config import DEFAULT_PORT, TransferSettings
from ..errors import (
    MalformedPacket, PeerError, RetriesExhausted, UnknownTransactionId,
)
from ..file.storage import FileSink
from ..protocol.binding import Address, TransactionBinding, normalize_address
from ..protocol.blocks import is_terminal, next_block, previous_block
from ..protocol.packet import (
    Ack, Data, Error, ErrorCode, Packet, PacketCodec, ReadRequest, encode_text,
)
from .endpoint import Datagram, DatagramEndpoint
from .session import FailureReason, TransferResult

logger = logging.getLogger(__name__)

# (bytes_received, blocks_received)
ProgressCallback = Callable[[int, int], None]


class ClientState(Enum):
    IDLE = 'idle'
    AWAITING_FIRST_DATA = 'awaiting_first_data'
    RECEIVING = 'receiving'
    COMPLETE = 'complete'
    FAILED = 'failed'


class TftpClient:
    """
    Downloads one file from a TFTP server.

    The endpoint only needs send(data, address) and
    `await receive(timeout) -> Datagram | None`.
    """

    def __init__(self, endpoint, server: Address,
                 settings: Optional[TransferSettings] = None,
                 progress_callback: Optional[ProgressCallback] = None):
        """
        Args:
            endpoint: Bound datagram endpoint used for the whole transfer
            server: (ip, port) of the server's well-known port
            settings: Protocol tunables
            progress_callback: Called after every accepted block
        """
        self.endpoint = endpoint
        self.server = normalize_address(server)
        self.settings = settings or TransferSettings()
        self.codec = PacketCodec(self.settings.block_size)
        self.progress_callback = progress_callback
        self.state = ClientState.IDLE

    async def download(self, filename: str, sink) -> TransferResult:
        """
        Request a file and write it to the sink.

        The sink is committed on success and aborted on failure.

        Returns:
            TransferResult, never raises for protocol failures
        """
        result = TransferResult(filename=filename)
        binding = TransactionBinding(self.server)

        try:
            request = self.codec.encode(ReadRequest(filename=filename, mode=self.settings.mode))
        except ValueError as e:
            self.state = ClientState.FAILED
            await sink.abort()
            logger.error(f"Cannot request {filename!r}: {e}")
            return result.fail(FailureReason.LOCAL_ERROR, str(e))

        try:
            await self._receive_file(request, filename, sink, binding, result)
            await sink.commit()
            result.succeed()
            self.state = ClientState.COMPLETE
            logger.info(f"Downloaded {filename}: {result.bytes_transferred:,} bytes "
                        f"in {result.blocks} blocks")

        except RetriesExhausted as e:
            result.fail(FailureReason.RETRIES_EXHAUSTED, str(e))
            logger.warning(f"Download of {filename} failed: {e}")

        except PeerError as e:
            result.fail(FailureReason.PEER_ERROR, e.message, error_code=int(e.code))
            logger.warning(f"Server refused {filename}: {e.message}")

        except OSError as e:
            if binding.is_bound:
                self._send_error(binding.tid, ErrorCode.DISK_FULL, "Could not write file")
            result.fail(FailureReason.LOCAL_ERROR, str(e))
            logger.error(f"Could not store {filename}: {e}")

        finally:
            if not result.success:
                self.state = ClientState.FAILED
                await sink.abort()

        return result

    async def _receive_file(self, request: bytes, filename: str, sink,
                            binding: TransactionBinding, result: TransferResult):
        settings = self.settings
        loop = asyncio.get_running_loop()

        last_packet = request
        last_destination = self.server
        self.endpoint.send(last_packet, last_destination)
        self.state = ClientState.AWAITING_FIRST_DATA
        logger.debug(f"Requested {filename} from {self.server[0]}:{self.server[1]}")

        expected = 1
        attempts = 0
        deadline = loop.time() + settings.timeout

        while True:
            datagram = await self.endpoint.receive(max(0.0, deadline - loop.time()))

            if datagram is None:
                attempts += 1
                result.timeouts += 1
                if attempts >= settings.max_attempts:
                    if binding.is_bound:
                        self._send_error(binding.tid, ErrorCode.NOT_DEFINED, "Too many attempts")
                    raise RetriesExhausted(attempts)

                logger.debug(f"Timeout {attempts}/{settings.max_attempts} "
                             f"in {self.state.value}, resending")
                self.endpoint.send(last_packet, last_destination)
                result.retransmits += 1
                deadline = loop.time() + settings.timeout
                continue

            packet = self._accept(datagram, binding, result)
            if packet is None:
                continue

            if isinstance(packet, Error):
                raise PeerError(packet.code, packet.message)

            if self.state is ClientState.AWAITING_FIRST_DATA:
                result.peer = binding.bind(datagram.address)
                self.state = ClientState.RECEIVING

            if packet.block != expected:
                # Server missed our last ACK, repeat it
                result.duplicates += 1
                last_packet = self.codec.encode(Ack(previous_block(expected)))
                last_destination = binding.tid
                self.endpoint.send(last_packet, last_destination)
                logger.debug(f"Unexpected block {packet.block} (want {expected}), "
                             f"re-acking {previous_block(expected)}")
                continue

            await sink.write(packet.payload)
            result.bytes_transferred += len(packet.payload)
            result.blocks += 1

            last_packet = self.codec.encode(Ack(packet.block))
            last_destination = binding.tid
            self.endpoint.send(last_packet, last_destination)
            attempts = 0
            deadline = loop.time() + settings.timeout

            if self.progress_callback:
                self.progress_callback(result.bytes_transferred, result.blocks)

            if is_terminal(packet.payload, settings.block_size):
                return

            expected = next_block(expected)

    def _accept(self, datagram: Datagram, binding: TransactionBinding,
                result: TransferResult) -> Optional[Packet]:
        """Filter a datagram down to a Data or Error packet from the right peer."""
        if binding.is_bound:
            try:
                binding.validate(datagram.address)
            except UnknownTransactionId as e:
                result.ignored += 1
                logger.debug(f"Ignoring datagram: {e}")
                return None
        elif not binding.from_server_host(datagram.address):
            result.ignored += 1
            logger.debug(f"Ignoring datagram from non-server host {datagram.address}")
            return None

        try:
            packet = self.codec.decode(datagram.data)
        except MalformedPacket as e:
            result.ignored += 1
            logger.debug(f"Dropping malformed datagram from {datagram.address}: {e}")
            return None

        if not isinstance(packet, (Data, Error)):
            result.ignored += 1
            logger.debug(f"Ignoring {type(packet).__name__} from {datagram.address}")
            return None

        return packet

    def _send_error(self, address: Address, code: ErrorCode, message: str):
        try:
            self.endpoint.send(self.codec.encode(Error(code=code, message=message)), address)
        except OSError as e:
            logger.debug(f"Could not send error to {address}: {e}")


async def resolve_host(host: str, port: int = DEFAULT_PORT) -> str:
    """Resolve a hostname to an IPv4 address string."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, port, family=socket.AF_INET,
                                   type=socket.SOCK_DGRAM)
    if not infos:
        raise OSError(f"Could not resolve {host}")
    return infos[0][4][0]


async def download_file(host: str, filename: str,
                        output_dir: Path = Path('.'),
                        port: int = DEFAULT_PORT,
                        settings: Optional[TransferSettings] = None,
                        progress_callback: Optional[ProgressCallback] = None,
                        keep_partial: bool = True,
                        local_host: str = '0.0.0.0') -> TransferResult:
    """
    Download a file from a TFTP server (convenience function).

    Creates the output directory, binds an ephemeral socket, runs the
    transfer and releases the socket.

    Args:
        host: Server hostname or IP
        filename: Name of the file on the server
        output_dir: Where to save the file (saved under its base name)
        port: Server's well-known port
        settings: Protocol tunables
        progress_callback: Called with (bytes, blocks) after every block
        keep_partial: Leave <name>.part behind when the transfer fails

    Returns:
        TransferResult
    """
    settings = settings or TransferSettings()
    output_dir = Path(output_dir)
    target = output_dir / Path(filename).name

    try:
        encode_text(filename, 'filename')
    except ValueError as e:
        logger.error(f"Cannot request {filename!r}: {e}")
        return TransferResult(filename=filename).fail(FailureReason.LOCAL_ERROR, str(e))

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        server_ip = await resolve_host(host, port)
        sink = await FileSink(target, keep_partial=keep_partial).open()
    except OSError as e:
        logger.error(f"Could not start download of {filename}: {e}")
        return TransferResult(filename=filename).fail(FailureReason.LOCAL_ERROR, str(e))

    try:
        endpoint = await DatagramEndpoint.bind(local_host, 0)
    except OSError as e:
        await sink.abort()
        logger.error(f"Could not bind a local socket: {e}")
        return TransferResult(filename=filename).fail(FailureReason.LOCAL_ERROR, str(e))

    async with endpoint:
        client = TftpClient(endpoint, (server_ip, port), settings, progress_callback)
        result = await client.download(filename, sink)

    if result.success:
        logger.info(f"Saved {filename} to {target}")
    return result

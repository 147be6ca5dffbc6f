"""
Server Transfer Worker

One worker per accepted read request:

```
PREPARING --file ok--> SENDING <--> AWAITING_ACK --ack of last block--> DONE
    |                                   |
    +-- not found / too large /         +-- retries exhausted / peer ERROR --> FAILED
        access violation: one ERROR
        from the well-known port --> FAILED
```

- Preparation failures are answered from the listener's socket, since no
  session port exists yet; there is no retry
- The transfer itself runs on a fresh ephemeral socket (the worker's TID)
- A duplicate ACK for an older block is ignored: no resend, the attempt
  counter and deadline are left alone
- Only consecutive timeouts count against max_attempts
"""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional

from ..config import TransferSettings
from ..errors import (
    AccessViolation, FileNotFound, FileTooLarge, MalformedPacket,
    PeerError, RetriesExhausted, UnknownTransactionId,
)
from ..file.storage import read_all_bytes, resolve_path
from ..protocol.binding import Address, TransactionBinding, normalize_address
from ..protocol.blocks import FileBlocks, previous_block
from ..protocol.packet import Ack, Data, Error, ErrorCode, PacketCodec, ReadRequest
from .endpoint import DatagramEndpoint
from .session import ERROR_CODES, FailureReason, TransferResult

logger = logging.getLogger(__name__)

# Opens the worker's session socket
EndpointFactory = Callable[[], Awaitable]


class WorkerState(Enum):
    PREPARING = 'preparing'
    SENDING = 'sending'
    AWAITING_ACK = 'awaiting_ack'
    DONE = 'done'
    FAILED = 'failed'


class TransferWorker:
    """
    Serves one file to one client.

    Owns its file bytes, its session socket and its counters; nothing is
    shared with other workers.
    """

    def __init__(self, request: ReadRequest, peer: Address, root: Path,
                 listener, settings: Optional[TransferSettings] = None,
                 bind_host: str = '0.0.0.0',
                 endpoint_factory: Optional[EndpointFactory] = None):
        """
        Args:
            request: The decoded read request
            peer: (ip, port) the request came from, becomes the TID
            root: Served directory
            listener: Well-known-port endpoint, used for one-shot rejections
            settings: Protocol tunables
            bind_host: Local address for the session socket
            endpoint_factory: Opens the session socket (defaults to an
                ephemeral DatagramEndpoint on bind_host)
        """
        self.request = request
        self.peer = normalize_address(peer)
        self.root = Path(root)
        self.listener = listener
        self.settings = settings or TransferSettings()
        self.codec = PacketCodec(self.settings.block_size)
        self.bind_host = bind_host
        self._endpoint_factory = endpoint_factory or self._bind_ephemeral
        self.state = WorkerState.PREPARING

    async def _bind_ephemeral(self) -> DatagramEndpoint:
        return await DatagramEndpoint.bind(self.bind_host, 0)

    async def run(self) -> TransferResult:
        """Serve the requested file. Never raises for protocol failures."""
        result = TransferResult(filename=self.request.filename, peer=self.peer)
        peer_str = f"{self.peer[0]}:{self.peer[1]}"

        blocks = await self._prepare(result)
        if blocks is None:
            self.state = WorkerState.FAILED
            return result

        logger.info(f"Sending {self.request.filename} ({blocks.size:,} bytes, "
                    f"{len(blocks)} blocks) to {peer_str}")

        try:
            endpoint = await self._endpoint_factory()
        except OSError as e:
            self._reject(result, FailureReason.LOCAL_ERROR, "Could not open session")
            self.state = WorkerState.FAILED
            logger.error(f"Could not bind session socket for {peer_str}: {e}")
            return result

        async with endpoint:
            binding = TransactionBinding(self.peer)
            binding.bind(self.peer)
            try:
                await self._send_blocks(endpoint, binding, blocks, result)
                result.succeed()
                self.state = WorkerState.DONE
                logger.info(f"Sent {self.request.filename} to {peer_str} "
                            f"({result.bytes_transferred:,} bytes)")

            except RetriesExhausted as e:
                self._send_error(endpoint, ErrorCode.NOT_DEFINED, "Too many attempts")
                result.fail(FailureReason.RETRIES_EXHAUSTED, str(e))
                self.state = WorkerState.FAILED
                logger.warning(f"Transfer of {self.request.filename} to {peer_str} failed: {e}")

            except PeerError as e:
                result.fail(FailureReason.PEER_ERROR, e.message, error_code=int(e.code))
                self.state = WorkerState.FAILED
                logger.warning(f"{peer_str} aborted {self.request.filename}: {e.message}")

        return result

    # === Preparing ===

    async def _prepare(self, result: TransferResult) -> Optional[FileBlocks]:
        """Resolve and read the file, or reject the request once."""
        filename = self.request.filename

        if self.request.mode.lower() != self.settings.mode:
            self._reject(result, FailureReason.ILLEGAL_OPERATION,
                         f"Unsupported mode {self.request.mode}")
            return None

        try:
            path = resolve_path(self.root, filename)
            data = await read_all_bytes(path, self.settings.max_bytes)
        except FileNotFound:
            self._reject(result, FailureReason.FILE_NOT_FOUND, "File Not Found")
            return None
        except FileTooLarge as e:
            self._reject(result, FailureReason.FILE_TOO_LARGE, "File Too Large")
            logger.debug(str(e))
            return None
        except AccessViolation as e:
            self._reject(result, FailureReason.ACCESS_VIOLATION, "Access Violation")
            logger.debug(str(e))
            return None
        except OSError as e:
            self._reject(result, FailureReason.ACCESS_VIOLATION, "Could not read file")
            logger.debug(f"Reading {filename} failed: {e}")
            return None

        return FileBlocks.from_bytes(data, self.settings.block_size)

    def _reject(self, result: TransferResult, reason: FailureReason, message: str):
        code = ERROR_CODES[reason]
        try:
            self.listener.send(self.codec.encode(Error(code=code, message=message)), self.peer)
        except OSError as e:
            logger.debug(f"Could not send rejection to {self.peer}: {e}")
        result.fail(reason, message, error_code=int(code))
        logger.warning(f"Rejected {self.request.filename} for "
                       f"{self.peer[0]}:{self.peer[1]}: {message}")

    # === Sending ===

    async def _send_blocks(self, endpoint, binding: TransactionBinding,
                           blocks: FileBlocks, result: TransferResult):
        settings = self.settings
        loop = asyncio.get_running_loop()

        for index in range(1, len(blocks) + 1):
            block = blocks.block_number(index)
            payload = blocks.payload(index)
            packet = self.codec.encode(Data(block=block, payload=payload))

            self.state = WorkerState.SENDING
            endpoint.send(packet, binding.tid)
            self.state = WorkerState.AWAITING_ACK

            attempts = 0
            deadline = loop.time() + settings.timeout

            while True:
                datagram = await endpoint.receive(max(0.0, deadline - loop.time()))

                if datagram is None:
                    attempts += 1
                    result.timeouts += 1
                    if attempts >= settings.max_attempts:
                        raise RetriesExhausted(attempts)
                    logger.debug(f"No ACK for block {block}, resending "
                                 f"({attempts}/{settings.max_attempts})")
                    endpoint.send(packet, binding.tid)
                    result.retransmits += 1
                    deadline = loop.time() + settings.timeout
                    continue

                try:
                    binding.validate(datagram.address)
                    reply = self.codec.decode(datagram.data)
                except (UnknownTransactionId, MalformedPacket) as e:
                    result.ignored += 1
                    logger.debug(f"Ignoring datagram: {e}")
                    continue

                if isinstance(reply, Error):
                    raise PeerError(reply.code, reply.message)

                if not isinstance(reply, Ack):
                    result.ignored += 1
                    continue

                if reply.block == block:
                    break

                if reply.block == previous_block(block):
                    result.duplicates += 1
                    logger.debug(f"Duplicate ACK {reply.block} while waiting for {block}")
                else:
                    result.ignored += 1
                    logger.debug(f"Unexpected ACK {reply.block} while waiting for {block}")

            result.blocks += 1
            result.bytes_transferred += len(payload)

    def _send_error(self, endpoint, code: ErrorCode, message: str):
        try:
            endpoint.send(self.codec.encode(Error(code=code, message=message)), self.peer)
        except OSError as e:
            logger.debug(f"Could not send error to {self.peer}: {e}")

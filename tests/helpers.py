"""Scripted stand-ins for the socket and filesystem collaborators."""

from collections import deque

from tftp.protocol import PacketCodec
from tftp.transfer.endpoint import Datagram


class ScriptedEndpoint:
    """
    Replays a fixed script of inbound datagrams.

    Each script item is a Datagram, or None for "receive timed out".
    Once the script runs out every receive times out.
    """

    def __init__(self, script=()):
        self.script = deque(script)
        self.sent = []
        self.closed = False

    def send(self, data, address):
        self.sent.append((data, tuple(address)))

    async def receive(self, timeout=None):
        if self.script:
            return self.script.popleft()
        return None

    def close(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.close()

    def sent_packets(self, codec: PacketCodec):
        return [(codec.decode(data), address) for data, address in self.sent]


class MemorySink:
    """Collects written bytes and records how it was closed."""

    def __init__(self):
        self.data = bytearray()
        self.committed = False
        self.aborted = False
        self.close_count = 0

    async def write(self, chunk):
        self.data += chunk

    async def commit(self):
        self.committed = True
        self.close_count += 1

    async def abort(self):
        self.aborted = True
        self.close_count += 1


def datagram(codec: PacketCodec, packet, address) -> Datagram:
    return Datagram(data=codec.encode(packet), address=address)

"""
Transaction Binding

A transfer's channel is identified by the (address, port) pair of the peer
that answered the request (its TID). The server answers from a fresh
ephemeral port per transfer, so after the first response every datagram
must come from exactly that pair. Anything else is a stray from another
session and is ignored without replying.
"""

import logging
from typing import Optional, Tuple

from ..errors import UnknownTransactionId

logger = logging.getLogger(__name__)

Address = Tuple[str, int]


def normalize_address(address) -> Address:
    """Reduce a socket address to (host, port); IPv6 flow info is dropped."""
    return (address[0], address[1])


class TransactionBinding:
    """
    Tracks the TID of one transfer.

    Before binding, only the server's host is trusted (any port): the
    server's one-shot Error comes from the well-known port while the first
    Data comes from the worker's ephemeral port.
    """

    def __init__(self, server: Address):
        self.server = normalize_address(server)
        self.tid: Optional[Address] = None

    @property
    def is_bound(self) -> bool:
        return self.tid is not None

    def bind(self, address) -> Address:
        """Capture the first responder's address as the TID."""
        self.tid = normalize_address(address)
        logger.debug(f"Transfer bound to TID {self.tid[0]}:{self.tid[1]}")
        return self.tid

    def from_server_host(self, address) -> bool:
        return normalize_address(address)[0] == self.server[0]

    def matches(self, address) -> bool:
        return self.tid is not None and normalize_address(address) == self.tid

    def validate(self, address) -> Address:
        """
        Check a datagram's source against the TID.

        Raises:
            UnknownTransactionId: the source does not match (or nothing is bound)
        """
        source = normalize_address(address)
        if not self.matches(source):
            raise UnknownTransactionId(source, self.tid)
        return source

"""
Transfer Module - Client, Server and Workers

Handles UDP stop-and-wait transfers between a client and the server.
"""

from .endpoint import Datagram, DatagramEndpoint
from .session import FailureReason, TransferResult
from .client import TftpClient, ClientState, download_file
from .worker import TransferWorker, WorkerState
from .pool import SessionPool
from .server import TftpServer

__all__ = [
    'Datagram',
    'DatagramEndpoint',
    'FailureReason',
    'TransferResult',
    'TftpClient',
    'ClientState',
    'download_file',
    'TransferWorker',
    'WorkerState',
    'SessionPool',
    'TftpServer',
]

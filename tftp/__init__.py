"""
TFTP - Trivial File Transfer Protocol over UDP

Read-only server and download client built on asyncio.
"""

from .config import Config, TransferSettings, load_config
from .transfer import (
    TftpClient,
    TftpServer,
    TransferResult,
    FailureReason,
    download_file,
)

__all__ = [
    'Config',
    'TransferSettings',
    'load_config',
    'TftpClient',
    'TftpServer',
    'TransferResult',
    'FailureReason',
    'download_file',
]

__version__ = '0.1.0'

"""
File Module - Reading served files and writing downloads
"""

from .storage import FileSink, read_all_bytes, resolve_path, PARTIAL_SUFFIX

__all__ = [
    'FileSink',
    'read_all_bytes',
    'resolve_path',
    'PARTIAL_SUFFIX',
]

"""Persistence boundary: stores that save and restore per-author logs."""

from .base import LoadResult, LogStore
from .codec import decode_operation, decode_record, encode_operation
from .directory import DirectoryLogStore, decode_author_dir, encode_author_dir
from .sqlite import SQLiteLogStore

__all__ = [
    "DirectoryLogStore",
    "LoadResult",
    "LogStore",
    "SQLiteLogStore",
    "decode_author_dir",
    "decode_operation",
    "decode_record",
    "encode_author_dir",
    "encode_operation",
]

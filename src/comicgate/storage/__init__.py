"""Durable state kept as small JSON documents and directories.

This module exports the document helpers and the runtime config store.
"""

from comicgate.storage.documents import read_json, write_bytes_atomic, write_json_atomic
from comicgate.storage.runtime_config import RuntimeConfig, RuntimeConfigStore

__all__ = [
    "RuntimeConfig",
    "RuntimeConfigStore",
    "read_json",
    "write_bytes_atomic",
    "write_json_atomic",
]

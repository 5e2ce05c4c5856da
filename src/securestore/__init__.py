"""
Secure key/value storage with transparent chunking of large values.

- base: `KeyValueStore` protocol and storage errors
- memory: dict-backed store (tests, local runs)
- s3_store: S3-backed store encrypted with Fernet
- chunked: splits oversized values across numbered items
"""

from .base import ItemTooLargeError, KeyValueStore, StorageError
from .chunked import ChunkedValueStore
from .memory import InMemoryKeyValueStore

__all__ = [
    "ChunkedValueStore",
    "InMemoryKeyValueStore",
    "ItemTooLargeError",
    "KeyValueStore",
    "StorageError",
]

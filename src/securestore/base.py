from __future__ import annotations

from typing import Optional, Protocol


class StorageError(RuntimeError):
    """A backing key/value store operation failed."""


class ItemTooLargeError(StorageError):
    """Value exceeds the per-item size limit of the backing store."""


class KeyValueStore(Protocol):
    """
    Minimal secure key/value storage primitive.

    - `get` returns None for keys that were never written (or were deleted).
    - `set` may reject values above a backend-specific size limit.
    - `delete` of a missing key is a no-op.
    """

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


def utf8_size(value: str) -> int:
    return len(value.encode("utf-8"))

"""
Chunked values on top of a size-limited secure key/value store.

Device secure storage rejects items above ~2048 bytes, which a serialized user
profile or permission list easily exceeds. Values larger than `chunk_size`
UTF-8 bytes are split across numbered items and reassembled on read:

    key               unchunked value (small values only)
    key_chunks        decimal chunk count (large values only)
    key_chunk_0..n-1  consecutive slices of the value

After a successful write exactly one of the two layouts exists for a key.
Chunks are split on code point boundaries, so each one is a valid string of
at most `chunk_size` bytes.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, TypeVar

from .base import KeyValueStore, StorageError, utf8_size


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 2000  # headroom below the ~2048 byte platform limit

# A single code point is at most 4 bytes in UTF-8
_MIN_CHUNK_SIZE = 4

T = TypeVar("T")


class CorruptChunkCountError(StorageError):
    """Control item holds something other than a non-negative integer."""


def control_key(key: str) -> str:
    return f"{key}_chunks"


def chunk_key(key: str, index: int) -> str:
    return f"{key}_chunk_{index}"


def split_utf8(value: str, limit: int) -> List[str]:
    """Split `value` into consecutive pieces of at most `limit` UTF-8 bytes.

    Pieces are filled greedily and never break a code point. ASCII input is
    sliced directly, which matches plain character slicing.
    """
    if limit < _MIN_CHUNK_SIZE:
        raise ValueError(f"limit must be >= {_MIN_CHUNK_SIZE}")
    if value.isascii():
        return [value[i : i + limit] for i in range(0, len(value), limit)]

    pieces: List[str] = []
    start = 0
    size = 0
    for i, ch in enumerate(value):
        n = len(ch.encode("utf-8"))
        if size + n > limit:
            pieces.append(value[start:i])
            start = i
            size = 0
        size += n
    if start < len(value):
        pieces.append(value[start:])
    return pieces


class ChunkedValueStore:
    """
    Store strings of any length on a `KeyValueStore` with a per-item limit.

    Two flavours of every operation:
    - `put` / `fetch` / `remove` raise `StorageError` when the backing store fails.
    - `write` / `read` / `delete` are best effort: failures are logged and the
      call returns None, so callers cannot tell a failed write from a good one.

    Backing store calls are issued one at a time, in order. On the chunked
    path the control item is written after every chunk, so an interrupted
    write leaves the previous control item (and thus the previous value) in
    charge. Concurrent writers to the same key are not coordinated.
    """

    def __init__(self, store: KeyValueStore, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size < _MIN_CHUNK_SIZE:
            raise ValueError(f"chunk_size must be >= {_MIN_CHUNK_SIZE}")
        self._store = store
        self._chunk_size = chunk_size

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    # --------------- Strict API ---------------
    def put(self, key: str, value: str) -> None:
        """Persist `value` under `key`, chunking it when it is too large."""
        if not key:
            raise ValueError("key is required")
        try:
            value.encode("utf-8")
        except UnicodeEncodeError as ex:
            raise StorageError(f"value for {key!r} is not encodable as UTF-8") from ex
        try:
            previous = self._chunk_count(key)
        except CorruptChunkCountError:
            logger.warning("Ignoring corrupt chunk count for %s", key)
            previous = None
        except StorageError:
            # Stale chunks of an earlier value may be left behind
            logger.warning("Could not read chunk count for %s; writing anyway", key, exc_info=True)
            previous = None

        if utf8_size(value) <= self._chunk_size:
            self._set(key, value)
            self._delete(control_key(key))
            # Reverse migration: drop chunks of an earlier large value
            for i in range(previous or 0):
                self._delete(chunk_key(key, i))
            return

        chunks = split_utf8(value, self._chunk_size)
        for i, chunk in enumerate(chunks):
            self._set(chunk_key(key, i), chunk)
        self._set(control_key(key), str(len(chunks)))
        self._delete(key)
        # Earlier value may have had more chunks than this one
        for i in range(len(chunks), previous or 0):
            self._delete(chunk_key(key, i))
        logger.debug("Stored %s in %d chunks", key, len(chunks))

    def fetch(self, key: str) -> Optional[str]:
        """Return the value stored under `key`, or None if there is none.

        A chunk missing from the middle of a chunked value is skipped.
        """
        count = self._chunk_count(key)
        if count is None:
            return self._get(key)

        parts: List[str] = []
        for i in range(count):
            chunk = self._get(chunk_key(key, i))
            if chunk:
                parts.append(chunk)
            else:
                logger.warning("Chunk %d of %d missing for %s", i, count, key)
        return "".join(parts)

    def remove(self, key: str) -> None:
        """Delete every item `key` may occupy, whichever layout is active.

        Each deletion is attempted even if an earlier one failed; the first
        failure is raised once all have been tried.
        """
        first_error: Optional[StorageError] = None

        def attempt(fn: Callable[[], T]) -> Optional[T]:
            nonlocal first_error
            try:
                return fn()
            except StorageError as exc:
                if first_error is None:
                    first_error = exc
                return None

        count = attempt(lambda: self._chunk_count(key))
        for i in range(count or 0):
            attempt(lambda i=i: self._delete(chunk_key(key, i)))
        attempt(lambda: self._delete(control_key(key)))
        attempt(lambda: self._delete(key))

        if first_error is not None:
            raise first_error

    # --------------- Best-effort API ---------------
    def write(self, key: str, value: str) -> None:
        try:
            self.put(key, value)
        except StorageError:
            logger.exception("Error saving large item %s", key)

    def read(self, key: str) -> Optional[str]:
        try:
            return self.fetch(key)
        except StorageError:
            logger.exception("Error getting large item %s", key)
            return None

    def delete(self, key: str) -> None:
        try:
            self.remove(key)
        except StorageError:
            logger.exception("Error deleting large item %s", key)

    # --------------- Internal ---------------
    def _chunk_count(self, key: str) -> Optional[int]:
        raw = self._get(control_key(key))
        if not raw:
            return None
        try:
            count = int(raw, 10)
        except ValueError as ex:
            raise CorruptChunkCountError(f"Corrupt chunk count for {key!r}: {raw!r}") from ex
        if count < 0:
            raise CorruptChunkCountError(f"Corrupt chunk count for {key!r}: {raw!r}")
        return count

    def _get(self, key: str) -> Optional[str]:
        try:
            return self._store.get(key)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"get {key!r} failed") from exc

    def _set(self, key: str, value: str) -> None:
        try:
            self._store.set(key, value)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"set {key!r} failed") from exc

    def _delete(self, key: str) -> None:
        try:
            self._store.delete(key)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"delete {key!r} failed") from exc


__all__ = [
    "ChunkedValueStore",
    "CorruptChunkCountError",
    "DEFAULT_CHUNK_SIZE",
    "chunk_key",
    "control_key",
    "split_utf8",
]

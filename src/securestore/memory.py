from __future__ import annotations

from typing import Dict, List, Optional

from .base import ItemTooLargeError, utf8_size


class InMemoryKeyValueStore:
    """
    Dict-backed `KeyValueStore`.

    When `max_item_bytes` is set, `set` rejects values whose UTF-8 encoding is
    larger, the same way device secure storage does.
    """

    def __init__(self, *, max_item_bytes: Optional[int] = None) -> None:
        if max_item_bytes is not None and max_item_bytes <= 0:
            raise ValueError("max_item_bytes must be > 0")
        self._items: Dict[str, str] = {}
        self._max_item_bytes = max_item_bytes

    def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        if self._max_item_bytes is not None:
            size = utf8_size(value)
            if size > self._max_item_bytes:
                raise ItemTooLargeError(
                    f"value for {key!r} is {size} bytes (limit {self._max_item_bytes})"
                )
        self._items[key] = value

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return sorted(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

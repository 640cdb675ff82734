"""Arena owning every object constructed during one load or one build."""

from __future__ import annotations

import threading
from typing import Any, List

__all__ = ["Arena"]


class Arena:
    """Append-only object store.

    Objects are never freed individually; :meth:`release` drops the whole
    arena at once. Byte accounting follows the fixed-size representation of
    records (their ``LAYOUT`` size) and the raw length of strings/payloads.
    """

    def __init__(self, label: str = "zone"):
        self.label = label
        self._objects: List[Any] = []
        self._bytes = 0
        self._lock = threading.Lock()

    @property
    def bytes_allocated(self) -> int:
        return self._bytes

    @property
    def object_count(self) -> int:
        return len(self._objects)

    def adopt(self, obj: Any, size: int | None = None) -> Any:
        if size is None:
            layout = getattr(type(obj), "LAYOUT", None)
            size = layout.size if layout is not None else 0
        with self._lock:
            self._objects.append(obj)
            self._bytes += size
        return obj

    def duplicate_string(self, raw: bytes | str) -> str:
        if isinstance(raw, str):
            value = raw
            size = len(raw.encode("utf-8")) + 1
        else:
            value = bytes(raw).decode("utf-8")
            size = len(raw) + 1
        return self.adopt(value, size)

    def duplicate_bytes(self, raw: bytes | bytearray | memoryview) -> bytes:
        value = bytes(raw)
        return self.adopt(value, len(value))

    def release(self) -> None:
        with self._lock:
            self._objects.clear()
            self._bytes = 0

    def __repr__(self) -> str:
        return f"Arena({self.label!r}, objects={self.object_count}, bytes={self.bytes_allocated})"

"""Fixed-size record layouts.

A record is a dataclass carrying a ``LAYOUT`` class attribute that describes
its on-disk representation field by field. Scalars map to ``struct`` codes,
pointer fields are 8 bytes, asset references are a 4-byte asset-table index
(index + 1, zero meaning "no reference") and inline fields embed a fixed
number of sub-records.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Dict, Optional, Tuple
import struct

from .constants import (
    POINTER_PRESENT,
    POINTER_SIZE,
    AssetType,
    type_to_string,
)
from .errors import TruncatedDataError

__all__ = [
    "AssetRef",
    "FieldKind",
    "Field",
    "Layout",
    "scalar",
    "pointer",
    "asset_ref",
    "inline",
    "padding",
    "pack_record",
    "unpack_record",
    "record_size",
]


@dataclass(frozen=True, slots=True)
class AssetRef:
    """Identity of an asset: (type, name)."""

    asset_type: AssetType
    name: str

    def __str__(self) -> str:
        return f"{type_to_string(self.asset_type)}:{self.name}"


class FieldKind(Enum):
    SCALAR = auto()
    POINTER = auto()
    ASSET_REF = auto()
    INLINE = auto()
    PADDING = auto()


@dataclass(frozen=True, slots=True)
class Field:
    name: str
    kind: FieldKind
    fmt: str = ""
    record: Any = None
    count: int = 0
    asset_type: Optional[AssetType] = None

    @property
    def size(self) -> int:
        if self.kind is FieldKind.SCALAR:
            return struct.calcsize("<" + self.fmt)
        if self.kind is FieldKind.POINTER:
            return POINTER_SIZE
        if self.kind is FieldKind.ASSET_REF:
            return 4
        if self.kind is FieldKind.INLINE:
            return self.record.LAYOUT.size * self.count
        return self.count


def scalar(name: str, fmt: str) -> Field:
    return Field(name, FieldKind.SCALAR, fmt=fmt)


def pointer(name: str) -> Field:
    return Field(name, FieldKind.POINTER)


def asset_ref(name: str, asset_type: AssetType) -> Field:
    return Field(name, FieldKind.ASSET_REF, asset_type=asset_type)


def inline(name: str, record: Any, count: int) -> Field:
    return Field(name, FieldKind.INLINE, record=record, count=count)


def padding(size: int) -> Field:
    return Field("", FieldKind.PADDING, count=size)


class Layout:
    def __init__(self, *fields: Field):
        self.fields: Tuple[Field, ...] = fields
        self._by_name: Dict[str, Field] = {}
        self._offsets: Dict[str, int] = {}
        offset = 0
        for f in fields:
            if f.name:
                self._by_name[f.name] = f
                self._offsets[f.name] = offset
            offset += f.size
        self.size = offset

    def field(self, name: str) -> Field:
        return self._by_name[name]

    def offset_of(self, name: str) -> int:
        return self._offsets[name]

    def __contains__(self, name: str) -> bool:
        return name in self._by_name


def record_size(record_type: Any) -> int:
    return record_type.LAYOUT.size


def pack_record(
    record: Any, *, encode_ref: Callable[[AssetRef], Optional[int]]
) -> bytes:
    """Pack ``record`` into its fixed-size representation.

    Non-null pointers are emitted as ``POINTER_PRESENT``; the handler is
    expected to patch them (marker or ``clear_pointer``) before the asset is
    finished.
    """
    out = bytearray()
    for f in type(record).LAYOUT.fields:
        if f.kind is FieldKind.PADDING:
            out += b"\x00" * f.count
            continue
        value = getattr(record, f.name)
        if f.kind is FieldKind.SCALAR:
            try:
                out += struct.pack("<" + f.fmt, value)
            except struct.error as exc:
                raise ValueError(
                    f"{type(record).__name__}.{f.name}={value!r}: {exc}"
                ) from exc
        elif f.kind is FieldKind.POINTER:
            raw = 0 if value is None else POINTER_PRESENT
            out += struct.pack("<Q", raw)
        elif f.kind is FieldKind.ASSET_REF:
            index = None if value is None else encode_ref(value)
            out += struct.pack("<I", 0 if index is None else index + 1)
        else:  # INLINE
            items = list(value or [])
            if len(items) != f.count:
                raise ValueError(
                    f"{type(record).__name__}.{f.name} expects {f.count} entries, got {len(items)}"
                )
            for item in items:
                out += pack_record(item, encode_ref=encode_ref)
    return bytes(out)


def unpack_record(
    record_type: Any,
    data: bytes,
    offset: int,
    *,
    decode_pointer: Callable[[int, int], Any],
    decode_ref: Callable[[int, Field], Optional[AssetRef]],
) -> Any:
    """Unpack a record from ``data`` at ``offset``.

    ``decode_pointer(raw, field_offset)`` maps a raw pointer value to the
    in-memory placeholder; ``decode_ref(index, field)`` maps an asset-table
    index to an :class:`AssetRef`.
    """
    layout = record_type.LAYOUT
    if offset < 0 or offset + layout.size > len(data):
        raise TruncatedDataError(
            f"{record_type.__name__} needs {layout.size} bytes at {offset}",
            {"available": max(0, len(data) - offset)},
        )
    values: Dict[str, Any] = {}
    pos = offset
    for f in layout.fields:
        if f.kind is FieldKind.SCALAR:
            (values[f.name],) = struct.unpack_from("<" + f.fmt, data, pos)
        elif f.kind is FieldKind.POINTER:
            (raw,) = struct.unpack_from("<Q", data, pos)
            values[f.name] = decode_pointer(raw, pos)
        elif f.kind is FieldKind.ASSET_REF:
            (raw,) = struct.unpack_from("<I", data, pos)
            values[f.name] = None if raw == 0 else decode_ref(raw - 1, f)
        elif f.kind is FieldKind.INLINE:
            items = []
            sub = pos
            for _ in range(f.count):
                items.append(
                    unpack_record(
                        f.record,
                        data,
                        sub,
                        decode_pointer=decode_pointer,
                        decode_ref=decode_ref,
                    )
                )
                sub += f.record.LAYOUT.size
            values[f.name] = items
        pos += f.size
    return record_type(**values)

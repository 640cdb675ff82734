"""Zone stream writer.

The writer accumulates three partitions (see :class:`XBlock`) behind a
push/pop stack. Handlers write an asset as its fixed-size record followed by
each variable-length child in field order; pointer fields are patched with
stream offset markers (or cleared, with a relocation entry) through the
:class:`WriteHandle` returned by :meth:`ZoneBuffer.write`.

``finish()`` lays the zone out as::

    header | stream directory | asset table | relocations | stream files
    | names | VIRTUAL | PHYSICAL | TEMP

with every partition starting on an 8-byte boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional
import struct

from .constants import (
    ASSET_ENTRY_PREFIX_FORMAT,
    ASSET_FLAG_REFERENCED,
    DEFAULT_STREAM,
    HEADER_FORMAT,
    HEADER_SIZE,
    MARKER_STREAM_SHIFT,
    MAX_ALIGN_SHIFT,
    RELOCATION_FORMAT,
    RELOCATION_SIZE,
    STREAM_ALIGNMENT,
    STREAM_DIR_ENTRY_FORMAT,
    STREAM_DIR_ENTRY_SIZE,
    STREAM_ORDER,
    STREAMFILE_SIZE,
    ZONE_MAGIC,
    AssetType,
    XBlock,
)
from .errors import StreamStackError
from .records import AssetRef, FieldKind, pack_record
from .streams import PackFileWriter, StreamFileRecord

__all__ = [
    "StreamPointer",
    "WriteHandle",
    "ZoneBuffer",
    "encode_marker",
    "asset_entry_format",
]


@dataclass(frozen=True, slots=True)
class StreamPointer:
    """Location of a child object inside a zone partition."""

    stream: XBlock
    offset: int


def encode_marker(ptr: StreamPointer) -> int:
    return ((int(ptr.stream) + 1) << MARKER_STREAM_SHIFT) | ptr.offset


def asset_entry_format() -> str:
    return ASSET_ENTRY_PREFIX_FORMAT + "Q" * len(STREAM_ORDER)


def _pad_to(buf: bytearray, alignment: int) -> None:
    pad = (alignment - len(buf) % alignment) % alignment
    if pad:
        buf.extend(b"\x00" * pad)


@dataclass(slots=True)
class _AssetEntry:
    asset_type: int
    flags: int
    name_offset: int
    cursors: List[int]


@dataclass(slots=True)
class _Relocation:
    field_stream: XBlock
    field_offset: int
    target: StreamPointer


class WriteHandle:
    """Post-write access to a record's fields inside its stream.

    Assigning a :class:`StreamPointer` (or None) to a pointer field patches
    the marker; assigning an int to a scalar field repacks it in place.
    """

    __slots__ = ("_buffer", "_record_type", "stream", "offset")

    def __init__(self, buffer: "ZoneBuffer", record_type: Any, stream: XBlock, offset: int):
        object.__setattr__(self, "_buffer", buffer)
        object.__setattr__(self, "_record_type", record_type)
        object.__setattr__(self, "stream", stream)
        object.__setattr__(self, "offset", offset)

    def field_offset(self, name: str) -> int:
        return self.offset + self._record_type.LAYOUT.offset_of(name)

    def __setattr__(self, name: str, value: Any) -> None:
        layout = self._record_type.LAYOUT
        if name not in layout:
            raise AttributeError(f"{self._record_type.__name__} has no field {name!r}")
        f = layout.field(name)
        at = self.field_offset(name)
        if f.kind is FieldKind.POINTER:
            raw = 0 if value is None else encode_marker(value)
            self._buffer._patch(self.stream, at, struct.pack("<Q", raw))
        elif f.kind is FieldKind.SCALAR:
            self._buffer._patch(self.stream, at, struct.pack("<" + f.fmt, value))
        else:
            raise AttributeError(f"Field {name!r} cannot be patched after write")


class ZoneBuffer:
    def __init__(
        self,
        *,
        pack_writer: PackFileWriter | None = None,
        asset_indexer: Callable[[AssetRef], Optional[int]] | None = None,
    ):
        self.pack_writer = pack_writer
        self._asset_indexer = asset_indexer
        self.begin()

    # Session --------------------------------------------------------------------
    def begin(self) -> None:
        self._streams: Dict[XBlock, bytearray] = {s: bytearray() for s in STREAM_ORDER}
        self._stack: List[XBlock] = [DEFAULT_STREAM]
        self._assets: List[_AssetEntry] = []
        self._relocations: List[_Relocation] = []
        self._stream_files: List[StreamFileRecord] = []
        self._names = bytearray()
        self._open_asset: Optional[_AssetEntry] = None
        self._last: Optional[StreamPointer] = None

    def set_asset_indexer(self, indexer: Callable[[AssetRef], Optional[int]]) -> None:
        self._asset_indexer = indexer

    @property
    def active_stream(self) -> XBlock:
        return self._stack[-1]

    @property
    def depth(self) -> int:
        return len(self._stack)

    @property
    def offset(self) -> int:
        return len(self._streams[self.active_stream])

    def stream_size(self, stream: XBlock) -> int:
        return len(self._streams[stream])

    @property
    def asset_count(self) -> int:
        return len(self._assets)

    @property
    def next_streamfile_index(self) -> int:
        return len(self._stream_files)

    def push_stream(self, stream: XBlock) -> None:
        self._stack.append(XBlock(stream))

    def pop_stream(self) -> XBlock:
        if len(self._stack) <= 1:
            raise StreamStackError("pop_stream() without a matching push_stream()")
        return self._stack.pop()

    # Assets ---------------------------------------------------------------------
    def begin_asset(self, asset_type: AssetType, name: str, *, referenced: bool = False) -> int:
        if self._open_asset is not None:
            raise StreamStackError("begin_asset() while another asset is open")
        if len(self._stack) != 1:
            raise StreamStackError(
                "begin_asset() with pushed streams", {"depth": len(self._stack)}
            )
        entry = _AssetEntry(
            asset_type=int(asset_type),
            flags=ASSET_FLAG_REFERENCED if referenced else 0,
            name_offset=len(self._names),
            cursors=[len(self._streams[s]) for s in STREAM_ORDER],
        )
        self._names += name.encode("utf-8") + b"\x00"
        self._assets.append(entry)
        self._open_asset = entry
        return len(self._assets) - 1

    def end_asset(self) -> None:
        if self._open_asset is None:
            raise StreamStackError("end_asset() without begin_asset()")
        if len(self._stack) != 1:
            raise StreamStackError(
                "Asset finished with unbalanced stream stack",
                {"depth": len(self._stack)},
            )
        self._open_asset = None

    # Writes ---------------------------------------------------------------------
    def _append(self, data: bytes) -> StreamPointer:
        stream = self.active_stream
        ptr = StreamPointer(stream, len(self._streams[stream]))
        self._streams[stream] += data
        self._last = ptr
        return ptr

    def _patch(self, stream: XBlock, at: int, data: bytes) -> None:
        buf = self._streams[stream]
        if at + len(data) > len(buf):
            raise ValueError(f"Patch outside written range: {at}+{len(data)}>{len(buf)}")
        buf[at : at + len(data)] = data

    def _encode_ref(self, ref: AssetRef) -> Optional[int]:
        if self._asset_indexer is None:
            return None
        return self._asset_indexer(ref)

    def write(self, record: Any) -> WriteHandle:
        ptr = self._append(pack_record(record, encode_ref=self._encode_ref))
        return WriteHandle(self, type(record), ptr.stream, ptr.offset)

    def write_str(self, value: Optional[str]) -> Optional[StreamPointer]:
        if value is None:
            return None
        return self._append(value.encode("utf-8") + b"\x00")

    def write_stream(self, data: Optional[bytes]) -> Optional[StreamPointer]:
        if data is None:
            return None
        return self._append(bytes(data))

    def write_array(self, records: Optional[Iterable[Any]]) -> Optional[StreamPointer]:
        if records is None:
            return None
        items = list(records)
        ptr = self._append(
            b"".join(pack_record(r, encode_ref=self._encode_ref) for r in items)
        )
        return ptr

    def align(self, shift: int) -> None:
        if not 0 <= shift <= MAX_ALIGN_SHIFT:
            raise ValueError(f"Alignment shift out of range: {shift}")
        _pad_to(self._streams[self.active_stream], 1 << shift)

    def clear_pointer(self, handle: WriteHandle, field_name: str) -> None:
        """Null ``field_name`` and relocate it to the most recent write."""
        if self._last is None:
            raise StreamStackError("clear_pointer() before any child was written")
        handle.__setattr__(field_name, None)
        self._relocations.append(
            _Relocation(handle.stream, handle.field_offset(field_name), self._last)
        )

    def write_streamfile(self, payload: Optional[bytes]) -> int:
        """Append a stream-file record; the payload goes to the pack file."""
        if payload is None or self.pack_writer is None:
            record = StreamFileRecord()
        else:
            record = self.pack_writer.append(payload)
        self._stream_files.append(record)
        return len(self._stream_files) - 1

    # Output ---------------------------------------------------------------------
    def finish(self) -> bytes:
        if self._open_asset is not None:
            raise StreamStackError("finish() while an asset is open")
        if len(self._stack) != 1:
            raise StreamStackError(
                "finish() with unbalanced stream stack", {"depth": len(self._stack)}
            )
        entry_fmt = asset_entry_format()
        entry_size = struct.calcsize(entry_fmt)
        tables_end = (
            HEADER_SIZE
            + STREAM_DIR_ENTRY_SIZE * len(STREAM_ORDER)
            + entry_size * len(self._assets)
            + RELOCATION_SIZE * len(self._relocations)
            + STREAMFILE_SIZE * len(self._stream_files)
            + len(self._names)
        )
        starts: Dict[XBlock, int] = {}
        cursor = tables_end + (-tables_end % STREAM_ALIGNMENT)
        for s in STREAM_ORDER:
            starts[s] = cursor
            size = len(self._streams[s])
            cursor += size + (-size % STREAM_ALIGNMENT)

        out = bytearray(
            struct.pack(
                HEADER_FORMAT,
                ZONE_MAGIC,
                len(STREAM_ORDER),
                len(self._assets),
                len(self._relocations),
                len(self._stream_files),
                len(self._names),
            )
        )
        for s in STREAM_ORDER:
            out += struct.pack(
                STREAM_DIR_ENTRY_FORMAT,
                int(s),
                STREAM_ALIGNMENT,
                starts[s],
                len(self._streams[s]),
            )
        for a in self._assets:
            out += struct.pack(entry_fmt, a.asset_type, a.flags, 0, a.name_offset, *a.cursors)
        for r in self._relocations:
            out += struct.pack(
                RELOCATION_FORMAT,
                int(r.field_stream),
                int(r.target.stream),
                r.field_offset,
                r.target.offset,
            )
        for sf in self._stream_files:
            out += sf.pack()
        out += self._names
        for s in STREAM_ORDER:
            _pad_to(out, STREAM_ALIGNMENT)
            assert len(out) == starts[s]
            out += self._streams[s]
        _pad_to(out, STREAM_ALIGNMENT)
        return bytes(out)

"""Zone stream reader.

Each asset is read from its own recorded stream cursors, so a failure while
reading one asset never shifts the reads of the next. Pointer fields come
back as :class:`StreamPointer` placeholders (from a marker, or from the
relocation table for cleared pointers); :meth:`ZoneReader.fixup` swaps them
for the children read at those locations. A placeholder with no matching
child means the read sequence diverged from the write sequence and is a
:class:`FormatError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
import struct

from .buffer import StreamPointer, asset_entry_format
from .constants import (
    ASSET_FLAG_REFERENCED,
    DEFAULT_STREAM,
    HEADER_FORMAT,
    HEADER_SIZE,
    MARKER_OFFSET_MASK,
    MARKER_STREAM_SHIFT,
    MAX_ALIGN_SHIFT,
    POINTER_PRESENT,
    RELOCATION_FORMAT,
    RELOCATION_SIZE,
    STREAM_DIR_ENTRY_FORMAT,
    STREAM_DIR_ENTRY_SIZE,
    STREAM_ORDER,
    STREAMFILE_SIZE,
    ZONE_MAGIC,
    AssetType,
    XBlock,
)
from .errors import FormatError, StreamStackError, TruncatedDataError
from .memory import Arena
from .records import AssetRef, Field, FieldKind, unpack_record
from .streams import StreamFileRecord

__all__ = ["AssetEntry", "StreamInfo", "ZoneReader"]


@dataclass(frozen=True, slots=True)
class StreamInfo:
    stream: XBlock
    alignment: int
    offset: int
    size: int


@dataclass(frozen=True, slots=True)
class AssetEntry:
    index: int
    asset_type: int
    flags: int
    name: str
    cursors: Tuple[int, ...]

    @property
    def referenced(self) -> bool:
        return bool(self.flags & ASSET_FLAG_REFERENCED)

    @property
    def known_type(self) -> bool:
        return self.asset_type in AssetType._value2member_map_

    @property
    def ref(self) -> AssetRef:
        return AssetRef(AssetType(self.asset_type), self.name)


def _read_exact(data: bytes, offset: int, size: int, label: str) -> bytes:
    end = offset + size
    if offset < 0 or end > len(data):
        raise TruncatedDataError(
            f"Out of range read for {label}: {offset}+{size}>{len(data)}",
            {"label": label},
        )
    return data[offset:end]


class ZoneReader:
    def __init__(self, arena: Arena | None = None):
        self.arena = arena or Arena()
        self.entries: List[AssetEntry] = []
        self.streams: Dict[XBlock, StreamInfo] = {}
        self.stream_files: List[StreamFileRecord] = []
        self._data: Dict[XBlock, bytes] = {}
        self._relocations: Dict[Tuple[XBlock, int], StreamPointer] = {}
        self._cursors: Dict[XBlock, int] = {}
        self._stack: List[XBlock] = [DEFAULT_STREAM]
        self._children: Dict[Tuple[XBlock, int], Any] = {}
        self._flat = False
        self.current: Optional[AssetEntry] = None

    # Opening ----------------------------------------------------------------------
    @classmethod
    def open(cls, blob: bytes, arena: Arena | None = None) -> "ZoneReader":
        reader = cls(arena)
        reader._parse(bytes(blob))
        return reader

    @classmethod
    def open_flat(cls, data: bytes, arena: Arena | None = None) -> "ZoneReader":
        """Reader over a headerless single-stream container.

        Pointer values in such a container are meaningless; they all read
        back as None and children are read purely in sequence.
        """
        reader = cls(arena)
        reader._flat = True
        payload = bytes(data)
        reader._data = {DEFAULT_STREAM: payload}
        reader.streams = {DEFAULT_STREAM: StreamInfo(DEFAULT_STREAM, 1, 0, len(payload))}
        reader._cursors = {DEFAULT_STREAM: 0}
        return reader

    def _parse(self, blob: bytes) -> None:
        if len(blob) < HEADER_SIZE:
            raise FormatError(
                f"Zone too short for header: {len(blob)}<{HEADER_SIZE}",
                {"size": len(blob)},
            )
        magic, stream_count, asset_count, reloc_count, sf_count, names_size = (
            struct.unpack_from(HEADER_FORMAT, blob, 0)
        )
        if magic != ZONE_MAGIC:
            raise FormatError("Bad zone magic", {"magic": magic.hex()})
        if stream_count != len(STREAM_ORDER):
            raise FormatError(
                "Unexpected stream count", {"stream_count": stream_count}
            )
        pos = HEADER_SIZE
        for _ in range(stream_count):
            raw = _read_exact(blob, pos, STREAM_DIR_ENTRY_SIZE, "stream directory")
            tag, alignment, offset, size = struct.unpack(STREAM_DIR_ENTRY_FORMAT, raw)
            if tag not in XBlock._value2member_map_:
                raise FormatError("Unknown stream tag", {"tag": tag})
            stream = XBlock(tag)
            self.streams[stream] = StreamInfo(stream, alignment, offset, size)
            self._data[stream] = _read_exact(blob, offset, size, f"stream {stream.name}")
            pos += STREAM_DIR_ENTRY_SIZE

        entry_fmt = asset_entry_format()
        entry_size = struct.calcsize(entry_fmt)
        entries_raw = _read_exact(blob, pos, entry_size * asset_count, "asset table")
        pos += entry_size * asset_count
        reloc_raw = _read_exact(blob, pos, RELOCATION_SIZE * reloc_count, "relocations")
        pos += RELOCATION_SIZE * reloc_count
        sf_raw = _read_exact(blob, pos, STREAMFILE_SIZE * sf_count, "stream files")
        pos += STREAMFILE_SIZE * sf_count
        names = _read_exact(blob, pos, names_size, "names")

        for i in range(asset_count):
            asset_type, flags, _, name_offset, *cursors = struct.unpack_from(
                entry_fmt, entries_raw, i * entry_size
            )
            end = names.find(b"\x00", name_offset)
            if end < 0:
                raise TruncatedDataError("Unterminated asset name", {"index": i})
            try:
                name = names[name_offset:end].decode("utf-8")
            except UnicodeDecodeError as exc:
                raise FormatError(f"Asset name is not UTF-8: {exc}", {"index": i}) from exc
            self.entries.append(AssetEntry(i, asset_type, flags, name, tuple(cursors)))

        for i in range(reloc_count):
            fs, ts, field_offset, target_offset = struct.unpack_from(
                RELOCATION_FORMAT, reloc_raw, i * RELOCATION_SIZE
            )
            try:
                key = (XBlock(fs), field_offset)
                target = StreamPointer(XBlock(ts), target_offset)
            except ValueError as exc:
                raise FormatError("Relocation names an unknown stream", {"index": i}) from exc
            self._relocations[key] = target

        self.stream_files = [
            StreamFileRecord.unpack_from(sf_raw, i * STREAMFILE_SIZE)
            for i in range(sf_count)
        ]
        self._cursors = {s: 0 for s in self.streams}

    def close(self) -> None:
        self._data = {}
        self._children = {}
        self._relocations = {}
        self.current = None

    # Navigation -------------------------------------------------------------------
    @property
    def active_stream(self) -> XBlock:
        return self._stack[-1]

    def push_stream(self, stream: XBlock) -> None:
        stream = XBlock(stream)
        if stream not in self._data:
            raise FormatError(f"Zone has no {stream.name} stream")
        self._stack.append(stream)

    def pop_stream(self) -> XBlock:
        if len(self._stack) <= 1:
            raise StreamStackError("pop_stream() without a matching push_stream()")
        return self._stack.pop()

    def tell(self, stream: XBlock | None = None) -> int:
        return self._cursors[self.active_stream if stream is None else stream]

    def seek_asset(self, index: int) -> AssetEntry:
        entry = self.entries[index]
        self._cursors = {s: entry.cursors[i] for i, s in enumerate(STREAM_ORDER)}
        self._stack = [DEFAULT_STREAM]
        self._children = {}
        self.current = entry
        return entry

    def _take(self, size: int, label: str) -> Tuple[XBlock, int, bytes]:
        stream = self.active_stream
        start = self._cursors[stream]
        data = self._data[stream]
        if start + size > len(data):
            raise TruncatedDataError(
                f"{label} needs {size} bytes at {stream.name}+{start}, "
                f"{max(0, len(data) - start)} left",
                {"stream": stream.name, "offset": start, "size": size},
            )
        self._cursors[stream] = start + size
        return stream, start, data

    def align(self, shift: int) -> None:
        if not 0 <= shift <= MAX_ALIGN_SHIFT:
            raise ValueError(f"Alignment shift out of range: {shift}")
        stream = self.active_stream
        alignment = 1 << shift
        cur = self._cursors[stream]
        self._cursors[stream] = cur + (-cur % alignment)

    # Reads ------------------------------------------------------------------------
    def _decode_pointer(self, stream: XBlock, raw: int, pos: int) -> Optional[StreamPointer]:
        if self._flat:
            return None
        if raw == 0:
            return self._relocations.get((stream, pos))
        if raw == POINTER_PRESENT:
            raise FormatError(
                "Unpatched pointer field", {"stream": stream.name, "offset": pos}
            )
        tag = (raw >> MARKER_STREAM_SHIFT) - 1
        if tag not in XBlock._value2member_map_:
            raise FormatError("Pointer marker names an unknown stream", {"raw": hex(raw)})
        return StreamPointer(XBlock(tag), raw & MARKER_OFFSET_MASK)

    def _decode_ref(self, index: int, f: Field) -> Optional[AssetRef]:
        if self._flat:
            return None
        if index >= len(self.entries):
            raise FormatError(
                f"Asset reference {f.name} out of range",
                {"index": index, "asset_count": len(self.entries)},
            )
        entry = self.entries[index]
        if entry.asset_type != f.asset_type:
            raise FormatError(
                f"Asset reference {f.name} has the wrong type",
                {"index": index, "expected": int(f.asset_type), "actual": entry.asset_type},
            )
        return entry.ref

    def _unpack(self, record_type: Any, data: bytes, offset: int, stream: XBlock) -> Any:
        return unpack_record(
            record_type,
            data,
            offset,
            decode_pointer=lambda raw, pos: self._decode_pointer(stream, raw, pos),
            decode_ref=self._decode_ref,
        )

    def read_single(self, record_type: Any) -> Any:
        stream, start, data = self._take(record_type.LAYOUT.size, record_type.__name__)
        obj = self._unpack(record_type, data, start, stream)
        self._children[(stream, start)] = obj
        return self.arena.adopt(obj)

    def read_string(self) -> str:
        stream = self.active_stream
        start = self._cursors[stream]
        data = self._data[stream]
        end = data.find(b"\x00", start)
        if end < 0:
            raise TruncatedDataError(
                "Unterminated string", {"stream": stream.name, "offset": start}
            )
        try:
            value = self.arena.duplicate_string(data[start:end])
        except UnicodeDecodeError as exc:
            raise FormatError(
                f"String is not UTF-8: {exc}", {"stream": stream.name, "offset": start}
            ) from exc
        self._cursors[stream] = end + 1
        self._children[(stream, start)] = value
        return value

    def read_bytes(self, count: int) -> bytes:
        if count < 0:
            raise FormatError("Negative payload length", {"count": count})
        stream, start, data = self._take(count, "payload")
        value = self.arena.duplicate_bytes(data[start : start + count])
        self._children[(stream, start)] = value
        return value

    def read_array(self, record_type: Any, count: int) -> List[Any]:
        if count < 0:
            raise FormatError("Negative array length", {"count": count})
        size = record_type.LAYOUT.size
        stream, start, data = self._take(size * count, f"{record_type.__name__}[{count}]")
        items = [
            self.arena.adopt(self._unpack(record_type, data, start + i * size, stream))
            for i in range(count)
        ]
        self._children[(stream, start)] = items
        return items

    def fixup(self, record: Any) -> Any:
        """Replace pointer placeholders in ``record`` with the children read."""
        for f in type(record).LAYOUT.fields:
            if f.kind is not FieldKind.POINTER:
                continue
            value = getattr(record, f.name)
            if not isinstance(value, StreamPointer):
                continue
            key = (value.stream, value.offset)
            if key not in self._children:
                raise FormatError(
                    f"{type(record).__name__}.{f.name} points at data that was never read",
                    {"stream": value.stream.name, "offset": value.offset},
                )
            setattr(record, f.name, self._children[key])
        return record

"""Structural zone inspection.

Public functions:
- inspect_zone(path_or_bytes) -> dict
- validate_zone(info) -> list[str]

Inspection parses only the tables (no asset payloads), so it works on zones
whose assets would fail to load.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List
import struct

from .buffer import asset_entry_format
from .constants import (
    ASSET_FLAG_REFERENCED,
    HEADER_FORMAT,
    HEADER_SIZE,
    POINTER_SIZE,
    RELOCATION_FORMAT,
    RELOCATION_SIZE,
    STREAM_DIR_ENTRY_FORMAT,
    STREAM_DIR_ENTRY_SIZE,
    STREAM_ORDER,
    STREAMFILE_SIZE,
    ZONE_MAGIC,
    ASSET_TYPE_NAMES,
    XBlock,
)
from .errors import TruncatedDataError
from .streams import StreamFileRecord

__all__ = ["Region", "parse_header", "inspect_zone", "validate_zone"]


@dataclass(slots=True)
class Region:
    name: str
    offset: int
    size: int
    alignment: int


def _read_exact(data: bytes, offset: int, size: int, label: str) -> bytes:
    end = offset + size
    if end > len(data):
        raise TruncatedDataError(
            f"Out of range read for {label}: {offset}+{size}>{len(data)}"
        )
    return data[offset:end]


def parse_header(data: bytes) -> Dict[str, Any]:
    raw = _read_exact(data, 0, HEADER_SIZE, "header")
    magic, streams, assets, relocs, stream_files, names_size = struct.unpack(
        HEADER_FORMAT, raw
    )
    return {
        "magic_ok": magic == ZONE_MAGIC,
        "stream_count": streams,
        "asset_count": assets,
        "relocation_count": relocs,
        "stream_file_count": stream_files,
        "names_size": names_size,
    }


def inspect_zone(source: str | Path | bytes) -> Dict[str, Any]:
    data = bytes(source) if isinstance(source, (bytes, bytearray)) else Path(source).read_bytes()
    header = parse_header(data)
    info: Dict[str, Any] = {"file_size": len(data), "header": header}
    if not header["magic_ok"]:
        return info

    pos = HEADER_SIZE
    regions: List[Region] = []
    for _ in range(header["stream_count"]):
        tag, alignment, offset, size = struct.unpack(
            STREAM_DIR_ENTRY_FORMAT,
            _read_exact(data, pos, STREAM_DIR_ENTRY_SIZE, "stream directory"),
        )
        name = XBlock(tag).name if tag in XBlock._value2member_map_ else f"#{tag}"
        regions.append(Region(name, offset, size, alignment))
        pos += STREAM_DIR_ENTRY_SIZE
    info["streams"] = [asdict(r) for r in regions]

    entry_fmt = asset_entry_format()
    entry_size = struct.calcsize(entry_fmt)
    raw_entries = _read_exact(data, pos, entry_size * header["asset_count"], "asset table")
    pos += len(raw_entries)
    raw_relocs = _read_exact(
        data, pos, RELOCATION_SIZE * header["relocation_count"], "relocations"
    )
    pos += len(raw_relocs)
    raw_sf = _read_exact(
        data, pos, STREAMFILE_SIZE * header["stream_file_count"], "stream files"
    )
    pos += len(raw_sf)
    names = _read_exact(data, pos, header["names_size"], "names")
    info["tables_end"] = pos + len(names)

    assets = []
    for i in range(header["asset_count"]):
        asset_type, flags, _, name_offset, *cursors = struct.unpack_from(
            entry_fmt, raw_entries, i * entry_size
        )
        end = names.find(b"\x00", name_offset)
        name = names[name_offset : end if end >= 0 else len(names)].decode(
            "utf-8", errors="replace"
        )
        assets.append(
            {
                "index": i,
                "type": ASSET_TYPE_NAMES.get(asset_type, f"#{asset_type}"),
                "name": name,
                "referenced": bool(flags & ASSET_FLAG_REFERENCED),
                "cursors": dict(zip((s.name for s in STREAM_ORDER), cursors)),
            }
        )
    info["assets"] = assets

    relocations = []
    for i in range(header["relocation_count"]):
        fs, ts, field_offset, target_offset = struct.unpack_from(
            RELOCATION_FORMAT, raw_relocs, i * RELOCATION_SIZE
        )
        relocations.append(
            {
                "field_stream": fs,
                "field_offset": field_offset,
                "target_stream": ts,
                "target_offset": target_offset,
            }
        )
    info["relocations"] = relocations

    info["stream_files"] = [
        asdict(StreamFileRecord.unpack_from(raw_sf, i * STREAMFILE_SIZE))
        for i in range(header["stream_file_count"])
    ]
    return info


def validate_zone(info: Dict[str, Any]) -> List[str]:
    issues: List[str] = []
    header = info.get("header", {})
    if not header.get("magic_ok"):
        issues.append("header: bad magic")
        return issues
    file_size = info["file_size"]
    streams = info.get("streams", [])
    expected = [s.name for s in STREAM_ORDER]
    if [s["name"] for s in streams] != expected:
        issues.append(f"streams: order {[s['name'] for s in streams]} != {expected}")
    sizes: Dict[int, int] = {}
    prev_end = info.get("tables_end", HEADER_SIZE)
    for s in streams:
        name = s["name"]
        if s["alignment"] and s["offset"] % s["alignment"]:
            issues.append(f"stream {name}: offset {s['offset']} not aligned to {s['alignment']}")
        if s["offset"] < prev_end:
            issues.append(f"stream {name}: overlaps previous region ({s['offset']}<{prev_end})")
        if s["offset"] + s["size"] > file_size:
            issues.append(f"stream {name}: extends past end of file")
        prev_end = s["offset"] + s["size"]
        if name in XBlock.__members__:
            sizes[int(XBlock[name])] = s["size"]

    for a in info.get("assets", []):
        if a["type"].startswith("#"):
            issues.append(f"asset {a['index']}: unknown type {a['type']}")
        for stream_name, cursor in a["cursors"].items():
            if cursor > sizes.get(int(XBlock[stream_name]), 0):
                issues.append(
                    f"asset {a['index']} ({a['name']}): {stream_name} cursor {cursor} out of bounds"
                )

    for i, r in enumerate(info.get("relocations", [])):
        fsize = sizes.get(r["field_stream"])
        tsize = sizes.get(r["target_stream"])
        if fsize is None or tsize is None:
            issues.append(f"relocation {i}: unknown stream")
            continue
        if r["field_offset"] + POINTER_SIZE > fsize:
            issues.append(f"relocation {i}: field outside stream")
        if r["target_offset"] > tsize:
            issues.append(f"relocation {i}: target outside stream")

    for i, sf in enumerate(info.get("stream_files", [])):
        rec = StreamFileRecord(**sf)
        if rec.absent:
            continue
        if rec.offset_end < rec.offset:
            issues.append(f"stream file {i}: inverted range")
        if rec.compressed_size > rec.size:
            issues.append(f"stream file {i}: stored size exceeds decompressed size")
    return issues

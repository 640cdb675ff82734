"""Out-of-band stream blocks: pack files and the stream block index.

Large payloads (image stream levels) do not live in the zone itself. The
zone carries a table of :class:`StreamFileRecord` entries, each naming a
pack file and a byte range ``[offset, offset_end)`` holding a block-codec
compressed payload. :class:`StreamBlockIndex` maps ``(asset, sub_index)`` to
those records and materializes them lazily.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import struct
import threading

from ..logging import get_logger
from .codec import BlockCodec
from .constants import (
    PACK_FILE_MAX,
    PACK_FILE_NONE,
    PACK_FILE_PATTERN,
    PACK_FILE_SELF,
    PACK_MAGIC,
    STREAM_ALIGNMENT,
    STREAMFILE_FORMAT,
)
from .errors import CodecError, PackReadError
from .records import AssetRef

__all__ = [
    "StreamFileRecord",
    "pack_file_name",
    "PackFileWriter",
    "PackFileReader",
    "StreamBlockIndex",
]


@dataclass(frozen=True, slots=True)
class StreamFileRecord:
    file_index: int = PACK_FILE_NONE
    offset: int = 0
    offset_end: int = 0
    size: int = 0

    @property
    def absent(self) -> bool:
        return (
            self.file_index == PACK_FILE_NONE
            or self.offset == 0
            or self.offset_end == 0
        )

    @property
    def compressed_size(self) -> int:
        return self.offset_end - self.offset

    def pack(self) -> bytes:
        return struct.pack(
            STREAMFILE_FORMAT,
            self.file_index,
            self.offset,
            self.offset_end,
            self.size,
        )

    @classmethod
    def unpack_from(cls, data: bytes, offset: int) -> "StreamFileRecord":
        return cls(*struct.unpack_from(STREAMFILE_FORMAT, data, offset))


def pack_file_name(file_index: int) -> str:
    return PACK_FILE_PATTERN.format(index=file_index)


class PackFileWriter:
    """Accumulates compressed stream blocks for one companion pack file."""

    def __init__(self, file_index: int, codec: BlockCodec | None = None):
        if not 1 <= file_index <= PACK_FILE_MAX:
            raise ValueError(
                f"Pack file index must be within 1..{PACK_FILE_MAX}: {file_index}"
            )
        self.file_index = file_index
        self.codec = codec or BlockCodec()
        self._data = bytearray(PACK_MAGIC)
        self._blocks = 0

    @property
    def empty(self) -> bool:
        return self._blocks == 0

    @property
    def block_count(self) -> int:
        return self._blocks

    def append(self, payload: bytes) -> StreamFileRecord:
        pad = (STREAM_ALIGNMENT - len(self._data) % STREAM_ALIGNMENT) % STREAM_ALIGNMENT
        self._data += b"\x00" * pad
        stored = self.codec.compress(payload)
        offset = len(self._data)
        self._data += stored
        self._blocks += 1
        return StreamFileRecord(
            file_index=self.file_index,
            offset=offset,
            offset_end=offset + len(stored),
            size=len(payload),
        )

    def getvalue(self) -> bytes:
        return bytes(self._data)

    def save(self, directory: Path) -> Path:
        path = Path(directory) / pack_file_name(self.file_index)
        path.write_bytes(self.getvalue())
        return path


class PackFileReader:
    """Byte-range reader over numbered pack files."""

    def __init__(
        self,
        search_dirs: Sequence[Path] = (),
        *,
        self_path: Path | None = None,
    ):
        self.search_dirs = [Path(d) for d in search_dirs]
        self.self_path = Path(self_path) if self_path is not None else None

    def path_for(self, file_index: int) -> Path:
        if file_index == PACK_FILE_SELF:
            if self.self_path is None:
                raise PackReadError(
                    "Block refers to the zone file but no zone path is known",
                    {"file_index": file_index},
                )
            return self.self_path
        name = pack_file_name(file_index)
        for d in self.search_dirs:
            candidate = d / name
            if candidate.exists():
                return candidate
        raise PackReadError(
            f"Pack file not found: {name}",
            {"file_index": file_index, "search_dirs": [str(d) for d in self.search_dirs]},
        )

    def read(self, file_index: int, offset: int, length: int) -> bytes:
        path = self.path_for(file_index)
        try:
            with path.open("rb") as f:
                f.seek(offset)
                data = f.read(length)
        except OSError as exc:
            raise PackReadError(
                f"Failed reading {path.name}: {exc}",
                {"file_index": file_index, "offset": offset},
            ) from exc
        if len(data) != length:
            raise PackReadError(
                f"Short read from {path.name}: wanted {length} bytes at {offset}, got {len(data)}",
                {"file_index": file_index, "offset": offset, "length": length},
            )
        return data


class StreamBlockIndex:
    """Maps (asset, sub_index) to pack file byte ranges; fetches lazily.

    Successful materializations are cached. Failures are not: a later
    :meth:`fetch` retries the read.
    """

    def __init__(
        self,
        pack_reader: PackFileReader | None = None,
        codec: BlockCodec | None = None,
    ):
        self.pack_reader = pack_reader
        self.codec = codec or BlockCodec()
        self._records: Dict[Tuple[AssetRef, int], StreamFileRecord] = {}
        self._cache: Dict[Tuple[AssetRef, int], bytes] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def add(self, ref: AssetRef, sub_index: int, record: StreamFileRecord) -> None:
        if record.absent:
            return
        self._records[(ref, sub_index)] = record

    def add_blocks(self, ref: AssetRef, records: Iterable[StreamFileRecord]) -> None:
        for sub_index, record in enumerate(records):
            self.add(ref, sub_index, record)

    def locate(self, ref: AssetRef, sub_index: int) -> Optional[StreamFileRecord]:
        return self._records.get((ref, sub_index))

    def blocks_for(self, ref: AssetRef) -> List[int]:
        return sorted(sub for (r, sub) in self._records if r == ref)

    def materialize(self, record: StreamFileRecord) -> bytes:
        if record.absent:
            raise PackReadError("Stream block is absent", {"record": repr(record)})
        if self.pack_reader is None:
            raise PackReadError(
                "No pack file reader configured", {"file_index": record.file_index}
            )
        if record.offset_end < record.offset:
            raise PackReadError(
                "Stream block range is inverted",
                {"offset": record.offset, "offset_end": record.offset_end},
            )
        stored = self.pack_reader.read(
            record.file_index, record.offset, record.compressed_size
        )
        return self.codec.decompress(stored, record.size)

    def fetch(self, ref: AssetRef, sub_index: int) -> Optional[bytes]:
        """Return the block payload, or None when absent or unreadable."""
        key = (ref, sub_index)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached
        record = self._records.get(key)
        if record is None:
            return None
        try:
            payload = self.materialize(record)
        except (PackReadError, CodecError) as exc:
            get_logger().warning(
                "Stream block %d of %s unavailable: %s", sub_index, ref, exc
            )
            return None
        with self._lock:
            self._cache[key] = payload
        return payload

"""Raw files: opaque script/config payloads kept block-codec compressed."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, List, Optional, Tuple

from ..zone.buffer import ZoneBuffer
from ..zone.codec import BlockCodec
from ..zone.constants import AssetType, XBlock
from ..zone.reader import ZoneReader
from ..zone.records import Layout, pointer, scalar
from .asset_file import read_asset_file
from .base import AcquireContext, AssetHandler, ExportContext, Strategy

__all__ = ["RawFile", "RawFileHandler", "make_rawfile"]


@dataclass(slots=True)
class RawFile:
    name: str = ""
    compressed_len: int = 0
    length: int = 0
    buffer: Optional[bytes] = None

    LAYOUT: ClassVar[Layout] = Layout(
        pointer("name"),
        scalar("compressed_len", "I"),
        scalar("length", "I"),
        pointer("buffer"),
    )

    def contents(self, codec: BlockCodec) -> bytes:
        if self.buffer is None:
            return b""
        return codec.decompress(self.buffer, self.length)


def make_rawfile(name: str, data: bytes, codec: BlockCodec) -> RawFile:
    packed = codec.compress(data)
    return RawFile(name=name, compressed_len=len(packed), length=len(data), buffer=packed)


class RawFileHandler(AssetHandler):
    asset_type = AssetType.RAWFILE
    record = RawFile

    # No default: a missing rawfile fails acquisition.
    def strategies(self) -> List[Tuple[str, Strategy]]:
        return [
            ("asset file", self._from_asset_file),
            ("raw", self._from_raw),
        ]

    def _from_asset_file(self, name: str, ctx: AcquireContext) -> RawFile:
        data = ctx.source.read(f"rawfile/{name}.rawfile")
        return read_asset_file(self, data, ctx.arena)

    def _from_raw(self, name: str, ctx: AcquireContext) -> RawFile:
        return make_rawfile(name, ctx.source.read(f"rawfile/{name}"), ctx.codec)

    def write(self, raw: RawFile, buf: ZoneBuffer) -> None:
        dest = buf.write(raw)
        buf.push_stream(XBlock.VIRTUAL)
        dest.name = buf.write_str(raw.name)
        buf.push_stream(XBlock.TEMP)
        if raw.buffer is not None:
            dest.buffer = buf.write_stream(raw.buffer)
            dest.compressed_len = len(raw.buffer)
        buf.pop_stream()
        buf.pop_stream()

    def read(self, reader: ZoneReader) -> RawFile:
        raw = reader.read_single(RawFile)
        reader.push_stream(XBlock.VIRTUAL)
        if raw.name is not None:
            reader.read_string()
        reader.push_stream(XBlock.TEMP)
        if raw.buffer is not None:
            reader.read_bytes(raw.compressed_len)
        reader.pop_stream()
        reader.pop_stream()
        return reader.fixup(raw)

    def export(self, raw: RawFile, ctx: ExportContext) -> List[Path]:
        path = ctx.path("rawfile", raw.name)
        path.write_bytes(raw.contents(ctx.codec))
        return [path]

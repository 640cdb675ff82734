"""Localized string entries."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, List, Tuple

from ..utils.paths import clean_name
from ..zone.buffer import ZoneBuffer
from ..zone.constants import AssetType, XBlock
from ..zone.errors import FormatError
from ..zone.reader import ZoneReader
from ..zone.records import Layout, pointer
from .asset_file import read_asset_file
from .base import AcquireContext, AssetHandler, ExportContext, Strategy

__all__ = ["LocalizeEntry", "LocalizeHandler"]


@dataclass(slots=True)
class LocalizeEntry:
    value: str = ""
    name: str = ""

    LAYOUT: ClassVar[Layout] = Layout(pointer("value"), pointer("name"))


class LocalizeHandler(AssetHandler):
    asset_type = AssetType.LOCALIZE_ENTRY
    record = LocalizeEntry

    def strategies(self) -> List[Tuple[str, Strategy]]:
        return [
            ("asset file", self._from_asset_file),
            ("text", self._from_text),
        ]

    def default(self, name: str, ctx: AcquireContext) -> LocalizeEntry:
        return LocalizeEntry(value=name, name=name)

    def _from_asset_file(self, name: str, ctx: AcquireContext) -> LocalizeEntry:
        data = ctx.source.read(f"localize/{clean_name(name)}.localize")
        return read_asset_file(self, data, ctx.arena)

    def _from_text(self, name: str, ctx: AcquireContext) -> LocalizeEntry:
        raw = ctx.source.read(f"localize/{clean_name(name)}.txt")
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FormatError(f"localize/{name}.txt is not UTF-8: {exc}") from exc
        return LocalizeEntry(value=text.rstrip("\r\n"), name=name)

    def write(self, entry: LocalizeEntry, buf: ZoneBuffer) -> None:
        dest = buf.write(entry)
        buf.push_stream(XBlock.VIRTUAL)
        dest.value = buf.write_str(entry.value)
        dest.name = buf.write_str(entry.name)
        buf.pop_stream()

    def read(self, reader: ZoneReader) -> LocalizeEntry:
        entry = reader.read_single(LocalizeEntry)
        reader.push_stream(XBlock.VIRTUAL)
        if entry.value is not None:
            reader.read_string()
        if entry.name is not None:
            reader.read_string()
        reader.pop_stream()
        return reader.fixup(entry)

    def export(self, entry: LocalizeEntry, ctx: ExportContext) -> List[Path]:
        path = ctx.path("localize", f"{clean_name(entry.name)}.txt")
        path.write_text(entry.value, encoding="utf-8")
        return [path]

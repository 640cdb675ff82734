"""Canonical single-asset files.

A canonical asset file is a one-asset zone: the asset itself at index 0,
followed by referenced-only entries for each of its dependencies so that
cross-asset references keep their names.
"""

from __future__ import annotations

from typing import Any, Dict, List

from ..zone.errors import FormatError
from ..zone.buffer import ZoneBuffer
from ..zone.memory import Arena
from ..zone.reader import ZoneReader
from ..zone.records import AssetRef
from .base import AssetHandler

__all__ = ["write_asset_file", "read_asset_file"]


def write_asset_file(handler: AssetHandler, asset: Any) -> bytes:
    ref = handler.ref_of(asset)
    order: List[AssetRef] = [ref]
    for dep in handler.dependencies(asset):
        if dep not in order:
            order.append(dep)
    index: Dict[AssetRef, int] = {r: i for i, r in enumerate(order)}

    buf = ZoneBuffer(asset_indexer=index.get)
    buf.begin_asset(ref.asset_type, ref.name)
    handler.write(asset, buf)
    buf.end_asset()
    for dep in order[1:]:
        buf.begin_asset(dep.asset_type, dep.name, referenced=True)
        buf.end_asset()
    return buf.finish()


def read_asset_file(handler: AssetHandler, data: bytes, arena: Arena | None = None) -> Any:
    reader = ZoneReader.open(data, arena)
    try:
        if not reader.entries:
            raise FormatError("Asset file holds no assets")
        head = reader.entries[0]
        if head.asset_type != handler.asset_type or head.referenced:
            raise FormatError(
                f"Asset file does not start with a {handler.type_name}",
                {"asset_type": head.asset_type},
            )
        reader.seek_asset(0)
        return handler.read(reader)
    finally:
        reader.close()

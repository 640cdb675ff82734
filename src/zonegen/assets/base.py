"""Type dispatch table and the generic acquisition chain.

Each asset type is served by one :class:`AssetHandler`. A handler supplies
an ordered list of acquisition strategies plus an optional default; the
chain itself (try in order, first success wins, fall back to the default or
fail) lives here in :func:`acquire_asset` and is shared by every type.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ..logging import get_logger
from ..utils.paths import safe_file_path
from ..zone.buffer import ZoneBuffer
from ..zone.codec import BlockCodec
from ..zone.constants import AssetType, type_to_string
from ..zone.errors import (
    AssetNotFoundError,
    CodecError,
    FormatError,
    UnsupportedAssetTypeError,
)
from ..zone.memory import Arena
from ..zone.reader import ZoneReader
from ..zone.records import AssetRef
from ..zone.streams import StreamBlockIndex, StreamFileRecord
from .source import AssetSource

__all__ = [
    "AcquireContext",
    "ExportContext",
    "AcquireResult",
    "Strategy",
    "AssetHandler",
    "DispatchTable",
    "acquire_asset",
    "DEFAULT_SOURCE",
]

DEFAULT_SOURCE = "default"


@dataclass(slots=True)
class AcquireContext:
    source: AssetSource
    arena: Arena = field(default_factory=Arena)
    codec: BlockCodec = field(default_factory=BlockCodec)


@dataclass(slots=True)
class ExportContext:
    output_dir: Path
    codec: BlockCodec = field(default_factory=BlockCodec)
    stream_index: Optional[StreamBlockIndex] = None

    def path(self, *parts: str) -> Path:
        rel = Path(*parts)
        try:
            p = safe_file_path(Path(self.output_dir), str(rel))
        except ValueError as exc:
            raise FormatError(
                f"Export path {rel} escapes {self.output_dir}",
                {"path": str(rel)},
            ) from exc
        p.parent.mkdir(parents=True, exist_ok=True)
        return p


@dataclass(slots=True)
class AcquireResult:
    asset: Any
    source: str

    @property
    def is_default(self) -> bool:
        return self.source == DEFAULT_SOURCE


# A strategy returns the asset, or None / AssetNotFoundError when its
# source does not have it.
Strategy = Callable[[str, AcquireContext], Optional[Any]]


class AssetHandler:
    """Per-type operations: acquire, write, read, dependencies, export."""

    asset_type: AssetType
    record: type

    @property
    def stride(self) -> int:
        return self.record.LAYOUT.size

    @property
    def type_name(self) -> str:
        return type_to_string(self.asset_type)

    def name_of(self, asset: Any) -> str:
        return asset.name

    def ref_of(self, asset: Any) -> AssetRef:
        return AssetRef(self.asset_type, self.name_of(asset))

    def strategies(self) -> List[Tuple[str, Strategy]]:
        raise NotImplementedError

    def default(self, name: str, ctx: AcquireContext) -> Optional[Any]:
        return None

    def write(self, asset: Any, buf: ZoneBuffer) -> None:
        raise NotImplementedError

    def read(self, reader: ZoneReader) -> Any:
        raise NotImplementedError

    def dependencies(self, asset: Any) -> List[AssetRef]:
        return []

    def stream_blocks(self, asset: Any, reader: ZoneReader) -> List[StreamFileRecord]:
        return []

    def export(self, asset: Any, ctx: ExportContext) -> List[Path]:
        raise NotImplementedError


def acquire_asset(handler: AssetHandler, name: str, ctx: AcquireContext) -> AcquireResult:
    log = get_logger()
    ref = AssetRef(handler.asset_type, name)
    tried: List[str] = []
    for label, strategy in handler.strategies():
        tried.append(label)
        try:
            asset = strategy(name, ctx)
        except AssetNotFoundError:
            continue
        except (FormatError, CodecError) as exc:
            log.warning("%s: unusable %s source: %s", ref, label, exc)
            continue
        if asset is not None:
            log.debug("%s: acquired from %s", ref, label)
            return AcquireResult(ctx.arena.adopt(asset), label)
    asset = handler.default(name, ctx)
    if asset is None:
        raise AssetNotFoundError(f"No source provides {ref}", {"tried": tried})
    log.warning("%s not found (tried %s), using default", ref, ", ".join(tried))
    return AcquireResult(ctx.arena.adopt(asset), DEFAULT_SOURCE)


class DispatchTable:
    def __init__(self, handlers: Tuple[AssetHandler, ...] = ()):
        self._handlers: Dict[AssetType, AssetHandler] = {}
        for h in handlers:
            self.register(h)

    def register(self, handler: AssetHandler) -> AssetHandler:
        self._handlers[AssetType(handler.asset_type)] = handler
        return handler

    def handler_for(self, asset_type: int) -> AssetHandler:
        try:
            return self._handlers[AssetType(asset_type)]
        except (KeyError, ValueError):
            raise UnsupportedAssetTypeError(
                f"No handler for asset type {asset_type}", {"asset_type": int(asset_type)}
            ) from None

    def acquire(self, ref: AssetRef, ctx: AcquireContext) -> AcquireResult:
        return acquire_asset(self.handler_for(ref.asset_type), ref.name, ctx)

    def strides(self) -> Dict[AssetType, int]:
        return {t: h.stride for t, h in self._handlers.items()}

    def __contains__(self, asset_type: int) -> bool:
        return asset_type in self._handlers

    def __iter__(self) -> Iterator[AssetHandler]:
        return iter(self._handlers.values())

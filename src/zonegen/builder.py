"""Zone builder: dependency closure and zone emission.

Closure order is breadth-first by discovery: every requested asset in
request order, then the dependencies they declare in declaration order, and
so on. Each (type, name) is visited once, so cycles terminate. The zone is
written in exactly that order, which makes two builds over the same inputs
byte-identical.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Deque, Dict, Iterable, List, Optional, Set, Tuple

from .assets import AcquireContext, AssetSource, DispatchTable, default_dispatch_table
from .logging import get_logger
from .reporting import get_reporter, task
from .zone.buffer import ZoneBuffer
from .zone.codec import BlockCodec
from .zone.constants import REFERENCE_PREFIX, ZONE_FILE_SUFFIX, AssetType
from .zone.errors import (
    AssetNotFoundError,
    DependencyUnresolvedError,
    UnsupportedAssetTypeError,
    ZoneBuildError,
)
from .zone.memory import Arena
from .zone.pools import AssetPoolRegistry
from .zone.records import AssetRef
from .zone.streams import PackFileWriter

__all__ = [
    "BuildRequest",
    "ClosureEntry",
    "ClosureResult",
    "ZoneBuildResult",
    "ZoneBuilder",
]


@dataclass(frozen=True, slots=True)
class BuildRequest:
    ref: AssetRef
    referenced: bool = False

    @classmethod
    def parse(cls, asset_type: AssetType, name: str) -> "BuildRequest":
        """``,name`` requests a referenced-only entry."""
        if name.startswith(REFERENCE_PREFIX):
            return cls(AssetRef(asset_type, name[len(REFERENCE_PREFIX):]), True)
        return cls(AssetRef(asset_type, name))


@dataclass(slots=True)
class ClosureEntry:
    ref: AssetRef
    asset: Any = None
    referenced: bool = False
    source: str = ""


@dataclass(slots=True)
class ClosureResult:
    entries: List[ClosureEntry] = field(default_factory=list)
    # (dependent, missing dependency, error)
    dropped: List[Tuple[AssetRef, AssetRef, DependencyUnresolvedError]] = field(
        default_factory=list
    )

    @property
    def refs(self) -> List[AssetRef]:
        return [e.ref for e in self.entries]

    def index(self) -> Dict[AssetRef, int]:
        return {e.ref: i for i, e in enumerate(self.entries)}


@dataclass(slots=True)
class ZoneBuildResult:
    name: str
    data: bytes
    closure: ClosureResult
    pack: Optional[PackFileWriter] = None
    zone_path: Optional[Path] = None
    pack_path: Optional[Path] = None


class ZoneBuilder:
    def __init__(
        self,
        source: AssetSource,
        registry: AssetPoolRegistry | None = None,
        dispatch: DispatchTable | None = None,
        *,
        codec: BlockCodec | None = None,
        arena: Arena | None = None,
    ):
        self.dispatch = dispatch or default_dispatch_table()
        self.registry = registry or AssetPoolRegistry(strides=self.dispatch.strides())
        self.codec = codec or BlockCodec()
        self.ctx = AcquireContext(source, arena or Arena("build"), self.codec)

    def compute_closure(self, requests: Iterable[BuildRequest]) -> ClosureResult:
        log = get_logger()
        result = ClosureResult()
        seen: Set[AssetRef] = set()
        queue: Deque[Tuple[BuildRequest, Optional[AssetRef]]] = deque()
        for req in requests:
            if req.ref in seen:
                continue
            seen.add(req.ref)
            queue.append((req, None))

        while queue:
            req, parent = queue.popleft()
            ref = req.ref
            if req.referenced:
                result.entries.append(ClosureEntry(ref, referenced=True, source="referenced"))
                continue
            try:
                handler = self.dispatch.handler_for(ref.asset_type)
                acquired = self.dispatch.acquire(ref, self.ctx)
            except (AssetNotFoundError, UnsupportedAssetTypeError) as exc:
                if parent is None:
                    raise ZoneBuildError(
                        f"Cannot acquire {ref}: {exc.message}",
                        {"asset": str(ref), "cause": exc.code},
                    ) from exc
                err = DependencyUnresolvedError(
                    f"{parent} -> {ref}: {exc.message}",
                    {"asset": str(parent), "dependency": str(ref)},
                )
                log.warning("Dropping unresolved dependency %s of %s", ref, parent)
                result.dropped.append((parent, ref, err))
                continue
            self.registry.publish(ref, acquired.asset)
            result.entries.append(ClosureEntry(ref, acquired.asset, False, acquired.source))
            for dep in handler.dependencies(acquired.asset):
                if dep in seen:
                    continue
                seen.add(dep)
                queue.append((BuildRequest(dep), ref))
        get_reporter().status(
            f"Closure summary: assets={len(result.entries)} dropped={len(result.dropped)}"
        )
        return result

    def write_zone(
        self,
        closure: ClosureResult,
        *,
        zone_name: str = "zone",
        pack_writer: PackFileWriter | None = None,
    ) -> bytes:
        # From here on assets reference each other; pools must not move.
        self.registry.seal()
        buf = ZoneBuffer(pack_writer=pack_writer, asset_indexer=closure.index().get)
        rep = get_reporter()
        with task("build.write", f"Write {zone_name}", total=len(closure.entries)) as final:
            for entry in closure.entries:
                buf.begin_asset(entry.ref.asset_type, entry.ref.name, referenced=entry.referenced)
                if not entry.referenced:
                    self.dispatch.handler_for(entry.ref.asset_type).write(entry.asset, buf)
                buf.end_asset()
                rep.advance("build.write", current_item=str(entry.ref))
            data = buf.finish()
            final.update(assets=len(closure.entries), bytes=len(data))
        return data

    def build(
        self,
        requests: Iterable[BuildRequest],
        zone_name: str,
        *,
        output_dir: Path | None = None,
        pack_index: int | None = None,
    ) -> ZoneBuildResult:
        log = get_logger()
        closure = self.compute_closure(list(requests))
        pack = PackFileWriter(pack_index, self.codec) if pack_index else None
        data = self.write_zone(closure, zone_name=zone_name, pack_writer=pack)
        result = ZoneBuildResult(zone_name, data, closure, pack)
        if output_dir is not None:
            out = Path(output_dir)
            out.mkdir(parents=True, exist_ok=True)
            result.zone_path = out / f"{zone_name}{ZONE_FILE_SUFFIX}"
            result.zone_path.write_bytes(data)
            if pack is not None and not pack.empty:
                result.pack_path = pack.save(out)
            log.info("Wrote %s (%d bytes)", result.zone_path.name, len(data))
        get_reporter().status(
            f"Build summary: zone={zone_name} assets={len(closure.entries)} "
            f"dropped={len(closure.dropped)} bytes={len(data)} "
            f"blocks={pack.block_count if pack else 0}"
        )
        return result

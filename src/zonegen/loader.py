"""Zone loader: reconstructs assets from a zone and publishes them.

Every asset is read from its own cursors. A structural failure inside one
asset is recorded against that asset (zone name + asset index) and loading
moves on to the next. An asset is published to the registry only once it
has been fully read and fixed up.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence, Tuple
import threading

from .assets import DispatchTable, default_dispatch_table
from .logging import get_logger
from .reporting import get_reporter
from .zone.codec import BlockCodec
from .zone.errors import (
    FormatError,
    UnsupportedAssetTypeError,
    ZoneError,
    ZoneLoadAborted,
    ZoneLoadError,
)
from .zone.memory import Arena
from .zone.pools import AssetPoolRegistry
from .zone.reader import AssetEntry, ZoneReader
from .zone.records import AssetRef
from .zone.streams import PackFileReader, StreamBlockIndex

__all__ = [
    "LoadFailure",
    "LoadedZone",
    "ZoneLoader",
    "load_zones",
]


@dataclass(slots=True)
class LoadFailure:
    zone: str
    index: int
    name: str
    error: ZoneError

    def __str__(self) -> str:
        return f"{self.zone}[{self.index}] {self.name}: {self.error}"


@dataclass(slots=True)
class LoadedZone:
    name: str
    entries: List[AssetEntry] = field(default_factory=list)
    assets: Dict[AssetRef, Any] = field(default_factory=dict)
    references: List[AssetRef] = field(default_factory=list)
    failures: List[LoadFailure] = field(default_factory=list)
    # (asset, dependency) pairs whose target is not resident in the registry
    unresolved: List[Tuple[AssetRef, AssetRef]] = field(default_factory=list)
    stream_index: StreamBlockIndex = field(default_factory=StreamBlockIndex)
    arena: Arena = field(default_factory=Arena)

    @property
    def ok(self) -> bool:
        return not self.failures

    def get(self, ref: AssetRef) -> Any:
        return self.assets.get(ref)


class ZoneLoader:
    def __init__(
        self,
        registry: AssetPoolRegistry | None = None,
        dispatch: DispatchTable | None = None,
        *,
        pack_reader: PackFileReader | None = None,
        codec: BlockCodec | None = None,
    ):
        self.dispatch = dispatch or default_dispatch_table()
        self.registry = registry or AssetPoolRegistry(strides=self.dispatch.strides())
        self.pack_reader = pack_reader
        self.codec = codec or BlockCodec()

    def load(
        self,
        blob: bytes,
        zone_name: str = "zone",
        *,
        cancel: threading.Event | None = None,
        pack_reader: PackFileReader | None = None,
    ) -> LoadedZone:
        log = get_logger()
        arena = Arena(zone_name)
        try:
            reader = ZoneReader.open(blob, arena)
        except FormatError as exc:
            raise ZoneLoadError(
                f"{zone_name}: {exc.message}", {"zone": zone_name, "cause": exc.code}
            ) from exc
        zone = LoadedZone(
            name=zone_name,
            entries=list(reader.entries),
            stream_index=StreamBlockIndex(pack_reader or self.pack_reader, self.codec),
            arena=arena,
        )
        try:
            for entry in reader.entries:
                if cancel is not None and cancel.is_set():
                    raise ZoneLoadAborted(
                        f"Load of {zone_name} aborted",
                        {"zone": zone_name, "index": entry.index},
                    )
                self._load_entry(reader, entry, zone)
        finally:
            reader.close()

        for ref, asset in zone.assets.items():
            handler = self.dispatch.handler_for(ref.asset_type)
            for dep in handler.dependencies(asset):
                if self.registry.resolve(dep) is None:
                    zone.unresolved.append((ref, dep))
                    log.debug("%s: %s references missing %s", zone_name, ref, dep)
        get_reporter().status(
            f"Load summary: zone={zone_name} assets={len(zone.assets)} "
            f"references={len(zone.references)} failures={len(zone.failures)} "
            f"blocks={len(zone.stream_index)}"
        )
        return zone

    def _load_entry(self, reader: ZoneReader, entry: AssetEntry, zone: LoadedZone) -> None:
        if entry.referenced:
            if entry.known_type:
                zone.references.append(entry.ref)
            return
        try:
            handler = self.dispatch.handler_for(entry.asset_type)
            reader.seek_asset(entry.index)
            asset = handler.read(reader)
            blocks = handler.stream_blocks(asset, reader)
        except (FormatError, UnsupportedAssetTypeError) as exc:
            failure = LoadFailure(zone.name, entry.index, entry.name, exc)
            zone.failures.append(failure)
            get_logger().error("Failed to load asset %s", failure)
            return
        ref = entry.ref
        zone.stream_index.add_blocks(ref, blocks)
        _, added = self.registry.publish(ref, asset)
        if not added:
            get_logger().warning(
                "%s: %s already resident, keeping the first copy", zone.name, ref
            )
        zone.assets[ref] = asset

    def load_file(
        self,
        path: Path,
        *,
        zone_paths: Sequence[Path] = (),
        cancel: threading.Event | None = None,
    ) -> LoadedZone:
        path = Path(path)
        try:
            blob = path.read_bytes()
        except OSError as exc:
            raise ZoneLoadError(f"Cannot read {path}: {exc}", {"zone": path.stem}) from exc
        packs = PackFileReader([path.parent, *zone_paths], self_path=path)
        return self.load(blob, path.stem, cancel=cancel, pack_reader=packs)


def load_zones(
    paths: Iterable[Path],
    registry: AssetPoolRegistry,
    *,
    dispatch: DispatchTable | None = None,
    max_workers: int = 4,
    zone_paths: Sequence[Path] = (),
    cancel: threading.Event | None = None,
) -> List[LoadedZone]:
    """Load several zones concurrently into one registry.

    Each zone gets its own reader and arena; only pool slot allocation is
    shared. Results keep the order of ``paths``.
    """
    loader = ZoneLoader(registry, dispatch)
    paths = [Path(p) for p in paths]
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [
            pool.submit(loader.load_file, p, zone_paths=zone_paths, cancel=cancel)
            for p in paths
        ]
        return [f.result() for f in futures]

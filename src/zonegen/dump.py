"""Zone dumping, batch dumping and archive listings."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Sequence
import json

from .assets import DispatchTable, ExportContext, default_dispatch_table
from .config import DEFAULT_SKIP_ZONES, LISTING_CHUNK_SIZE
from .loader import LoadedZone, ZoneLoader
from .logging import get_logger
from .reporting import get_reporter, task
from .zone.codec import BlockCodec
from .zone.constants import ASSET_TYPE_NAMES, REFERENCE_PREFIX, ZONE_FILE_SUFFIX
from .zone.errors import ZoneError
from .zone.inspector import inspect_zone
from .zone.pools import AssetPoolRegistry

__all__ = [
    "DumpResult",
    "zone_csv_lines",
    "dump_zone",
    "find_zone_files",
    "batch_dump",
    "write_archive_listing",
]


@dataclass(slots=True)
class DumpResult:
    zone: str
    csv_path: Path
    exported: List[Path] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    load_failures: int = 0


def zone_csv_lines(zone: LoadedZone) -> List[str]:
    """Build list lines (``type,name``) reproducing the zone's asset table."""
    lines = []
    for entry in zone.entries:
        type_name = ASSET_TYPE_NAMES.get(entry.asset_type)
        if type_name is None:
            continue
        prefix = REFERENCE_PREFIX if entry.referenced else ""
        lines.append(f"{type_name},{prefix}{entry.name}")
    return lines


def dump_zone(
    path: Path,
    output_dir: Path,
    *,
    registry: AssetPoolRegistry | None = None,
    dispatch: DispatchTable | None = None,
    codec: BlockCodec | None = None,
    zone_paths: Sequence[Path] = (),
) -> DumpResult:
    log = get_logger()
    rep = get_reporter()
    dispatch = dispatch or default_dispatch_table()
    codec = codec or BlockCodec()
    loader = ZoneLoader(registry, dispatch, codec=codec)
    zone = loader.load_file(Path(path), zone_paths=zone_paths)

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    result = DumpResult(zone.name, out / f"{zone.name}.csv", load_failures=len(zone.failures))
    ctx = ExportContext(out, codec, zone.stream_index)
    with task("dump.export", f"Dump {zone.name}", total=len(zone.assets)) as final:
        for ref, asset in zone.assets.items():
            try:
                result.exported += dispatch.handler_for(ref.asset_type).export(asset, ctx)
            except (ZoneError, OSError, ValueError) as exc:
                log.error("Failed to export %s from %s: %s", ref, zone.name, exc)
                result.failures.append(f"{ref}: {exc}")
            rep.advance("dump.export", current_item=str(ref))
        final.update(assets=len(zone.assets), failures=len(result.failures))

    result.csv_path.write_text("\n".join(zone_csv_lines(zone)) + "\n", encoding="utf-8")
    rep.status(
        f"Dump summary: zone={zone.name} files={len(result.exported)} "
        f"failures={len(result.failures)} load_failures={result.load_failures}"
    )
    return result


def find_zone_files(directory: Path, *, recursive: bool = False) -> List[Path]:
    pattern = f"*{ZONE_FILE_SUFFIX}"
    root = Path(directory)
    found = root.rglob(pattern) if recursive else root.glob(pattern)
    return sorted((p for p in found if p.is_file()), key=lambda p: (p.stem, str(p)))


def _skipped(path: Path, skip: Iterable[str]) -> bool:
    return path.stem in set(skip)


def batch_dump(
    directory: Path,
    output_dir: Path,
    *,
    recursive: bool = False,
    skip: Sequence[str] = DEFAULT_SKIP_ZONES,
    capacities=None,
    dispatch: DispatchTable | None = None,
    codec: BlockCodec | None = None,
) -> List[DumpResult]:
    """Dump every zone in ``directory``, each into a fresh registry."""
    log = get_logger()
    dispatch = dispatch or default_dispatch_table()
    zones = find_zone_files(directory, recursive=recursive)
    results: List[DumpResult] = []
    for path in zones:
        if _skipped(path, skip):
            log.info("Skipping launcher zone %s", path.stem)
            continue
        registry = AssetPoolRegistry(capacities, dispatch.strides())
        try:
            results.append(
                dump_zone(path, output_dir, registry=registry, dispatch=dispatch, codec=codec)
            )
        except ZoneError as exc:
            log.error("Failed to dump %s: %s", path.name, exc)
    log.info("Batch dump complete (%d zones)", len(results))
    return results


def write_archive_listing(
    directory: Path,
    output_dir: Path,
    *,
    chunk_size: int = LISTING_CHUNK_SIZE,
    recursive: bool = False,
    skip: Sequence[str] = DEFAULT_SKIP_ZONES,
) -> List[Path]:
    """Write ``file_structure_NNN.json`` chunks listing each zone's assets.

    Chunks are numbered from 1 and hold up to ``chunk_size`` zones each, in
    name order. Referenced-only entries are omitted.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive: {chunk_size}")
    log = get_logger()
    zones = find_zone_files(directory, recursive=recursive)
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    total_chunks = (len(zones) + chunk_size - 1) // chunk_size
    log.info("Generating archive listing for %d zones (%d chunks)", len(zones), total_chunks)
    for chunk_idx in range(total_chunks):
        chunk = zones[chunk_idx * chunk_size : (chunk_idx + 1) * chunk_size]
        doc = {"zones": []}
        for path in chunk:
            zone_name = path.stem
            if _skipped(path, skip):
                log.info("Skipping launcher zone %s in archive listing", zone_name)
                continue
            try:
                info = inspect_zone(path)
            except ZoneError as exc:
                log.error("Cannot list %s: %s", path.name, exc)
                continue
            children = [
                {"name": a["name"], "path": f"{zone_name}/{a['type']}/{a['name']}"}
                for a in info.get("assets", [])
                if not a["referenced"] and a["name"] and not a["type"].startswith("#")
            ]
            doc["zones"].append({"name": zone_name, "children": children})
        chunk_path = out / f"file_structure_{chunk_idx + 1:03d}.json"
        chunk_path.write_text(json.dumps(doc, indent=2), encoding="utf-8")
        written.append(chunk_path)
        log.info("Written chunk %d/%d: %s", chunk_idx + 1, total_chunks, chunk_path.name)
    get_reporter().status(f"Listing summary: zones={len(zones)} chunks={len(written)}")
    return written

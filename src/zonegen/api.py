"""High-level API for zonegen.

Wires configuration, the dispatch table and a fresh pool registry per call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .assets import AssetSource, default_dispatch_table
from .builder import ZoneBuilder, ZoneBuildResult
from .config import ZoneToolConfig, load_build_list
from .dump import DumpResult
from .dump import batch_dump as _batch_dump
from .dump import dump_zone as _dump_zone
from .dump import write_archive_listing as _write_archive_listing
from .loader import LoadedZone, ZoneLoader
from .logging import get_logger, section
from .zone.inspector import inspect_zone as _inspect_zone_impl
from .zone.inspector import validate_zone as _validate_zone_impl

__all__ = [
    "BuildOptions",
    "build_zone",
    "load_zone",
    "dump_zone",
    "batch_dump",
    "archive_listing",
    "inspect_zone",
    "validate_zone",
]


@dataclass(slots=True)
class BuildOptions:
    build_list: Path
    output_dir: Path
    source_paths: List[Path] = field(default_factory=list)
    zone_name: Optional[str] = None
    # None: use the configured pack file; 0: keep streamed blocks out
    pack_index: Optional[int] = None
    config: ZoneToolConfig = field(default_factory=ZoneToolConfig)


def build_zone(options: BuildOptions) -> ZoneBuildResult:
    cfg = options.config
    build_list = load_build_list(options.build_list)
    name = options.zone_name or build_list.name
    sources = options.source_paths or cfg.source_paths or [Path(options.build_list).parent]
    pack_index = cfg.pack_index if options.pack_index is None else options.pack_index
    dispatch = default_dispatch_table()
    builder = ZoneBuilder(
        AssetSource(sources),
        cfg.registry(dispatch.strides()),
        dispatch,
        codec=cfg.codec(),
    )
    with section(f"Build {name}"):
        get_logger().debug("Sources: %s", ", ".join(str(s) for s in sources))
        return builder.build(
            build_list.requests,
            name,
            output_dir=options.output_dir,
            pack_index=pack_index or None,
        )


def load_zone(path: str | Path, config: ZoneToolConfig | None = None) -> LoadedZone:
    cfg = config or ZoneToolConfig()
    dispatch = default_dispatch_table()
    loader = ZoneLoader(cfg.registry(dispatch.strides()), dispatch, codec=cfg.codec())
    return loader.load_file(Path(path), zone_paths=cfg.zone_paths)


def dump_zone(
    path: str | Path,
    output_dir: str | Path | None = None,
    config: ZoneToolConfig | None = None,
) -> DumpResult:
    cfg = config or ZoneToolConfig()
    dispatch = default_dispatch_table()
    with section(f"Dump {Path(path).stem}"):
        return _dump_zone(
            Path(path),
            Path(output_dir) if output_dir is not None else cfg.dump_path,
            registry=cfg.registry(dispatch.strides()),
            dispatch=dispatch,
            codec=cfg.codec(),
            zone_paths=cfg.zone_paths,
        )


def batch_dump(
    directory: str | Path,
    output_dir: str | Path | None = None,
    *,
    recursive: bool = False,
    config: ZoneToolConfig | None = None,
) -> List[DumpResult]:
    cfg = config or ZoneToolConfig()
    return _batch_dump(
        Path(directory),
        Path(output_dir) if output_dir is not None else cfg.dump_path,
        recursive=recursive,
        skip=cfg.skip_zones,
        capacities=cfg.pool_capacities,
        codec=cfg.codec(),
    )


def archive_listing(
    directory: str | Path,
    output_dir: str | Path,
    *,
    chunk_size: int | None = None,
    recursive: bool = False,
    config: ZoneToolConfig | None = None,
) -> List[Path]:
    cfg = config or ZoneToolConfig()
    return _write_archive_listing(
        Path(directory),
        Path(output_dir),
        chunk_size=chunk_size or cfg.listing_chunk_size,
        recursive=recursive,
        skip=cfg.skip_zones,
    )


def inspect_zone(path: str | Path) -> Dict[str, Any]:
    return _inspect_zone_impl(path)


def validate_zone(path: str | Path) -> List[str]:
    return _validate_zone_impl(_inspect_zone_impl(path))

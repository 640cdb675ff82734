"""Tool configuration and build lists (CSV, JSON or YAML)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping
import json

import yaml

from .builder import BuildRequest
from .zone.codec import DEFAULT_COMPRESSION_LEVEL, BlockCodec
from .zone.constants import PACK_FILE_MAX, AssetType, type_from_string
from .zone.pools import AssetPoolRegistry

__all__ = [
    "DEFAULT_SKIP_ZONES",
    "LISTING_CHUNK_SIZE",
    "ZoneToolConfig",
    "BuildList",
    "load_config",
    "load_build_list",
    "parse_build_list_csv",
]

DEFAULT_SKIP_ZONES = ("hmw_launcher", "hmw_launcher_mp", "patch_common_mp")
LISTING_CHUNK_SIZE = 10
_COMMENT_PREFIXES = ("#", "//")


@dataclass(slots=True)
class ZoneToolConfig:
    source_paths: List[Path] = field(default_factory=list)
    zone_paths: List[Path] = field(default_factory=list)
    dump_path: Path = Path("dump")
    pool_capacities: Dict[AssetType, int] = field(default_factory=dict)
    pack_index: int = 1
    compression_level: int = DEFAULT_COMPRESSION_LEVEL
    skip_zones: List[str] = field(default_factory=lambda: list(DEFAULT_SKIP_ZONES))
    listing_chunk_size: int = LISTING_CHUNK_SIZE

    def codec(self) -> BlockCodec:
        return BlockCodec(self.compression_level)

    def registry(self, strides: Mapping[AssetType, int] | None = None) -> AssetPoolRegistry:
        return AssetPoolRegistry(self.pool_capacities, strides)


@dataclass(slots=True)
class BuildList:
    name: str
    requests: List[BuildRequest] = field(default_factory=list)


def _read_document(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        return yaml.safe_load(text)
    return json.loads(text)


def _paths(values: Any, base: Path, key: str) -> List[Path]:
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, list):
        raise ValueError(f"{key} must be a path or a list of paths")
    return [(base / str(v)) for v in values]


def _config_from_dict(data: Dict[str, Any], base: Path) -> ZoneToolConfig:
    cfg = ZoneToolConfig()
    cfg.source_paths = _paths(data.get("source_paths"), base, "source_paths")
    cfg.zone_paths = _paths(data.get("zone_paths"), base, "zone_paths")
    if "dump_path" in data:
        cfg.dump_path = base / str(data["dump_path"])
    caps = data.get("pool_capacities", {}) or {}
    if not isinstance(caps, dict):
        raise ValueError("pool_capacities must be a mapping of type name to count")
    for type_name, count in caps.items():
        count = int(count)
        if count <= 0:
            raise ValueError(f"pool capacity for {type_name} must be positive")
        cfg.pool_capacities[type_from_string(str(type_name))] = count
    cfg.pack_index = int(data.get("pack_index", cfg.pack_index))
    if not 1 <= cfg.pack_index <= PACK_FILE_MAX:
        raise ValueError(f"pack_index must be within 1..{PACK_FILE_MAX}")
    cfg.compression_level = int(data.get("compression_level", cfg.compression_level))
    if "skip_zones" in data:
        cfg.skip_zones = [str(z) for z in data["skip_zones"] or []]
    cfg.listing_chunk_size = int(data.get("listing_chunk_size", cfg.listing_chunk_size))
    if cfg.listing_chunk_size <= 0:
        raise ValueError("listing_chunk_size must be positive")
    return cfg


def load_config(path: str | Path | None) -> ZoneToolConfig:
    """Load a JSON/YAML config; relative paths resolve against its folder."""
    if path is None:
        return ZoneToolConfig()
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)
    data = _read_document(p) or {}
    if not isinstance(data, dict):
        raise ValueError("Root of configuration must be an object")
    return _config_from_dict(data, p.parent)


def parse_build_list_csv(text: str, name: str) -> BuildList:
    out = BuildList(name)
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith(_COMMENT_PREFIXES):
            continue
        type_name, sep, asset_name = line.partition(",")
        if not sep or not asset_name.strip(","):
            raise ValueError(f"{name}:{lineno}: expected 'type,name'")
        try:
            asset_type = type_from_string(type_name)
        except ValueError as exc:
            raise ValueError(f"{name}:{lineno}: {exc}") from None
        out.requests.append(BuildRequest.parse(asset_type, asset_name.strip()))
    return out


def load_build_list(path: str | Path) -> BuildList:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)
    if p.suffix.lower() == ".csv":
        return parse_build_list_csv(p.read_text(encoding="utf-8"), p.stem)
    data = _read_document(p)
    if not isinstance(data, dict):
        raise ValueError("Root of build list must be an object")
    out = BuildList(str(data.get("name") or p.stem))
    for i, item in enumerate(data.get("assets", []) or []):
        if not isinstance(item, dict) or "type" not in item or "name" not in item:
            raise ValueError(f"assets[{i}] must be an object with 'type' and 'name'")
        asset_type = type_from_string(str(item["type"]))
        req = BuildRequest.parse(asset_type, str(item["name"]))
        if item.get("referenced") and not req.referenced:
            req = BuildRequest(req.ref, True)
        out.requests.append(req)
    return out

"""Material assets.

A material references its texture images and, optionally, a fallback
material. Material to material references may form cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Tuple
import json

from ..utils.paths import clean_name
from ..zone.buffer import ZoneBuffer
from ..zone.constants import AssetType, XBlock
from ..zone.errors import FormatError
from ..zone.reader import ZoneReader
from ..zone.records import AssetRef, Layout, asset_ref, padding, pointer, scalar
from .asset_file import read_asset_file
from .base import AcquireContext, AssetHandler, ExportContext, Strategy

__all__ = [
    "MaterialTextureDef",
    "Material",
    "MaterialHandler",
    "material_from_dict",
    "material_to_dict",
    "DEFAULT_TECHSET",
    "MAX_TEXTURES",
]

DEFAULT_TECHSET = "2d"


@dataclass(slots=True)
class MaterialTextureDef:
    name_hash: int = 0
    semantic: int = 0
    sampler_state: int = 0
    image: Optional[AssetRef] = None

    LAYOUT: ClassVar[Layout] = Layout(
        scalar("name_hash", "I"),
        scalar("semantic", "B"),
        scalar("sampler_state", "B"),
        padding(2),
        asset_ref("image", AssetType.IMAGE),
        padding(4),
    )


@dataclass(slots=True)
class Material:
    name: str = ""
    techset_name: str = DEFAULT_TECHSET
    sort_key: int = 0
    texture_count: int = 0
    state_flags: int = 0
    surface_type_bits: int = 0
    textures: List[MaterialTextureDef] = field(default_factory=list)
    fallback: Optional[AssetRef] = None

    LAYOUT: ClassVar[Layout] = Layout(
        pointer("name"),
        pointer("techset_name"),
        scalar("sort_key", "B"),
        scalar("texture_count", "B"),
        scalar("state_flags", "H"),
        scalar("surface_type_bits", "I"),
        pointer("textures"),
        asset_ref("fallback", AssetType.MATERIAL),
        padding(4),
    )


MAX_TEXTURES = 0xFF


def _ranged(value: Any, limit: int, what: str) -> int:
    value = int(value)
    if not 0 <= value <= limit:
        raise FormatError(f"{what} out of range: {value} (max {limit})")
    return value


def material_from_dict(doc: Dict[str, Any]) -> Material:
    try:
        textures = [
            MaterialTextureDef(
                name_hash=_ranged(t.get("name_hash", 0), 0xFFFFFFFF, "name_hash"),
                semantic=_ranged(t.get("semantic", 0), 0xFF, "semantic"),
                sampler_state=_ranged(t.get("sampler_state", 0), 0xFF, "sampler_state"),
                image=AssetRef(AssetType.IMAGE, t["image"]) if t.get("image") else None,
            )
            for t in doc.get("textures", [])
        ]
        if len(textures) > MAX_TEXTURES:
            raise FormatError(
                f"Material {doc['name']} has {len(textures)} textures (max {MAX_TEXTURES})",
                {"material": doc["name"]},
            )
        fallback = doc.get("fallback")
        return Material(
            name=doc["name"],
            techset_name=doc.get("techset", DEFAULT_TECHSET),
            sort_key=_ranged(doc.get("sort_key", 0), 0xFF, "sort_key"),
            texture_count=len(textures),
            state_flags=_ranged(doc.get("state_flags", 0), 0xFFFF, "state_flags"),
            surface_type_bits=_ranged(
                doc.get("surface_type_bits", 0), 0xFFFFFFFF, "surface_type_bits"
            ),
            textures=textures,
            fallback=AssetRef(AssetType.MATERIAL, fallback) if fallback else None,
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise FormatError(f"Invalid material document: {exc}") from exc


def material_to_dict(mat: Material) -> Dict[str, Any]:
    return {
        "name": mat.name,
        "techset": mat.techset_name,
        "sort_key": mat.sort_key,
        "state_flags": mat.state_flags,
        "surface_type_bits": mat.surface_type_bits,
        "textures": [
            {
                "name_hash": t.name_hash,
                "semantic": t.semantic,
                "sampler_state": t.sampler_state,
                "image": t.image.name if t.image else None,
            }
            for t in mat.textures
        ],
        "fallback": mat.fallback.name if mat.fallback else None,
    }


class MaterialHandler(AssetHandler):
    asset_type = AssetType.MATERIAL
    record = Material

    def strategies(self) -> List[Tuple[str, Strategy]]:
        return [
            ("asset file", self._from_asset_file),
            ("json", self._from_json),
        ]

    def default(self, name: str, ctx: AcquireContext) -> Material:
        return Material(name=name, techset_name=DEFAULT_TECHSET)

    def _from_asset_file(self, name: str, ctx: AcquireContext) -> Material:
        data = ctx.source.read(f"materials/{clean_name(name)}.material")
        return read_asset_file(self, data, ctx.arena)

    def _from_json(self, name: str, ctx: AcquireContext) -> Material:
        raw = ctx.source.read(f"materials/{clean_name(name)}.json")
        try:
            doc = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise FormatError(f"materials/{name}.json: {exc}") from exc
        if not isinstance(doc, dict):
            raise FormatError(f"materials/{name}.json: expected an object")
        doc.setdefault("name", name)
        return material_from_dict(doc)

    def write(self, mat: Material, buf: ZoneBuffer) -> None:
        dest = buf.write(mat)
        buf.push_stream(XBlock.VIRTUAL)
        dest.name = buf.write_str(mat.name)
        dest.techset_name = buf.write_str(mat.techset_name)
        if mat.textures:
            buf.align(3)
            dest.textures = buf.write_array(mat.textures)
        else:
            dest.textures = None
        dest.texture_count = len(mat.textures)
        buf.pop_stream()

    def read(self, reader: ZoneReader) -> Material:
        mat = reader.read_single(Material)
        reader.push_stream(XBlock.VIRTUAL)
        if mat.name is not None:
            reader.read_string()
        if mat.techset_name is not None:
            reader.read_string()
        if mat.textures is not None:
            reader.align(3)
            reader.read_array(MaterialTextureDef, mat.texture_count)
        reader.pop_stream()
        reader.fixup(mat)
        if mat.textures is None:
            mat.textures = []
        return mat

    def dependencies(self, mat: Material) -> List[AssetRef]:
        deps = [t.image for t in mat.textures if t.image is not None]
        if mat.fallback is not None:
            deps.append(mat.fallback)
        return deps

    def export(self, mat: Material, ctx: ExportContext) -> List[Path]:
        path = ctx.path("materials", f"{clean_name(mat.name)}.json")
        path.write_text(json.dumps(material_to_dict(mat), indent=2), encoding="utf-8")
        return [path]

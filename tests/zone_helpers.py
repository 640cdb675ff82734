"""Shared fixtures for zone tests: source trees and legacy containers."""

from __future__ import annotations

import io
import json
import wave
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from PIL import Image

from zonegen.assets import GfxImage
from zonegen.builder import BuildRequest, ZoneBuilder
from zonegen.assets import AssetSource
from zonegen.zone.constants import AssetType
from zonegen.zone.records import pack_record


def write_tree(root: Path, files: Dict[str, bytes | str]) -> Path:
    for rel, content in files.items():
        p = root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            p.write_text(content, encoding="utf-8")
        else:
            p.write_bytes(content)
    return root


def png_bytes(width: int, height: int, color=(0, 128, 255, 255)) -> bytes:
    out = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(out, format="PNG")
    return out.getvalue()


def dds_bytes(width: int, height: int, color=(0, 255, 0, 255)) -> bytes:
    out = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(out, format="DDS")
    return out.getvalue()


def wav_bytes(frames: bytes, *, channels: int = 1, width: int = 2, rate: int = 22050) -> bytes:
    out = io.BytesIO()
    with wave.open(out, "wb") as w:
        w.setnchannels(channels)
        w.setsampwidth(width)
        w.setframerate(rate)
        w.writeframes(frames)
    return out.getvalue()


def material_json(
    name: str, images: Iterable[str] = (), fallback: Optional[str] = None
) -> str:
    return json.dumps(
        {
            "name": name,
            "techset": "wc_l_sm_r0c0",
            "sort_key": 4,
            "textures": [
                {"name_hash": 0xA0AB1041 + i, "semantic": 2, "sampler_state": 1, "image": img}
                for i, img in enumerate(images)
            ],
            "fallback": fallback,
        }
    )


def legacy_h1image(image: GfxImage) -> bytes:
    """Headerless streamed-image container: the record then its name."""
    return pack_record(image, encode_ref=lambda ref: None) + image.name.encode() + b"\x00"


def requests(*pairs) -> List[BuildRequest]:
    return [BuildRequest.parse(t, n) for t, n in pairs]


def builder_for(root: Path, **kwargs) -> ZoneBuilder:
    return ZoneBuilder(AssetSource([root]), **kwargs)


SAMPLE_TREE = {
    "localize/MENU_HELLO.txt": "Hello there\n",
    "rawfile/maps/mp/test.gsc": b"main()\n{\n    wait 1;\n}\n" * 40,
    "sound/beep.wav": wav_bytes(bytes(range(256)) * 4),
    "images/red_tile.png": png_bytes(4, 2, (255, 0, 0, 255)),
    "materials/mc_tile.json": material_json("mc_tile", ["red_tile"]),
}

SAMPLE_REQUESTS = (
    (AssetType.MATERIAL, "mc_tile"),
    (AssetType.LOCALIZE_ENTRY, "MENU_HELLO"),
    (AssetType.RAWFILE, "maps/mp/test.gsc"),
    (AssetType.LOADED_SOUND, "beep"),
)

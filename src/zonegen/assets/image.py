"""Image assets.

Sources, in order: canonical ``images/<clean>.image``, the legacy
``streamed_images/<clean>.h1Image`` container with its ``_stream<i>.pixels``
companions, then ``images/<clean>.{dds,tga,png}`` decoded through Pillow.
A missing image becomes a single red RGBA8 pixel.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, List, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from ..utils.paths import clean_name
from ..zone.buffer import ZoneBuffer
from ..zone.constants import (
    DXGI_FORMAT_R8G8B8A8_UNORM,
    IMAGE_STREAM_COUNT,
    AssetType,
    ImageCategory,
    ImageFlags,
    MapType,
    TextureSemantic,
    XBlock,
)
from ..zone.errors import FormatError
from ..zone.reader import ZoneReader
from ..zone.records import Layout, inline, padding, pointer, scalar
from ..zone.streams import StreamFileRecord
from ..logging import get_logger
from .asset_file import read_asset_file, write_asset_file
from .base import AcquireContext, AssetHandler, ExportContext, Strategy

__all__ = [
    "GfxImageStreamInfo",
    "GfxImage",
    "ImageHandler",
    "add_loaded_image_flags",
    "default_image",
    "EXTERNAL_IMAGE_EXTENSIONS",
]

EXTERNAL_IMAGE_EXTENSIONS = (".dds", ".tga", ".png")
DEFAULT_PIXEL = bytes((255, 0, 0, 255))
MAX_IMAGE_DIMENSION = 0xFFFF


@dataclass(slots=True)
class GfxImageStreamInfo:
    width: int = 0
    height: int = 0
    pixel_size: int = 0

    LAYOUT: ClassVar[Layout] = Layout(
        scalar("width", "H"),
        scalar("height", "H"),
        scalar("pixel_size", "I"),
    )


def _empty_streams() -> List[GfxImageStreamInfo]:
    return [GfxImageStreamInfo() for _ in range(IMAGE_STREAM_COUNT)]


@dataclass(slots=True)
class GfxImage:
    name: str = ""
    image_format: int = DXGI_FORMAT_R8G8B8A8_UNORM
    flags: int = 0
    map_type: int = MapType.MAP_2D
    semantic: int = TextureSemantic.TS_2D
    category: int = ImageCategory.UNKNOWN
    level_count: int = 1
    width: int = 0
    height: int = 0
    depth: int = 1
    num_elements: int = 1
    data_len1: int = 0
    data_len2: int = 0
    streamed: bool = False
    # Position in the owning zone's stream-file table; zone specific.
    stream_file_index: int = field(default=0, compare=False)
    streams: List[GfxImageStreamInfo] = field(default_factory=_empty_streams)
    pixel_data: Optional[bytes] = None
    # Streamed level payloads to emit on write; never serialized inline.
    stream_payloads: List[Optional[bytes]] = field(
        default_factory=list, compare=False, repr=False
    )

    LAYOUT: ClassVar[Layout] = Layout(
        pointer("name"),
        scalar("image_format", "I"),
        scalar("flags", "I"),
        scalar("map_type", "B"),
        scalar("semantic", "B"),
        scalar("category", "B"),
        scalar("level_count", "B"),
        scalar("width", "H"),
        scalar("height", "H"),
        scalar("depth", "H"),
        scalar("num_elements", "H"),
        scalar("data_len1", "I"),
        scalar("data_len2", "I"),
        scalar("streamed", "?"),
        padding(3),
        scalar("stream_file_index", "I"),
        inline("streams", GfxImageStreamInfo, IMAGE_STREAM_COUNT),
        pointer("pixel_data"),
    )


def add_loaded_image_flags(image: GfxImage) -> GfxImage:
    if image.level_count <= 1:
        image.flags |= ImageFlags.NOMIPMAPS
    if image.num_elements > 1 and image.map_type != MapType.CUBE:
        image.map_type = MapType.ARRAY
    return image


def default_image(name: str) -> GfxImage:
    return GfxImage(
        name=name,
        image_format=DXGI_FORMAT_R8G8B8A8_UNORM,
        map_type=MapType.MAP_2D,
        semantic=TextureSemantic.TS_2D,
        category=ImageCategory.AUTO_GENERATED,
        level_count=1,
        width=1,
        height=1,
        depth=1,
        num_elements=1,
        data_len1=len(DEFAULT_PIXEL),
        data_len2=len(DEFAULT_PIXEL),
        pixel_data=DEFAULT_PIXEL,
    )


def _stream_pixels_path(name: str, index: int) -> str:
    return f"streamed_images/{clean_name(name)}_stream{index}.pixels"


def _stream_dds_path(name: str, index: int) -> str:
    return f"streamed_images/{clean_name(name)}_stream{index}.dds"


def _decode_rgba(path: Path) -> Tuple[bytes, int, int]:
    try:
        with Image.open(path) as img:
            rgba = img.convert("RGBA")
            width, height = rgba.size
            return rgba.tobytes(), width, height
    except (UnidentifiedImageError, OSError) as exc:
        raise FormatError(f"Cannot decode {path.name}: {exc}", {"path": str(path)}) from exc


class ImageHandler(AssetHandler):
    asset_type = AssetType.IMAGE
    record = GfxImage

    # Acquisition ---------------------------------------------------------------
    def strategies(self) -> List[Tuple[str, Strategy]]:
        return [
            ("asset file", self._from_asset_file),
            ("streamed container", self._from_streamed_container),
            ("external image", self._from_external_image),
        ]

    def default(self, name: str, ctx: AcquireContext) -> GfxImage:
        return default_image(name)

    def _load_stream_payloads(self, name: str, ctx: AcquireContext) -> List[Optional[bytes]]:
        return [self._load_stream_payload(name, i, ctx) for i in range(IMAGE_STREAM_COUNT)]

    def _load_stream_payload(
        self, name: str, index: int, ctx: AcquireContext
    ) -> Optional[bytes]:
        raw = ctx.source.read_optional(_stream_pixels_path(name, index))
        if raw is not None:
            return raw
        dds = ctx.source.find(_stream_dds_path(name, index))
        if dds is None:
            return None
        try:
            pixels, _, _ = _decode_rgba(dds)
        except FormatError as exc:
            get_logger().warning("%s: stream block %d unusable: %s", name, index, exc.message)
            return None
        return pixels

    def _from_asset_file(self, name: str, ctx: AcquireContext) -> GfxImage:
        data = ctx.source.read(f"images/{clean_name(name)}.image")
        image = read_asset_file(self, data, ctx.arena)
        if image.streamed:
            image.stream_payloads = self._load_stream_payloads(name, ctx)
        return image

    def _from_streamed_container(self, name: str, ctx: AcquireContext) -> GfxImage:
        data = ctx.source.read(f"streamed_images/{clean_name(name)}.h1Image")
        reader = ZoneReader.open_flat(data, ctx.arena)
        try:
            image = reader.read_single(GfxImage)
            image.name = reader.read_string()
        finally:
            reader.close()
        get_logger().info("Parsing streamed image %s", name)
        image.streamed = True
        image.pixel_data = None
        image.stream_payloads = self._load_stream_payloads(name, ctx)
        return image

    def _from_external_image(self, name: str, ctx: AcquireContext) -> Optional[GfxImage]:
        base = f"images/{clean_name(name)}"
        path = next(
            (p for p in (ctx.source.find(base + ext) for ext in EXTERNAL_IMAGE_EXTENSIONS) if p),
            None,
        )
        if path is None:
            return None
        get_logger().info("Parsing custom image %s (%s)", name, path.name)
        pixels, width, height = _decode_rgba(path)
        if width > MAX_IMAGE_DIMENSION or height > MAX_IMAGE_DIMENSION:
            raise FormatError(
                f"{path.name} is {width}x{height}, larger than {MAX_IMAGE_DIMENSION}",
                {"path": str(path)},
            )
        image = GfxImage(
            name=name,
            image_format=DXGI_FORMAT_R8G8B8A8_UNORM,
            map_type=MapType.MAP_2D,
            semantic=TextureSemantic.COLOR_MAP,
            category=ImageCategory.LOAD_FROM_FILE,
            level_count=1,
            width=width,
            height=height,
            depth=1,
            num_elements=1,
            data_len1=len(pixels),
            data_len2=len(pixels),
            pixel_data=pixels,
        )
        return add_loaded_image_flags(image)

    # Serialization -------------------------------------------------------------
    def write(self, image: GfxImage, buf: ZoneBuffer) -> None:
        dest = buf.write(image)
        buf.push_stream(XBlock.VIRTUAL)
        dest.name = buf.write_str(image.name)
        buf.push_stream(XBlock.TEMP)
        if image.pixel_data is not None:
            buf.align(3)
            buf.write_stream(image.pixel_data)
            buf.clear_pointer(dest, "pixel_data")
            dest.data_len1 = len(image.pixel_data)
        buf.pop_stream()
        buf.pop_stream()
        if image.streamed:
            dest.stream_file_index = buf.next_streamfile_index
            payloads = list(image.stream_payloads)
            payloads += [None] * (IMAGE_STREAM_COUNT - len(payloads))
            for i, payload in enumerate(payloads[:IMAGE_STREAM_COUNT]):
                if payload is not None and buf.pack_writer is None:
                    get_logger().warning(
                        "%s: stream block %d dropped (%d bytes), no pack file",
                        image.name,
                        i,
                        len(payload),
                    )
                buf.write_streamfile(payload)

    def read(self, reader: ZoneReader) -> GfxImage:
        image = reader.read_single(GfxImage)
        reader.push_stream(XBlock.VIRTUAL)
        if image.name is not None:
            reader.read_string()
        reader.push_stream(XBlock.TEMP)
        if image.pixel_data is not None:
            reader.align(3)
            reader.read_bytes(image.data_len1)
        reader.pop_stream()
        reader.pop_stream()
        return reader.fixup(image)

    def stream_blocks(self, image: GfxImage, reader: ZoneReader) -> List[StreamFileRecord]:
        if not image.streamed:
            return []
        first = image.stream_file_index
        if first + IMAGE_STREAM_COUNT > len(reader.stream_files):
            raise FormatError(
                f"Image {image.name} stream files out of range",
                {"first": first, "count": len(reader.stream_files)},
            )
        return reader.stream_files[first : first + IMAGE_STREAM_COUNT]

    # Export --------------------------------------------------------------------
    def export(self, image: GfxImage, ctx: ExportContext) -> List[Path]:
        clean = clean_name(image.name)
        written: List[Path] = []
        path = ctx.path("images", f"{clean}.image")
        path.write_bytes(write_asset_file(self, image))
        written.append(path)

        if self._is_plain_rgba(image):
            png = ctx.path("images", f"{clean}.png")
            Image.frombytes("RGBA", (image.width, image.height), image.pixel_data).save(png)
            written.append(png)

        if image.streamed and ctx.stream_index is not None:
            ref = self.ref_of(image)
            for i in range(IMAGE_STREAM_COUNT):
                payload = ctx.stream_index.fetch(ref, i)
                if payload is None:
                    continue
                out = ctx.path(_stream_pixels_path(image.name, i))
                out.write_bytes(payload)
                written.append(out)
        return written

    @staticmethod
    def _is_plain_rgba(image: GfxImage) -> bool:
        return (
            image.pixel_data is not None
            and image.image_format == DXGI_FORMAT_R8G8B8A8_UNORM
            and image.map_type == MapType.MAP_2D
            and image.level_count == 1
            and image.num_elements == 1
            and image.width > 0
            and image.height > 0
            and len(image.pixel_data) == image.width * image.height * 4
        )

"""Format constants for zone files, pack files and the asset type set."""

from __future__ import annotations

from enum import IntEnum, IntFlag

ZONE_MAGIC = b"ZONEFF\x00\x00"
PACK_MAGIC = b"ZONEPAK\x00"

# Header: magic, stream_count, asset_count, relocation_count,
# streamfile_count, names_size, reserved.
HEADER_FORMAT = "<8sIIIII4x"
HEADER_SIZE = 32
STREAM_DIR_ENTRY_FORMAT = "<IIQQ"
STREAM_DIR_ENTRY_SIZE = 24
ASSET_ENTRY_PREFIX_FORMAT = "<BBHI"
ASSET_ENTRY_PREFIX_SIZE = 8
RELOCATION_FORMAT = "<BB6xQQ"
RELOCATION_SIZE = 24
STREAMFILE_FORMAT = "<B7xQQQ"
STREAMFILE_SIZE = 32

STREAM_ALIGNMENT = 8
MAX_ALIGN_SHIFT = 3

POINTER_SIZE = 8
# Value a pointer field holds between write() and the handler patching it.
POINTER_PRESENT = 0xFFFF_FFFF_FFFF_FFFF
MARKER_STREAM_SHIFT = 48
MARKER_OFFSET_MASK = (1 << MARKER_STREAM_SHIFT) - 1

ASSET_FLAG_REFERENCED = 0x01
REFERENCE_PREFIX = ","

# Pack file ids: 0 = no block, 96 = the zone file itself.
PACK_FILE_NONE = 0
PACK_FILE_SELF = 96
PACK_FILE_MAX = 95
PACK_FILE_PATTERN = "imagefile{index}.pak"

ZONE_FILE_SUFFIX = ".ff"


class XBlock(IntEnum):
    """Stream partitions of a zone."""

    TEMP = 0
    PHYSICAL = 1
    VIRTUAL = 2


# Output order of partitions: pointer-bearing first, bulk last.
STREAM_ORDER = (XBlock.VIRTUAL, XBlock.PHYSICAL, XBlock.TEMP)
DEFAULT_STREAM = XBlock.VIRTUAL


class AssetType(IntEnum):
    MATERIAL = 8
    IMAGE = 16
    LOADED_SOUND = 19
    LOCALIZE_ENTRY = 37
    RAWFILE = 41


ASSET_TYPE_NAMES = {
    AssetType.MATERIAL: "material",
    AssetType.IMAGE: "image",
    AssetType.LOADED_SOUND: "loaded_sound",
    AssetType.LOCALIZE_ENTRY: "localize",
    AssetType.RAWFILE: "rawfile",
}
ASSET_TYPE_BY_NAME = {v: k for k, v in ASSET_TYPE_NAMES.items()}

DEFAULT_POOL_CAPACITIES = {
    AssetType.IMAGE: 30000,
    AssetType.MATERIAL: 18000,
    AssetType.LOCALIZE_ENTRY: 15000,
    AssetType.LOADED_SOUND: 4096,
    AssetType.RAWFILE: 4096,
}


def type_to_string(asset_type: AssetType) -> str:
    return ASSET_TYPE_NAMES[AssetType(asset_type)]


def type_from_string(name: str) -> AssetType:
    try:
        return ASSET_TYPE_BY_NAME[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown asset type name: {name!r}") from None


# Image tags (opaque to the core; stored and relayed only)
class MapType(IntEnum):
    NONE = 0
    INVALID1 = 1
    MAP_1D = 2
    MAP_2D = 3
    MAP_3D = 4
    CUBE = 5
    ARRAY = 6


class TextureSemantic(IntEnum):
    TS_2D = 0
    FUNCTION = 1
    COLOR_MAP = 2


class ImageCategory(IntEnum):
    UNKNOWN = 0
    AUTO_GENERATED = 1
    LOAD_FROM_FILE = 2


class ImageFlags(IntFlag):
    NOPICMIP = 0x1
    NOMIPMAPS = 0x2


DXGI_FORMAT_R8G8B8A8_UNORM = 28
IMAGE_STREAM_COUNT = 4

SND_FORMAT_PCM = 1

__all__ = [
    "ZONE_MAGIC",
    "PACK_MAGIC",
    "HEADER_FORMAT",
    "HEADER_SIZE",
    "STREAM_DIR_ENTRY_FORMAT",
    "STREAM_DIR_ENTRY_SIZE",
    "ASSET_ENTRY_PREFIX_FORMAT",
    "ASSET_ENTRY_PREFIX_SIZE",
    "RELOCATION_FORMAT",
    "RELOCATION_SIZE",
    "STREAMFILE_FORMAT",
    "STREAMFILE_SIZE",
    "STREAM_ALIGNMENT",
    "MAX_ALIGN_SHIFT",
    "POINTER_SIZE",
    "POINTER_PRESENT",
    "MARKER_STREAM_SHIFT",
    "MARKER_OFFSET_MASK",
    "ASSET_FLAG_REFERENCED",
    "REFERENCE_PREFIX",
    "PACK_FILE_NONE",
    "PACK_FILE_SELF",
    "PACK_FILE_MAX",
    "PACK_FILE_PATTERN",
    "ZONE_FILE_SUFFIX",
    "XBlock",
    "STREAM_ORDER",
    "DEFAULT_STREAM",
    "AssetType",
    "ASSET_TYPE_NAMES",
    "ASSET_TYPE_BY_NAME",
    "DEFAULT_POOL_CAPACITIES",
    "type_to_string",
    "type_from_string",
    "MapType",
    "TextureSemantic",
    "ImageCategory",
    "ImageFlags",
    "DXGI_FORMAT_R8G8B8A8_UNORM",
    "IMAGE_STREAM_COUNT",
    "SND_FORMAT_PCM",
]

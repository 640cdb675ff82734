"""Zone serialization engine: records, writer, reader, pools and streams."""

from .buffer import StreamPointer, WriteHandle, ZoneBuffer
from .codec import BlockCodec
from .constants import AssetType, XBlock, type_from_string, type_to_string
from .errors import ZoneError
from .inspector import inspect_zone, validate_zone
from .memory import Arena
from .pools import AssetPool, AssetPoolRegistry
from .reader import AssetEntry, ZoneReader
from .records import AssetRef
from .streams import (
    PackFileReader,
    PackFileWriter,
    StreamBlockIndex,
    StreamFileRecord,
)

__all__ = [
    "Arena",
    "AssetEntry",
    "AssetPool",
    "AssetPoolRegistry",
    "AssetRef",
    "AssetType",
    "BlockCodec",
    "PackFileReader",
    "PackFileWriter",
    "StreamBlockIndex",
    "StreamFileRecord",
    "StreamPointer",
    "WriteHandle",
    "XBlock",
    "ZoneBuffer",
    "ZoneError",
    "ZoneReader",
    "inspect_zone",
    "type_from_string",
    "type_to_string",
    "validate_zone",
]

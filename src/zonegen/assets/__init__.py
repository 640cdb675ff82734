"""Per-type asset handlers and the dispatch table that selects them."""

from .base import (
    AcquireContext,
    AcquireResult,
    AssetHandler,
    DispatchTable,
    ExportContext,
    acquire_asset,
)
from .image import GfxImage, GfxImageStreamInfo, ImageHandler
from .localize import LocalizeEntry, LocalizeHandler
from .material import Material, MaterialHandler, MaterialTextureDef
from .rawfile import RawFile, RawFileHandler
from .sound import LoadedSound, SoundHandler
from .source import AssetSource


def default_dispatch_table() -> DispatchTable:
    return DispatchTable(
        (
            MaterialHandler(),
            ImageHandler(),
            SoundHandler(),
            LocalizeHandler(),
            RawFileHandler(),
        )
    )


__all__ = [
    "AcquireContext",
    "AcquireResult",
    "AssetHandler",
    "AssetSource",
    "DispatchTable",
    "ExportContext",
    "GfxImage",
    "GfxImageStreamInfo",
    "ImageHandler",
    "LoadedSound",
    "LocalizeEntry",
    "LocalizeHandler",
    "Material",
    "MaterialHandler",
    "MaterialTextureDef",
    "RawFile",
    "RawFileHandler",
    "SoundHandler",
    "acquire_asset",
    "default_dispatch_table",
]

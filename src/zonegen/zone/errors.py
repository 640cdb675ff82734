"""Error definitions for zonegen.

Every failure carries a stable ``code`` plus a free-form ``context`` dict so
callers (CLI, reporters, tests) can route on the code instead of parsing the
message.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Optional

E_NOT_FOUND = "E_NOT_FOUND"
E_FORMAT = "E_FORMAT"
E_TRUNCATED = "E_TRUNCATED"
E_POOL_EXHAUSTED = "E_POOL_EXHAUSTED"
E_POOL_GROWTH = "E_POOL_GROWTH"
E_CODEC = "E_CODEC"
E_PACK_READ = "E_PACK_READ"
E_DEPENDENCY = "E_DEPENDENCY"
E_STREAM_STACK = "E_STREAM_STACK"
E_UNSUPPORTED_TYPE = "E_UNSUPPORTED_TYPE"
E_BUILD = "E_BUILD"
E_LOAD = "E_LOAD"
E_ABORTED = "E_ABORTED"
E_INTERNAL = "E_INTERNAL"


@dataclass(eq=False)
class ZoneError(Exception):
    message: str
    context: Optional[Dict[str, Any]] = None

    code: ClassVar[str] = E_INTERNAL

    def __str__(self) -> str:
        return f"{self.code}: {self.message}" + (
            f" | ctx={self.context}" if self.context else ""
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context or {},
        }


class AssetNotFoundError(ZoneError):
    code = E_NOT_FOUND


class FormatError(ZoneError):
    code = E_FORMAT


class TruncatedDataError(FormatError):
    code = E_TRUNCATED


class PoolExhaustedError(ZoneError):
    code = E_POOL_EXHAUSTED


class PoolGrowthError(ZoneError):
    code = E_POOL_GROWTH


class CodecError(ZoneError):
    code = E_CODEC


class PackReadError(ZoneError):
    code = E_PACK_READ


class DependencyUnresolvedError(ZoneError):
    code = E_DEPENDENCY


class StreamStackError(ZoneError):
    code = E_STREAM_STACK


class UnsupportedAssetTypeError(ZoneError):
    code = E_UNSUPPORTED_TYPE


class ZoneBuildError(ZoneError):
    code = E_BUILD


class ZoneLoadError(ZoneError):
    code = E_LOAD


class ZoneLoadAborted(ZoneError):
    code = E_ABORTED


__all__ = [
    "ZoneError",
    "AssetNotFoundError",
    "FormatError",
    "TruncatedDataError",
    "PoolExhaustedError",
    "PoolGrowthError",
    "CodecError",
    "PackReadError",
    "DependencyUnresolvedError",
    "StreamStackError",
    "UnsupportedAssetTypeError",
    "ZoneBuildError",
    "ZoneLoadError",
    "ZoneLoadAborted",
    "E_NOT_FOUND",
    "E_FORMAT",
    "E_TRUNCATED",
    "E_POOL_EXHAUSTED",
    "E_POOL_GROWTH",
    "E_CODEC",
    "E_PACK_READ",
    "E_DEPENDENCY",
    "E_STREAM_STACK",
    "E_UNSUPPORTED_TYPE",
    "E_BUILD",
    "E_LOAD",
    "E_ABORTED",
    "E_INTERNAL",
]

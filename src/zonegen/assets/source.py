"""Source tree lookup for asset acquisition."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional

from ..logging import get_logger
from ..utils.io import DataError, safe_read_file
from ..utils.paths import safe_file_path
from ..zone.errors import AssetNotFoundError, FormatError

__all__ = ["AssetSource"]


class AssetSource:
    """Ordered list of root directories; the first root holding a file wins."""

    def __init__(self, search_paths: Iterable[Path] = ()):
        self.search_paths: List[Path] = [Path(p) for p in search_paths]

    def find(self, relative: str) -> Optional[Path]:
        for root in self.search_paths:
            try:
                candidate = safe_file_path(root, relative)
            except ValueError:
                get_logger().debug("Rejected path escaping %s: %s", root, relative)
                continue
            if candidate.is_file():
                return candidate
        return None

    def exists(self, relative: str) -> bool:
        return self.find(relative) is not None

    def read(self, relative: str) -> bytes:
        path = self.find(relative)
        if path is None:
            raise AssetNotFoundError(f"{relative} not found", {"path": relative})
        try:
            return safe_read_file(path)
        except DataError as exc:
            raise FormatError(str(exc), {"path": str(path)}) from exc

    def read_optional(self, relative: str) -> Optional[bytes]:
        try:
            return self.read(relative)
        except AssetNotFoundError:
            return None

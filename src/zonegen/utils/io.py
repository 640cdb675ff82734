"""IO helpers for source files."""

from __future__ import annotations
from pathlib import Path

__all__ = ["safe_read_file", "DataError", "MAX_SOURCE_FILE_SIZE"]

MAX_SOURCE_FILE_SIZE = 256 * 1024 * 1024


class DataError(RuntimeError):
    pass


def safe_read_file(path: Path, max_size: int = MAX_SOURCE_FILE_SIZE) -> bytes:
    if not path.exists():
        raise DataError(f"File not found: {path}")
    size = path.stat().st_size
    if size > max_size:
        raise DataError(f"File too large: {size}>{max_size}")
    return path.read_bytes()

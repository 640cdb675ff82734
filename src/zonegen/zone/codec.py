"""Block codec for stream-block payloads and rawfile buffers.

Blocks are zstandard frames. A block that does not shrink is stored raw, so
``len(compress(x)) <= len(x)`` always holds; the reader tells the two apart
by comparing the stored length with the expected decompressed length (a
frame is only kept when it is strictly shorter than its input).
"""

from __future__ import annotations

import zstandard as zstd

from .errors import CodecError

__all__ = ["BlockCodec", "DEFAULT_COMPRESSION_LEVEL"]

DEFAULT_COMPRESSION_LEVEL = 3


class BlockCodec:
    def __init__(self, level: int = DEFAULT_COMPRESSION_LEVEL):
        self.level = level

    def compress(self, data: bytes) -> bytes:
        raw = bytes(data)
        if not raw:
            return raw
        cctx = zstd.ZstdCompressor(level=self.level, write_content_size=True)
        packed = cctx.compress(raw)
        if len(packed) < len(raw):
            return packed
        return raw

    def decompress(self, data: bytes, expected_len: int) -> bytes:
        raw = bytes(data)
        if len(raw) == expected_len:
            return raw
        if expected_len <= 0 or len(raw) > expected_len:
            raise CodecError(
                "Stored block larger than its decompressed length",
                {"stored": len(raw), "expected": expected_len},
            )
        dctx = zstd.ZstdDecompressor()
        try:
            out = dctx.decompress(raw, max_output_size=expected_len)
        except zstd.ZstdError as exc:
            raise CodecError(
                f"Block decompression failed: {exc}",
                {"stored": len(raw), "expected": expected_len},
            ) from exc
        if len(out) != expected_len:
            raise CodecError(
                "Decompressed size mismatch",
                {"actual": len(out), "expected": expected_len},
            )
        return out

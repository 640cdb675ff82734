import os

import pytest

from zonegen.zone.codec import BlockCodec
from zonegen.zone.errors import CodecError


def test_compressible_block_shrinks_and_restores():
    codec = BlockCodec()
    data = b"stream level " * 512
    packed = codec.compress(data)
    assert len(packed) < len(data)
    assert codec.decompress(packed, len(data)) == data


def test_incompressible_block_is_stored_raw():
    codec = BlockCodec()
    data = os.urandom(64)
    packed = codec.compress(data)
    assert packed == data
    assert codec.decompress(packed, len(data)) == data


def test_empty_block():
    codec = BlockCodec()
    assert codec.compress(b"") == b""
    assert codec.decompress(b"", 0) == b""


def test_declared_length_mismatch_is_codec_error():
    codec = BlockCodec()
    packed = codec.compress(b"x" * 1000)
    with pytest.raises(CodecError):
        codec.decompress(packed, 999)


def test_garbage_frame_is_codec_error():
    with pytest.raises(CodecError):
        BlockCodec().decompress(b"\x01" * 10, 100)


def test_stored_larger_than_expected_is_codec_error():
    with pytest.raises(CodecError) as ei:
        BlockCodec().decompress(b"abcdef", 4)
    assert ei.value.code == "E_CODEC"


@pytest.mark.parametrize("size", [1, 7, 4096, 3 * 1024 * 1024])
def test_round_trip_across_sizes(size):
    codec = BlockCodec()
    data = (os.urandom(64) * (size // 64 + 1))[:size]
    assert codec.decompress(codec.compress(data), size) == data

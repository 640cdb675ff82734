import logging

import pytest

from zonegen.zone.constants import PACK_MAGIC, STREAM_ALIGNMENT, AssetType
from zonegen.zone.errors import PackReadError
from zonegen.zone.records import AssetRef
from zonegen.zone.streams import (
    PackFileReader,
    PackFileWriter,
    StreamBlockIndex,
    StreamFileRecord,
)

REF = AssetRef(AssetType.IMAGE, "sky")
OTHER = AssetRef(AssetType.IMAGE, "ground")


def _pack(tmp_path, *payloads, index=1):
    writer = PackFileWriter(index)
    records = [writer.append(p) for p in payloads]
    path = writer.save(tmp_path)
    return path, records


def test_writer_aligns_blocks_after_magic(tmp_path):
    path, records = _pack(tmp_path, b"a" * 3, b"b" * 500)
    data = path.read_bytes()
    assert data.startswith(PACK_MAGIC)
    assert records[0].offset == len(PACK_MAGIC)
    for rec in records:
        assert rec.offset % STREAM_ALIGNMENT == 0
        assert not rec.absent
    assert records[1].compressed_size < records[1].size == 500


@pytest.mark.parametrize("index", [0, 96])
def test_writer_rejects_reserved_indices(index):
    with pytest.raises(ValueError):
        PackFileWriter(index)


def test_fetch_materializes_and_caches(tmp_path):
    path, records = _pack(tmp_path, b"level0" * 100)
    index = StreamBlockIndex(PackFileReader([tmp_path]))
    index.add(REF, 0, records[0])
    assert index.fetch(REF, 0) == b"level0" * 100
    path.unlink()
    assert index.fetch(REF, 0) == b"level0" * 100


def test_absent_records_are_not_indexed():
    index = StreamBlockIndex()
    index.add(REF, 0, StreamFileRecord())
    index.add(REF, 1, StreamFileRecord(file_index=1, offset=0, offset_end=8, size=8))
    assert len(index) == 0
    assert index.fetch(REF, 0) is None


def test_short_read_fails_only_that_block(tmp_path, caplog):
    path, records = _pack(tmp_path, b"x" * 64, bytes(range(200)))
    index = StreamBlockIndex(PackFileReader([tmp_path]))
    index.add(REF, 0, records[0])
    bogus = StreamFileRecord(1, records[1].offset, records[1].offset_end + 4096, 9000)
    index.add(OTHER, 0, bogus)
    with caplog.at_level(logging.WARNING, logger="zonegen"):
        assert index.fetch(OTHER, 0) is None
    assert "unavailable" in caplog.text
    assert index.fetch(REF, 0) == b"x" * 64


def test_short_read_raises_from_reader(tmp_path):
    path, records = _pack(tmp_path, b"y" * 32)
    reader = PackFileReader([tmp_path])
    with pytest.raises(PackReadError):
        reader.read(1, records[0].offset, len(path.read_bytes()))


def test_codec_mismatch_is_local(tmp_path):
    _, records = _pack(tmp_path, b"z" * 1000)
    index = StreamBlockIndex(PackFileReader([tmp_path]))
    rec = records[0]
    index.add(REF, 0, StreamFileRecord(rec.file_index, rec.offset, rec.offset_end, rec.size - 1))
    assert index.fetch(REF, 0) is None


def test_missing_pack_is_retried(tmp_path):
    writer = PackFileWriter(2)
    rec = writer.append(b"late" * 50)
    index = StreamBlockIndex(PackFileReader([tmp_path]))
    index.add(REF, 0, rec)
    assert index.fetch(REF, 0) is None
    writer.save(tmp_path)
    assert index.fetch(REF, 0) == b"late" * 50


def test_self_reference_reads_zone_file(tmp_path):
    zone = tmp_path / "z.ff"
    zone.write_bytes(b"\x00" * 16 + b"payload!")
    reader = PackFileReader([], self_path=zone)
    assert reader.path_for(96) == zone
    assert reader.read(96, 16, 8) == b"payload!"


def test_self_reference_without_zone_path():
    with pytest.raises(PackReadError):
        PackFileReader([]).path_for(96)


def test_record_pack_round_trip():
    rec = StreamFileRecord(5, 16, 48, 100)
    assert StreamFileRecord.unpack_from(rec.pack(), 0) == rec

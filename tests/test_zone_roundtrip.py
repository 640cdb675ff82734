import logging
import struct
import threading

import pytest

from zonegen.assets import GfxImage, GfxImageStreamInfo
from zonegen.loader import ZoneLoader, load_zones
from zonegen.zone.codec import BlockCodec
from zonegen.zone.constants import STREAM_ALIGNMENT, AssetType, XBlock
from zonegen.zone.errors import TruncatedDataError, ZoneLoadAborted
from zonegen.zone.inspector import inspect_zone, validate_zone
from zonegen.zone.pools import AssetPoolRegistry
from zonegen.zone.records import AssetRef
from zone_helpers import (
    SAMPLE_REQUESTS,
    SAMPLE_TREE,
    builder_for,
    dds_bytes,
    legacy_h1image,
    material_json,
    png_bytes,
    requests,
    write_tree,
)


def _build(tmp_path, tree, reqs, name="test", pack_index=None):
    root = write_tree(tmp_path / "src", tree)
    return builder_for(root).build(
        requests(*reqs), name, output_dir=tmp_path / "zone", pack_index=pack_index
    )


def test_single_asset_round_trip(tmp_path):
    res = _build(tmp_path, {"localize/MENU_OK.txt": "OK\n"}, [(AssetType.LOCALIZE_ENTRY, "MENU_OK")])
    info = inspect_zone(res.data)
    assert validate_zone(info) == []
    for s in info["streams"]:
        assert s["offset"] % STREAM_ALIGNMENT == 0

    zone = ZoneLoader().load(res.data, "test")
    assert zone.ok
    (ref,) = zone.assets
    assert ref == AssetRef(AssetType.LOCALIZE_ENTRY, "MENU_OK")
    entry = zone.assets[ref]
    assert entry.name == "MENU_OK"
    assert entry.value == "OK"


def test_every_type_round_trips(tmp_path):
    res = _build(tmp_path, SAMPLE_TREE, SAMPLE_REQUESTS, pack_index=1)
    zone = ZoneLoader().load_file(res.zone_path)
    assert zone.ok, [str(f) for f in zone.failures]
    assert len(zone.assets) == len(res.closure.entries) == 5
    for entry in res.closure.entries:
        assert zone.assets[entry.ref] == entry.asset, entry.ref
    assert zone.unresolved == []


def test_material_texture_refs_point_at_images(tmp_path):
    res = _build(tmp_path, SAMPLE_TREE, [(AssetType.MATERIAL, "mc_tile")])
    zone = ZoneLoader().load(res.data, "test")
    mat = zone.get(AssetRef(AssetType.MATERIAL, "mc_tile"))
    assert [t.image for t in mat.textures] == [AssetRef(AssetType.IMAGE, "red_tile")]
    img = zone.get(AssetRef(AssetType.IMAGE, "red_tile"))
    assert (img.width, img.height) == (4, 2)
    assert img.pixel_data == bytes((255, 0, 0, 255)) * 8


def test_rawfile_payload_survives_codec(tmp_path):
    res = _build(tmp_path, SAMPLE_TREE, [(AssetType.RAWFILE, "maps/mp/test.gsc")])
    zone = ZoneLoader().load(res.data, "test")
    raw = zone.get(AssetRef(AssetType.RAWFILE, "maps/mp/test.gsc"))
    assert raw.compressed_len < raw.length
    assert raw.contents(BlockCodec()) == SAMPLE_TREE["rawfile/maps/mp/test.gsc"]


def test_referenced_dependency_is_reported_unresolved(tmp_path):
    tree = {"materials/wall.json": material_json("wall", ["ext_img"])}
    res = _build(
        tmp_path, tree, [(AssetType.MATERIAL, "wall"), (AssetType.IMAGE, ",ext_img")]
    )
    zone = ZoneLoader().load(res.data, "test")
    mat_ref = AssetRef(AssetType.MATERIAL, "wall")
    img_ref = AssetRef(AssetType.IMAGE, "ext_img")
    assert zone.references == [img_ref]
    assert zone.assets[mat_ref].textures[0].image == img_ref
    assert zone.unresolved == [(mat_ref, img_ref)]


def test_shared_registry_resolves_across_zones(tmp_path):
    base = _build(
        tmp_path / "base",
        {"images/ext_img.png": png_bytes(1, 1)},
        [(AssetType.IMAGE, "ext_img")],
        name="base",
    )
    user = _build(
        tmp_path / "user",
        {"materials/wall.json": material_json("wall", ["ext_img"])},
        [(AssetType.MATERIAL, "wall"), (AssetType.IMAGE, ",ext_img")],
        name="user",
    )
    registry = AssetPoolRegistry()
    loader = ZoneLoader(registry)
    loader.load(base.data, "base")
    zone = loader.load(user.data, "user")
    assert zone.unresolved == []


def test_truncated_asset_fails_alone(tmp_path):
    res = _build(
        tmp_path,
        {"images/red.png": png_bytes(2, 2), "localize/HELLO.txt": "hi"},
        [(AssetType.IMAGE, "red"), (AssetType.LOCALIZE_ENTRY, "HELLO")],
    )
    info = inspect_zone(res.data)
    vstart = next(s["offset"] for s in info["streams"] if s["name"] == "VIRTUAL")
    image_at = vstart + info["assets"][0]["cursors"]["VIRTUAL"]
    data = bytearray(res.data)
    struct.pack_into("<I", data, image_at + GfxImage.LAYOUT.offset_of("data_len1"), 0x7FFFFFFF)

    zone = ZoneLoader().load(bytes(data), "broken")
    assert len(zone.failures) == 1
    failure = zone.failures[0]
    assert (failure.zone, failure.index, failure.name) == ("broken", 0, "red")
    assert isinstance(failure.error, TruncatedDataError)
    assert zone.get(AssetRef(AssetType.LOCALIZE_ENTRY, "HELLO")).value == "hi"


def _streamed_image(name):
    return GfxImage(
        name=name,
        level_count=3,
        width=256,
        height=256,
        data_len1=0,
        data_len2=256 * 256 * 4,
        streamed=True,
        streams=[
            GfxImageStreamInfo(64, 64, 64 * 64 * 4),
            GfxImageStreamInfo(128, 128, 128 * 128 * 4),
            GfxImageStreamInfo(256, 256, 256 * 256 * 4),
            GfxImageStreamInfo(),
        ],
    )


def test_streamed_image_blocks_go_to_pack_file(tmp_path):
    level0 = b"\x10" * 4096
    level1 = bytes(range(256)) * 16
    tree = {
        "streamed_images/sky.h1Image": legacy_h1image(_streamed_image("sky")),
        "streamed_images/sky_stream0.pixels": level0,
        "streamed_images/sky_stream1.pixels": level1,
    }
    res = _build(tmp_path, tree, [(AssetType.IMAGE, "sky")], pack_index=3)
    assert res.pack_path is not None and res.pack_path.name == "imagefile3.pak"
    assert res.pack.block_count == 2

    zone = ZoneLoader().load_file(res.zone_path)
    ref = AssetRef(AssetType.IMAGE, "sky")
    img = zone.get(ref)
    assert img.streamed and img.pixel_data is None
    assert img.streams[1] == GfxImageStreamInfo(128, 128, 128 * 128 * 4)
    assert zone.stream_index.blocks_for(ref) == [0, 1]
    assert zone.stream_index.fetch(ref, 0) == level0
    assert zone.stream_index.fetch(ref, 1) == level1
    assert zone.stream_index.fetch(ref, 2) is None


def test_dds_stream_companion_used_when_pixels_missing(tmp_path):
    level0 = b"\x10" * 4096
    tree = {
        "streamed_images/sky.h1Image": legacy_h1image(_streamed_image("sky")),
        "streamed_images/sky_stream0.pixels": level0,
        "streamed_images/sky_stream1.dds": dds_bytes(4, 4),
        # .pixels takes precedence over .dds for the same level
        "streamed_images/sky_stream2.pixels": b"\x22" * 64,
        "streamed_images/sky_stream2.dds": dds_bytes(2, 2),
    }
    res = _build(tmp_path, tree, [(AssetType.IMAGE, "sky")], pack_index=2)
    assert res.pack.block_count == 3

    zone = ZoneLoader().load_file(res.zone_path)
    ref = AssetRef(AssetType.IMAGE, "sky")
    assert zone.stream_index.fetch(ref, 0) == level0
    assert zone.stream_index.fetch(ref, 1) == bytes((0, 255, 0, 255)) * 16
    assert zone.stream_index.fetch(ref, 2) == b"\x22" * 64


def test_corrupt_dds_stream_companion_is_absent(tmp_path, caplog):
    tree = {
        "streamed_images/sky.h1Image": legacy_h1image(_streamed_image("sky")),
        "streamed_images/sky_stream0.dds": b"not an image at all",
    }
    with caplog.at_level(logging.WARNING, logger="zonegen"):
        res = _build(tmp_path, tree, [(AssetType.IMAGE, "sky")], pack_index=2)
    assert "sky: stream block 0 unusable" in caplog.text
    assert res.pack.block_count == 0
    assert res.closure.entries[0].source == "streamed container"


def test_streamed_image_without_pack_writer_has_absent_blocks(tmp_path, caplog):
    tree = {
        "streamed_images/sky.h1Image": legacy_h1image(_streamed_image("sky")),
        "streamed_images/sky_stream0.pixels": b"\x01" * 64,
    }
    with caplog.at_level(logging.WARNING, logger="zonegen"):
        res = _build(tmp_path, tree, [(AssetType.IMAGE, "sky")])
    dropped = [r for r in caplog.records if "stream block" in r.getMessage()]
    assert len(dropped) == 1
    assert dropped[0].levelno == logging.WARNING
    assert "sky: stream block 0 dropped" in dropped[0].getMessage()
    info = inspect_zone(res.data)
    assert len(info["stream_files"]) == 4
    assert all(sf["file_index"] == 0 for sf in info["stream_files"])
    zone = ZoneLoader().load(res.data, "test")
    assert len(zone.stream_index) == 0


def test_load_zones_concurrently_share_one_registry(tmp_path):
    paths = []
    for i in range(4):
        res = _build(
            tmp_path / f"z{i}",
            {f"localize/STR_{i}.txt": f"value {i}", "localize/SHARED.txt": "shared"},
            [(AssetType.LOCALIZE_ENTRY, f"STR_{i}"), (AssetType.LOCALIZE_ENTRY, "SHARED")],
            name=f"zone{i}",
        )
        paths.append(res.zone_path)
    registry = AssetPoolRegistry()
    zones = load_zones(paths, registry, max_workers=4)
    assert [z.name for z in zones] == ["zone0", "zone1", "zone2", "zone3"]
    assert registry.pool(AssetType.LOCALIZE_ENTRY).live_count == 5


def test_physical_stream_carries_sound_data(tmp_path):
    res = _build(tmp_path, SAMPLE_TREE, [(AssetType.LOADED_SOUND, "beep")])
    info = inspect_zone(res.data)
    sizes = {s["name"]: s["size"] for s in info["streams"]}
    assert sizes[XBlock.PHYSICAL.name] >= 1024


def test_cancelled_load_publishes_nothing(tmp_path):
    res = _build(tmp_path, SAMPLE_TREE, SAMPLE_REQUESTS)
    registry = AssetPoolRegistry()
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(ZoneLoadAborted):
        ZoneLoader(registry).load(res.data, "test", cancel=cancel)
    assert sum(registry.live_counts().values()) == 0

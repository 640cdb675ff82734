import json
import logging
import wave

import pytest

from zonegen.assets import LoadedSound, LocalizeEntry, default_dispatch_table
from zonegen.assets.rawfile import make_rawfile
from zonegen.assets.sound import sound_to_wav
from zonegen.builder import ClosureEntry, ClosureResult
from zonegen.dump import batch_dump, dump_zone, find_zone_files, write_archive_listing
from zonegen.zone.codec import BlockCodec
from zonegen.zone.constants import AssetType
from zonegen.zone.errors import FormatError
from zone_helpers import SAMPLE_REQUESTS, SAMPLE_TREE, builder_for, requests, write_tree


def _zone(tmp_path, name, tree=SAMPLE_TREE, reqs=SAMPLE_REQUESTS, out=None):
    root = write_tree(tmp_path / f"src_{name}", tree)
    return builder_for(root).build(requests(*reqs), name, output_dir=out or tmp_path / "zones")


def test_dump_exports_every_asset(tmp_path):
    res = _zone(tmp_path, "sample")
    out = tmp_path / "dump"
    result = dump_zone(res.zone_path, out)
    assert result.failures == [] and result.load_failures == 0

    assert (out / "localize" / "MENU_HELLO.txt").read_text() == "Hello there"
    assert (out / "rawfile/maps/mp/test.gsc").read_bytes() == SAMPLE_TREE[
        "rawfile/maps/mp/test.gsc"
    ]
    doc = json.loads((out / "materials" / "mc_tile.json").read_text())
    assert [t["image"] for t in doc["textures"]] == ["red_tile"]
    assert (out / "images" / "red_tile.png").exists()
    assert (out / "images" / "red_tile.image").exists()
    with wave.open(str(out / "sound" / "beep.wav"), "rb") as w:
        assert w.getnframes() == 512


def test_dump_csv_reproduces_build_list(tmp_path):
    res = _zone(
        tmp_path,
        "refs",
        tree={"localize/A.txt": "a"},
        reqs=[(AssetType.LOCALIZE_ENTRY, "A"), (AssetType.IMAGE, ",shared_img")],
    )
    result = dump_zone(res.zone_path, tmp_path / "dump")
    assert result.csv_path.name == "refs.csv"
    assert result.csv_path.read_text().splitlines() == ["localize,A", "image,,shared_img"]


def test_dumped_files_rebuild_the_same_assets(tmp_path):
    res = _zone(tmp_path, "sample")
    out = tmp_path / "dump"
    dump_zone(res.zone_path, out)
    again = builder_for(out).compute_closure(requests(*SAMPLE_REQUESTS))
    by_ref = {e.ref: e.asset for e in res.closure.entries}
    for entry in again.entries:
        assert entry.source != "default", entry.ref
        assert entry.asset == by_ref[entry.ref], entry.ref


def test_find_zone_files_sorted(tmp_path):
    for name in ("b", "a", "c"):
        (tmp_path / f"{name}.ff").write_bytes(b"")
    (tmp_path / "notes.txt").write_text("")
    assert [p.stem for p in find_zone_files(tmp_path)] == ["a", "b", "c"]


def test_batch_dump_skips_launcher_zones(tmp_path):
    zones = tmp_path / "zones"
    tree = {"localize/A.txt": "a"}
    reqs = [(AssetType.LOCALIZE_ENTRY, "A")]
    _zone(tmp_path, "mp_alpha", tree, reqs, out=zones)
    _zone(tmp_path, "hmw_launcher", tree, reqs, out=zones)
    results = batch_dump(zones, tmp_path / "dump")
    assert [r.zone for r in results] == ["mp_alpha"]
    assert not (tmp_path / "dump" / "hmw_launcher.csv").exists()


def test_batch_dump_continues_after_broken_zone(tmp_path):
    zones = tmp_path / "zones"
    _zone(tmp_path, "good", {"localize/A.txt": "a"}, [(AssetType.LOCALIZE_ENTRY, "A")], out=zones)
    (zones / "broken.ff").write_bytes(b"garbage")
    results = batch_dump(zones, tmp_path / "dump")
    assert [r.zone for r in results] == ["good"]


def test_archive_listing_chunks(tmp_path):
    zones = tmp_path / "zones"
    for name in ("z1", "z2", "z3"):
        _zone(
            tmp_path,
            name,
            {f"localize/{name.upper()}.txt": name},
            [(AssetType.LOCALIZE_ENTRY, name.upper()), (AssetType.IMAGE, ",shared")],
            out=zones,
        )
    _zone(tmp_path, "hmw_launcher", {"localize/L.txt": "l"}, [(AssetType.LOCALIZE_ENTRY, "L")], out=zones)

    written = write_archive_listing(zones, tmp_path / "listing", chunk_size=2)
    assert [p.name for p in written] == ["file_structure_001.json", "file_structure_002.json"]
    first = json.loads(written[0].read_text())
    second = json.loads(written[1].read_text())
    # hmw_launcher sorts first and is skipped, leaving z1 alone in chunk one
    assert [z["name"] for z in first["zones"]] == ["z1"]
    assert [z["name"] for z in second["zones"]] == ["z2", "z3"]
    assert first["zones"][0]["children"] == [
        {"name": "Z1", "path": "z1/localize/Z1"}
    ]


def _zone_of(tmp_path, name, *assets):
    handlers = default_dispatch_table()
    closure = ClosureResult(
        [ClosureEntry(handlers.handler_for(t).ref_of(a), a, source="test") for t, a in assets]
    )
    data = builder_for(tmp_path).write_zone(closure, zone_name=name)
    path = tmp_path / "zones" / f"{name}.ff"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def test_dump_keeps_exports_inside_output_dir(tmp_path):
    outside = tmp_path / "abs_escape.gsc"
    path = _zone_of(
        tmp_path,
        "hostile",
        (AssetType.LOCALIZE_ENTRY, LocalizeEntry(value="x", name="../../escaped")),
        (AssetType.RAWFILE, make_rawfile(str(outside), b"data", BlockCodec())),
        (AssetType.LOCALIZE_ENTRY, LocalizeEntry(value="fine", name="SAFE")),
    )
    out = tmp_path / "deep" / "dump"
    result = dump_zone(path, out)
    assert len(result.failures) == 2
    assert all("E_FORMAT" in f for f in result.failures)
    assert not (tmp_path / "escaped.txt").exists()
    assert not (tmp_path / "deep" / "escaped.txt").exists()
    assert not outside.exists()
    assert (out / "localize" / "SAFE.txt").read_text() == "fine"


def test_sound_with_invalid_wav_params_exports_asset_file(tmp_path, caplog):
    path = _zone_of(
        tmp_path,
        "mute",
        (AssetType.LOADED_SOUND, LoadedSound(name="mute", channels=0, data=b"\x00" * 8)),
        (AssetType.LOADED_SOUND, LoadedSound(name="norate", sample_rate=0, data=b"\x00" * 8)),
    )
    out = tmp_path / "dump"
    with caplog.at_level(logging.WARNING, logger="zonegen"):
        result = dump_zone(path, out)
    assert result.failures == []
    assert (out / "sound" / "mute.sound").exists()
    assert (out / "sound" / "norate.sound").exists()
    assert not (out / "sound" / "mute.wav").exists()
    assert "exporting asset file" in caplog.text


def test_sound_to_wav_raises_format_error():
    with pytest.raises(FormatError):
        sound_to_wav(LoadedSound(name="mute", channels=0, data=b""))

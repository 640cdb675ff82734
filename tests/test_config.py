import json

import pytest

from zonegen.config import (
    DEFAULT_SKIP_ZONES,
    ZoneToolConfig,
    load_build_list,
    load_config,
    parse_build_list_csv,
)
from zonegen.zone.constants import AssetType
from zonegen.zone.records import AssetRef


def test_defaults_without_file():
    cfg = load_config(None)
    assert cfg == ZoneToolConfig()
    assert tuple(cfg.skip_zones) == DEFAULT_SKIP_ZONES


def test_yaml_config_resolves_relative_paths(tmp_path):
    cfg_path = tmp_path / "zonegen.yaml"
    cfg_path.write_text(
        "source_paths: [src, extra]\n"
        "zone_paths: zones\n"
        "dump_path: out\n"
        "pool_capacities:\n"
        "  rawfile: 8192\n"
        "pack_index: 4\n"
        "compression_level: 9\n"
        "listing_chunk_size: 25\n"
    )
    cfg = load_config(cfg_path)
    assert cfg.source_paths == [tmp_path / "src", tmp_path / "extra"]
    assert cfg.zone_paths == [tmp_path / "zones"]
    assert cfg.dump_path == tmp_path / "out"
    assert cfg.pool_capacities == {AssetType.RAWFILE: 8192}
    assert cfg.registry().capacity_for(AssetType.RAWFILE) == 8192
    assert cfg.codec().level == 9
    assert cfg.pack_index == 4
    assert cfg.listing_chunk_size == 25


def test_json_config(tmp_path):
    cfg_path = tmp_path / "zonegen.json"
    cfg_path.write_text(json.dumps({"skip_zones": ["menus"]}))
    assert load_config(cfg_path).skip_zones == ["menus"]


@pytest.mark.parametrize(
    "doc",
    [
        {"pack_index": 0},
        {"pack_index": 96},
        {"pool_capacities": {"image": -1}},
        {"pool_capacities": {"weapon": 10}},
        {"listing_chunk_size": 0},
        {"source_paths": 5},
    ],
)
def test_invalid_config_values(tmp_path, doc):
    cfg_path = tmp_path / "bad.json"
    cfg_path.write_text(json.dumps(doc))
    with pytest.raises(ValueError):
        load_config(cfg_path)


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_csv_build_list_comments_and_references():
    text = "# header\n\n// note\nmaterial,mc/wall\nimage,,shared_img\n  rawfile , maps/a.gsc \n"
    bl = parse_build_list_csv(text, "mp_test")
    assert bl.name == "mp_test"
    assert [(r.ref, r.referenced) for r in bl.requests] == [
        (AssetRef(AssetType.MATERIAL, "mc/wall"), False),
        (AssetRef(AssetType.IMAGE, "shared_img"), True),
        (AssetRef(AssetType.RAWFILE, "maps/a.gsc"), False),
    ]


@pytest.mark.parametrize("line", ["material", "weapon,ak47", "image,"])
def test_csv_build_list_rejects_bad_lines(line):
    with pytest.raises(ValueError):
        parse_build_list_csv(line, "bad")


def test_yaml_build_list(tmp_path):
    p = tmp_path / "zone.yaml"
    p.write_text(
        "name: mp_yaml\n"
        "assets:\n"
        "  - {type: localize, name: MENU_OK}\n"
        "  - {type: image, name: sky, referenced: true}\n"
    )
    bl = load_build_list(p)
    assert bl.name == "mp_yaml"
    assert [r.referenced for r in bl.requests] == [False, True]
    assert bl.requests[1].ref == AssetRef(AssetType.IMAGE, "sky")


def test_csv_build_list_named_after_file(tmp_path):
    p = tmp_path / "mp_csv.csv"
    p.write_text("localize,A\n")
    assert load_build_list(p).name == "mp_csv"

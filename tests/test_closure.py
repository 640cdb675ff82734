import pytest

from zonegen.assets import DispatchTable, ImageHandler, MaterialHandler
from zonegen.builder import BuildRequest
from zonegen.zone.constants import AssetType
from zonegen.zone.errors import DependencyUnresolvedError, ZoneBuildError
from zonegen.zone.records import AssetRef
from zone_helpers import builder_for, material_json, png_bytes, requests, write_tree


class StrictImageHandler(ImageHandler):
    """Image handler without a default, so missing images cannot be filled in."""

    def default(self, name, ctx):
        return None


def _mat(name):
    return AssetRef(AssetType.MATERIAL, name)


def _img(name):
    return AssetRef(AssetType.IMAGE, name)


def _cyclic_tree(root):
    return write_tree(
        root,
        {
            "materials/m1.json": material_json("m1", ["img_a", "img_b"], fallback="m2"),
            "materials/m2.json": material_json("m2", ["img_a"], fallback="m1"),
            "images/img_a.png": png_bytes(2, 2),
        },
    )


def test_closure_is_breadth_first_in_discovery_order(tmp_path):
    builder = builder_for(_cyclic_tree(tmp_path))
    closure = builder.compute_closure(requests((AssetType.MATERIAL, "m1")))
    assert closure.refs == [_mat("m1"), _img("img_a"), _img("img_b"), _mat("m2")]
    assert closure.dropped == []


def test_cycles_terminate_with_each_asset_once(tmp_path):
    builder = builder_for(_cyclic_tree(tmp_path))
    closure = builder.compute_closure(
        requests((AssetType.MATERIAL, "m2"), (AssetType.MATERIAL, "m1"))
    )
    assert len(closure.refs) == len(set(closure.refs)) == 4
    # both requests come first, in request order
    assert closure.refs[:2] == [_mat("m2"), _mat("m1")]


def test_missing_image_falls_back_to_default(tmp_path):
    builder = builder_for(_cyclic_tree(tmp_path))
    closure = builder.compute_closure(requests((AssetType.MATERIAL, "m1")))
    sources = {e.ref: e.source for e in closure.entries}
    assert sources[_img("img_b")] == "default"
    assert sources[_img("img_a")] == "external image"


def test_unresolvable_dependency_is_dropped(tmp_path):
    dispatch = DispatchTable((MaterialHandler(), StrictImageHandler()))
    builder = builder_for(_cyclic_tree(tmp_path), dispatch=dispatch)
    closure = builder.compute_closure(requests((AssetType.MATERIAL, "m1")))
    assert _img("img_b") not in closure.refs
    assert len(closure.dropped) == 1
    parent, missing, err = closure.dropped[0]
    assert (parent, missing) == (_mat("m1"), _img("img_b"))
    assert isinstance(err, DependencyUnresolvedError)


def test_unresolvable_request_fails_the_build(tmp_path):
    builder = builder_for(tmp_path)
    with pytest.raises(ZoneBuildError) as ei:
        builder.compute_closure(requests((AssetType.RAWFILE, "missing.cfg")))
    assert ei.value.context["asset"] == "rawfile:missing.cfg"


def test_referenced_request_is_not_acquired(tmp_path):
    builder = builder_for(tmp_path)
    closure = builder.compute_closure([BuildRequest.parse(AssetType.IMAGE, ",ext_img")])
    (entry,) = closure.entries
    assert entry.referenced and entry.asset is None
    assert entry.ref == _img("ext_img")


def test_duplicate_requests_collapse(tmp_path):
    write_tree(tmp_path, {"localize/A.txt": "a"})
    builder = builder_for(tmp_path)
    closure = builder.compute_closure(
        requests((AssetType.LOCALIZE_ENTRY, "A"), (AssetType.LOCALIZE_ENTRY, "A"))
    )
    assert closure.refs == [AssetRef(AssetType.LOCALIZE_ENTRY, "A")]


def test_closure_publishes_into_registry(tmp_path):
    builder = builder_for(_cyclic_tree(tmp_path))
    builder.compute_closure(requests((AssetType.MATERIAL, "m1")))
    assert _mat("m2") in builder.registry
    assert builder.registry.live_counts()["image"] == 2


def test_two_builds_are_byte_identical(tmp_path):
    root = _cyclic_tree(tmp_path / "src")
    reqs = requests((AssetType.MATERIAL, "m1"), (AssetType.MATERIAL, "m2"))
    a = builder_for(root).build(reqs, "zone_a")
    b = builder_for(root).build(reqs, "zone_a")
    assert a.data == b.data

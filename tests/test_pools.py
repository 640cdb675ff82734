from concurrent.futures import ThreadPoolExecutor

import pytest

from zonegen.zone.constants import DEFAULT_POOL_CAPACITIES, AssetType
from zonegen.zone.errors import PoolExhaustedError, PoolGrowthError
from zonegen.zone.pools import AssetPool, AssetPoolRegistry
from zonegen.zone.records import AssetRef


def test_publish_keeps_first_copy():
    reg = AssetPoolRegistry()
    ref = AssetRef(AssetType.RAWFILE, "a.cfg")
    assert reg.publish(ref, "first") == (0, True)
    assert reg.publish(ref, "second") == (0, False)
    assert reg.find(ref) == "first"
    assert ref in reg


def test_exhausted_pool_raises():
    pool = AssetPool(AssetType.IMAGE, 2)
    pool.allocate_slot()
    pool.allocate_slot()
    with pytest.raises(PoolExhaustedError):
        pool.allocate_slot()


def test_grow_once_only():
    reg = AssetPoolRegistry()
    base = DEFAULT_POOL_CAPACITIES[AssetType.RAWFILE]
    reg.grow(AssetType.RAWFILE, base * 2)
    assert reg.capacity_for(AssetType.RAWFILE) == base * 2
    with pytest.raises(PoolGrowthError):
        reg.grow(AssetType.RAWFILE, base * 4)


def test_grow_cannot_shrink():
    reg = AssetPoolRegistry()
    with pytest.raises(PoolGrowthError):
        reg.grow(AssetType.IMAGE, 10)


def test_grow_after_reference_or_seal_is_rejected():
    reg = AssetPoolRegistry()
    reg.resolve(AssetRef(AssetType.MATERIAL, "anything"))
    with pytest.raises(PoolGrowthError):
        reg.grow(AssetType.MATERIAL, 50000)

    sealed = AssetPoolRegistry()
    sealed.seal()
    with pytest.raises(PoolGrowthError):
        sealed.grow(AssetType.IMAGE, 50000)


def test_grow_preserves_published_slots():
    reg = AssetPoolRegistry()
    ref = AssetRef(AssetType.LOADED_SOUND, "beep")
    slot, _ = reg.publish(ref, "asset")
    reg.grow(AssetType.LOADED_SOUND, 8192)
    assert reg.pool(AssetType.LOADED_SOUND).slot_of("beep") == slot
    assert reg.find(ref) == "asset"


def test_configured_capacities_only_raise_defaults():
    reg = AssetPoolRegistry({AssetType.IMAGE: 10, AssetType.RAWFILE: 5000})
    assert reg.capacity_for(AssetType.IMAGE) == DEFAULT_POOL_CAPACITIES[AssetType.IMAGE]
    assert reg.capacity_for(AssetType.RAWFILE) == 5000


def test_concurrent_allocation_yields_unique_slots():
    pool = AssetPool(AssetType.LOCALIZE_ENTRY, 1000)

    def grab(_):
        return [pool.allocate_slot() for _ in range(100)]

    with ThreadPoolExecutor(max_workers=8) as ex:
        slots = [s for chunk in ex.map(grab, range(8)) for s in chunk]
    assert len(slots) == 800
    assert len(set(slots)) == 800
    assert pool.live_count == 800


def test_concurrent_allocation_never_exceeds_capacity():
    pool = AssetPool(AssetType.LOCALIZE_ENTRY, 500)

    def grab(_):
        got, failed = 0, 0
        for _ in range(100):
            try:
                pool.allocate_slot()
                got += 1
            except PoolExhaustedError:
                failed += 1
        return got, failed

    with ThreadPoolExecutor(max_workers=8) as ex:
        results = list(ex.map(grab, range(8)))
    assert sum(g for g, _ in results) == 500
    assert sum(f for _, f in results) == 300


def test_live_counts_by_type_name():
    reg = AssetPoolRegistry()
    reg.publish(AssetRef(AssetType.IMAGE, "a"), object())
    reg.publish(AssetRef(AssetType.IMAGE, "b"), object())
    counts = reg.live_counts()
    assert counts["image"] == 2
    assert counts["material"] == 0

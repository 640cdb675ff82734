"""Per-session asset pools.

One fixed-capacity pool per asset type. Slots are stable: a published asset
keeps its slot index for the life of the registry. Capacity can be raised
once per type, and only while nothing has been resolved through the pool and
the registry has not been sealed.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from ..logging import get_logger
from .constants import DEFAULT_POOL_CAPACITIES, AssetType, type_to_string
from .errors import PoolExhaustedError, PoolGrowthError
from .records import AssetRef

__all__ = ["AssetPool", "AssetPoolRegistry"]


class AssetPool:
    def __init__(self, asset_type: AssetType, capacity: int, stride: int = 0):
        if capacity <= 0:
            raise ValueError(f"Pool capacity must be positive: {capacity}")
        self.asset_type = AssetType(asset_type)
        self.stride = stride
        self._capacity = capacity
        self._slots: List[Any] = []
        self._names: Dict[str, int] = {}
        self._lock = threading.Lock()
        self._grown = False
        self._referenced = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def live_count(self) -> int:
        return len(self._slots)

    @property
    def referenced(self) -> bool:
        return self._referenced

    @property
    def grown(self) -> bool:
        return self._grown

    def _allocate_locked(self) -> int:
        if len(self._slots) >= self._capacity:
            raise PoolExhaustedError(
                f"{type_to_string(self.asset_type)} pool exhausted",
                {"capacity": self._capacity},
            )
        self._slots.append(None)
        return len(self._slots) - 1

    def allocate_slot(self) -> int:
        with self._lock:
            return self._allocate_locked()

    def publish(self, name: str, asset: Any) -> Tuple[int, bool]:
        """Store ``asset`` under ``name``; returns (slot, newly_added).

        A name already present keeps its first asset.
        """
        with self._lock:
            existing = self._names.get(name)
            if existing is not None:
                return existing, False
            slot = self._allocate_locked()
            self._slots[slot] = asset
            self._names[name] = slot
            return slot, True

    def get(self, slot: int) -> Any:
        return self._slots[slot]

    def slot_of(self, name: str) -> Optional[int]:
        return self._names.get(name)

    def find(self, name: str) -> Any:
        slot = self._names.get(name)
        return None if slot is None else self._slots[slot]

    def mark_referenced(self) -> None:
        self._referenced = True

    def grow(self, new_capacity: int, *, sealed: bool = False) -> None:
        label = type_to_string(self.asset_type)
        ctx = {"capacity": self._capacity, "requested": new_capacity}
        with self._lock:
            if sealed or self._referenced:
                raise PoolGrowthError(
                    f"{label} pool cannot grow after references were taken", ctx
                )
            if self._grown:
                raise PoolGrowthError(f"{label} pool was already grown", ctx)
            if new_capacity < self._capacity:
                raise PoolGrowthError(f"{label} pool cannot shrink", ctx)
            # Rebuild the backing list: any address taken before this point
            # would be stale, which is why references block growth.
            self._slots = list(self._slots)
            self._capacity = new_capacity
            self._grown = True

    def __iter__(self) -> Iterator[Any]:
        return (a for a in self._slots if a is not None)

    def __len__(self) -> int:
        return len(self._slots)

    def names(self) -> List[str]:
        return list(self._names)


class AssetPoolRegistry:
    """Pools for every asset type, owned by one build or load session."""

    def __init__(
        self,
        capacities: Mapping[AssetType, int] | None = None,
        strides: Mapping[AssetType, int] | None = None,
    ):
        caps = dict(DEFAULT_POOL_CAPACITIES)
        strides = strides or {}
        self._pools: Dict[AssetType, AssetPool] = {
            t: AssetPool(t, caps[t], strides.get(t, 0)) for t in AssetType
        }
        self._sealed = False
        if capacities:
            self.apply_capacities(capacities)

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        """End the initialization phase; growth is rejected afterwards."""
        self._sealed = True

    def pool(self, asset_type: AssetType) -> AssetPool:
        return self._pools[AssetType(asset_type)]

    def capacity_for(self, asset_type: AssetType) -> int:
        return self.pool(asset_type).capacity

    def allocate_slot(self, asset_type: AssetType) -> int:
        return self.pool(asset_type).allocate_slot()

    def grow(self, asset_type: AssetType, new_capacity: int) -> None:
        self.pool(asset_type).grow(new_capacity, sealed=self._sealed)
        get_logger().debug(
            "Grew %s pool to %d", type_to_string(asset_type), new_capacity
        )

    def apply_capacities(self, capacities: Mapping[AssetType, int]) -> None:
        for asset_type, cap in capacities.items():
            if cap > self.capacity_for(asset_type):
                self.grow(asset_type, cap)

    def publish(self, ref: AssetRef, asset: Any) -> Tuple[int, bool]:
        return self.pool(ref.asset_type).publish(ref.name, asset)

    def find(self, ref: AssetRef) -> Any:
        return self.pool(ref.asset_type).find(ref.name)

    def resolve(self, ref: AssetRef) -> Any:
        """Look up ``ref`` for a cross-asset reference.

        Taking a reference pins the pool: it can no longer grow.
        """
        pool = self.pool(ref.asset_type)
        pool.mark_referenced()
        return pool.find(ref.name)

    def live_counts(self) -> Dict[str, int]:
        return {type_to_string(t): p.live_count for t, p in self._pools.items()}

    def __contains__(self, ref: AssetRef) -> bool:
        return self.pool(ref.asset_type).slot_of(ref.name) is not None

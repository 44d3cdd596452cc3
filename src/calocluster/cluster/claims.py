# src/calocluster/cluster/claims.py
from __future__ import annotations

import numpy as np

from ..errors import InvalidGeometry, InvalidSeed

UNCLAIMED = -1


class ClaimArena:
    """
    Per-event ownership table: crystal index -> id of the cluster that owns it.

    One arena is shared by all finders of an event so that a crystal ends up
    in at most one cluster. It has a single writer at a time; the driver runs
    finders one after the other.
    """

    def __init__(self, element_count: int):
        if element_count < 0:
            raise InvalidGeometry(f"element_count must be >= 0, got {element_count}")
        self._owner = np.full(int(element_count), UNCLAIMED, dtype=np.int64)

    def __len__(self) -> int:
        return len(self._owner)

    def _check(self, index: int) -> None:
        if index < 0 or index >= len(self._owner):
            raise InvalidGeometry(f"crystal index {index} outside [0, {len(self._owner)})")

    def owner(self, index: int) -> int:
        self._check(index)
        return int(self._owner[index])

    def is_claimed(self, index: int) -> bool:
        return self.owner(index) != UNCLAIMED

    def is_free_for(self, index: int, cluster_id: int) -> bool:
        o = self.owner(index)
        return o == UNCLAIMED or o == cluster_id

    def claim(self, index: int, cluster_id: int) -> None:
        if cluster_id < 0:
            raise InvalidSeed(f"cluster ids must be >= 0, got {cluster_id}")
        o = self.owner(index)
        if o != UNCLAIMED and o != cluster_id:
            raise InvalidSeed(f"crystal {index} already belongs to cluster {o}")
        self._owner[index] = cluster_id

    def members(self, cluster_id: int) -> np.ndarray:
        return np.flatnonzero(self._owner == cluster_id)

    @property
    def n_claimed(self) -> int:
        return int(np.count_nonzero(self._owner != UNCLAIMED))

    def reset(self) -> None:
        self._owner.fill(UNCLAIMED)

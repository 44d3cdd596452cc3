# src/calocluster/geometry/crystals.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from ..errors import InvalidConfiguration, InvalidGeometry

Adjacency = Tuple[Tuple[int, ...], ...]


def _check_adjacency(adj: Sequence[Iterable[int]], n: int, what: str) -> Adjacency:
    """Validate and freeze a neighbour relation over ``n`` elements."""
    if len(adj) != n:
        raise InvalidGeometry(f"{what}: expected {n} neighbour lists, got {len(adj)}")
    out: List[Tuple[int, ...]] = []
    for i, nbrs in enumerate(adj):
        row = tuple(int(j) for j in nbrs)
        for j in row:
            if j < 0 or j >= n:
                raise InvalidGeometry(f"{what}: element {i} lists neighbour {j} outside [0, {n})")
            if j == i:
                raise InvalidGeometry(f"{what}: element {i} lists itself as a neighbour")
        if len(set(row)) != len(row):
            raise InvalidGeometry(f"{what}: element {i} has duplicate neighbours {row}")
        out.append(row)
    for i, row in enumerate(out):
        for j in row:
            if i not in out[j]:
                raise InvalidGeometry(f"{what}: relation is not symmetric ({i} -> {j} only)")
    return tuple(out)


def _pairs_to_adjacency(n: int, pairs: Iterable[Tuple[int, int]]) -> List[List[int]]:
    adj: List[List[int]] = [[] for _ in range(n)]
    for a, b in pairs:
        adj[a].append(b)
        adj[b].append(a)
    for row in adj:
        row.sort()
    return adj


@dataclass(frozen=True, eq=False)
class CrystalGeometry:
    """
    Static crystal layout of one calorimeter section.

    positions: (N, 3) crystal centres [mm]
    offline:   full nearest-neighbour relation
    online:    reduced relation for trigger-style passes (defaults to ``offline``)

    Built once per run and never mutated; finders only read from it.
    """
    positions: np.ndarray
    offline: Adjacency
    online: Adjacency
    meta: Dict[str, object] = field(default_factory=dict)

    # ---- constructors -----------------------------------------------------

    @classmethod
    def from_adjacency(
        cls,
        neighbors: Sequence[Iterable[int]],
        positions: Optional[np.ndarray] = None,
        online_neighbors: Optional[Sequence[Iterable[int]]] = None,
        **meta,
    ) -> "CrystalGeometry":
        n = len(neighbors)
        if positions is None:
            # No metric information: lay the crystals out along x so that
            # distance() is still defined.
            pos = np.zeros((n, 3), dtype=np.float64)
            pos[:, 0] = np.arange(n, dtype=np.float64)
        else:
            pos = np.asarray(positions, dtype=np.float64)
            if pos.shape != (n, 3):
                raise InvalidGeometry(f"positions must have shape ({n}, 3), got {pos.shape}")
        pos = pos.copy()
        pos.flags.writeable = False
        offline = _check_adjacency(neighbors, n, "offline neighbours")
        online = offline if online_neighbors is None else _check_adjacency(online_neighbors, n, "online neighbours")
        return cls(pos, offline, online, dict(meta))

    @classmethod
    def from_positions(
        cls,
        positions: np.ndarray,
        radius: float,
        online_radius: Optional[float] = None,
        **meta,
    ) -> "CrystalGeometry":
        """
        Nearest-neighbour graph: two crystals are neighbours when their centres
        are closer than ``radius``. ``online_radius`` builds the reduced online
        relation the same way and must not exceed ``radius``.
        """
        pos = np.asarray(positions, dtype=np.float64)
        if pos.ndim != 2 or pos.shape[1] != 3:
            raise InvalidGeometry(f"positions must have shape (N, 3), got {pos.shape}")
        if not radius > 0:
            raise InvalidConfiguration(f"neighbour radius must be positive, got {radius!r}")
        tree = cKDTree(pos)
        offline = _pairs_to_adjacency(len(pos), tree.query_pairs(r=radius))
        online = None
        if online_radius is not None:
            if not 0 < online_radius <= radius:
                raise InvalidConfiguration(
                    f"online_radius must be in (0, radius={radius}], got {online_radius!r}"
                )
            online = _pairs_to_adjacency(len(pos), tree.query_pairs(r=online_radius))
        meta.setdefault("radius", radius)
        return cls.from_adjacency(offline, positions=pos, online_neighbors=online, **meta)

    @classmethod
    def square_grid(cls, nx: int, ny: int, pitch: float = 1.0,
                    radius: float = 1.05, online_radius: Optional[float] = None) -> "CrystalGeometry":
        """
        nx * ny square crystals in the z=0 plane, index = iy * nx + ix.

        ``radius`` is in units of the pitch: 1.05 keeps the four edge-sharing
        neighbours, 1.5 adds the diagonals.
        """
        if nx <= 0 or ny <= 0:
            raise InvalidConfiguration(f"grid size must be positive, got nx={nx}, ny={ny}")
        ix, iy = np.meshgrid(np.arange(nx), np.arange(ny))
        pos = np.zeros((nx * ny, 3), dtype=np.float64)
        pos[:, 0] = ix.ravel() * pitch
        pos[:, 1] = iy.ravel() * pitch
        orad = None if online_radius is None else online_radius * pitch
        return cls.from_positions(pos, radius * pitch, orad, layout="square", nx=nx, ny=ny, pitch=pitch)

    @classmethod
    def hex_grid(cls, nx: int, ny: int, pitch: float = 1.0,
                 radius: float = 1.05, online_radius: Optional[float] = None) -> "CrystalGeometry":
        """Hexagonal packing (odd rows shifted by half a pitch); interior crystals get six neighbours."""
        if nx <= 0 or ny <= 0:
            raise InvalidConfiguration(f"grid size must be positive, got nx={nx}, ny={ny}")
        ix, iy = np.meshgrid(np.arange(nx), np.arange(ny))
        pos = np.zeros((nx * ny, 3), dtype=np.float64)
        pos[:, 0] = (ix + 0.5 * (iy % 2)).ravel() * pitch
        pos[:, 1] = iy.ravel() * pitch * np.sqrt(3.0) / 2.0
        orad = None if online_radius is None else online_radius * pitch
        return cls.from_positions(pos, radius * pitch, orad, layout="hex", nx=nx, ny=ny, pitch=pitch)

    # ---- provider interface -----------------------------------------------

    def element_count(self) -> int:
        return len(self.offline)

    def neighbors(self, index: int, online: bool = False) -> Tuple[int, ...]:
        self._check_index(index)
        return self.online[index] if online else self.offline[index]

    def position(self, index: int) -> np.ndarray:
        self._check_index(index)
        return self.positions[index]

    def distance(self, i: int, j: int) -> float:
        return float(np.linalg.norm(self.position(i) - self.position(j)))

    def neighbors_by_level(self, index: int, level: int, online: bool = False) -> List[int]:
        """Elements exactly ``level`` hops away from ``index`` (level 0 is the element itself)."""
        self._check_index(index)
        if level < 0:
            raise InvalidConfiguration(f"level must be >= 0, got {level}")
        seen = {index}
        ring = [index]
        for _ in range(level):
            nxt: List[int] = []
            for i in ring:
                for j in self.neighbors(i, online=online):
                    if j not in seen:
                        seen.add(j)
                        nxt.append(j)
            ring = nxt
        return sorted(ring)

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= len(self.offline):
            raise InvalidGeometry(f"crystal index {index} outside [0, {len(self.offline)})")

    def __len__(self) -> int:
        return self.element_count()

# src/calocluster/cluster/finder.py
from __future__ import annotations
from collections import deque
from typing import Deque, Dict, List, Literal, Optional, Protocol, Sequence, Tuple

import numpy as np

from ..errors import InvalidConfiguration, InvalidGeometry, InvalidSeed
from ..physics.hits import CaloHit, HitMap
from .claims import ClaimArena

ExpandMetric = Literal["hops", "distance"]
CaloCrystalList = List[CaloHit]


class NeighborProvider(Protocol):
    """What the finder needs from a crystal geometry."""
    def element_count(self) -> int: ...
    def neighbors(self, index: int, online: bool = False) -> Sequence[int]: ...
    def distance(self, i: int, j: int) -> float: ...


class ClusterFinder:
    """
    Grow one cluster of simply connected crystals from a seed hit.

    Breadth-first expansion over the geometry's neighbour relation. A
    neighbouring crystal joins when it has a hit in the event, is not owned
    by another cluster, is within ``delta_time`` of the seed time and within
    ``expand_cut`` of the seed (graph hops or distance, see ``expand_metric``).
    Every neighbour examined is marked visited whether it joins or not, so no
    crystal is looked at twice.

    ``is_online`` switches to the geometry's reduced (online) neighbour
    relation. ``expand_threshold``, when set, keeps low-amplitude members in
    the cluster but stops the expansion through them.
    """

    def __init__(
        self,
        geometry: NeighborProvider,
        seed: CaloHit,
        delta_time: float,
        expand_cut: float,
        is_online: bool = False,
        *,
        hits: HitMap,
        claims: Optional[ClaimArena] = None,
        expand_metric: ExpandMetric = "hops",
        expand_threshold: Optional[float] = None,
        cluster_id: int = 0,
        diagnostics_level: int = 0,
    ):
        if not delta_time >= 0:
            raise InvalidConfiguration(f"delta_time must be >= 0, got {delta_time!r}")
        if not expand_cut >= 0:
            raise InvalidConfiguration(f"expand_cut must be >= 0, got {expand_cut!r}")
        if expand_metric not in ("hops", "distance"):
            raise InvalidConfiguration(f"Unknown expand_metric={expand_metric!r}")

        n = int(geometry.element_count())
        idx = seed.element_index
        if idx < 0 or idx >= n:
            raise InvalidSeed(f"seed crystal {idx} outside [0, {n})")
        if hits.hit_at(idx) is not seed:
            raise InvalidSeed(f"seed crystal {idx} has no hit recorded in this event")

        if claims is None:
            claims = ClaimArena(n)
        elif len(claims) != n:
            raise InvalidGeometry(f"claim arena sized {len(claims)} for a geometry of {n} crystals")
        if not claims.is_free_for(idx, cluster_id):
            raise InvalidSeed(f"seed crystal {idx} already belongs to cluster {claims.owner(idx)}")

        self.geometry = geometry
        self.hits = hits
        self.seed = seed
        self.seed_time = float(seed.t_ns)
        self.delta_time = float(delta_time)
        self.expand_cut = float(expand_cut)
        self.is_online = bool(is_online)
        self.claims = claims
        self.expand_metric = expand_metric
        self.expand_threshold = expand_threshold
        self.cluster_id = cluster_id
        self.diagnostics_level = diagnostics_level

        self._n = n
        self._cluster: CaloCrystalList = []
        self.rejected: Dict[str, int] = {}

    # ---- gating -------------------------------------------------------------

    def _reject_reason(self, index: int, depth: int) -> Optional[str]:
        hit = self.hits.hit_at(index)
        if hit is None:
            return "no_hit"
        if not self.claims.is_free_for(index, self.cluster_id):
            return "claimed"
        if not abs(hit.t_ns - self.seed_time) <= self.delta_time:
            return "time"
        if self.expand_metric == "hops":
            reach = float(depth)
        else:
            reach = self.geometry.distance(self.seed.element_index, index)
        if not reach <= self.expand_cut:
            return "expand_cut"
        return None

    def is_gate_passed(self, index: int, depth: int) -> bool:
        """Would crystal ``index``, reached at ``depth`` hops from the seed, join the cluster?"""
        return self._reject_reason(index, depth) is None

    def _neighbors(self, index: int) -> Sequence[int]:
        nbrs = self.geometry.neighbors(index, online=self.is_online)
        for j in nbrs:
            if j < 0 or j >= self._n:
                raise InvalidGeometry(f"crystal {index} lists neighbour {j} outside [0, {self._n})")
        return nbrs

    # ---- main algorithm -----------------------------------------------------

    def form_cluster(self, out_clusters: Optional[List[CaloCrystalList]] = None) -> CaloCrystalList:
        seed_idx = self.seed.element_index
        visited = np.zeros(self._n, dtype=bool)
        to_visit: Deque[Tuple[int, int]] = deque()
        rejected: Dict[str, int] = {}

        visited[seed_idx] = True
        self.claims.claim(seed_idx, self.cluster_id)
        to_visit.append((seed_idx, 0))
        cluster: CaloCrystalList = [self.seed]

        while to_visit:
            i, depth = to_visit.popleft()
            for j in self._neighbors(i):
                if visited[j]:
                    continue
                visited[j] = True
                reason = self._reject_reason(j, depth + 1)
                if reason is not None:
                    rejected[reason] = rejected.get(reason, 0) + 1
                    continue
                hit = self.hits.hit_at(j)
                self.claims.claim(j, self.cluster_id)
                cluster.append(hit)
                if self.expand_threshold is None or hit.amplitude >= self.expand_threshold:
                    to_visit.append((j, depth + 1))

        self._cluster = cluster
        self.rejected = rejected
        if self.diagnostics_level >= 2:
            print(f"[cluster] id={self.cluster_id} seed={seed_idx} t={self.seed_time:.3f} "
                  f"size={len(cluster)} rejected={rejected}")
        if out_clusters is not None:
            out_clusters.append(cluster)
        return cluster

    def cluster_list(self) -> CaloCrystalList:
        return self._cluster

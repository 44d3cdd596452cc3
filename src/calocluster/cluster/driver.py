# src/calocluster/cluster/driver.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..config.schemas import ClusteringCfg
from ..geometry.crystals import CrystalGeometry
from ..physics.hits import CaloHit, HitMap
from .claims import ClaimArena
from .finder import CaloCrystalList, ClusterFinder, NeighborProvider


@dataclass
class ClusterDiagnostics:
    seeds_tried: int = 0
    seeds_below_threshold: int = 0
    seeds_already_claimed: int = 0
    clusters: int = 0
    hits_in: int = 0
    hits_clustered: int = 0
    reasons: Dict[str, int] = field(default_factory=dict)

    def inc(self, reason: str, n: int = 1) -> None:
        self.reasons[reason] = self.reasons.get(reason, 0) + n


@dataclass
class ClusterSummary:
    """
    Flat description of one cluster.

    energy: sum of member amplitudes
    time: seed time [ns]
    centroid: amplitude-weighted crystal position (None without positive amplitude)
    """
    cluster_id: int
    seed: CaloHit
    hits: CaloCrystalList
    energy: float
    time: float
    centroid: Optional[np.ndarray] = None

    @property
    def size(self) -> int:
        return len(self.hits)

    @property
    def element_indices(self) -> List[int]:
        return [h.element_index for h in self.hits]


def summarize(cluster: CaloCrystalList, geometry: Optional[CrystalGeometry] = None,
              cluster_id: int = 0) -> ClusterSummary:
    if not cluster:
        raise ValueError("cannot summarize an empty cluster")
    seed = cluster[0]
    amps = np.array([h.amplitude for h in cluster], dtype=np.float64)
    energy = float(amps.sum())
    centroid = None
    if geometry is not None and energy > 0:
        pos = np.stack([geometry.position(h.element_index) for h in cluster], axis=0)
        centroid = (amps[:, None] * pos).sum(axis=0) / energy
    return ClusterSummary(cluster_id, seed, list(cluster), energy, float(seed.t_ns), centroid)


def find_clusters(
    geometry: NeighborProvider,
    hits: HitMap,
    cfg: ClusteringCfg | None = None,
    diagnostics_level: int = 0,
) -> Tuple[List[CaloCrystalList], ClusterDiagnostics]:
    """
    Cluster every hit of one event.

    Seeds are taken in order of decreasing amplitude. Each seed that is not
    already part of an earlier cluster grows its own cluster; all finders
    share one ClaimArena, so every crystal belongs to at most one cluster.
    Finders run strictly one after another.
    """
    if cfg is None:
        cfg = ClusteringCfg()
    diag = ClusterDiagnostics(hits_in=len(hits))
    claims = ClaimArena(geometry.element_count())
    clusters: List[CaloCrystalList] = []

    for seed in hits.by_amplitude():
        if claims.is_claimed(seed.element_index):
            diag.seeds_already_claimed += 1
            continue
        if seed.amplitude < cfg.seed_threshold:
            diag.seeds_below_threshold += 1
            continue
        diag.seeds_tried += 1
        finder = ClusterFinder(
            geometry,
            seed,
            cfg.delta_time_ns,
            cfg.expand_cut,
            cfg.online,
            hits=hits,
            claims=claims,
            expand_metric=cfg.expand_metric,
            expand_threshold=cfg.expand_threshold,
            cluster_id=len(clusters),
            diagnostics_level=diagnostics_level,
        )
        finder.form_cluster(clusters)
        for reason, n in finder.rejected.items():
            diag.inc(reason, n)

    diag.clusters = len(clusters)
    diag.hits_clustered = claims.n_claimed
    if diagnostics_level >= 1:
        print(f"[clusters] Formed {diag.clusters} clusters from {diag.hits_in} hits "
              f"({diag.hits_clustered} clustered, {diag.seeds_below_threshold} below seed threshold)")
    return clusters, diag

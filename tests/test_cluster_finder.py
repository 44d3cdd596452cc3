import math

import pytest

from calocluster.cluster.claims import ClaimArena
from calocluster.cluster.finder import ClusterFinder
from calocluster.errors import InvalidConfiguration, InvalidGeometry, InvalidSeed
from calocluster.geometry.crystals import CrystalGeometry
from calocluster.physics.hits import CaloHit, HitMap


def _line(n):
    return CrystalGeometry.from_adjacency([[j for j in (i - 1, i + 1) if 0 <= j < n] for i in range(n)])


def _hits(geom, spec):
    """spec: {crystal: (t_ns, amplitude)}"""
    return HitMap.from_hits(
        [CaloHit(element_index=i, t_ns=t, amplitude=a) for i, (t, a) in spec.items()],
        geom.element_count(),
    )


def _indices(cluster):
    return [h.element_index for h in cluster]


class BrokenGeometry:
    """Neighbour relation pointing outside the crystal range."""

    def element_count(self):
        return 3

    def neighbors(self, index, online=False):
        return (1,) if index == 0 else (0, 7)

    def distance(self, i, j):
        return abs(i - j)


def test_line_stops_at_time_gap():
    geom = _line(5)
    hits = _hits(geom, {0: (0.0, 5.0), 1: (0.0, 1.0), 2: (0.0, 1.0), 3: (100.0, 1.0), 4: (0.0, 1.0)})
    finder = ClusterFinder(geom, hits.hit_at(0), delta_time=5.0, expand_cut=math.inf, hits=hits)
    out = []
    finder.form_cluster(out)
    assert len(out) == 1
    assert _indices(out[0]) == [0, 1, 2]
    assert finder.cluster_list() is out[0]
    assert finder.rejected == {"time": 1}


def test_isolated_seed_gives_single_member_cluster():
    geom = CrystalGeometry.square_grid(3, 3)
    hits = _hits(geom, {4: (1.0, 3.0), 0: (1.0, 1.0)})
    finder = ClusterFinder(geom, hits.hit_at(4), 5.0, 10, hits=hits)
    assert _indices(finder.form_cluster()) == [4]


def test_cluster_list_empty_before_forming():
    geom = _line(2)
    hits = _hits(geom, {0: (0.0, 1.0)})
    finder = ClusterFinder(geom, hits.hit_at(0), 1.0, 1.0, hits=hits)
    assert finder.cluster_list() == []


def test_bfs_discovery_order_and_no_duplicates():
    geom = CrystalGeometry.square_grid(3, 3)
    hits = _hits(geom, {i: (0.0, 1.0) for i in range(9)})
    cluster = ClusterFinder(geom, hits.hit_at(4), 1.0, math.inf, hits=hits).form_cluster()
    idx = _indices(cluster)
    assert idx[0] == 4
    assert sorted(idx[1:5]) == [1, 3, 5, 7]
    assert sorted(idx[5:]) == [0, 2, 6, 8]
    assert len(set(idx)) == len(idx) == 9


def test_time_window_is_inclusive():
    geom = _line(3)
    hits = _hits(geom, {0: (10.0, 1.0), 1: (15.0, 1.0), 2: (4.999, 1.0)})
    cluster = ClusterFinder(geom, hits.hit_at(0), 5.0, math.inf, hits=hits).form_cluster()
    assert _indices(cluster) == [0, 1]
    # gate is measured against the seed time, not the neighbour that found it
    hits = _hits(geom, {0: (10.0, 1.0), 1: (15.0, 1.0), 2: (5.0, 1.0)})
    cluster = ClusterFinder(geom, hits.hit_at(0), 5.0, math.inf, hits=hits).form_cluster()
    assert _indices(cluster) == [0, 1, 2]


def test_hop_expand_cut():
    geom = _line(6)
    hits = _hits(geom, {i: (0.0, 1.0) for i in range(6)})
    sizes = []
    for cut in (0, 1, 2, 5):
        cluster = ClusterFinder(geom, hits.hit_at(0), 1.0, cut, hits=hits).form_cluster()
        sizes.append(len(cluster))
    assert sizes == [1, 2, 3, 6]


def test_distance_expand_cut():
    geom = CrystalGeometry.square_grid(5, 1, pitch=10.0)
    hits = _hits(geom, {i: (0.0, 1.0) for i in range(5)})
    cluster = ClusterFinder(geom, hits.hit_at(2), 1.0, 10.0, expand_metric="distance", hits=hits).form_cluster()
    assert sorted(_indices(cluster)) == [1, 2, 3]


def test_monotonic_in_delta_time_and_expand_cut():
    geom = CrystalGeometry.square_grid(4, 4, radius=1.5)
    times = {i: float((i * 7) % 11) for i in range(16)}
    hits = _hits(geom, {i: (t, 1.0) for i, t in times.items()})
    seed = hits.hit_at(5)
    prev = set()
    for dt in (0.0, 1.0, 2.5, 4.0, 8.0, 20.0):
        cur = set(_indices(ClusterFinder(geom, seed, dt, math.inf, hits=hits).form_cluster()))
        assert prev <= cur
        prev = cur
    prev = None
    for cut in (5, 3, 2, 1, 0):
        cur = set(_indices(ClusterFinder(geom, seed, 20.0, cut, hits=hits).form_cluster()))
        if prev is not None:
            assert cur <= prev
        prev = cur
    assert prev == {5}


def test_gate_is_pure():
    geom = _line(3)
    hits = _hits(geom, {0: (0.0, 1.0), 1: (3.0, 1.0), 2: (9.0, 1.0)})
    finder = ClusterFinder(geom, hits.hit_at(0), 5.0, 4, hits=hits)
    results = [(finder.is_gate_passed(1, 1), finder.is_gate_passed(2, 2)) for _ in range(3)]
    assert results == [(True, False)] * 3
    assert not finder.is_gate_passed(1, 5)


def test_expand_threshold_stops_expansion_through_small_hits():
    geom = _line(4)
    hits = _hits(geom, {0: (0.0, 10.0), 1: (0.0, 0.5), 2: (0.0, 5.0), 3: (0.0, 5.0)})
    cluster = ClusterFinder(geom, hits.hit_at(0), 1.0, math.inf, expand_threshold=1.0, hits=hits).form_cluster()
    assert _indices(cluster) == [0, 1]


def test_online_mode_uses_reduced_relation():
    geom = CrystalGeometry.square_grid(3, 3, radius=1.5, online_radius=1.05)
    hits = _hits(geom, {4: (0.0, 5.0), 0: (0.0, 1.0)})
    offline = ClusterFinder(geom, hits.hit_at(4), 1.0, math.inf, hits=hits).form_cluster()
    online = ClusterFinder(geom, hits.hit_at(4), 1.0, math.inf, is_online=True, hits=hits).form_cluster()
    assert _indices(offline) == [4, 0]
    assert _indices(online) == [4]


def test_shared_claims_keep_clusters_disjoint():
    geom = _line(4)
    hits = _hits(geom, {i: (0.0, 1.0) for i in range(4)})
    claims = ClaimArena(geom.element_count())
    first = ClusterFinder(geom, hits.hit_at(0), 1.0, 1, claims=claims, cluster_id=0, hits=hits).form_cluster()
    assert _indices(first) == [0, 1]
    second = ClusterFinder(geom, hits.hit_at(3), 1.0, math.inf, claims=claims, cluster_id=1, hits=hits).form_cluster()
    assert _indices(second) == [3, 2]
    assert claims.owner(1) == 0 and claims.owner(2) == 1
    with pytest.raises(InvalidSeed):
        ClusterFinder(geom, hits.hit_at(1), 1.0, 1.0, claims=claims, cluster_id=2, hits=hits)


def test_forming_twice_reproduces_cluster():
    geom = _line(3)
    hits = _hits(geom, {i: (0.0, 1.0) for i in range(3)})
    finder = ClusterFinder(geom, hits.hit_at(1), 1.0, math.inf, hits=hits)
    out = []
    finder.form_cluster(out)
    finder.form_cluster(out)
    assert len(out) == 2
    assert _indices(out[0]) == _indices(out[1]) == [1, 0, 2]


def test_seed_without_hit_is_rejected():
    geom = _line(3)
    hits = _hits(geom, {0: (0.0, 1.0)})
    with pytest.raises(InvalidSeed):
        ClusterFinder(geom, CaloHit(element_index=1, t_ns=0.0, amplitude=1.0), 1.0, 1.0, hits=hits)
    with pytest.raises(InvalidSeed):
        ClusterFinder(geom, CaloHit(element_index=3, t_ns=0.0, amplitude=1.0), 1.0, 1.0, hits=hits)


def test_invalid_parameters():
    geom = _line(3)
    hits = _hits(geom, {0: (0.0, 1.0)})
    seed = hits.hit_at(0)
    with pytest.raises(InvalidConfiguration):
        ClusterFinder(geom, seed, -1.0, 1.0, hits=hits)
    with pytest.raises(InvalidConfiguration):
        ClusterFinder(geom, seed, 1.0, -0.5, hits=hits)
    with pytest.raises(InvalidConfiguration):
        ClusterFinder(geom, seed, 1.0, 1.0, expand_metric="radius", hits=hits)
    with pytest.raises(InvalidGeometry):
        ClusterFinder(geom, seed, 1.0, 1.0, claims=ClaimArena(7), hits=hits)


def test_malformed_neighbour_relation_fails():
    geom = BrokenGeometry()
    hits = HitMap.from_hits([CaloHit(0, 0.0, 1.0), CaloHit(1, 0.0, 1.0)], 3)
    finder = ClusterFinder(geom, hits.hit_at(0), 1.0, math.inf, hits=hits)
    with pytest.raises(InvalidGeometry):
        finder.form_cluster()


def test_nan_hit_time_fails_time_gate():
    geom = _line(2)
    hits = _hits(geom, {0: (0.0, 5.0), 1: (float("nan"), 1.0)})
    finder = ClusterFinder(geom, hits.hit_at(0), 5.0, math.inf, hits=hits)
    assert not finder.is_gate_passed(1, 1)
    assert _indices(finder.form_cluster()) == [0]
    assert finder.rejected == {"time": 1}


def test_nan_seed_time_keeps_seed_alone():
    geom = _line(3)
    hits = _hits(geom, {1: (float("nan"), 5.0), 0: (0.0, 1.0), 2: (0.0, 1.0)})
    cluster = ClusterFinder(geom, hits.hit_at(1), 1e9, math.inf, hits=hits).form_cluster()
    assert _indices(cluster) == [1]


def test_positional_arguments_follow_geometry_seed_window_cut_mode():
    geom = CrystalGeometry.square_grid(3, 3, radius=1.5, online_radius=1.05)
    hits = _hits(geom, {4: (0.0, 5.0), 0: (0.0, 1.0), 1: (0.0, 1.0)})
    finder = ClusterFinder(geom, hits.hit_at(4), 2.0, 1, True, hits=hits)
    assert finder.delta_time == 2.0 and finder.expand_cut == 1.0 and finder.is_online
    assert _indices(finder.form_cluster()) == [4, 1]
    with pytest.raises(TypeError):
        ClusterFinder(geom, hits.hit_at(4), 2.0, 1, True, hits)

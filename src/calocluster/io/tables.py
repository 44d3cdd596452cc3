from __future__ import annotations
from pathlib import Path
from typing import List
import numpy as np

from ..physics.hits import CaloHit


def _read_table(path: str | Path, ncols: int, what: str) -> np.ndarray:
    p = Path(path)
    text = p.read_text()
    # Accept whitespace- or comma-separated rows; '#' starts a comment.
    rows = np.loadtxt(text.replace(",", " ").splitlines(), comments="#", dtype=np.float64, ndmin=2)
    if rows.size == 0:
        return np.zeros((0, ncols), dtype=np.float64)
    if rows.shape[1] < ncols:
        raise ValueError(
            f"{what} table {p.name} needs at least {ncols} columns, found {rows.shape[1]}"
        )
    return rows


def load_hits_table(path: str | Path) -> List[CaloHit]:
    """
    Read one event's crystal hits.

    Columns: crystal t_ns amplitude [extra ...]; extra columns are kept in
    ``CaloHit.extras`` as ``col3``, ``col4``, ...
    """
    rows = _read_table(path, 3, "hits")
    hits: List[CaloHit] = []
    for r in rows:
        if not np.isfinite(r[0]) or r[0] != int(r[0]) or r[0] < 0:
            raise ValueError(
                f"hits table {Path(path).name}: crystal column must hold non-negative integers, got {r[0]!r}"
            )
        extras = {f"col{k}": float(r[k]) for k in range(3, len(r))}
        hits.append(CaloHit(element_index=int(r[0]), t_ns=float(r[1]), amplitude=float(r[2]), extras=extras))
    return hits


def load_positions_table(path: str | Path) -> np.ndarray:
    """Read crystal centres, one ``x y z`` row per crystal in index order."""
    return _read_table(path, 3, "positions")[:, :3].copy()

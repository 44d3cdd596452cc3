from __future__ import annotations

from typing import List, Optional
import typer

from calocluster.cluster.driver import ClusterSummary, find_clusters, summarize
from calocluster.config.load import load_config
from calocluster.config.schemas import Config, GeometryCfg
from calocluster.geometry.crystals import CrystalGeometry
from calocluster.geometry.plane import Rectangle
from calocluster.io.tables import load_hits_table, load_positions_table
from calocluster.physics.hits import HitMap


def build_geometry(gcfg: GeometryCfg) -> CrystalGeometry:
    """
    Crystal layout from the [geometry] section.

    Generated layouts take radii in pitch units; "positions" takes them in
    the same units as the positions table.
    """
    if gcfg.layout == "square":
        return CrystalGeometry.square_grid(
            gcfg.nx, gcfg.ny, gcfg.pitch_mm,
            radius=gcfg.neighbor_radius, online_radius=gcfg.online_neighbor_radius,
        )
    if gcfg.layout == "hex":
        return CrystalGeometry.hex_grid(
            gcfg.nx, gcfg.ny, gcfg.pitch_mm,
            radius=gcfg.neighbor_radius, online_radius=gcfg.online_neighbor_radius,
        )
    positions = load_positions_table(gcfg.positions_path)
    return CrystalGeometry.from_positions(
        positions, gcfg.neighbor_radius, gcfg.online_neighbor_radius, layout="positions",
    )


def run_pipeline(
    cfg_path: str,
    *,
    online: Optional[bool] = None,
    delta_time: Optional[float] = None,
) -> List[ClusterSummary]:
    """
    Cluster one event described by a TOML config file.

    CLI flags (--online/--offline, --delta-time) override the corresponding
    [clustering] fields when not None.

    Returns
    -------
    One ClusterSummary per cluster, in formation order (decreasing seed amplitude).
    """
    cfg = load_config(cfg_path)
    if cfg.io is None or cfg.geometry is None:
        raise ValueError(f"{cfg_path}: clustering needs both [io] and [geometry] sections")

    # ---- apply CLI overrides on top of TOML ----
    if online is not None:
        cfg.clustering.online = online
    if delta_time is not None:
        cfg.clustering.delta_time_ns = delta_time

    diag_level = cfg.run.diagnostics_level
    if diag_level >= 1:
        print(f"[run] config = {cfg_path}")
        print(f"[run] layout={cfg.geometry.layout} online={cfg.clustering.online} "
              f"delta_time_ns={cfg.clustering.delta_time_ns} expand_cut={cfg.clustering.expand_cut} "
              f"({cfg.clustering.expand_metric})")

    geom = build_geometry(cfg.geometry)
    hits = HitMap.from_hits(load_hits_table(cfg.io.hits_path), geom.element_count())
    if diag_level >= 1:
        print(f"[pipeline] {geom.element_count()} crystals, {len(hits)} hits")

    clusters, diag = find_clusters(geom, hits, cfg.clustering, diagnostics_level=diag_level)
    if diag_level >= 2:
        print(f"[pipeline] rejections: {diag.reasons}")

    return [summarize(c, geom, cluster_id=k) for k, c in enumerate(clusters)]


def fiducial_from_config(cfg: Config) -> Rectangle:
    if cfg.fiducial is None:
        raise typer.BadParameter("config has no [fiducial] section")
    return Rectangle.from_cfg(cfg.fiducial)


# ---------------------------------------------------------------------------
# Unified CLI entry point
# ---------------------------------------------------------------------------

app = typer.Typer(help="Calorimeter crystal clustering (calocluster.pipelines.core)")


@app.command()
def cluster(
    cfg_path: str = typer.Argument(
        ...,
        help="Path to TOML config file",
    ),
    online: Optional[bool] = typer.Option(
        None,
        "--online / --offline",
        help="Use the reduced online neighbour relation; overrides [clustering].online when set",
    ),
    delta_time: Optional[float] = typer.Option(
        None,
        "--delta-time",
        help="Time coincidence half-window [ns]; overrides [clustering].delta_time_ns",
    ),
):
    """
    Cluster the hits of one event and print one line per cluster.
    """
    summaries = run_pipeline(cfg_path, online=online, delta_time=delta_time)
    for s in summaries:
        cog = "-" if s.centroid is None else ",".join(f"{x:.3f}" for x in s.centroid)
        typer.echo(
            f"{s.cluster_id}\tseed={s.seed.element_index}\tsize={s.size}\t"
            f"E={s.energy:.4f}\tt={s.time:.3f}\tcog={cog}\t"
            f"crystals={' '.join(str(i) for i in s.element_indices)}"
        )


@app.command("in-bounds", context_settings={"ignore_unknown_options": True})
def in_bounds(
    cfg_path: str = typer.Argument(..., help="Path to TOML config file with a [fiducial] section"),
    x: float = typer.Argument(...),
    y: float = typer.Argument(...),
    z: float = typer.Argument(...),
    tol: Optional[float] = typer.Option(None, "--tol", help="Out-of-plane tolerance; overrides [fiducial].tolerance"),
):
    """
    Test whether point (X, Y, Z) lies on the configured fiducial rectangle.

    Negative coordinates are passed as plain arguments, e.g. `in-bounds cfg.toml -0.5 0 0`.
    """
    cfg = load_config(cfg_path)
    rect = fiducial_from_config(cfg)
    if cfg.run.diagnostics_level >= 2:
        print(f"[fiducial] {rect}")
    t = cfg.fiducial.tolerance if tol is None else tol
    typer.echo(str(rect.in_bounds((x, y, z), t)))


if __name__ == "__main__":
    app()

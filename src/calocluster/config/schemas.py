from __future__ import annotations
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Literal, Optional, List

class RunCfg(BaseModel):
    """
    Global run controls.
    """

    # Diagnostics
    diagnostics_level: int = 1  # 0=off, 1=minimal, 2=verbose

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v

class IOCfg(BaseModel):
    """
    Event input.

    TOML:

    [io]
    hits_path = "..."      # rows of: crystal t_ns amplitude
    """

    hits_path: str

class GeometryCfg(BaseModel):
    """
    Crystal layout of the calorimeter section being clustered.

    TOML:

    [geometry]
    layout = "square"          # "square" | "hex" | "positions"
    nx = 10
    ny = 10
    pitch_mm = 34.3
    neighbor_radius = 1.05     # in pitch units for generated layouts, mm for "positions"
    online_neighbor_radius = 1.05
    """

    layout: Literal["square", "hex", "positions"] = "square"
    nx: int = 0
    ny: int = 0
    pitch_mm: float = 1.0
    positions_path: Optional[str] = None
    neighbor_radius: float = 1.05
    online_neighbor_radius: Optional[float] = None

    @model_validator(mode="after")
    def _layout_inputs(self) -> "GeometryCfg":
        if self.layout == "positions":
            if not self.positions_path:
                raise ValueError("geometry.layout='positions' requires geometry.positions_path")
        elif self.nx <= 0 or self.ny <= 0:
            raise ValueError(f"geometry.layout={self.layout!r} requires positive nx and ny")
        return self

class ClusteringCfg(BaseModel):
    delta_time_ns: float = Field(10.0, ge=0.0)
    expand_cut: float = Field(float("inf"), ge=0.0)
    expand_metric: Literal["hops", "distance"] = "hops"
    online: bool = False
    seed_threshold: float = 0.0
    expand_threshold: Optional[float] = None

class RectangleCfg(BaseModel):
    normal: List[float]
    center: List[float]
    u_axis: List[float]
    u_half_length: float = Field(ge=0.0)
    v_half_length: float = Field(ge=0.0)
    tolerance: float = Field(1e-8, ge=0.0)


class Config(BaseModel):
    """
    Top-level TOML configuration.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    io: Optional[IOCfg] = None
    geometry: Optional[GeometryCfg] = None
    clustering: ClusteringCfg = Field(default_factory=ClusteringCfg)
    fiducial: Optional[RectangleCfg] = None

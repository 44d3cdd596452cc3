from __future__ import annotations
from .schemas import Config
from pathlib import Path

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # py<=310

def load_config(path: str | Path) -> Config:
    p = Path(path)
    data = tomllib.loads(p.read_text())
    cfg = Config(**data)
    # Relative input paths are taken relative to the config file.
    base = p.parent
    if cfg.io is not None and not Path(cfg.io.hits_path).is_absolute():
        cfg.io.hits_path = str(base / cfg.io.hits_path)
    if cfg.geometry is not None and cfg.geometry.positions_path and not Path(cfg.geometry.positions_path).is_absolute():
        cfg.geometry.positions_path = str(base / cfg.geometry.positions_path)
    return cfg

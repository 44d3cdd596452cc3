from __future__ import annotations
from dataclasses import dataclass
from typing import NamedTuple, Optional, Sequence, Union
import numpy as np

from ..errors import InvalidConfiguration

VectorLike = Union[Sequence[float], np.ndarray]

# Below this norm an in-plane axis is considered degenerate.
_DEGENERATE_EPS = 1e-12


def _vec3(v: VectorLike, what: str) -> np.ndarray:
    a = np.asarray(v, dtype=np.float64).reshape(-1)
    if a.shape != (3,) or not np.all(np.isfinite(a)):
        raise InvalidConfiguration(f"{what} must be a finite 3-vector, got {v!r}")
    return a


def _unit(v: np.ndarray, what: str = "vector") -> np.ndarray:
    n = np.linalg.norm(v)
    if n == 0:
        raise InvalidConfiguration(f"Zero-length {what}")
    return v / n


def _frozen(a: np.ndarray) -> np.ndarray:
    a = np.array(a, dtype=np.float64)
    a.flags.writeable = False
    return a


def fallback_axis(normal: np.ndarray) -> np.ndarray:
    """
    Reference axis used when a requested in-plane axis is degenerate.

    Global x, unless x is within ~25 degrees of the normal, then global y.
    """
    t = np.array([1.0, 0.0, 0.0])
    if abs(np.dot(t, normal)) > 0.9:
        t = np.array([0.0, 1.0, 0.0])
    return t


class Ray(NamedTuple):
    start: np.ndarray
    direction: np.ndarray  # unit

    @classmethod
    def make(cls, start: VectorLike, direction: VectorLike) -> "Ray":
        return cls(_frozen(_vec3(start, "ray start")),
                   _frozen(_unit(_vec3(direction, "ray direction"), "ray direction")))

    def position(self, dist: float) -> np.ndarray:
        return self.start + dist * self.direction


class Intersection(NamedTuple):
    on_surface: bool      # the ray reaches the (infinite) plane
    in_bounds: bool       # ... and the crossing point is inside the surface bounds
    point: Optional[np.ndarray]
    distance: float       # path length along the ray, nan when parallel


@dataclass(frozen=True, eq=False)
class Plane:
    """
    Infinite oriented plane through ``center`` with unit ``normal``.

    Arrays are stored read-only so instances can be shared freely.
    """
    normal: np.ndarray  # (3,), unit
    center: np.ndarray  # (3,)

    def __init__(self, normal: VectorLike, center: VectorLike):
        object.__setattr__(self, "normal", _frozen(_unit(_vec3(normal, "normal"), "normal")))
        object.__setattr__(self, "center", _frozen(_vec3(center, "center")))

    def distance(self, point: VectorLike) -> float:
        """Signed out-of-plane residual of ``point`` (positive on the normal side)."""
        return float(np.dot(np.asarray(point, dtype=np.float64) - self.center, self.normal))

    def project(self, point: VectorLike) -> np.ndarray:
        p = np.asarray(point, dtype=np.float64)
        return p - self.distance(p) * self.normal

    def in_bounds(self, point: VectorLike, tol: float = 1e-8) -> bool:
        return abs(self.distance(point)) <= tol

    def intersect(self, ray: Ray, forwards: bool = True, tol: float = 1e-8) -> Intersection:
        """
        Intersect ``ray`` with this surface.

        With ``forwards`` only crossings at non-negative path length count.
        Rays parallel to the plane never intersect it.
        """
        ddir = float(np.dot(ray.direction, self.normal))
        if abs(ddir) < _DEGENERATE_EPS:
            return Intersection(False, False, None, float("nan"))
        dist = float(np.dot(self.center - ray.start, self.normal)) / ddir
        if forwards and dist < 0.0:
            return Intersection(False, False, None, dist)
        point = ray.position(dist)
        return Intersection(True, self.in_bounds(point, tol), point, dist)

    def __str__(self) -> str:
        return f"Plane(normal={_fmt(self.normal)}, center={_fmt(self.center)})"


@dataclass(frozen=True, eq=False, init=False)
class Rectangle(Plane):
    """
    Bounded rectangular patch of a plane.

    ``udir`` is the component of the requested ``u_axis`` orthogonal to the
    normal, ``vdir = normal x udir``. When ``u_axis`` is zero or (anti)parallel
    to the normal the frame is built from :func:`fallback_axis` instead.
    """
    udir: np.ndarray
    vdir: np.ndarray
    uhalflen: float
    vhalflen: float

    def __init__(
        self,
        normal: VectorLike,
        center: VectorLike,
        u_axis: VectorLike,
        u_half_length: float,
        v_half_length: float,
    ):
        super().__init__(normal, center)
        if not (u_half_length >= 0.0 and v_half_length >= 0.0):
            raise InvalidConfiguration(
                f"Rectangle half-lengths must be non-negative, got "
                f"u={u_half_length!r}, v={v_half_length!r}"
            )
        n = self.normal
        u = _vec3(u_axis, "u_axis")
        u = u - np.dot(u, n) * n
        if np.linalg.norm(u) < _DEGENERATE_EPS:
            t = fallback_axis(n)
            u = t - np.dot(t, n) * n
        udir = _unit(u, "u direction")
        vdir = _unit(np.cross(n, udir), "v direction")
        object.__setattr__(self, "udir", _frozen(udir))
        object.__setattr__(self, "vdir", _frozen(vdir))
        object.__setattr__(self, "uhalflen", float(u_half_length))
        object.__setattr__(self, "vhalflen", float(v_half_length))

    @classmethod
    def from_cfg(cls, cfg) -> "Rectangle":
        return cls(cfg.normal, cfg.center, cfg.u_axis, cfg.u_half_length, cfg.v_half_length)

    def local_coords(self, point: VectorLike) -> tuple[float, float, float]:
        """(u, v, w) of ``point`` in the rectangle frame, w along the normal."""
        d = np.asarray(point, dtype=np.float64) - self.center
        return float(d @ self.udir), float(d @ self.vdir), float(d @ self.normal)

    def on_rectangle(self, udist: float, vdist: float) -> bool:
        return abs(udist) < self.uhalflen and abs(vdist) < self.vhalflen

    def in_bounds(self, point: VectorLike, tol: float = 1e-8) -> bool:
        u, v, w = self.local_coords(point)
        return abs(w) <= tol and self.on_rectangle(u, v)

    def u_direction(self) -> np.ndarray:
        return self.udir

    def v_direction(self) -> np.ndarray:
        return self.vdir

    def u_half_length(self) -> float:
        return self.uhalflen

    def v_half_length(self) -> float:
        return self.vhalflen

    def corners(self) -> np.ndarray:
        """(4, 3) corner positions, counter-clockwise seen from the normal side."""
        du = self.uhalflen * self.udir
        dv = self.vhalflen * self.vdir
        c = self.center
        return np.stack([c - du - dv, c + du - dv, c + du + dv, c - du + dv], axis=0)

    def __str__(self) -> str:
        return (
            f"Rectangle(center={_fmt(self.center)}, normal={_fmt(self.normal)}, "
            f"U={_fmt(self.udir)} half={self.uhalflen:g}, "
            f"V={_fmt(self.vdir)} half={self.vhalflen:g})"
        )


def _fmt(v: np.ndarray) -> str:
    return "(" + ", ".join(f"{x:.6g}" for x in v) + ")"

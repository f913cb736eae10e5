"""
Geometry adapter for the shading simulation.

Built on NumPy for 3D vectors and Shapely for the 2D panel outline. Provides
BaseSurface (a bilinear facade patch with a unit (u, v) domain), CenterLine
(a polyline parameterized by normalized arc length) and PanelRegion (a planar
region carried in its own (basis_u, basis_v, origin) frame).

Nothing here knows about panels or radiation; callers treat these as plain
geometry values.
"""
import math
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np
import shapely
import trimesh
from shapely import affinity
from shapely.geometry import Polygon, box

WORLD_X = np.array([1.0, 0.0, 0.0])
WORLD_Y = np.array([0.0, 1.0, 0.0])


def _as_points(points) -> np.ndarray:
    """Coerce to an (N, 3) float array, raising on anything else."""
    arr = np.asarray(points, dtype=float)
    if arr.ndim == 1 and arr.size == 3:
        arr = arr.reshape(1, 3)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise ValueError(f"Expected points with shape (N, 3), got {arr.shape}")
    return arr


def _unit(vector: np.ndarray) -> np.ndarray:
    v = np.asarray(vector, dtype=float)
    norm = float(np.linalg.norm(v))
    if norm == 0.0:
        raise ValueError("Cannot normalize a zero-length vector")
    return v / norm


def signed_angle_xy(from_vec: np.ndarray, to_vec: np.ndarray) -> float:
    """Signed angle (radians) turning from_vec onto to_vec in the world XY plane.

    Both vectors are projected to XY; positive is counter-clockwise seen from +Z.
    """
    cross = to_vec[1] * from_vec[0] - to_vec[0] * from_vec[1]
    dot = to_vec[0] * from_vec[0] + to_vec[1] * from_vec[1]
    return float(math.atan2(cross, dot))


# ─── Curves ──────────────────────────────────────────────────────────────────

@dataclass
class CenterLine:
    """A polyline curve with a [0, 1] domain measured by arc length."""
    points: np.ndarray              # (K, 3) polyline vertices, K >= 2
    u: float = float("nan")         # parameter on the source surface, if any
    _cumulative: np.ndarray = field(init=False, repr=False, default=None)

    def __post_init__(self):
        self.points = _as_points(self.points)
        if len(self.points) < 2:
            raise ValueError("CenterLine needs at least two points")
        seg = np.linalg.norm(np.diff(self.points, axis=0), axis=1)
        self._cumulative = np.concatenate([[0.0], np.cumsum(seg)])

    @property
    def length(self) -> float:
        return float(self._cumulative[-1])

    @property
    def start_point(self) -> np.ndarray:
        return self.points[0].copy()

    @property
    def end_point(self) -> np.ndarray:
        return self.points[-1].copy()

    def point_at(self, t: float) -> np.ndarray:
        """Evaluate at normalized arc-length parameter t in [0, 1]."""
        if not 0.0 <= t <= 1.0:
            raise ValueError(f"Curve parameter {t} outside [0, 1]")
        if self.length == 0.0:
            return self.start_point
        s = t * self.length
        i = int(np.searchsorted(self._cumulative, s, side="right")) - 1
        i = min(max(i, 0), len(self.points) - 2)
        seg_len = self._cumulative[i + 1] - self._cumulative[i]
        frac = 0.0 if seg_len == 0.0 else (s - self._cumulative[i]) / seg_len
        return self.points[i] + frac * (self.points[i + 1] - self.points[i])


# ─── Surfaces ────────────────────────────────────────────────────────────────

@dataclass
class BaseSurface:
    """A bilinear facade patch.

    Corners are given in (u, v) order: p00, p10, p11, p01. The u direction
    runs along the facade, v runs upward. The outward normal is
    du x dv unless flip_normal is set.
    """
    corners: np.ndarray             # (4, 3)
    flip_normal: bool = False
    name: str = ""

    def __post_init__(self):
        self.corners = _as_points(self.corners)
        if self.corners.shape != (4, 3):
            raise ValueError("BaseSurface needs exactly four corners")

    @classmethod
    def from_rectangle(
        cls,
        origin: Sequence[float],
        along: Sequence[float],
        width: float,
        height: float,
        up: Sequence[float] = (0.0, 0.0, 1.0),
        flip_normal: bool = False,
        name: str = "",
    ) -> "BaseSurface":
        """Build a rectangular facade from an origin, a horizontal direction and size."""
        o = np.asarray(origin, dtype=float)
        a = _unit(along) * width
        h = _unit(up) * height
        return cls(np.array([o, o + a, o + a + h, o + h]), flip_normal=flip_normal, name=name)

    def reparameterize(self) -> "BaseSurface":
        """The domain is already [0, 1] x [0, 1]; returned for call-chaining."""
        return self

    def point_at(self, u: float, v: float) -> np.ndarray:
        p00, p10, p11, p01 = self.corners
        return (
            (1 - u) * (1 - v) * p00
            + u * (1 - v) * p10
            + u * v * p11
            + (1 - u) * v * p01
        )

    def _tangents(self, u: float, v: float) -> Tuple[np.ndarray, np.ndarray]:
        p00, p10, p11, p01 = self.corners
        du = (1 - v) * (p10 - p00) + v * (p11 - p01)
        dv = (1 - u) * (p01 - p00) + u * (p11 - p10)
        return du, dv

    def normal_at(self, u: float, v: float) -> np.ndarray:
        du, dv = self._tangents(u, v)
        n = _unit(np.cross(du, dv))
        return -n if self.flip_normal else n

    def surface_size(self) -> Tuple[float, float]:
        """Approximate (width, height): the longer of each pair of opposite edges."""
        p00, p10, p11, p01 = self.corners
        width = max(np.linalg.norm(p10 - p00), np.linalg.norm(p11 - p01))
        height = max(np.linalg.norm(p01 - p00), np.linalg.norm(p11 - p10))
        return float(width), float(height)

    def iso_curve_v(self, u: float) -> CenterLine:
        """The curve of constant u running along v (straight on a bilinear patch)."""
        if not 0.0 <= u <= 1.0:
            raise ValueError(f"Surface parameter {u} outside [0, 1]")
        return CenterLine(np.array([self.point_at(u, 0.0), self.point_at(u, 1.0)]), u=u)


# ─── Panel regions ───────────────────────────────────────────────────────────

@dataclass
class PanelRegion:
    """A flat region in 3D.

    All geometry lives in the (basis_u, basis_v, origin) frame: the outline is
    a 2D polygon in (u, v) and the frame places it in the world.
    """
    origin: np.ndarray              # (3,) frame origin, also the scaling centre
    basis_u: np.ndarray             # (3,) unit, local X (panel depth)
    basis_v: np.ndarray             # (3,) unit, local Y (panel width)
    outline_2d: Polygon

    @classmethod
    def from_extents(
        cls,
        x_extents: Tuple[float, float],
        y_extents: Tuple[float, float],
        origin: Optional[np.ndarray] = None,
    ) -> "PanelRegion":
        """An axis-aligned rectangle on the world XY plane."""
        (x0, x1), (y0, y1) = x_extents, y_extents
        if x1 <= x0 or y1 <= y0:
            raise ValueError(f"Degenerate extents x={x_extents} y={y_extents}")
        return cls(
            origin=np.zeros(3) if origin is None else np.asarray(origin, dtype=float),
            basis_u=WORLD_X.copy(),
            basis_v=WORLD_Y.copy(),
            outline_2d=box(x0, y0, x1, y1),
        )

    @property
    def normal(self) -> np.ndarray:
        return _unit(np.cross(self.basis_u, self.basis_v))

    @property
    def area(self) -> float:
        return float(self.outline_2d.area)

    @property
    def center(self) -> np.ndarray:
        c = self.outline_2d.centroid
        return self.uv_to_world(c.x, c.y)

    @property
    def extents(self) -> Tuple[float, float]:
        """(depth, width) of the outline's local bounding box."""
        minx, miny, maxx, maxy = self.outline_2d.bounds
        return (maxx - minx, maxy - miny)

    def world_to_uvw(self, points: np.ndarray) -> np.ndarray:
        """Local (u, v, w) coordinates; w is the signed offset along the normal."""
        d = _as_points(points) - self.origin
        return np.column_stack([d @ self.basis_u, d @ self.basis_v, d @ self.normal])

    def uv_to_world(self, u, v) -> np.ndarray:
        u = np.asarray(u, dtype=float)
        v = np.asarray(v, dtype=float)
        return self.origin + u[..., None] * self.basis_u + v[..., None] * self.basis_v

    # Transforms mutate in place; a PanelRegion has exactly one owner.

    def rotate(self, angle: float, axis: np.ndarray, pivot: np.ndarray) -> None:
        matrix = trimesh.transformations.rotation_matrix(angle, axis, point=pivot)
        rot = matrix[:3, :3]
        self.origin = rot @ self.origin + matrix[:3, 3]
        self.basis_u = _unit(rot @ self.basis_u)
        self.basis_v = _unit(rot @ self.basis_v)

    def translate(self, vector: np.ndarray) -> None:
        self.origin = self.origin + np.asarray(vector, dtype=float)

    def scale_local(self, xfact: float, yfact: float = 1.0) -> None:
        """Non-uniform scale about the frame origin within the local plane."""
        if xfact <= 0.0 or yfact <= 0.0:
            raise ValueError(f"Scale factors must be positive, got ({xfact}, {yfact})")
        self.outline_2d = affinity.scale(self.outline_2d, xfact, yfact, origin=(0.0, 0.0))

    # Queries

    def distance_to(self, points: np.ndarray) -> np.ndarray:
        """Euclidean distance from each point to its closest point on the region."""
        uvw = self.world_to_uvw(points)
        in_plane = shapely.distance(self.outline_2d, shapely.points(uvw[:, 0], uvw[:, 1]))
        return np.hypot(in_plane, uvw[:, 2])

    def closest_point(self, points: np.ndarray) -> np.ndarray:
        """Closest point on the region for each query point, shape (N, 3)."""
        uvw = self.world_to_uvw(points)
        if len(uvw) == 0:
            return np.empty((0, 3))
        lines = shapely.shortest_line(shapely.points(uvw[:, 0], uvw[:, 1]), self.outline_2d)
        ends = shapely.get_coordinates(lines)[1::2]
        return self.uv_to_world(ends[:, 0], ends[:, 1])

    def corners_3d(self) -> np.ndarray:
        coords = np.asarray(self.outline_2d.exterior.coords)[:-1]
        return self.uv_to_world(coords[:, 0], coords[:, 1])

    def sample_grid(self, nu: int, nv: int) -> np.ndarray:
        """Cell-centre samples of an nu x nv grid over the outline, shape (K, 3)."""
        if nu < 1 or nv < 1:
            raise ValueError("Sample grid needs at least one cell per direction")
        minx, miny, maxx, maxy = self.outline_2d.bounds
        us = minx + (np.arange(nu) + 0.5) * (maxx - minx) / nu
        vs = miny + (np.arange(nv) + 0.5) * (maxy - miny) / nv
        gu, gv = np.meshgrid(us, vs, indexing="ij")
        gu, gv = gu.ravel(), gv.ravel()
        inside = shapely.contains_xy(self.outline_2d, gu, gv)
        return self.uv_to_world(gu[inside], gv[inside])

    def to_trimesh(self) -> trimesh.Trimesh:
        """Fan-triangulated mesh of the (convex) outline."""
        vertices = self.corners_3d()
        faces = [[0, i, i + 1] for i in range(1, len(vertices) - 1)]
        return trimesh.Trimesh(vertices=vertices, faces=faces, process=False)

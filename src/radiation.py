"""
Stand-in radiation sources for driving the shading simulation offline.

In production the sensor points and irradiance values come from an external
radiation tool. These sources only reproduce that interface: sample points
on the live panels, and one scalar per point. They are not a solar model.
"""
import logging
from abc import ABC, abstractmethod
from typing import Iterable, Sequence, Tuple

import numpy as np

from panel import Panel

logger = logging.getLogger(__name__)


def panel_sensor_points(
    panels: Iterable[Panel],
    density: int = 3,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Sensor grid over every panel.

    Args:
        panels: Live panels.
        density: Cells per panel side.

    Returns:
        (points (N, 3), normals (N, 3), owner panel ids (N,))
    """
    if density < 1:
        raise ValueError(f"density must be >= 1, got {density}")
    points, normals, owners = [], [], []
    for panel in panels:
        samples = panel.geometry.sample_grid(density, density)
        points.append(samples)
        normals.append(np.tile(panel.normal_direction, (len(samples), 1)))
        owners.append(np.full(len(samples), panel.panel_id, dtype=int))
    if not points:
        return np.empty((0, 3)), np.empty((0, 3)), np.empty(0, dtype=int)
    points = np.vstack(points)
    logger.debug("Sampled %d sensor points on %d panels", len(points), len(owners))
    return points, np.vstack(normals), np.concatenate(owners)


class RadiationSource(ABC):
    """Irradiance oracle: one scalar per sensor point."""

    @abstractmethod
    def irradiance(self, points: np.ndarray, normals: np.ndarray) -> np.ndarray:
        """Irradiance at each point, shape (N,)."""


class UniformRadiation(RadiationSource):
    """Same value everywhere."""

    def __init__(self, value: float = 900.0):
        if value < 0.0:
            raise ValueError(f"Irradiance cannot be negative, got {value}")
        self.value = float(value)

    def irradiance(self, points, normals):
        return np.full(len(points), self.value)


class DirectionalRadiation(RadiationSource):
    """Lambert cosine of the sensor normal against a fixed sun direction.

    ambient + intensity * max(0, n . s), optionally fading with height
    below a reference level to mimic lower floors receiving less sky.
    """

    def __init__(
        self,
        sun_direction: Sequence[float] = (0.0, -0.5, 1.0),
        intensity: float = 800.0,
        ambient: float = 100.0,
        height_falloff: float = 0.0,
        reference_height: float = 0.0,
    ):
        sun = np.asarray(sun_direction, dtype=float)
        norm = np.linalg.norm(sun)
        if norm == 0.0:
            raise ValueError("sun_direction must be non-zero")
        self.sun_direction = sun / norm
        self.intensity = float(intensity)
        self.ambient = float(ambient)
        self.height_falloff = float(height_falloff)
        self.reference_height = float(reference_height)

    def irradiance(self, points, normals):
        points = np.asarray(points, dtype=float).reshape(-1, 3)
        normals = np.asarray(normals, dtype=float).reshape(-1, 3)
        cosine = np.clip(normals @ self.sun_direction, 0.0, None)
        values = self.ambient + self.intensity * cosine
        if self.height_falloff:
            below = np.clip(self.reference_height - points[:, 2], 0.0, None)
            values = values * np.exp(-self.height_falloff * below)
        return values


class LinearFieldRadiation(RadiationSource):
    """base + gradient . (p - origin), clipped at zero.

    A spatially varying field, so turning a panel moves its samples to
    brighter or darker spots.
    """

    def __init__(
        self,
        base: float = 900.0,
        gradient: Sequence[float] = (0.0, -50.0, 10.0),
        origin: Sequence[float] = (0.0, 0.0, 0.0),
    ):
        self.base = float(base)
        self.gradient = np.asarray(gradient, dtype=float)
        self.origin = np.asarray(origin, dtype=float)

    def irradiance(self, points, normals):
        points = np.asarray(points, dtype=float).reshape(-1, 3)
        return np.clip(self.base + (points - self.origin) @ self.gradient, 0.0, None)


SOURCES = {
    "uniform": UniformRadiation,
    "directional": DirectionalRadiation,
    "field": LinearFieldRadiation,
}

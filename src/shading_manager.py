"""
Population manager for adaptive shading panels.

Lays out the initial panels on a set of facade surfaces and drives the
three-pass radiation update each simulation tick:

  pass 0  panels in population order, samples forward   -> turn
  pass 1  panels in population order, samples forward   -> turn
  pass 2  panels reversed, samples reversed              -> grow + survive, then prune

Population order is center-lines west to east (along u), each line top to
bottom, so pass 2 settles the lower, darker panels before their neighbours.

Samples are handed out first-match-wins: once a panel claims a sample no
later panel in the same pass sees it.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import trimesh

from geometry_primitives import BaseSurface, CenterLine
from panel import PASS_GROW, PASSES, Panel, ShadingConfig

logger = logging.getLogger(__name__)

EVEN_LINE_PADDING = 0.25
ODD_LINE_PADDING = 0.75


@dataclass
class UpdateReport:
    """What one pass did."""
    pass_number: int
    sample_count: int
    assigned_count: int
    updated_panels: int
    skipped_panels: int
    removed_ids: List[int] = field(default_factory=list)
    live_count: int = 0

    @property
    def unassigned_count(self) -> int:
        return self.sample_count - self.assigned_count


# ─── Layout helpers ──────────────────────────────────────────────────────────

def create_center_lines(surface: BaseSurface, interval_distance: float) -> List[CenterLine]:
    """Evenly spaced vertical iso-curves, none on either edge of the surface.

    floor(width / interval) lines, spaced 1/n apart in u, the first one
    half a spacing in from u=0.
    """
    if interval_distance <= 0.0:
        raise ValueError(f"interval_distance must be positive, got {interval_distance}")
    surface = surface.reparameterize()
    width, _ = surface.surface_size()
    count = int(math.floor(width / interval_distance))
    if count <= 0:
        logger.warning(
            "Surface %r is narrower (%.3f) than the interval distance %.3f; no center-lines",
            surface.name, width, interval_distance,
        )
        return []

    spacing = 1.0 / count
    padding = spacing / 2.0
    return [surface.iso_curve_v(i * spacing + padding) for i in range(count)]


def create_growth_points(
    center_line: CenterLine,
    growth_point_interval: float,
    line_index: int,
) -> np.ndarray:
    """Growth points along a center-line, staggered by line parity.

    floor(length / interval) - 1 points, one interval apart. Even-indexed
    lines start a quarter interval from the bottom, odd-indexed lines three
    quarters, so neighbouring lines never line up.

    Returns:
        (M, 3) array, possibly empty.
    """
    if growth_point_interval <= 0.0:
        raise ValueError(f"growth_point_interval must be positive, got {growth_point_interval}")
    length = center_line.length
    count = int(math.floor(length / growth_point_interval)) - 1
    if count <= 0:
        logger.warning(
            "Center-line %d (length %.3f) too short for growth interval %.3f; no panels",
            line_index, length, growth_point_interval,
        )
        return np.empty((0, 3))

    spacing = growth_point_interval / length
    padding = spacing * (EVEN_LINE_PADDING if line_index % 2 == 0 else ODD_LINE_PADDING)
    return np.array([center_line.point_at(i * spacing + padding) for i in range(count)])


def height_penalty_factor(point: np.ndarray, center_line: CenterLine) -> float:
    """1 at the bottom of the line, 0 at the top."""
    if center_line.length == 0.0:
        return 1.0
    relative = (point[2] - center_line.start_point[2]) / center_line.length
    return float(min(max(1.0 - relative, 0.0), 1.0))


# ─── Manager ─────────────────────────────────────────────────────────────────

class ShadingManager:
    """Owns the ordered panel population and the center-lines it grew from."""

    def __init__(self, config: Optional[ShadingConfig] = None, seed: Optional[int] = None):
        """
        Args:
            config: Adaptation and assignment constants.
            seed: Seeds every panel's generator reproducibly. None (the
                default) draws fresh entropy, so first turns differ per run.
        """
        self.config = config if config is not None else ShadingConfig()
        self.config.validate()
        self._seed_sequence = np.random.SeedSequence(seed)
        self._panels: List[Panel] = []
        self._center_lines: List[CenterLine] = []
        self._is_initialized = False
        self._minimum_viable_area = float("nan")
        self._next_id = 0
        self.removed_count = 0
        self.last_assignment: Dict[int, np.ndarray] = {}

    @property
    def panels(self) -> List[Panel]:
        return list(self._panels)

    @property
    def center_lines(self) -> List[CenterLine]:
        return list(self._center_lines)

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    @property
    def minimum_viable_area(self) -> float:
        return self._minimum_viable_area

    # ─── Initialization ──────────────────────────────────────────────────────

    def initialize_shading_surfaces(
        self,
        base_surfaces: Sequence[BaseSurface],
        interval_distance: float,
        growth_point_interval: float,
        starting_depth: float,
    ) -> None:
        """Grow the starting panels. Runs once per manager."""
        if self._is_initialized:
            raise RuntimeError("ShadingManager is already initialized")
        if not base_surfaces:
            raise ValueError("At least one base surface is required")
        for name, value in (
            ("interval_distance", interval_distance),
            ("growth_point_interval", growth_point_interval),
            ("starting_depth", starting_depth),
        ):
            if not value > 0.0:
                raise ValueError(f"{name} must be positive, got {value}")

        lines_with_normals: List[Tuple[CenterLine, np.ndarray]] = []
        for surface in base_surfaces:
            for line in create_center_lines(surface, interval_distance):
                lines_with_normals.append((line, surface.normal_at(line.u, 0.5)))

        panels: List[Panel] = []
        for index, (line, outside_direction) in enumerate(lines_with_normals):
            growth_points = create_growth_points(line, growth_point_interval, index)
            panels.extend(self._create_starting_panels(
                growth_points, line, starting_depth, interval_distance, outside_direction,
            ))

        self._panels = panels
        self._center_lines = [line for line, _ in lines_with_normals]
        self._minimum_viable_area = starting_depth * interval_distance
        self._is_initialized = True
        logger.info(
            "Initialized %d panels on %d center-lines from %d surfaces (min area %.4f)",
            len(panels), len(self._center_lines), len(base_surfaces), self._minimum_viable_area,
        )

    def _create_starting_panels(
        self,
        growth_points: np.ndarray,
        center_line: CenterLine,
        starting_depth: float,
        interval_distance: float,
        outside_direction: np.ndarray,
    ) -> List[Panel]:
        panels = []
        seeds = self._seed_sequence.spawn(len(growth_points))
        # population order runs top to bottom along each line
        for point, seed in zip(growth_points[::-1], seeds):
            panel = Panel(
                x_extents=(-starting_depth / 2.0, starting_depth / 2.0),
                y_extents=(-interval_distance / 2.0, interval_distance / 2.0),
                growth_penalty_factor=height_penalty_factor(point, center_line),
                seed=seed,
                config=self.config,
                panel_id=self._next_id,
            )
            self._next_id += 1
            panel.face_towards(outside_direction)
            # the panel is built around the world origin
            panel.translate(point)
            panels.append(panel)
        return panels

    # ─── Per-pass update ─────────────────────────────────────────────────────

    def assign_samples(self, sensor_points: np.ndarray, pass_number: int) -> List[Tuple[Panel, np.ndarray]]:
        """Partition sample indices among panels in the pass's order.

        Returns:
            (panel, indices) pairs in processing order. Indices are listed in
            the pass's scan order; a sample appears under at most one panel.
        """
        self._check_pass(pass_number)
        points = np.asarray(sensor_points, dtype=float).reshape(-1, 3)
        limit = self.config.assignment_distance

        scan = np.arange(len(points))
        ordered = list(self._panels)
        if pass_number == PASS_GROW:
            scan = scan[::-1]
            ordered.reverse()

        unclaimed = np.ones(len(points), dtype=bool)
        assignment = []
        for panel in ordered:
            candidates = scan[unclaimed[scan]]
            if len(candidates) == 0:
                assignment.append((panel, candidates))
                continue
            near = panel.geometry.distance_to(points[candidates]) <= limit
            claimed = candidates[near]
            unclaimed[claimed] = False
            assignment.append((panel, claimed))
        return assignment

    def update_surfaces_with_radiation_data(
        self,
        sensor_points: np.ndarray,
        radiation: np.ndarray,
        pass_number: int,
    ) -> UpdateReport:
        """Feed one pass of radiation samples to the population."""
        if not self._is_initialized:
            raise RuntimeError("ShadingManager must be initialized before updating")
        points = np.asarray(sensor_points, dtype=float)
        values = np.asarray(radiation, dtype=float)
        if points.size == 0:
            points = points.reshape(0, 3)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"sensor_points must have shape (N, 3), got {points.shape}")
        if values.ndim != 1:
            raise ValueError(f"radiation must be one-dimensional, got {values.shape}")
        if len(points) != len(values):
            raise ValueError(
                f"Got {len(points)} sensor points but {len(values)} radiation values"
            )
        if not np.all(np.isfinite(points)):
            raise ValueError("sensor_points contains non-finite coordinates")
        if not np.all(np.isfinite(values)):
            raise ValueError("radiation contains non-finite values")

        assignment = self.assign_samples(points, pass_number)
        self.last_assignment = {panel.panel_id: idx for panel, idx in assignment}

        updated = skipped = assigned = 0
        dead_ids = []
        for panel, idx in assignment:
            assigned += len(idx)
            ran = panel.set_radiation_data_and_update(
                points[idx], values[idx], pass_number, self._minimum_viable_area,
            )
            if ran:
                updated += 1
            else:
                skipped += 1
            if not panel.alive:
                dead_ids.append(panel.panel_id)

        if pass_number == PASS_GROW:
            self._remove_dead_panels()

        report = UpdateReport(
            pass_number=pass_number,
            sample_count=len(points),
            assigned_count=assigned,
            updated_panels=updated,
            skipped_panels=skipped,
            removed_ids=dead_ids,
            live_count=len(self._panels),
        )
        if report.unassigned_count:
            logger.debug("Pass %d: %d samples matched no panel", pass_number, report.unassigned_count)
        logger.debug(
            "Pass %d: %d/%d samples assigned, %d updated, %d skipped, %d removed",
            pass_number, assigned, len(points), updated, skipped, len(dead_ids),
        )
        return report

    def _remove_dead_panels(self) -> None:
        survivors = [p for p in self._panels if p.alive]
        removed = len(self._panels) - len(survivors)
        if removed:
            logger.info("Removed %d dead panels, %d remain", removed, len(survivors))
        self.removed_count += removed
        self._panels = survivors

    @staticmethod
    def _check_pass(pass_number: int) -> None:
        if pass_number not in PASSES:
            raise ValueError(f"pass_number must be one of {PASSES}, got {pass_number}")

    # ─── Output ──────────────────────────────────────────────────────────────

    def to_trimesh(self) -> trimesh.Trimesh:
        """All live panels as a single mesh."""
        if not self._panels:
            return trimesh.Trimesh()
        return trimesh.util.concatenate([p.geometry.to_trimesh() for p in self._panels])

    def snapshot(self) -> dict:
        """Live panels, center-lines and counters for the host caller."""
        return {
            "panel_count": len(self._panels),
            "removed_count": self.removed_count,
            "minimum_viable_area": self._minimum_viable_area,
            "center_lines": [line.points.tolist() for line in self._center_lines],
            "panels": [p.to_dict() for p in self._panels],
        }

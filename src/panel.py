"""
Adaptive shading panel.

A Panel owns one rectangular PanelRegion and the memory it needs to adapt:
the capture it saw last time, the turn it applied last time, a private random
generator for its very first turn, and whether it is still alive.

Each simulation tick drives a panel through three passes:
  0, 1. turn  - hill-climb on the rotation about the panel normal
  2.    grow  - scale the depth by a bounded factor, then survive-check
"""
import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from geometry_primitives import WORLD_X, PanelRegion, signed_angle_xy

logger = logging.getLogger(__name__)

PASS_TURN_FIRST = 0
PASS_TURN_SECOND = 1
PASS_GROW = 2
PASSES = (PASS_TURN_FIRST, PASS_TURN_SECOND, PASS_GROW)


class PanelStateError(RuntimeError):
    """Raised when a dead panel is asked to update."""


@dataclass
class ShadingConfig:
    """Numeric knobs for panel adaptation and sample assignment."""

    tolerance: float = 0.01  # model absolute tolerance for point containment
    assignment_margin: float = 0.33  # extra reach added to the tolerance
    first_turn_angle: float = 0.1  # radians, sign picked at random
    turn_decay: float = 0.8  # damping applied when a turn did not pay off
    growth_rate: float = 0.2  # growth factor stays inside (1 - rate, 1 + rate)
    penalty_base: float = 8.0
    penalty_height_weight: float = 5.0
    penalty_height_power: float = 5.0
    penalty_exponent: float = 2.25

    @property
    def assignment_distance(self) -> float:
        return self.tolerance + self.assignment_margin

    def validate(self) -> None:
        if self.tolerance < 0.0:
            raise ValueError(f"tolerance must be >= 0, got {self.tolerance}")
        if self.assignment_margin < 0.0:
            raise ValueError(f"assignment_margin must be >= 0, got {self.assignment_margin}")
        if self.first_turn_angle <= 0.0:
            raise ValueError("first_turn_angle must be positive")
        if not 0.0 < self.turn_decay <= 1.0:
            raise ValueError(f"turn_decay must be in (0, 1], got {self.turn_decay}")
        if not 0.0 < self.growth_rate < 1.0:
            raise ValueError(f"growth_rate must be in (0, 1), got {self.growth_rate}")
        if self.penalty_exponent <= 0.0:
            raise ValueError("penalty_exponent must be positive")


# ─── Update rules ────────────────────────────────────────────────────────────

def next_turn_angle(
    capture: float,
    previous_capture: float,
    previous_angle: float,
    decay: float,
) -> float:
    """Repeat a turn that paid off, otherwise reverse it and damp it.

    Ties count as "did not pay off".
    """
    if capture > previous_capture:
        return previous_angle
    return -1.0 * previous_angle * decay


def size_penalty(area: float, growth_penalty_factor: float, config: ShadingConfig) -> float:
    """(area * (base + weight * factor^power)) ^ exponent"""
    weight = config.penalty_base + config.penalty_height_weight * (
        growth_penalty_factor ** config.penalty_height_power
    )
    return (area * weight) ** config.penalty_exponent


def growth_factor(capture: float, penalty: float, rate: float = 0.2) -> float:
    """1 + tanh(capture - penalty) * rate, strictly inside (1 - rate, 1 + rate)."""
    factor = 1.0 + math.tanh(capture - penalty) * rate
    # tanh reaches exactly +/-1.0 in float64 for moderate arguments
    low = math.nextafter(1.0 - rate, math.inf)
    high = math.nextafter(1.0 + rate, -math.inf)
    return min(max(factor, low), high)


# ─── Panel ───────────────────────────────────────────────────────────────────

class Panel:
    """One adjustable shading panel.

    The panel starts on the world XY plane facing +X, with its depth along
    local X and its width along local Y. Layout code aims it with
    face_towards() and moves it with translate(); after that only the
    per-pass update methods change it.
    """

    def __init__(
        self,
        x_extents: Tuple[float, float],
        y_extents: Tuple[float, float],
        growth_penalty_factor: float = 0.0,
        seed=None,
        config: Optional[ShadingConfig] = None,
        panel_id: int = 0,
    ):
        """
        Args:
            x_extents: (min, max) along local X, the depth axis.
            y_extents: (min, max) along local Y, the width axis.
            growth_penalty_factor: 0 at the top of a center-line, 1 at the bottom.
            seed: Anything numpy.random.default_rng accepts. None draws
                fresh OS entropy.
            config: Adaptation constants.
            panel_id: Stable identifier for diagnostics.
        """
        self.panel_id = panel_id
        self.config = config if config is not None else ShadingConfig()
        self._geometry = PanelRegion.from_extents(x_extents, y_extents)
        self._facing_direction = WORLD_X.copy()
        self._faced = False
        self._growth_penalty_factor = float(growth_penalty_factor)
        self._rng = np.random.default_rng(seed)

        self._orientation_angle = 0.0
        self._total_sunlight_capture = float("nan")
        self._previous_capture = float("nan")
        self._previous_turn_angle = float("nan")
        self._alive = True
        self._iteration = 0
        self._last_sensor_points = np.empty((0, 3))

    def __repr__(self) -> str:
        return (
            f"Panel(id={self.panel_id}, area={self.area:.3f}, "
            f"angle={self._orientation_angle:.3f}, alive={self._alive})"
        )

    # ─── Read-only state ─────────────────────────────────────────────────────

    @property
    def geometry(self) -> PanelRegion:
        return self._geometry

    @property
    def area(self) -> float:
        return self._geometry.area

    @property
    def normal_direction(self) -> np.ndarray:
        return self._geometry.normal

    @property
    def facing_direction(self) -> np.ndarray:
        return self._facing_direction.copy()

    @property
    def orientation_angle(self) -> float:
        return self._orientation_angle

    @property
    def total_sunlight_capture(self) -> float:
        return self._total_sunlight_capture

    @property
    def previous_capture(self) -> float:
        return self._previous_capture

    @property
    def previous_turn_angle(self) -> float:
        return self._previous_turn_angle

    @property
    def growth_penalty_factor(self) -> float:
        return self._growth_penalty_factor

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def iteration(self) -> int:
        return self._iteration

    @property
    def last_sensor_points(self) -> np.ndarray:
        return self._last_sensor_points

    @property
    def has_history(self) -> bool:
        return not math.isnan(self._previous_capture)

    # ─── Layout ──────────────────────────────────────────────────────────────

    def face_towards(self, direction: np.ndarray) -> float:
        """Aim the panel's facing direction at direction (XY projection only).

        Rotates the geometry about its normal through its centre by the same
        angle. Allowed once, before any update.
        """
        if self._faced or self.has_history:
            raise PanelStateError(f"Panel {self.panel_id} has already been aimed")
        angle = signed_angle_xy(self._facing_direction, direction)
        cos_a, sin_a = math.cos(angle), math.sin(angle)
        fx, fy, fz = self._facing_direction
        self._facing_direction = np.array([cos_a * fx - sin_a * fy, sin_a * fx + cos_a * fy, fz])
        self.rotate_around_normal_direction(angle)
        self._faced = True
        return angle

    def rotate_around_normal_direction(self, angle: float) -> None:
        """Spin the geometry about its normal; does not touch facing_direction."""
        self._geometry.rotate(angle, self._geometry.normal, self._geometry.center)

    def rotate_around_facing_direction(self, angle: float) -> None:
        """Tilt the geometry about facing_direction through its centre.

        Changes the normal; orientation_angle and facing_direction are kept.
        """
        self._geometry.rotate(angle, self._facing_direction, self._geometry.center)

    def translate(self, vector: np.ndarray) -> None:
        self._geometry.translate(vector)

    # ─── Per-pass updates ────────────────────────────────────────────────────

    def measure_capture(self, radiation: np.ndarray) -> float:
        """Mean irradiance over the assigned samples, scaled by area."""
        return float(np.mean(radiation)) * self.area

    def set_radiation_data_and_update(
        self,
        points: np.ndarray,
        radiation: np.ndarray,
        pass_number: int,
        minimum_viable_area: float,
    ) -> bool:
        """Run this panel's step for one pass.

        A pass with no samples is skipped: capture, history and geometry are
        held as they were.

        Returns:
            True if the step ran, False if it was skipped.
        """
        self._check_alive()
        points = np.asarray(points, dtype=float).reshape(-1, 3)
        radiation = np.asarray(radiation, dtype=float).ravel()
        if len(points) != len(radiation):
            raise ValueError(
                f"Panel {self.panel_id}: {len(points)} points vs {len(radiation)} values"
            )
        if pass_number not in PASSES:
            raise ValueError(f"Unknown pass number {pass_number}")

        if len(radiation) == 0:
            logger.debug("Panel %d: no samples in pass %d, holding state", self.panel_id, pass_number)
            return False

        self._last_sensor_points = points
        if pass_number == PASS_GROW:
            self.grow(radiation)
            self.survive(minimum_viable_area)
            self._iteration += 1
        else:
            self.turn(radiation)
        return True

    def turn(self, radiation: np.ndarray) -> float:
        """One hill-climbing step on the orientation. Returns the applied angle."""
        self._check_alive()
        capture = self.measure_capture(radiation)
        self._total_sunlight_capture = capture

        if not self.has_history:
            sign = 1.0 if self._rng.random() < 0.5 else -1.0
            angle = sign * self.config.first_turn_angle
        else:
            angle = next_turn_angle(
                capture, self._previous_capture, self._previous_turn_angle, self.config.turn_decay,
            )

        self.rotate_around_normal_direction(angle)
        self._orientation_angle += angle
        self._previous_capture = capture
        self._previous_turn_angle = angle
        logger.debug(
            "Panel %d: turn %+.4f rad (capture %.3f)", self.panel_id, angle, capture,
        )
        return angle

    def grow(self, radiation: np.ndarray) -> float:
        """Scale the depth by the bounded growth factor. Returns the factor."""
        self._check_alive()
        capture = self.measure_capture(radiation)
        self._total_sunlight_capture = capture
        penalty = size_penalty(self.area, self._growth_penalty_factor, self.config)
        factor = growth_factor(capture, penalty, self.config.growth_rate)
        self._geometry.scale_local(factor, 1.0)
        logger.debug(
            "Panel %d: capture %.3f penalty %.3f growth x%.4f -> area %.4f",
            self.panel_id, capture, penalty, factor, self.area,
        )
        return factor

    def survive(self, minimum_viable_area: float) -> bool:
        """Die if the area fell below the minimum viable footprint."""
        self._check_alive()
        if self.area < minimum_viable_area:
            self._alive = False
            logger.debug(
                "Panel %d died: area %.4f < %.4f", self.panel_id, self.area, minimum_viable_area,
            )
        return self._alive

    def _check_alive(self) -> None:
        if not self._alive:
            raise PanelStateError(f"Panel {self.panel_id} is dead and cannot be updated")

    def to_dict(self) -> dict:
        """Diagnostic snapshot."""
        depth, width = self._geometry.extents
        return {
            "id": self.panel_id,
            "alive": self._alive,
            "iteration": self._iteration,
            "area": self.area,
            "depth": depth,
            "width": width,
            "orientation_angle": self._orientation_angle,
            "total_sunlight_capture": _json_float(self._total_sunlight_capture),
            "growth_penalty_factor": self._growth_penalty_factor,
            "center": self._geometry.center.tolist(),
        }


def _json_float(value: float) -> Optional[float]:
    return None if math.isnan(value) else float(value)

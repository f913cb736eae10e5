"""Tick loop: sensor points -> radiation -> three passes -> diagnostics -> run artifacts."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from geometry_primitives import BaseSurface
from panel import PASSES, ShadingConfig
from radiation import RadiationSource, UniformRadiation, panel_sensor_points
from run_protocol import RunFolder
from shading_manager import ShadingManager

logger = logging.getLogger(__name__)


@dataclass
class SimulationConfig:
    interval_distance: float = 2.0
    growth_point_interval: float = 2.0
    starting_depth: float = 0.5
    ticks: int = 10
    sensor_density: int = 3
    seed: Optional[int] = None
    runs_dir: str = "runs"
    export_mesh: bool = True
    shading: ShadingConfig = field(default_factory=ShadingConfig)

    def validate(self) -> None:
        if self.ticks < 0:
            raise ValueError(f"ticks must be >= 0, got {self.ticks}")
        if self.sensor_density < 1:
            raise ValueError(f"sensor_density must be >= 1, got {self.sensor_density}")
        self.shading.validate()


@dataclass
class TickDiagnostics:
    tick: int
    live_panels: int
    removed_panels: int
    sample_count: int
    unassigned_samples: int
    mean_capture: float
    mean_area: float
    total_area: float
    mean_abs_turn: float


@dataclass
class SimulationResult:
    manager: ShadingManager
    ticks: List[TickDiagnostics] = field(default_factory=list)
    initial_panels: int = 0
    wall_time: float = 0.0

    @property
    def final_panels(self) -> int:
        return len(self.manager.panels)

    def to_dict(self) -> dict:
        return {
            "initial_panels": self.initial_panels,
            "final_panels": self.final_panels,
            "removed_panels": self.manager.removed_count,
            "center_lines": len(self.manager.center_lines),
            "wall_time": self.wall_time,
            "ticks": [asdict(t) for t in self.ticks],
        }


def run_tick(
    manager: ShadingManager,
    source: RadiationSource,
    sensor_density: int,
    tick: int,
) -> TickDiagnostics:
    """One full tick. Radiation is re-sampled before every pass."""
    sample_count = unassigned = removed = 0
    for pass_number in PASSES:
        if not manager.panels:
            break
        points, normals, _ = panel_sensor_points(manager.panels, sensor_density)
        values = source.irradiance(points, normals)
        report = manager.update_surfaces_with_radiation_data(points, values, pass_number)
        sample_count += report.sample_count
        unassigned += report.unassigned_count
        removed += len(report.removed_ids)

    panels = manager.panels
    captures = [p.total_sunlight_capture for p in panels if not np.isnan(p.total_sunlight_capture)]
    areas = [p.area for p in panels]
    turns = [abs(p.previous_turn_angle) for p in panels if p.has_history]
    diagnostics = TickDiagnostics(
        tick=tick,
        live_panels=len(panels),
        removed_panels=removed,
        sample_count=sample_count,
        unassigned_samples=unassigned,
        mean_capture=float(np.mean(captures)) if captures else 0.0,
        mean_area=float(np.mean(areas)) if areas else 0.0,
        total_area=float(np.sum(areas)),
        mean_abs_turn=float(np.mean(turns)) if turns else 0.0,
    )
    logger.info(
        "Tick %d: %d live (-%d), mean area %.3f, mean capture %.1f, mean |turn| %.4f",
        tick, diagnostics.live_panels, removed, diagnostics.mean_area,
        diagnostics.mean_capture, diagnostics.mean_abs_turn,
    )
    return diagnostics


def run_simulation(
    base_surfaces: Sequence[BaseSurface],
    config: Optional[SimulationConfig] = None,
    source: Optional[RadiationSource] = None,
) -> SimulationResult:
    if config is None:
        config = SimulationConfig()
    config.validate()
    if source is None:
        source = UniformRadiation()

    started = time.perf_counter()
    manager = ShadingManager(config.shading, seed=config.seed)
    manager.initialize_shading_surfaces(
        base_surfaces,
        config.interval_distance,
        config.growth_point_interval,
        config.starting_depth,
    )
    result = SimulationResult(manager=manager, initial_panels=len(manager.panels))

    for tick in range(config.ticks):
        if not manager.panels:
            logger.warning("All panels died before tick %d; stopping", tick)
            break
        result.ticks.append(run_tick(manager, source, config.sensor_density, tick))

    result.wall_time = time.perf_counter() - started
    return result


def write_run_artifacts(
    result: SimulationResult,
    config: SimulationConfig,
    run_name: str = "shading",
) -> RunFolder:
    """Write metrics, panel snapshot, mesh, manifest and summary for a run.

    The runs root and whether the mesh is exported come from the config.
    """
    folder = RunFolder.create(config.runs_dir, run_name)
    folder.write_metrics(result.to_dict())
    folder.write_panels(result.manager.snapshot())
    mesh_path = folder.write_mesh(result.manager.to_trimesh()) if config.export_mesh else None
    folder.write_manifest(run_name, asdict(config), mesh_written=mesh_path is not None)
    folder.write_summary(_build_summary(folder.run_id, result))
    folder.mark_latest()
    logger.info("Wrote run artifacts to %s", folder.run_dir)
    return folder


def _build_summary(run_id: str, result: SimulationResult) -> str:
    lines = [
        f"# Shading run {run_id}",
        "",
        f"- Center-lines: {len(result.manager.center_lines)}",
        f"- Panels: {result.initial_panels} -> {result.final_panels}",
        f"- Ticks run: {len(result.ticks)}",
        f"- Wall time: {result.wall_time:.2f}s",
        "",
        "| tick | live | removed | mean area | mean capture | mean abs turn |",
        "|---:|---:|---:|---:|---:|---:|",
    ]
    for t in result.ticks:
        lines.append(
            f"| {t.tick} | {t.live_panels} | {t.removed_panels} | {t.mean_area:.3f} "
            f"| {t.mean_capture:.1f} | {t.mean_abs_turn:.4f} |"
        )
    return "\n".join(lines) + "\n"

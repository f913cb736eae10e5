"""Tests for the tick loop and run artifacts."""
import json

import pytest
import trimesh

from panel import ShadingConfig
from radiation import DirectionalRadiation, LinearFieldRadiation, UniformRadiation
from simulation import SimulationConfig, run_simulation, write_run_artifacts


@pytest.fixture
def small_config():
    return SimulationConfig(
        interval_distance=2.0,
        growth_point_interval=2.0,
        starting_depth=0.5,
        ticks=4,
        sensor_density=2,
        seed=21,
    )


class TestRunSimulation:

    def test_uniform_run_keeps_everyone(self, flat_facade, small_config):
        result = run_simulation([flat_facade], small_config, UniformRadiation(900.0))
        assert result.initial_panels == 45
        assert result.final_panels == 45
        assert len(result.ticks) == 4
        areas = [t.mean_area for t in result.ticks]
        assert areas == sorted(areas)
        for tick in result.ticks:
            assert tick.unassigned_samples == 0
            assert tick.sample_count == 3 * 45 * 4
        assert result.ticks[-1].mean_abs_turn <= 0.1 * 0.8 ** 4 + 1e-12

    def test_dark_run_stops_when_everyone_dies(self, flat_facade, small_config):
        result = run_simulation([flat_facade], small_config, UniformRadiation(0.0))
        assert result.final_panels == 0
        assert len(result.ticks) == 1
        assert result.ticks[0].removed_panels == 45
        assert result.manager.removed_count == 45

    def test_seeded_runs_repeat(self, flat_facade, small_config):
        source = LinearFieldRadiation(base=900.0, gradient=(5.0, -40.0, 10.0))
        a = run_simulation([flat_facade], small_config, source)
        b = run_simulation([flat_facade], small_config, source)
        assert [t.mean_area for t in a.ticks] == [t.mean_area for t in b.ticks]
        assert [p.orientation_angle for p in a.manager.panels] == [
            p.orientation_angle for p in b.manager.panels
        ]

    def test_directional_source_runs(self, flat_facade, small_config):
        source = DirectionalRadiation(sun_direction=(0, -1, 1), intensity=800.0, ambient=100.0)
        result = run_simulation([flat_facade], small_config, source)
        assert len(result.ticks) == 4
        assert result.final_panels <= result.initial_panels

    def test_zero_ticks(self, flat_facade, small_config):
        small_config.ticks = 0
        result = run_simulation([flat_facade], small_config)
        assert result.ticks == []
        assert result.final_panels == 45

    def test_invalid_config(self, flat_facade):
        with pytest.raises(ValueError):
            run_simulation([flat_facade], SimulationConfig(ticks=-1))
        with pytest.raises(ValueError):
            run_simulation([flat_facade], SimulationConfig(shading=ShadingConfig(turn_decay=2.0)))


class TestRunArtifacts:

    def test_writes_run_folder(self, flat_facade, small_config, tmp_path):
        small_config.runs_dir = str(tmp_path)
        result = run_simulation([flat_facade], small_config, UniformRadiation(900.0))
        folder = write_run_artifacts(result, small_config, run_name="South Facade")

        assert folder.run_dir.parent == tmp_path
        metrics = json.loads(folder.metrics_path.read_text(encoding="utf-8"))
        assert metrics["initial_panels"] == 45
        assert metrics["final_panels"] == 45
        assert len(metrics["ticks"]) == 4

        manifest = json.loads(folder.manifest_path.read_text(encoding="utf-8"))
        assert manifest["config"]["seed"] == 21
        assert manifest["config"]["runs_dir"] == str(tmp_path)
        assert manifest["config"]["shading"]["turn_decay"] == 0.8
        assert manifest["artifacts"]["mesh"] == "artifacts/panels.ply"

        panels = json.loads(folder.panels_path.read_text(encoding="utf-8"))
        assert panels["panel_count"] == 45
        assert all(p["iteration"] == 4 for p in panels["panels"])

        mesh = trimesh.load(str(folder.mesh_path))
        assert len(mesh.faces) == 90
        assert "| tick |" in folder.summary_path.read_text(encoding="utf-8")

    def test_mesh_export_follows_config(self, flat_facade, small_config, tmp_path):
        small_config.runs_dir = str(tmp_path)
        small_config.export_mesh = False
        result = run_simulation([flat_facade], small_config)
        folder = write_run_artifacts(result, small_config)
        assert not folder.mesh_path.exists()
        assert folder.metrics_path.exists()
        manifest = json.loads(folder.manifest_path.read_text(encoding="utf-8"))
        assert manifest["artifacts"]["mesh"] is None

    def test_dead_population_writes_no_mesh(self, flat_facade, small_config, tmp_path):
        small_config.runs_dir = str(tmp_path)
        result = run_simulation([flat_facade], small_config, UniformRadiation(0.0))
        folder = write_run_artifacts(result, small_config)
        assert result.final_panels == 0
        assert not folder.mesh_path.exists()
        assert json.loads(folder.panels_path.read_text(encoding="utf-8"))["panel_count"] == 0

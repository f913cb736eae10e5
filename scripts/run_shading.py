#!/usr/bin/env python3
"""
Grow adaptive shading panels on facade surfaces.

Builds the starting panels on one or more facades, runs the three-pass
radiation update for a number of ticks using a stand-in radiation source,
and writes metrics, panel snapshots and a panel mesh into a run folder.

Usage:
    python scripts/run_shading.py --width 10 --height 20 --ticks 12
    python scripts/run_shading.py --surfaces facades.json --source directional --sun 0 -1 1
    python scripts/run_shading.py --source field --seed 7 --runs-dir runs/ --verbose

A surfaces file is a JSON list of objects with "corners" (four [x, y, z]
points in p00, p10, p11, p01 order) and optional "flip_normal" / "name".
"""
import sys
import json
import argparse
import logging
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from geometry_primitives import BaseSurface
from panel import ShadingConfig
from radiation import SOURCES, DirectionalRadiation
from simulation import SimulationConfig, run_simulation, write_run_artifacts


def load_surfaces(path):
    with open(path, "r", encoding="utf-8") as f:
        payload = json.load(f)
    if not isinstance(payload, list) or not payload:
        raise ValueError(f"{path}: expected a non-empty list of surfaces")
    surfaces = []
    for i, entry in enumerate(payload):
        if not isinstance(entry, dict) or "corners" not in entry:
            raise ValueError(f"{path}: surface {i} has no \"corners\"")
        surfaces.append(BaseSurface(
            corners=entry["corners"],
            flip_normal=bool(entry.get("flip_normal", False)),
            name=str(entry.get("name", f"surface_{i}")),
        ))
    return surfaces


def build_source(args):
    source_cls = SOURCES[args.source]
    if source_cls is DirectionalRadiation:
        return source_cls(sun_direction=args.sun, intensity=args.irradiance)
    return source_cls(args.irradiance)


def main():
    parser = argparse.ArgumentParser(
        description="Grow adaptive shading panels on facade surfaces.",
    )
    parser.add_argument(
        "--surfaces", default=None,
        help="JSON file of facade corner quads (default: one flat facade from --width/--height)",
    )
    parser.add_argument("--width", type=float, default=10.0, help="Facade width (default: 10)")
    parser.add_argument("--height", type=float, default=20.0, help="Facade height (default: 20)")
    parser.add_argument(
        "--interval", type=float, default=2.0,
        help="Horizontal distance between center-lines (default: 2)",
    )
    parser.add_argument(
        "--growth-interval", type=float, default=2.0,
        help="Vertical distance between growth points (default: 2)",
    )
    parser.add_argument(
        "--depth", type=float, default=0.5,
        help="Starting panel depth (default: 0.5)",
    )
    parser.add_argument("--ticks", type=int, default=10, help="Simulation ticks (default: 10)")
    parser.add_argument(
        "--density", type=int, default=3,
        help="Sensor grid cells per panel side (default: 3)",
    )
    parser.add_argument(
        "--source", default="uniform", choices=sorted(SOURCES),
        help="Stand-in radiation source (default: uniform)",
    )
    parser.add_argument(
        "--irradiance", type=float, default=900.0,
        help="Base irradiance value (default: 900)",
    )
    parser.add_argument(
        "--sun", type=float, nargs=3, default=[0.0, -0.5, 1.0],
        help="Sun direction for the directional source",
    )
    parser.add_argument(
        "--tolerance", type=float, default=0.01,
        help="Model absolute tolerance for sample assignment (default: 0.01)",
    )
    parser.add_argument(
        "--turn-decay", type=float, default=0.8,
        help="Damping applied to a reversed turn (default: 0.8)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible first turns")
    parser.add_argument("--name", default="shading", help="Run name")
    parser.add_argument("--runs-dir", default="runs", help="Root folder for run outputs")
    parser.add_argument("--no-mesh", action="store_true", help="Skip the panel mesh export")
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = SimulationConfig(
        interval_distance=args.interval,
        growth_point_interval=args.growth_interval,
        starting_depth=args.depth,
        ticks=args.ticks,
        sensor_density=args.density,
        seed=args.seed,
        runs_dir=args.runs_dir,
        export_mesh=not args.no_mesh,
        shading=ShadingConfig(tolerance=args.tolerance, turn_decay=args.turn_decay),
    )

    try:
        if args.surfaces:
            surfaces = load_surfaces(args.surfaces)
        else:
            surfaces = [BaseSurface.from_rectangle(
                origin=(0.0, 0.0, 0.0), along=(1.0, 0.0, 0.0),
                width=args.width, height=args.height, name="facade",
            )]
        result = run_simulation(surfaces, config, build_source(args))
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    folder = write_run_artifacts(result, config, run_name=args.name)

    print(f"\nRun ID: {folder.run_id}")
    print(f"Center-lines: {len(result.manager.center_lines)}")
    print(f"Panels: {result.initial_panels} -> {result.final_panels}")
    if result.ticks:
        last = result.ticks[-1]
        print(f"Mean area: {last.mean_area:.3f}")
        print(f"Mean capture: {last.mean_capture:.1f}")
    print(f"Run folder: {folder.run_dir}")


if __name__ == "__main__":
    main()

"""
Run folders for shading simulations.

Each run gets its own directory under a runs root:

    <runs>/<stamp>-<slug>/
        manifest.json        run id, name, config, artifact list
        metrics.json         per-tick diagnostics
        summary.md           human-readable tick table
        artifacts/panels.json
        artifacts/panels.ply
    <runs>/latest            symlink to the newest run (or latest_run.txt)
"""

from __future__ import annotations

import json
import logging
import re
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import trimesh

logger = logging.getLogger(__name__)


def slugify(value: str) -> str:
    words = re.findall(r"[a-z0-9]+", value.lower())
    return "-".join(words) if words else "run"


@dataclass
class RunFolder:
    """One run directory and the files a shading run writes into it."""
    runs_root: Path
    run_dir: Path

    @classmethod
    def create(cls, runs_root, run_name: str) -> "RunFolder":
        """Make a fresh run directory; same-second runs get a numeric suffix."""
        root = Path(runs_root)
        root.mkdir(parents=True, exist_ok=True)
        base = f"{datetime.now(timezone.utc):%Y%m%dT%H%M%SZ}-{slugify(run_name)}"
        attempt = 1
        while True:
            name = base if attempt == 1 else f"{base}-{attempt}"
            try:
                (root / name).mkdir()
                break
            except FileExistsError:
                attempt += 1
        folder = cls(runs_root=root, run_dir=root / name)
        folder.artifacts_dir.mkdir()
        return folder

    @property
    def run_id(self) -> str:
        return self.run_dir.name

    @property
    def artifacts_dir(self) -> Path:
        return self.run_dir / "artifacts"

    @property
    def manifest_path(self) -> Path:
        return self.run_dir / "manifest.json"

    @property
    def metrics_path(self) -> Path:
        return self.run_dir / "metrics.json"

    @property
    def summary_path(self) -> Path:
        return self.run_dir / "summary.md"

    @property
    def panels_path(self) -> Path:
        return self.artifacts_dir / "panels.json"

    @property
    def mesh_path(self) -> Path:
        return self.artifacts_dir / "panels.ply"

    def write_metrics(self, metrics: Dict[str, Any]) -> Path:
        return _dump_json(self.metrics_path, metrics)

    def write_panels(self, snapshot: Dict[str, Any]) -> Path:
        return _dump_json(self.panels_path, snapshot)

    def write_mesh(self, mesh: Optional[trimesh.Trimesh]) -> Optional[Path]:
        """Export the panel mesh as PLY. Nothing is written for an empty mesh."""
        if mesh is None or len(mesh.faces) == 0:
            logger.info("No live panels; skipping %s", self.mesh_path.name)
            return None
        mesh.export(str(self.mesh_path))
        return self.mesh_path

    def write_manifest(
        self, run_name: str, config: Dict[str, Any], mesh_written: bool,
    ) -> Path:
        manifest = {
            "run_id": self.run_id,
            "run_name": run_name,
            "config": config,
            "artifacts": {
                "metrics": self.metrics_path.name,
                "summary": self.summary_path.name,
                "panels": str(self.panels_path.relative_to(self.run_dir)),
                "mesh": str(self.mesh_path.relative_to(self.run_dir)) if mesh_written else None,
            },
        }
        return _dump_json(self.manifest_path, manifest)

    def write_summary(self, text: str) -> Path:
        self.summary_path.write_text(text, encoding="utf-8")
        return self.summary_path

    def mark_latest(self) -> Path:
        """Point <runs>/latest at this run and return the pointer path."""
        pointer = self.runs_root / "latest"
        if pointer.is_symlink() or pointer.is_file():
            pointer.unlink()
        elif pointer.is_dir():
            shutil.rmtree(pointer)
        try:
            pointer.symlink_to(self.run_dir.name, target_is_directory=True)
        except OSError:
            pointer = self.runs_root / "latest_run.txt"
            pointer.write_text(self.run_id + "\n", encoding="utf-8")
        return pointer


def _dump_json(path: Path, payload: Dict[str, Any]) -> Path:
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    return path

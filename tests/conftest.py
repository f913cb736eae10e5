"""
Shared test fixtures for the shading simulation tests.
"""
import sys
from pathlib import Path

import numpy as np
import pytest

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from geometry_primitives import BaseSurface
from panel import ShadingConfig
from shading_manager import ShadingManager


@pytest.fixture
def flat_facade():
    """A 10 wide x 20 tall facade in the XZ plane, facing -Y."""
    return BaseSurface.from_rectangle(
        origin=(0.0, 0.0, 0.0),
        along=(1.0, 0.0, 0.0),
        width=10.0,
        height=20.0,
        name="flat",
    )


@pytest.fixture
def east_facade():
    """A 6 wide x 8 tall facade in the YZ plane at x=20, facing +X."""
    return BaseSurface(
        corners=np.array([
            [20.0, 0.0, 0.0],
            [20.0, 6.0, 0.0],
            [20.0, 6.0, 8.0],
            [20.0, 0.0, 8.0],
        ]),
        name="east",
    )


@pytest.fixture
def shading_config():
    return ShadingConfig()


@pytest.fixture
def seeded_manager(flat_facade, shading_config):
    """45 panels: 5 center-lines x 9 growth points, depth 0.5, interval 2."""
    manager = ShadingManager(shading_config, seed=1234)
    manager.initialize_shading_surfaces(
        [flat_facade],
        interval_distance=2.0,
        growth_point_interval=2.0,
        starting_depth=0.5,
    )
    return manager

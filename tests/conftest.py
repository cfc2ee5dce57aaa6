import numpy as np
import pytest

from macfluid import FluidConfig, MACGrid, ParticleSet


@pytest.fixture
def config():
    """Small 4³ box, unit cells, one ghost layer."""
    return FluidConfig(nx=4, ny=4, nz=4, cell_width=1.0, ghost_width=1)


@pytest.fixture
def grid(config):
    return MACGrid(config)


@pytest.fixture
def particles(config):
    return ParticleSet(life=config.particle_life)


def cell_centre(i, j, k, h=1.0):
    """World position of the centre of interior cell (i, j, k)."""
    return np.array([[(i + 0.5) * h, (j + 0.5) * h, (k + 0.5) * h]])

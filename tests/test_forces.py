import numpy as np
import pytest

from macfluid import FLUID, FluidConfig, MACGrid
from macfluid.forces import apply_gravity, update_boundary


def test_gravity_hits_only_faces_next_to_fluid(grid):
    B = grid.B
    grid.status[B + 1, B + 1, B + 1] = FLUID
    grid.nu[grid.interior()] = 0.5

    apply_gravity(grid, dt=0.1, gravity=2.0)

    v = grid.v
    assert v[B + 1, B + 1, B + 1] == pytest.approx(-0.2)   # face below the cell
    assert v[B + 1, B + 2, B + 1] == pytest.approx(-0.2)   # face above the cell
    v_rest = v.copy()
    v_rest[B + 1, B + 1:B + 3, B + 1] = 0.0
    assert np.all(v_rest == 0.0)
    np.testing.assert_allclose(grid.u[grid.interior()], 0.5)


def test_gravity_copies_advected_field_into_interior_only(grid):
    grid.nw[:] = 1.0
    grid.w[:] = -3.0
    apply_gravity(grid, dt=0.1, gravity=0.0)
    np.testing.assert_allclose(grid.w[grid.interior()], 1.0)
    assert grid.w[0, 0, 0] == -3.0


def test_inflow_is_pinned(grid):
    grid.u[:] = 0.3
    update_boundary(grid, inflow=4.0, damping=1.0)
    B = grid.B
    np.testing.assert_allclose(grid.u[:B + 1], 4.0)
    np.testing.assert_allclose(grid.u[B + 1:B + grid.nx, B:-B, B:-B], 0.3)


def test_walls_copy_inner_values_with_damping(grid):
    rng = np.random.default_rng(3)
    for arr in (grid.u, grid.v, grid.w):
        arr[:] = rng.normal(size=arr.shape)
    inner_v = grid.v[grid.interior()].copy()

    update_boundary(grid, inflow=1.0, damping=0.5)

    u, v, w = grid.u, grid.v, grid.w
    np.testing.assert_allclose(v[:, -1, :], 0.5 * v[:, -2, :])
    np.testing.assert_allclose(w[:, :, -1], 0.5 * w[:, :, -2])
    np.testing.assert_allclose(u[-1, :, :], 0.5 * u[-2, :, :])
    np.testing.assert_allclose(v[0, :, :], 0.5 * v[1, :, :])
    np.testing.assert_allclose(v[:, 0, :], 0.5 * v[:, 1, :])
    # the y-low wall face itself is damped in place
    np.testing.assert_allclose(v[grid.B + 1:-1, grid.B, grid.B + 1:-1],
                               0.5 * inner_v[1:, 0, 1:])


def test_wide_ghost_layers_extrapolate_every_plane():
    grid = MACGrid(FluidConfig(nx=3, ny=3, nz=3, ghost_width=2))
    grid.w[grid.interior()] = 2.0
    update_boundary(grid, inflow=1.0, damping=1.0)
    # z-high ghost planes (indices 5, 6) copy the last interior plane
    np.testing.assert_allclose(grid.w[2:5, 2:5, 5], 2.0)
    np.testing.assert_allclose(grid.w[2:5, 2:5, 6], 2.0)
    np.testing.assert_allclose(grid.u[:3], 1.0)

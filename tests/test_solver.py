import numpy as np
import pytest

from macfluid import FluidConfig, MACGrid, PressureSolveError
from macfluid.classify import reclassify
from macfluid.solver import PressureSystemBuilder, assemble, max_velocity, project

from conftest import cell_centre


def _fill(grid, particles, cells):
    particles.spawn(np.concatenate([cell_centre(*c, h=grid.h) for c in cells]))
    return reclassify(grid, particles)


def test_builder_sums_duplicates():
    b = PressureSystemBuilder(2)
    b.add([0, 1], [0, 1], 2.0).add(0, 0, 1.0).add(0, 1, -1.0)
    b.set_rhs([1], [5.0])
    system = b.build()
    np.testing.assert_allclose(system.matrix.toarray(), [[3.0, -1.0], [0.0, 2.0]])
    np.testing.assert_allclose(system.rhs, [0.0, 5.0])
    assert system.size == 2


def test_single_cell_pressure_is_one_sixth_of_inflow(grid, particles):
    B = grid.B
    _fill(grid, particles, [(1, 1, 1)])
    grid.u[B + 1, B + 1, B + 1] = 4.0

    metrics = project(grid)

    assert metrics["fluid_cells"] == 1
    assert grid.pressure[1, 1, 1] == pytest.approx(4.0 / 6.0)
    assert grid.compute_divergence()[1, 1, 1] == pytest.approx(0.0, abs=1e-12)
    assert grid.u[B + 1, B + 1, B + 1] == pytest.approx(4.0 - 4.0 / 6.0)
    assert grid.u[B + 2, B + 1, B + 1] == pytest.approx(4.0 / 6.0)
    assert np.count_nonzero(grid.pressure) == 1


def test_matrix_is_symmetric_laplacian(grid, particles):
    _fill(grid, particles, [(1, 1, 1), (2, 1, 1), (1, 0, 1)])
    system = assemble(grid)
    A = system.matrix.toarray()

    np.testing.assert_allclose(A, A.T)
    # (1,0,1) sits on the y-low wall: 5 open neighbours
    diag = {tuple(np.argwhere(grid.layer == i)[0]): A[i, i] for i in range(3)}
    assert diag[(1, 1, 1)] == 6.0
    assert diag[(2, 1, 1)] == 6.0
    assert diag[(1, 0, 1)] == 5.0
    assert np.count_nonzero(A) == 3 + 4


def test_divergence_is_driven_to_zero(grid, particles):
    rng = np.random.default_rng(7)
    cells = [(i, j, k) for i in range(4) for j in range(3) for k in range(4) if (i + j + k) % 5]
    _fill(grid, particles, cells)
    for vel in (grid.u, grid.v, grid.w):
        vel[:] = rng.normal(size=vel.shape)

    metrics = project(grid, tolerance=1e-10)

    assert metrics["divergence_before_max"] > 0.1
    np.testing.assert_allclose(grid.compute_divergence(), 0.0, atol=1e-6)
    assert metrics["divergence_after_max"] < 1e-6


def test_closed_box_full_of_fluid_still_converges(particles):
    grid = MACGrid(FluidConfig(nx=3, ny=3, nz=3))
    _fill(grid, particles, [(i, j, k) for i in range(3) for j in range(3) for k in range(3)])
    grid.v[grid.interior()] = -0.5
    project(grid)
    np.testing.assert_allclose(grid.compute_divergence(), 0.0, atol=1e-6)


def test_wall_faces_are_never_corrected(grid, particles):
    B = grid.B
    _fill(grid, particles, [(1, 0, 1), (0, 2, 2)])
    grid.u[B + 2, B, B + 1] = 4.0
    grid.v[B + 1, B, B + 1] = 3.0         # y-low wall under (1, 0, 1)
    grid.u[B, B + 2, B + 2] = -2.0        # inflow face next to the SOURCE slab
    walls_before = grid.v[:, B, :].copy()

    project(grid)

    assert grid.v[B + 1, B, B + 1] == 3.0
    assert grid.u[B, B + 2, B + 2] == -2.0
    np.testing.assert_array_equal(grid.v[:, B, :], walls_before)
    assert grid.pressure[1, 0, 1] == pytest.approx(-4.0 / 5.0)


def test_non_convergence_fails_loudly(grid, particles):
    rng = np.random.default_rng(1)
    _fill(grid, particles, [(i, j, k) for i in (1, 2) for j in (1, 2) for k in (1, 2)])
    for vel in (grid.u, grid.v, grid.w):
        vel[:] = rng.normal(size=vel.shape)

    with pytest.raises(PressureSolveError) as info:
        project(grid, tolerance=1e-14, max_iterations=1)
    assert info.value.iterations == 1
    assert info.value.fluid_cells == 8
    assert info.value.residual > 0.0


def test_no_fluid_means_no_solve(grid):
    metrics = project(grid)
    assert metrics["fluid_cells"] == 0
    assert metrics["iterations"] == 0
    assert metrics["max_velocity"] == 1.0
    assert np.all(grid.pressure == 0.0)


def test_max_velocity_floor_and_fluid_only(grid, particles):
    B = grid.B
    _fill(grid, particles, [(1, 1, 1)])
    assert max_velocity(grid) == 1.0

    grid.u[B + 1, B + 1, B + 1] = 3.0
    grid.w[B + 1, B + 1, B + 1] = 4.0
    grid.v[B + 3, B + 3, B + 3] = 50.0     # AIR cell, ignored
    assert max_velocity(grid) == pytest.approx(5.0)

import numpy as np
import pytest

from macfluid.advect import advect_velocity, face_positions, sample_component, velocity_at


def test_sample_on_a_face_point_reads_that_face(grid):
    B = grid.B
    grid.u[B + 1, B + 1, B + 1] = 5.0
    # u sample (1, 1, 1) lives at (1·h, 1.5·h, 1.5·h)
    assert sample_component(grid, np.array([[1.0, 1.5, 1.5]]), 0)[0] == pytest.approx(5.0)
    assert sample_component(grid, np.array([[1.5, 1.5, 1.5]]), 0)[0] == pytest.approx(2.5)


def test_staggering_offsets_per_component(grid):
    B = grid.B
    grid.v[B + 2, B + 1, B + 3] = 1.0
    grid.w[B + 2, B + 1, B + 3] = 1.0
    assert velocity_at(grid, np.array([[2.5, 1.0, 3.5]]))[0, 1] == pytest.approx(1.0)
    assert velocity_at(grid, np.array([[2.5, 1.5, 3.0]]))[0, 2] == pytest.approx(1.0)


def test_linear_field_is_reproduced(grid):
    I = np.arange(grid.padded_shape[0], dtype=np.float64)
    grid.u[:] = I[:, None, None]
    got = sample_component(grid, np.array([[1.25, 2.5, 2.5], [2.75, 1.5, 0.5]]), 0)
    np.testing.assert_allclose(got, [1.25 + grid.B, 2.75 + grid.B])


def test_sampling_far_outside_is_clamped(grid):
    grid.u[:] = 3.0
    got = velocity_at(grid, np.array([[-50.0, 80.0, 1.0], [1e6, -1e6, 1e6]]))
    np.testing.assert_allclose(got[:, 0], 3.0)
    assert np.all(np.isfinite(got))


def test_face_positions_follow_staggering(grid):
    pos = face_positions(grid, 1)
    assert pos.shape == (grid.nx * grid.ny * grid.nz, 3)
    np.testing.assert_allclose(pos[0], [0.5, 0.0, 0.5])
    np.testing.assert_allclose(pos[-1], [3.5, 3.0, 3.5])


def test_uniform_flow_is_preserved(grid):
    grid.u[:] = 2.0
    advect_velocity(grid, dt=0.3)
    inner = grid.interior()
    np.testing.assert_allclose(grid.nu[inner], 2.0)
    np.testing.assert_allclose(grid.nv[inner], 0.0)
    np.testing.assert_allclose(grid.nw[inner], 0.0)


def test_traces_backward_along_the_flow(grid):
    # Uniform u = 1 carries a v field that varies only in x
    grid.u[:] = 1.0
    I = np.arange(grid.padded_shape[0], dtype=np.float64)
    grid.v[:] = I[:, None, None]
    before = grid.v.copy()

    advect_velocity(grid, dt=0.25)

    expected = (I[grid.B:grid.B + grid.nx] - 0.25)[:, None, None] * np.ones(grid.shape)
    np.testing.assert_allclose(grid.nv[grid.interior()], expected)
    np.testing.assert_array_equal(grid.v, before)

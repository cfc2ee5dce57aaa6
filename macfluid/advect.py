"""
advect.py — Semi-Lagrangian Velocity Advection
===============================================
For every face sample point:
  1. Sample the velocity there.
  2. Step half a dt BACKWARD and sample again (midpoint rule).
  3. Step a full dt backward with that midpoint velocity.
  4. Read the face component at the traced-back point by trilinear
     interpolation of the old field.

Results go into the grid's "next" buffers (nu, nv, nw); the field being
read is never touched during the pass.

Staggering: the u sample with index (i, j, k) lives at world point
(i·h, (j+½)·h, (k+½)·h), so to sample u at world x we look up grid
coordinates (x/h, y/h − ½, z/h − ½). Likewise for v and w.

Key reference: Jos Stam, "Stable Fluids" (SIGGRAPH 1999)
"""

import numpy as np

from .errors import InterpolationError
from .grid import AXES, MACGrid


def _trilinear_interpolate(field: np.ndarray, coords: np.ndarray, ghost: int) -> np.ndarray:
    """
    Trilinear interpolation of a padded 3D array at interior grid coordinates.

    `coords` (n, 3) are in unpadded index space (coordinate 0 is the first
    interior sample); the ghost offset is added here. Coordinates are
    clamped into the padded array so all 8 corners exist, which keeps the
    total weight at 1.

    Returns: (n,) interpolated values
    """
    upper = np.asarray(field.shape, dtype=np.float64) - 1.0
    c = np.clip(coords + ghost, 0.0, upper)

    # Lower corner; floor semantics match MACGrid.cell_of
    lo = np.minimum(np.floor(c).astype(np.int64), np.asarray(field.shape) - 2)
    t = c - lo
    x0, y0, z0 = lo[:, 0], lo[:, 1], lo[:, 2]
    tx, ty, tz = t[:, 0], t[:, 1], t[:, 2]

    total = np.zeros(c.shape[0])
    acc = np.zeros(c.shape[0])
    for dx in (0, 1):
        wx = tx if dx else 1.0 - tx
        for dy in (0, 1):
            wy = ty if dy else 1.0 - ty
            for dz in (0, 1):
                wz = tz if dz else 1.0 - tz
                weight = wx * wy * wz
                acc += weight * field[x0 + dx, y0 + dy, z0 + dz]
                total += weight

    if np.any(total <= 0.0):
        raise InterpolationError(f"zero interpolation weight at {coords[total <= 0.0][:3]}")
    return acc / total


def _component_coords(grid_pos: np.ndarray, axis: int) -> np.ndarray:
    """Shift cell-unit positions onto the staggered lattice of one component."""
    coords = grid_pos - 0.5
    coords[:, axis] += 0.5
    return coords


def sample_component(grid: MACGrid, positions: np.ndarray, axis: int, field: np.ndarray = None) -> np.ndarray:
    """Interpolate one velocity component at world positions (n, 3)."""
    if field is None:
        field = grid.velocity(axis)
    grid_pos = np.asarray(positions, dtype=np.float64) / grid.h
    return _trilinear_interpolate(field, _component_coords(grid_pos, axis), grid.B)


def velocity_at(grid: MACGrid, positions: np.ndarray) -> np.ndarray:
    """Full velocity vector at world positions. Returns (n, 3)."""
    positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    out = np.empty_like(positions)
    for axis in AXES:
        out[:, axis] = sample_component(grid, positions, axis)
    return out


def trace_back(grid: MACGrid, positions: np.ndarray, dt: float) -> np.ndarray:
    """Second-order (midpoint) backward trace over dt."""
    vel = velocity_at(grid, positions)
    vel = velocity_at(grid, positions - 0.5 * dt * vel)
    return positions - dt * vel


def face_positions(grid: MACGrid, axis: int) -> np.ndarray:
    """
    World positions of the low `axis`-faces of every interior cell,
    flattened in C order to (nx·ny·nz, 3).
    """
    i, j, k = np.meshgrid(
        np.arange(grid.nx, dtype=np.float64),
        np.arange(grid.ny, dtype=np.float64),
        np.arange(grid.nz, dtype=np.float64),
        indexing='ij'
    )
    cells = np.stack([i.ravel(), j.ravel(), k.ravel()], axis=1) + 0.5
    cells[:, axis] -= 0.5
    return cells * grid.h


def advect_velocity(grid: MACGrid, dt: float):
    """
    Self-advect u, v, w into nu, nv, nw over dt.

    Only faces owned by interior cells are written; ghost faces are
    the boundary stage's business.

    Modifies: grid.nu, grid.nv, grid.nw
    """
    inner = grid.interior()
    for axis in AXES:
        start = face_positions(grid, axis)
        departed = trace_back(grid, start, dt)
        grid.next_velocity(axis)[inner] = sample_component(grid, departed, axis).reshape(grid.shape)

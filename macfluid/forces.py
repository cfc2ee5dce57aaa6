"""
forces.py — Gravity and Boundary Conditions
============================================
Two jobs between advection and particle motion:

  apply_gravity   : swap the advected field in and pull fluid faces down
  update_boundary : fill the ghost layers so samplers near the walls
                    see a consistent field

Boundary rules per domain face:
  - five walls (x-high, y-low/high, z-low/high): copy the nearest inner
    value outward, scaled by a damping factor (free-slip / Neumann style)
  - x-low (SOURCE): the normal component u is PINNED to the inflow
    velocity on every ghost face and on the inflow face itself
"""

import numpy as np

from .grid import AXES, FLUID, MACGrid


def _plane(axis: int, index: int):
    sl = [slice(None)] * 3
    sl[axis] = index
    return tuple(sl)


def apply_gravity(grid: MACGrid, dt: float, gravity: float):
    """
    Copy nu/nv/nw into the interior of u/v/w, then subtract dt·gravity
    from every interior y-face that touches a FLUID cell on either side.

    Modifies: grid.u, grid.v, grid.w (interior only)
    """
    inner = grid.interior()
    for axis in AXES:
        grid.velocity(axis)[inner] = grid.next_velocity(axis)[inner]

    above = grid.status[inner] == FLUID
    below = grid.status[grid.interior(1, -1)] == FLUID
    wet_face = above | below
    grid.v[inner] -= np.where(wet_face, dt * gravity, 0.0)


def _extrapolate(arr: np.ndarray, axis: int, n: int, B: int, damping: float, low: bool = True, high: bool = True):
    """Copy the outermost inner plane into each ghost plane, scaled by damping."""
    if low:
        for g in range(B - 1, -1, -1):
            arr[_plane(axis, g)] = damping * arr[_plane(axis, g + 1)]
    if high:
        for g in range(n + B, n + 2 * B):
            arr[_plane(axis, g)] = damping * arr[_plane(axis, g - 1)]


def update_boundary(grid: MACGrid, inflow: float, damping: float = 1.0):
    """
    Extrapolate velocities into the ghost layers and pin the inflow.
    Runs once at construction and after every pressure solve.

    Modifies: grid.u, grid.v, grid.w (ghost layers + low-side normal faces)
    """
    B = grid.B
    u, v, w = grid.u, grid.v, grid.w

    # ── z walls ────────────────────────────────────────────────────────────
    w[_plane(2, B)] *= damping
    for arr in (u, v, w):
        _extrapolate(arr, 2, grid.nz, B, damping)

    # ── y walls ────────────────────────────────────────────────────────────
    v[_plane(1, B)] *= damping
    for arr in (u, v, w):
        _extrapolate(arr, 1, grid.ny, B, damping)

    # ── x walls: x-low is the inflow ───────────────────────────────────────
    u[:B + 1, :, :] = inflow
    _extrapolate(u, 0, grid.nx, B, damping, low=False)
    for arr in (v, w):
        _extrapolate(arr, 0, grid.nx, B, damping)

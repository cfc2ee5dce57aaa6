"""
grid.py — MAC (Marker-and-Cell) Staggered Grid with Ghost Layers
=================================================================
The foundation of the entire simulation.

All per-cell arrays share one PADDED shape:

    P = (nx + 2B, ny + 2B, nz + 2B)

where B is the ghost width. Padded index I = B + i for interior cell i.

Face convention (the one rule every stage must agree on):
  u[I, J, K] is the x-velocity on the face between cell I-1 and cell I.
  v[I, J, K] is the y-velocity on the face between cell J-1 and cell J.
  w[I, J, K] is the z-velocity on the face between cell K-1 and cell K.

So a cell's LOW face along an axis has the cell's own index, and its
HIGH face has index + 1. In world space, u[B+i, B+j, B+k] sits at
(i·h, (j+½)·h, (k+½)·h).

Boundary layout (fixed for the lifetime of the grid):
  - the x-low ghost slab is SOURCE (constant inflow)
  - every other ghost cell is SOLID
"""

from enum import IntEnum
from typing import Optional, Tuple

import numpy as np

from .config import FluidConfig


class CellStatus(IntEnum):
    AIR = 0
    FLUID = 1
    SOLID = 2
    SOURCE = 3


AIR = CellStatus.AIR
FLUID = CellStatus.FLUID
SOLID = CellStatus.SOLID
SOURCE = CellStatus.SOURCE

AXES = (0, 1, 2)


class MACGrid:
    """
    Padded MAC grid storing velocity, status, pressure and solve-index.
    Owned by one FluidSimulation; every stage reads and writes it in place.
    """

    def __init__(self, config: FluidConfig):
        self.config = config
        self.nx, self.ny, self.nz = config.shape
        self.h = float(config.cell_width)
        self.B = int(config.ghost_width)
        self.shape = config.shape
        self.padded_shape = config.padded_shape

        # ── Face velocities (padded, staggered by index convention) ───────
        self.u = np.zeros(self.padded_shape, dtype=np.float64)
        self.v = np.zeros(self.padded_shape, dtype=np.float64)
        self.w = np.zeros(self.padded_shape, dtype=np.float64)

        # "Next" buffers written by the advector, swapped in by gravity
        self.nu = np.zeros_like(self.u)
        self.nv = np.zeros_like(self.v)
        self.nw = np.zeros_like(self.w)

        # ── Cell data ──────────────────────────────────────────────────────
        self.status = np.full(self.padded_shape, AIR, dtype=np.int8)
        self.pressure = np.zeros(self.shape, dtype=np.float64)
        self.layer = np.full(self.shape, -1, dtype=np.int64)

        self._stamp_boundary()

    def _stamp_boundary(self):
        """Mark every ghost cell SOLID, then the whole x-low ghost slab SOURCE."""
        B = self.B
        self.status[:B, :, :] = SOLID
        self.status[-B:, :, :] = SOLID
        self.status[:, :B, :] = SOLID
        self.status[:, -B:, :] = SOLID
        self.status[:, :, :B] = SOLID
        self.status[:, :, -B:] = SOLID
        self.status[:B, :, :] = SOURCE

    # ── Addressing ─────────────────────────────────────────────────────────

    def interior(self, axis: Optional[int] = None, shift: int = 0) -> Tuple[slice, slice, slice]:
        """
        Padded slice covering the interior block, optionally shifted by
        `shift` cells along `axis`. This is the only place the ghost
        offset is applied to block-wise operations.

            grid.u[grid.interior()]           → low x-faces of interior cells
            grid.u[grid.interior(0, +1)]      → high x-faces of interior cells
            grid.status[grid.interior(1, -1)] → y-low neighbours' status
        """
        B = self.B
        sl = [slice(B, B + n) for n in self.shape]
        if axis is not None and shift:
            n = self.shape[axis]
            sl[axis] = slice(B + shift, B + shift + n)
        return tuple(sl)

    def band(self) -> Tuple[slice, slice, slice]:
        """Interior plus the high-side ghost band (used by the max-velocity scan)."""
        B = self.B
        return tuple(slice(B, None) for _ in self.shape)

    def cell_of(self, positions: np.ndarray) -> np.ndarray:
        """
        Padded cell indices of world positions, shape (n, 3).

        Floor semantics: a point exactly on the face x = i·h belongs to
        cell i (the high side). The sampler in advect.py uses the same rule.
        """
        return np.floor(np.asarray(positions, dtype=np.float64) / self.h).astype(np.int64) + self.B

    def in_padded(self, cells: np.ndarray) -> np.ndarray:
        """Boolean mask: which padded indices (n, 3) fall inside the arrays."""
        upper = np.asarray(self.padded_shape)
        return np.all((cells >= 0) & (cells < upper), axis=1)

    def velocity(self, axis: int) -> np.ndarray:
        return (self.u, self.v, self.w)[axis]

    def next_velocity(self, axis: int) -> np.ndarray:
        return (self.nu, self.nv, self.nw)[axis]

    # ── Queries ────────────────────────────────────────────────────────────

    def open_neighbours(self, axis: int, shift: int) -> np.ndarray:
        """
        Interior-shaped mask: is the neighbour at `shift` along `axis`
        FLUID or AIR? SOLID and SOURCE neighbours are closed: they take no
        part in divergence, matrix assembly or pressure correction.
        """
        nb = self.status[self.interior(axis, shift)]
        return (nb == FLUID) | (nb == AIR)

    def fluid_mask(self) -> np.ndarray:
        return self.status[self.interior()] == FLUID

    @property
    def fluid_count(self) -> int:
        return int(np.count_nonzero(self.fluid_mask()))

    def get_velocity_at_center(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Average each interior cell's low and high faces.
        Returns (uc, vc, wc) each of shape (nx, ny, nz).
        """
        centers = []
        for axis in AXES:
            vel = self.velocity(axis)
            centers.append(0.5 * (vel[self.interior()] + vel[self.interior(axis, 1)]))
        return tuple(centers)

    def compute_divergence(self) -> np.ndarray:
        """
        Net inflow of every interior FLUID cell, counting only faces shared
        with FLUID/AIR neighbours. Zero for non-fluid cells.

        For an incompressible step this should be ~0 after projection.
        Returns: (nx, ny, nz) array.
        """
        div = np.zeros(self.shape, dtype=np.float64)
        for axis in AXES:
            vel = self.velocity(axis)
            low = vel[self.interior()]
            high = vel[self.interior(axis, 1)]
            div += np.where(self.open_neighbours(axis, -1), low, 0.0)
            div -= np.where(self.open_neighbours(axis, +1), high, 0.0)
        div[~self.fluid_mask()] = 0.0
        return div

    def reset(self):
        """Zero all velocity and pressure; restore AIR interior and the boundary."""
        for arr in [self.u, self.v, self.w, self.nu, self.nv, self.nw, self.pressure]:
            arr[:] = 0.0
        self.layer[:] = -1
        self.status[:] = AIR
        self._stamp_boundary()

    def __repr__(self):
        max_div = np.abs(self.compute_divergence()).max()
        max_vel = max(np.abs(self.u).max(), np.abs(self.v).max(), np.abs(self.w).max())
        return (
            f"MACGrid(shape={self.shape}, h={self.h}, B={self.B})\n"
            f"  fluid cells: {self.fluid_count}\n"
            f"  velocity   : max_component={max_vel:.4f}\n"
            f"  divergence : max={max_div:.6f} (target: ~0)"
        )

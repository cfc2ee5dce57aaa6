"""
solver.py — Pressure Projection on the Fluid Cells
===================================================
The pressure projection step enforces INCOMPRESSIBILITY at every FLUID cell.

After advection + gravity the face velocities generally do not balance
(fluid "piles up" in some cells). We fix this by:
  1. Measuring each fluid cell's net inflow (the divergence, see
     MACGrid.compute_divergence): only faces shared with FLUID/AIR
     neighbours count; SOLID and SOURCE faces are closed.
  2. Solving  A p = div  on the fluid cells only, where row c of A has
       A[c, c] = number of FLUID/AIR neighbours of c
       A[c, n] = -1 for each FLUID neighbour n
     AIR neighbours sit at pressure 0 (free surface), closed neighbours
     drop out entirely. A is sparse, symmetric, positive semi-definite.
  3. Correcting the open faces: p is subtracted from a cell's low face
     and added to its high face along every axis.

The system is rebuilt every step because the fluid region moves.
"""

import logging
import time

import numpy as np
import scipy.sparse
from scipy.sparse.linalg import cg

from .errors import PressureSolveError
from .grid import AXES, FLUID, MACGrid

logger = logging.getLogger(__name__)


class PressureSystem:
    """Compiled, immutable  A p = b  for one step."""

    def __init__(self, matrix: scipy.sparse.csr_matrix, rhs: np.ndarray):
        self.matrix = matrix
        self.rhs = rhs

    @property
    def size(self) -> int:
        return self.rhs.shape[0]


class PressureSystemBuilder:
    """
    Accumulates (row, col, value) triplets, then compiles once.
    Duplicate (row, col) pairs are summed by scipy during conversion.
    """

    def __init__(self, size: int):
        self.size = size
        self._rows = []
        self._cols = []
        self._vals = []
        self.rhs = np.zeros(size, dtype=np.float64)

    def add(self, rows, cols, values):
        rows = np.atleast_1d(np.asarray(rows, dtype=np.int64))
        cols = np.atleast_1d(np.asarray(cols, dtype=np.int64))
        values = np.broadcast_to(np.asarray(values, dtype=np.float64), rows.shape)
        self._rows.append(rows)
        self._cols.append(cols)
        self._vals.append(values)
        return self

    def set_rhs(self, rows, values):
        self.rhs[rows] = values
        return self

    def build(self) -> PressureSystem:
        if self._rows:
            rows = np.concatenate(self._rows)
            cols = np.concatenate(self._cols)
            vals = np.concatenate(self._vals)
        else:
            rows = cols = np.empty(0, dtype=np.int64)
            vals = np.empty(0, dtype=np.float64)
        matrix = scipy.sparse.coo_matrix((vals, (rows, cols)), shape=(self.size, self.size)).tocsr()
        return PressureSystem(matrix, self.rhs.copy())


def assemble(grid: MACGrid) -> PressureSystem:
    """Build the pressure system from grid.status, grid.layer and the current velocities."""
    fluid = grid.fluid_mask()
    n = int(np.count_nonzero(fluid))
    builder = PressureSystemBuilder(n)
    if n == 0:
        return builder.build()

    # Padded solve-index so neighbour lookups can step into the ghosts (-1 there)
    layer = np.pad(grid.layer, grid.B, mode='constant', constant_values=-1)
    rows_all = grid.layer

    diagonal = np.zeros(grid.shape, dtype=np.float64)
    for axis in AXES:
        for shift in (-1, +1):
            diagonal += grid.open_neighbours(axis, shift)
            nb_layer = layer[grid.interior(axis, shift)]
            nb_fluid = fluid & (grid.status[grid.interior(axis, shift)] == FLUID)
            builder.add(rows_all[nb_fluid], nb_layer[nb_fluid], -1.0)

    builder.add(rows_all[fluid], rows_all[fluid], diagonal[fluid])
    builder.set_rhs(rows_all[fluid], grid.compute_divergence()[fluid])
    return builder.build()


def solve(system: PressureSystem, tolerance: float, max_iterations: int) -> tuple[np.ndarray, int, float]:
    """
    Conjugate gradient with an iteration cap. Converged means
    ||b - A p|| <= max(tolerance·||b||, tolerance). Fails loudly: an
    unconverged pressure field would corrupt every later step.

    Returns: (pressure vector, iterations, residual norm)
    """
    A, b = system.matrix, system.rhs
    if system.size == 0:
        return np.zeros(0), 0, 0.0

    iterations = 0

    def _count(_):
        nonlocal iterations
        iterations += 1

    # absolute floor for a near-zero rhs
    x, info = cg(A, b, rtol=tolerance, atol=tolerance, maxiter=max_iterations, callback=_count)
    residual = float(np.linalg.norm(b - A @ x))
    if info != 0:
        raise PressureSolveError(iterations, residual, system.size)
    return x, iterations, residual


def _subtract_pressure_gradient(grid: MACGrid):
    """
    Apply the discrete pressure gradient to the open faces of every FLUID cell.

    A face shared by fluid cells c (low side) and n (high side) ends up
    with  += p[c] − p[n].  Faces toward SOLID/SOURCE cells are left alone.

    Modifies: grid.u, grid.v, grid.w
    """
    p = grid.pressure
    for axis in AXES:
        vel = grid.velocity(axis)
        vel[grid.interior()] -= np.where(grid.open_neighbours(axis, -1), p, 0.0)
        vel[grid.interior(axis, 1)] += np.where(grid.open_neighbours(axis, +1), p, 0.0)


def max_velocity(grid: MACGrid) -> float:
    """
    Largest squared face-velocity magnitude over FLUID cells, floored at
    1.0, square-rooted. Feeds the next step's CFL bound.
    """
    band = grid.band()
    fluid = grid.status[band] == FLUID
    if not np.any(fluid):
        return 1.0
    sq = grid.u[band] ** 2 + grid.v[band] ** 2 + grid.w[band] ** 2
    return float(np.sqrt(max(1.0, sq[fluid].max())))


def project(grid: MACGrid, tolerance: float = 1e-8, max_iterations: int = 1000) -> dict:
    """
    Pressure projection: drive the fluid-cell divergence to zero.

    Args:
        grid           : The MACGrid to modify in-place (classified this step)
        tolerance      : Relative residual target for CG
        max_iterations : CG iteration cap

    Returns:
        dict with timing, solver and divergence metrics (for benchmarking)

    Raises:
        PressureSolveError if CG does not converge within max_iterations.
    """
    t_start = time.perf_counter()

    system = assemble(grid)
    divergence_before = np.abs(system.rhs).max() if system.size else 0.0

    x, iterations, residual = solve(system, tolerance, max_iterations)

    fluid = grid.fluid_mask()
    grid.pressure[:] = 0.0
    grid.pressure[fluid] = x[grid.layer[fluid]]
    _subtract_pressure_gradient(grid)

    vmax = max_velocity(grid)
    t_end = time.perf_counter()

    div_after = grid.compute_divergence()
    logger.debug("project: %d fluid cells, %d CG iterations, residual=%.3e",
                 system.size, iterations, residual)

    return {
        "fluid_cells"           : system.size,
        "iterations"            : iterations,
        "residual"              : residual,
        "time_ms"               : (t_end - t_start) * 1000,
        "divergence_before_max" : float(divergence_before),
        "divergence_after_max"  : float(np.abs(div_after).max()),
        "max_velocity"          : vmax,
    }

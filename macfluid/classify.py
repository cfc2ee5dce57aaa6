"""
classify.py — Rebuild Cell Status from Particle Occupancy
==========================================================
The free surface is tracked purely by which cells hold particles:
no level set, no volume fractions.

Per pass:
  1. Every interior solve-index is reset to -1.
  2. Each in-bound particle is floored into a padded cell.
       outside the padded arrays → particle goes out-of-bound
       SOLID cell                → particle goes out-of-bound
       SOURCE cell               → stays in-bound, cell untouched
       anything else             → cell becomes FLUID
  3. Interior cells nobody landed in become AIR.
     SOLID and SOURCE are never overwritten.
  4. FLUID cells get contiguous solve-indices in x-major (C) order.
"""

import logging

import numpy as np

from .grid import AIR, FLUID, SOLID, SOURCE, MACGrid
from .particles import ParticleSet

logger = logging.getLogger(__name__)


def reclassify(grid: MACGrid, particles: ParticleSet) -> int:
    """
    Update grid.status and grid.layer from particle positions.

    Returns: number of FLUID cells (the size of this step's linear system).
    """
    grid.layer[:] = -1

    idx = np.flatnonzero(particles.in_bound)
    cells = grid.cell_of(particles.positions[idx])

    inside = grid.in_padded(cells)
    escaped = idx[~inside]
    idx, cells = idx[inside], cells[inside]

    cell_status = grid.status[cells[:, 0], cells[:, 1], cells[:, 2]]
    hit_solid = cell_status == SOLID
    particles.mark_out_of_bound(np.concatenate([escaped, idx[hit_solid]]))

    occupied = np.zeros(grid.padded_shape, dtype=bool)
    wet = cells[(cell_status != SOLID) & (cell_status != SOURCE)]
    occupied[wet[:, 0], wet[:, 1], wet[:, 2]] = True

    # Only AIR/FLUID cells are rewritten; the boundary stays stamped.
    status = grid.status
    mutable = (status == AIR) | (status == FLUID)
    status[mutable & occupied] = FLUID
    status[mutable & ~occupied] = AIR

    fluid = grid.fluid_mask()
    count = int(np.count_nonzero(fluid))
    grid.layer[fluid] = np.arange(count)

    if escaped.size or np.any(hit_solid):
        logger.debug("classify: %d particles left the domain, %d hit a wall",
                     escaped.size, int(np.count_nonzero(hit_solid)))
    return count

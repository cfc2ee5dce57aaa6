"""
config.py — Construction-Time Simulation Parameters
====================================================
Everything here is fixed once a FluidSimulation is built. Nothing is
tunable mid-run: the grid arrays are sized from these numbers and the
boundary layout is stamped from them in MACGrid.__init__.

Defaults reproduce the small "pipe" scene: a 5 × 6 × 6 box fed by a
constant inflow through its low-x face.
"""

from dataclasses import dataclass, replace
from typing import Optional, Tuple

Span = Tuple[int, int]


@dataclass(frozen=True)
class FluidConfig:
    """
    Args:
        nx, ny, nz            : Interior cell counts along x, y, z
        cell_width            : Edge length of one cell (world units)
        ghost_width           : Ghost layer thickness B on every side
        gravity               : Downward (−y) acceleration magnitude
        cfl                   : CFL constant; dt = cfl * h / max_velocity
        frame_time            : Render frame duration (seconds)
        inflow_velocity       : Normal velocity pinned on the source face
        boundary_damping      : Scale applied when extrapolating into ghosts
        particle_life         : Ticks an out-of-bound particle survives
        initial_max_velocity  : Stability bound used before the first solve
        emit_every            : Emit on ticks where frame % emit_every == 0
        emit_until            : Last tick allowed to emit (None → forever)
        particles_per_cell    : Particles spawned per source cell per emission
        source_region         : ((j0, j1), (k0, k1)) source cells on the x-low face
        max_particles         : Emission is skipped once this many particles exist
        solver_tolerance      : Relative residual target for conjugate gradient
        solver_max_iterations : Hard cap on conjugate-gradient iterations
        seed                  : Seed for the emission jitter RNG
    """

    nx: int = 5
    ny: int = 6
    nz: int = 6
    cell_width: float = 1.0
    ghost_width: int = 1

    gravity: float = 0.8
    cfl: float = 0.7
    frame_time: float = 0.04
    inflow_velocity: float = 4.0
    boundary_damping: float = 1.0

    particle_life: int = 30
    initial_max_velocity: float = 100.0

    emit_every: int = 1
    emit_until: Optional[int] = None
    particles_per_cell: int = 1
    source_region: Optional[Tuple[Span, Span]] = None
    max_particles: int = 20000

    solver_tolerance: float = 1e-8
    solver_max_iterations: int = 1000

    seed: int = 0

    @property
    def shape(self) -> Tuple[int, int, int]:
        return (self.nx, self.ny, self.nz)

    @property
    def padded_shape(self) -> Tuple[int, int, int]:
        b = 2 * self.ghost_width
        return (self.nx + b, self.ny + b, self.nz + b)

    def source_cells(self) -> Tuple[Span, Span]:
        """Half-open (j, k) cell spans that emit particles on the x-low face."""
        if self.source_region is not None:
            return self.source_region
        # Default scene: skip one cell at the low wall and three at the high wall.
        j1 = max(self.ny - 3, 2)
        k1 = max(self.nz - 3, 2)
        return ((1, min(j1, self.ny)), (1, min(k1, self.nz)))

    def with_overrides(self, **overrides) -> "FluidConfig":
        return replace(self, **overrides)

    def validate(self) -> "FluidConfig":
        """Raise ValueError on any inconsistent setting, return self otherwise."""
        for name in ("nx", "ny", "nz"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")
        if self.ghost_width < 1:
            raise ValueError(f"ghost_width must be >= 1, got {self.ghost_width}")
        if self.cell_width <= 0.0:
            raise ValueError(f"cell_width must be positive, got {self.cell_width}")
        if self.cfl <= 0.0:
            raise ValueError(f"cfl must be positive, got {self.cfl}")
        if self.frame_time <= 0.0:
            raise ValueError(f"frame_time must be positive, got {self.frame_time}")
        if self.particle_life < 1:
            raise ValueError(f"particle_life must be >= 1, got {self.particle_life}")
        if self.emit_every < 1:
            raise ValueError(f"emit_every must be >= 1, got {self.emit_every}")
        if self.particles_per_cell < 0:
            raise ValueError("particles_per_cell cannot be negative")
        if self.max_particles < 0:
            raise ValueError("max_particles cannot be negative")
        if self.solver_tolerance <= 0.0 or self.solver_max_iterations < 1:
            raise ValueError("solver_tolerance must be > 0 and solver_max_iterations >= 1")

        (j0, j1), (k0, k1) = self.source_cells()
        if not (0 <= j0 <= j1 <= self.ny and 0 <= k0 <= k1 <= self.nz):
            raise ValueError(f"source_region {self.source_cells()} lies outside the {self.shape} grid")
        return self

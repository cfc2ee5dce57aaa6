"""
errors.py — Failures surfaced to the caller of FluidSimulation.step()

Particles leaving the domain are NOT errors (they decay, see particles.py).
Only conditions that would silently corrupt later steps raise.
"""


class FluidError(Exception):
    """Base class for simulation failures."""


class PressureSolveError(FluidError):
    """Conjugate gradient hit its iteration cap without meeting the tolerance."""

    def __init__(self, iterations: int, residual: float, fluid_cells: int):
        self.iterations = iterations
        self.residual = residual
        self.fluid_cells = fluid_cells
        super().__init__(
            f"pressure solve did not converge: {iterations} iterations, "
            f"residual={residual:.3e}, fluid_cells={fluid_cells}"
        )


class InterpolationError(FluidError):
    """Trilinear sample with zero total weight (coordinates escaped the clamp)."""

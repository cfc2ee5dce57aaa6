"""
macfluid — Marker-particle liquid on a MAC grid
================================================
Exports the interfaces a renderer or driver needs.

    sim = FluidSimulation(nx=8)
    sim.step()
    snap = sim.particles()   # positions + in_bound, read-only copies
"""

from .config import FluidConfig
from .errors import FluidError, InterpolationError, PressureSolveError
from .grid import AIR, FLUID, SOLID, SOURCE, CellStatus, MACGrid
from .particles import ParticleSet, ParticleSnapshot
from .simulation import FluidSimulation

__all__ = [
    "FluidConfig",
    "FluidSimulation",
    "MACGrid",
    "CellStatus",
    "AIR",
    "FLUID",
    "SOLID",
    "SOURCE",
    "ParticleSet",
    "ParticleSnapshot",
    "FluidError",
    "PressureSolveError",
    "InterpolationError",
]

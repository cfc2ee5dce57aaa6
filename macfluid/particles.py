"""
particles.py — Marker Particles
================================
Massless tracers that tell the grid WHERE the liquid is. A cell is FLUID
exactly when at least one in-bound particle sits inside it.

Stored struct-of-arrays so every stage works on whole columns:
    positions  (n, 3) float64
    velocities (n, 3) float64
    in_bound   (n,)   bool
    life       (n,)   int64

Lifecycle:
    spawned in-bound → advected by the grid → leaves the padded domain or
    hits a SOLID cell → out-of-bound, coasts on its last velocity while
    `life` counts down once per tick → removed when life reaches 0.
"""

from typing import NamedTuple

import numpy as np


class ParticleSnapshot(NamedTuple):
    """Read-only copy handed to renderers. Safe to keep across steps."""
    positions: np.ndarray
    in_bound: np.ndarray


class ParticleSet:

    def __init__(self, life: int):
        self.max_life = int(life)
        self.positions = np.empty((0, 3), dtype=np.float64)
        self.velocities = np.empty((0, 3), dtype=np.float64)
        self.in_bound = np.empty(0, dtype=bool)
        self.life = np.empty(0, dtype=np.int64)

    def __len__(self):
        return self.positions.shape[0]

    @property
    def n_in_bound(self) -> int:
        return int(np.count_nonzero(self.in_bound))

    def spawn(self, positions: np.ndarray) -> int:
        """Append in-bound particles at rest with full life. Returns the count added."""
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        n = positions.shape[0]
        if n == 0:
            return 0
        self.positions = np.concatenate([self.positions, positions])
        self.velocities = np.concatenate([self.velocities, np.zeros((n, 3))])
        self.in_bound = np.concatenate([self.in_bound, np.ones(n, dtype=bool)])
        self.life = np.concatenate([self.life, np.full(n, self.max_life, dtype=np.int64)])
        return n

    def retain(self, keep: np.ndarray):
        """Keep only the particles where `keep` is True."""
        keep = np.asarray(keep, dtype=bool)
        self.positions = self.positions[keep]
        self.velocities = self.velocities[keep]
        self.in_bound = self.in_bound[keep]
        self.life = self.life[keep]

    def mark_out_of_bound(self, index: np.ndarray):
        """Detach particles from the grid; they keep their current velocity."""
        self.in_bound[index] = False

    def decay(self) -> int:
        """
        One tick of the out-of-bound countdown. Particles whose life
        reaches exactly zero are removed. Returns the number removed.
        """
        out = ~self.in_bound
        self.life[out] -= 1
        dead = out & (self.life <= 0)
        n_dead = int(np.count_nonzero(dead))
        if n_dead:
            self.retain(~dead)
        return n_dead

    def advance(self, dt: float, grid_velocity: np.ndarray):
        """
        Explicit Euler position update. `grid_velocity` (n_in_bound, 3) is
        the field sampled at the in-bound particles; out-of-bound ones coast.
        """
        if len(self) == 0:
            return
        self.velocities[self.in_bound] = grid_velocity
        self.positions += self.velocities * dt

    def snapshot(self) -> ParticleSnapshot:
        positions = self.positions.copy()
        in_bound = self.in_bound.copy()
        positions.flags.writeable = False
        in_bound.flags.writeable = False
        return ParticleSnapshot(positions, in_bound)

    def __repr__(self):
        return f"ParticleSet(n={len(self)}, in_bound={self.n_in_bound}, life={self.max_life})"

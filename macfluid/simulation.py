"""
simulation.py — Step Scheduler and Public Entry Point
======================================================
One call to `step()` makes ONE scheduler decision:

  catching-up  (leftover >= frame_time)
      move particles by one frame, bank one frame less, maybe emit.
      The grid is not touched.

  stepping     (leftover <  frame_time)
      move particles through any leftover, pick dt from the CFL bound,
      then run the full physics pipeline:

        1. Emit particles at the inflow face (policy permitting)
        2. Classify cells from particle positions
        3. Advect velocity (semi-Lagrangian, midpoint trace)
        4. Gravity on fluid faces
        5. Pressure projection                  ← the expensive step
        6. Boundary extrapolation + inflow pin
        7. Move particles by dt

  If the CFL dt is longer than a frame, dt is clamped to the frame and
  the surplus is banked as leftover, to be replayed by catching-up ticks.

Every tick first ages the out-of-bound particles (see ParticleSet.decay).
"""

import logging
import time
from typing import Optional, Sequence

import numpy as np

from .advect import advect_velocity, velocity_at
from .classify import reclassify
from .config import FluidConfig
from .forces import apply_gravity, update_boundary
from .grid import MACGrid
from .particles import ParticleSet, ParticleSnapshot
from .solver import project

logger = logging.getLogger(__name__)

STEP_CATCH_UP = "catch_up"
STEP_PHYSICS = "physics"

# Four marker particles per seeded cell, in cell-width units
BLOCK_OFFSETS = np.array([
    [0.2, 0.2, 0.2],
    [0.2, 0.4, 0.6],
    [0.8, 0.6, 0.4],
    [0.8, 0.8, 0.8],
])


class FluidSimulation:
    """
    The complete marker-particle liquid simulation.

    Usage:
        sim = FluidSimulation(nx=8, ny=6, nz=6)
        sim.seed_block((1, 0, 0), (4, 3, 3))   # optional initial water
        for frame in range(100):
            sim.step()
            snap = sim.particles()              # hand to a renderer
    """

    def __init__(self, config: Optional[FluidConfig] = None, **overrides):
        """
        Args:
            config    : FluidConfig (defaults to FluidConfig())
            overrides : Individual FluidConfig fields, e.g. nx=8, seed=3
        """
        config = config or FluidConfig()
        self.config = config.with_overrides(**overrides).validate()

        self.grid = MACGrid(self.config)
        self.particle_set = ParticleSet(life=self.config.particle_life)
        self.rng = np.random.default_rng(self.config.seed)

        self.frame = 0
        self._dt = 0.0
        self._leftover = 0.0
        self._max_velocity = float(self.config.initial_max_velocity)
        self.perf_log = []        # stores metrics per tick
        self.last_metrics = None

        update_boundary(self.grid, self.config.inflow_velocity, self.config.boundary_damping)
        logger.info("FluidSimulation ready: grid=%s h=%g B=%d frame_time=%g",
                    self.config.shape, self.config.cell_width,
                    self.config.ghost_width, self.config.frame_time)

    # ── Read-only state ────────────────────────────────────────────────────

    @property
    def dt(self) -> float:
        """Physics dt chosen by the most recent stepping tick."""
        return self._dt

    @property
    def leftover(self) -> float:
        return self._leftover

    @property
    def max_velocity(self) -> float:
        return self._max_velocity

    def particles(self) -> ParticleSnapshot:
        """Positions and in-bound flags, copied. Never the live arrays."""
        return self.particle_set.snapshot()

    def cfl_dt(self) -> float:
        return self.config.cfl * self.config.cell_width / max(self._max_velocity, 1.0)

    # ── Particle sources ───────────────────────────────────────────────────

    def seed_block(self, lo: Sequence[int], hi: Sequence[int]) -> int:
        """
        Fill interior cells lo <= (i, j, k) < hi with four particles each.
        Returns the number of particles added.
        """
        lo = np.asarray(lo, dtype=np.int64)
        hi = np.asarray(hi, dtype=np.int64)
        if np.any(lo < 0) or np.any(hi > np.asarray(self.config.shape)) or np.any(lo > hi):
            raise ValueError(f"block {tuple(lo)}..{tuple(hi)} is not inside grid {self.config.shape}")

        i, j, k = np.meshgrid(*(np.arange(a, b) for a, b in zip(lo, hi)), indexing='ij')
        cells = np.stack([i.ravel(), j.ravel(), k.ravel()], axis=1).astype(np.float64)
        positions = (cells[:, None, :] + BLOCK_OFFSETS[None, :, :]).reshape(-1, 3)
        added = self.particle_set.spawn(positions * self.config.cell_width)
        logger.info("Seeded %d particles in block %s..%s", added, tuple(lo), tuple(hi))
        return added

    def _should_emit(self) -> bool:
        cfg = self.config
        if cfg.particles_per_cell == 0 or self.frame % cfg.emit_every:
            return False
        return cfg.emit_until is None or self.frame <= cfg.emit_until

    def emit(self) -> int:
        """
        Spawn jittered particles on the inflow face (x = 0), one batch per
        source cell. Skipped entirely if it would exceed max_particles.
        Returns the number of particles added.
        """
        cfg = self.config
        (j0, j1), (k0, k1) = cfg.source_cells()
        jj, kk = np.meshgrid(np.arange(j0, j1), np.arange(k0, k1), indexing='ij')
        cells = np.repeat(np.stack([jj.ravel(), kk.ravel()], axis=1), cfg.particles_per_cell, axis=0)
        n = cells.shape[0]
        if n == 0:
            return 0
        if len(self.particle_set) + n > cfg.max_particles:
            logger.debug("Emission skipped at frame %d: %d particles, cap %d",
                         self.frame, len(self.particle_set), cfg.max_particles)
            return 0

        jitter = self.rng.random((n, 2))
        positions = np.zeros((n, 3))
        positions[:, 1:] = (cells + jitter) * cfg.cell_width
        return self.particle_set.spawn(positions)

    # ── Stepping ───────────────────────────────────────────────────────────

    def _move_particles(self, dt: float):
        ps = self.particle_set
        if len(ps) == 0:
            return
        ps.advance(dt, velocity_at(self.grid, ps.positions[ps.in_bound]))

    def step(self):
        """
        Advance by one scheduler decision. Returns nothing; metrics are
        appended to perf_log and kept in last_metrics.

        Raises:
            PressureSolveError if the pressure solve does not converge.
        """
        t_total_start = time.perf_counter()
        cfg = self.config
        g = self.grid

        removed = self.particle_set.decay()
        metrics = {"frame": self.frame, "removed": removed}

        if self._leftover >= cfg.frame_time:
            # ── Catching up: particles only ───────────────────────────────
            t0 = time.perf_counter()
            self._move_particles(cfg.frame_time)
            self._leftover -= cfg.frame_time
            metrics["move_ms"] = (time.perf_counter() - t0) * 1000
            metrics["emitted"] = self.emit() if self._should_emit() else 0
            metrics["branch"] = STEP_CATCH_UP
            metrics["dt"] = cfg.frame_time
        else:
            if self._leftover > 0.0:
                self._move_particles(self._leftover)

            # ── Step 1: pick dt from the CFL bound ────────────────────────
            candidate = self.cfl_dt()
            if candidate > cfg.frame_time:
                self._dt = cfg.frame_time
                self._leftover = candidate - cfg.frame_time
            else:
                self._dt = candidate
                self._leftover = 0.0
            dt = self._dt

            metrics["emitted"] = self.emit() if self._should_emit() else 0

            # ── Step 2: classify ──────────────────────────────────────────
            t0 = time.perf_counter()
            reclassify(g, self.particle_set)
            metrics["classify_ms"] = (time.perf_counter() - t0) * 1000

            # ── Step 3: advect ────────────────────────────────────────────
            t0 = time.perf_counter()
            advect_velocity(g, dt)
            metrics["advect_ms"] = (time.perf_counter() - t0) * 1000

            # ── Step 4: gravity ───────────────────────────────────────────
            t0 = time.perf_counter()
            apply_gravity(g, dt, cfg.gravity)
            metrics["gravity_ms"] = (time.perf_counter() - t0) * 1000

            # ── Step 5: project ───────────────────────────────────────────
            proj = project(g, tolerance=cfg.solver_tolerance,
                           max_iterations=cfg.solver_max_iterations)
            self._max_velocity = proj["max_velocity"]
            metrics["project_ms"] = proj["time_ms"]

            # ── Step 6: boundary ──────────────────────────────────────────
            t0 = time.perf_counter()
            update_boundary(g, cfg.inflow_velocity, cfg.boundary_damping)
            metrics["boundary_ms"] = (time.perf_counter() - t0) * 1000

            # ── Step 7: move particles ────────────────────────────────────
            t0 = time.perf_counter()
            self._move_particles(dt)
            metrics["move_ms"] = (time.perf_counter() - t0) * 1000

            metrics.update({
                "branch"         : STEP_PHYSICS,
                "dt"             : dt,
                "fluid_cells"    : proj["fluid_cells"],
                "iterations"     : proj["iterations"],
                "residual"       : proj["residual"],
                "divergence_max" : proj["divergence_after_max"],
                "max_velocity"   : proj["max_velocity"],
            })

        # ── Tick bookkeeping ───────────────────────────────────────────────
        self.frame += 1
        metrics.update({
            "leftover"  : self._leftover,
            "particles" : len(self.particle_set),
            "in_bound"  : self.particle_set.n_in_bound,
            "total_ms"  : (time.perf_counter() - t_total_start) * 1000,
        })
        self.perf_log.append(metrics)
        self.last_metrics = metrics
        logger.debug("tick %d [%s] dt=%.4f leftover=%.4f particles=%d",
                     metrics["frame"], metrics["branch"], metrics["dt"],
                     self._leftover, metrics["particles"])

    def status(self) -> str:
        g = self.grid
        lines = [
            f"  Frame: {self.frame}  |  dt: {self._dt:.4f}  |  leftover: {self._leftover:.4f}",
            f"  Particles : total={len(self.particle_set)}, in_bound={self.particle_set.n_in_bound}",
            f"  Fluid     : cells={g.fluid_count}, max_velocity={self._max_velocity:.4f}",
            f"  Divergence: max={np.abs(g.compute_divergence()).max():.6f}",
            f"  Pressure  : max={g.pressure.max():.4f}, min={g.pressure.min():.4f}",
        ]
        if self.last_metrics:
            lines.append(f"  Perf      : {self.last_metrics['total_ms']:.1f}ms/tick")
        return "\n".join(lines)

    def print_status(self):
        """Pretty-print current simulation state."""
        print(f"\n{'='*50}")
        print(self.status())
        print(f"{'='*50}")

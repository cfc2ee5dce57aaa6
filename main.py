"""
main.py — Command-Line Driver
==============================
Runs the simulation without any display and reports what it did.

Usage:
    python main.py                           # Headless run (default)
    python main.py --mode benchmark          # Per-stage timing breakdown
    python main.py --nx 10 --seed-block      # Bigger box, start with water in it
"""

import argparse
import logging

import numpy as np

from macfluid import FluidSimulation, PressureSolveError


def build_simulation(args) -> FluidSimulation:
    sim = FluidSimulation(nx=args.nx, ny=args.ny, nz=args.nz, seed=args.seed)
    if args.seed_block:
        nx, ny, nz = sim.config.shape
        sim.seed_block((nx // 4, 0, nz // 4), (max(nx // 2, 1), max(ny // 2, 1), max(3 * nz // 4, 1)))
    return sim


def run_headless(args):
    """Run simulation without display — prints stats every 10 ticks."""
    sim = build_simulation(args)

    print(f"\nHeadless simulation | grid={sim.config.shape} | {args.frames} ticks")
    print(f"{'─'*60}")

    total_times = []
    for f in range(args.frames):
        sim.step()
        m = sim.last_metrics
        total_times.append(m["total_ms"])

        if f % 10 == 0:
            line = (f"  Tick {f:04d} | {m['branch']:<8} | {m['total_ms']:6.2f}ms | "
                    f"dt={m['dt']:.4f} | particles={m['particles']:5d}")
            if m["branch"] == "physics":
                line += f" | fluid={m['fluid_cells']:4d} | div_max={m['divergence_max']:.2e}"
            print(line)

    print(f"\n{'─'*60}")
    print(f"  Average: {np.mean(total_times):.2f}ms/tick")
    print(f"  Max:     {np.max(total_times):.2f}ms")
    sim.print_status()


def run_benchmark(args):
    """
    Detailed performance breakdown over physics ticks only.
    Shows how long each pipeline stage takes.
    """
    sim = build_simulation(args)

    print(f"\n{'='*60}")
    print(f"  PHYSICS BENCHMARK | grid={sim.config.shape} | {args.frames} ticks")
    print(f"{'='*60}")

    # Warm up
    for _ in range(5):
        sim.step()

    logs = []
    for _ in range(args.frames):
        sim.step()
        if sim.last_metrics["branch"] == "physics":
            logs.append(sim.last_metrics)

    if not logs:
        print("  No physics ticks ran (all catching-up). Increase --frames.")
        return

    keys = ["classify_ms", "advect_ms", "gravity_ms", "project_ms",
            "boundary_ms", "move_ms", "total_ms"]

    print(f"\n{'Stage':<20} {'Mean':>8} {'Min':>8} {'Max':>8}")
    print(f"{'─'*50}")
    for k in keys:
        vals = [m[k] for m in logs]
        print(f"  {k:<18} {np.mean(vals):>7.2f}ms {np.min(vals):>7.2f}ms {np.max(vals):>7.2f}ms")

    iters = [m["iterations"] for m in logs]
    print(f"\n{'─'*50}")
    print(f"  Physics ticks: {len(logs)} / {args.frames}")
    print(f"  CG iterations: mean={np.mean(iters):.1f}, max={np.max(iters)}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Marker-particle MAC fluid simulation")
    parser.add_argument(
        "--mode", choices=["headless", "benchmark"],
        default="headless",
        help="Run mode (default: headless)"
    )
    parser.add_argument("--nx",     type=int, default=5, help="Interior cells along x (default: 5)")
    parser.add_argument("--ny",     type=int, default=6, help="Interior cells along y (default: 6)")
    parser.add_argument("--nz",     type=int, default=6, help="Interior cells along z (default: 6)")
    parser.add_argument("--frames", type=int, default=100, help="Number of ticks")
    parser.add_argument("--seed",   type=int, default=0, help="Emission RNG seed")
    parser.add_argument("--seed-block", action="store_true", help="Start with a block of water")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")

    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s:%(name)s:%(message)s")

    try:
        if args.mode == "headless":
            run_headless(args)
        elif args.mode == "benchmark":
            run_benchmark(args)
    except PressureSolveError as exc:
        logging.getLogger("macfluid").error("Simulation stopped: %s", exc)
        raise SystemExit(1)

#!/usr/bin/env python3
"""Run a headless epidemic simulation from YAML configuration.

Loads configs/default.yaml (or --base-config), optionally merges a
scenario file on top, runs until the epidemic is eradicated, the
population is extinct, or max_ticks is reached, and prints a summary.

Usage:
    python run_simulation.py
    python run_simulation.py configs/scenarios/distancing.yaml --seed 7
    python run_simulation.py --csv results/run.csv --snapshots results/run.npz
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from episim.config import load_config
from episim.errors import ConfigurationError
from episim.simulator import Simulator

PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_BASE = PROJECT_ROOT / "configs" / "default.yaml"


def build_overrides(args: argparse.Namespace) -> dict:
    overrides = {}
    if args.seed is not None:
        overrides.setdefault('simulation', {})['seed'] = args.seed
    if args.max_ticks is not None:
        overrides.setdefault('simulation', {})['max_ticks'] = args.max_ticks
    if args.profile:
        overrides.setdefault('output', {})['profile'] = True
    if args.snapshots:
        overrides.setdefault('output', {})['record_snapshots'] = True
    return overrides


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Run a spatial epidemic simulation from YAML config.",
        epilog="Example: python run_simulation.py configs/scenarios/distancing.yaml",
    )
    parser.add_argument(
        "scenario", nargs="?", default=None,
        help="Scenario YAML merged over the base config",
    )
    parser.add_argument(
        "--base-config", type=str, default=str(DEFAULT_BASE),
        help="Base config YAML (default: configs/default.yaml)",
    )
    parser.add_argument("--seed", type=int, default=None,
                        help="Override simulation.seed")
    parser.add_argument("--max-ticks", type=int, default=None,
                        help="Override simulation.max_ticks")
    parser.add_argument("--csv", type=str, default=None,
                        help="Write the statistics series to this CSV file")
    parser.add_argument("--snapshots", type=str, default=None,
                        help="Record area snapshots and save them to this .npz")
    parser.add_argument("--profile", action="store_true",
                        help="Print per-stage tick timing")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Debug logging (test passes, deaths, recoveries)")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.base_config, args.scenario,
                             build_overrides(args))
    except (FileNotFoundError, ConfigurationError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    sim = Simulator(config)
    t0 = time.perf_counter()
    stats = sim.run()
    wall = time.perf_counter() - t0

    print(f"\n{'=' * 60}")
    print(f" Outcome: {sim.state.name} after {sim.tick} ticks "
          f"(t = {sim.elapsed:.2f} s simulated, {wall:.2f} s wall)")
    print(f"{'=' * 60}")
    print(f"  Initial population : {stats.initial_population}")
    print(f"  Healthy            : {stats.healthy}")
    print(f"  Infected           : {stats.infected}")
    print(f"  Recovered          : {stats.recovered}")
    print(f"  Deceased           : {stats.deceased}")
    print(f"  In quarantine      : {len(sim.world.quarantine)}")

    if args.csv:
        out = Path(args.csv)
        out.parent.mkdir(parents=True, exist_ok=True)
        stats.to_frame().to_csv(out, index=False)
        print(f"\n  Series written to {out}")

    if args.snapshots:
        sim.recorder.save(args.snapshots)
        print(f"  {len(sim.recorder)} snapshots saved to {args.snapshots}")

    if args.profile:
        print(sim.profiler.report())

    return 0


if __name__ == "__main__":
    sys.exit(main())

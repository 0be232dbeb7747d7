#!/usr/bin/env python3
"""
Scan exact Ising samples across temperatures around the critical point.

Temperatures are T = Tc + dT with dT = k / (4 n), k = steps, ..., -steps
(hot to cold). For every temperature `--samples` independent runs are made.

Output (stdout), one line per coalesced sample:
  T dT iterations magnetization energy
Diagnostics (stderr): one "NG" line per failed run and a "stats" line per
temperature. The scan stops after the first temperature where fewer than half
the runs coalesced.
"""

from __future__ import annotations

import argparse
import multiprocessing as mp
import os
import random
import sys
from dataclasses import dataclass
from typing import IO, List, Optional, Tuple

from tqdm import tqdm

from propp_wilson_ising import Sample, critical_temperature, run, validate_lattice_size


@dataclass
class SweepConfig:
    n: int = 16
    limit: int = 30
    samples: int = 100
    seed: int = 1
    # Grid half-width in units of 1 / (4 n).
    steps: int = 100
    # Center of the scan; None means the exact Tc.
    tc: Optional[float] = None
    # - 0: use all available CPU cores
    # - 1: single process
    nprocs: int = 1


@dataclass
class TemperatureResult:
    t: float
    dt: float
    samples: List[Sample]
    failures: int


def temperature_grid(n: int, steps: int, tc: Optional[float] = None) -> List[Tuple[float, float]]:
    """(T, dT) pairs from hottest to coldest, stopping before T <= 0."""
    if tc is None:
        tc = critical_temperature()
    out: List[Tuple[float, float]] = []
    for k in range(steps, -steps - 1, -1):
        dt = k / n / 4.0
        t = tc + dt
        if t <= 0.0:
            break
        out.append((t, dt))
    return out


def _stable_temp_seed(base_seed: int, T: float) -> int:
    """Deterministic per-temperature seed (stable across runs / processes)."""
    t_int = int(round(T * 1_000_000))
    return (base_seed * 1_000_003 + t_int * 91_382_323) & 0xFFFFFFFF


def _sample_temperature(args: Tuple[float, float, SweepConfig]) -> TemperatureResult:
    """Worker: all runs at a single temperature, with their own generator."""
    t, dt, cfg = args
    rng = random.Random(_stable_temp_seed(cfg.seed, t))
    samples: List[Sample] = []
    failures = 0
    for _ in range(cfg.samples):
        sample = run(rng, cfg.n, t, cfg.limit)
        if sample is None:
            failures += 1
        else:
            samples.append(sample)
    return TemperatureResult(t=t, dt=dt, samples=samples, failures=failures)


def format_record(t: float, dt: float, sample: Sample) -> str:
    return f"{t} {dt} {sample.iterations} {sample.magnetization} {sample.energy}"


def run_sweep(cfg: SweepConfig, out: Optional[IO[str]] = None, err: Optional[IO[str]] = None) -> int:
    """Run the scan, writing records to `out`; return the number of temperatures visited."""
    out = out or sys.stdout
    err = err or sys.stderr
    validate_lattice_size(cfg.n)
    grid = temperature_grid(cfg.n, cfg.steps, cfg.tc)
    work = [(t, dt, cfg) for t, dt in grid]

    nprocs = cfg.nprocs
    if nprocs == 0:
        nprocs = os.cpu_count() or 1

    pool = mp.Pool(processes=nprocs) if nprocs > 1 else None
    try:
        results = pool.imap(_sample_temperature, work, chunksize=1) if pool else map(_sample_temperature, work)
        visited = 0
        for res in tqdm(results, total=len(work), desc="T sweep", file=err, leave=False, disable=not err.isatty()):
            visited += 1
            for sample in res.samples:
                print(format_record(res.t, res.dt, sample), file=out)
            for _ in range(res.failures):
                print(f"NG: t={res.t} dt={res.dt}", file=err)
            ok = len(res.samples)
            print(f"stats: t={res.t} dt={res.dt} ok={ok}", file=err)
            out.flush()
            if ok * 2 < cfg.samples:
                break
    finally:
        if pool is not None:
            pool.terminate()
            pool.join()
    return visited


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    p.add_argument("-n", type=int, required=True, help="Side of the square lattice.")
    p.add_argument("--limit", type=int, default=30, help="Propp-Wilson doubling limit.")
    p.add_argument("-s", "--samples", type=int, default=100)
    p.add_argument("--seed", type=int, default=1)
    p.add_argument("--steps", type=int, default=100, help="Grid half-width in units of 1/(4n).")
    p.add_argument("--tc", type=float, default=None, help="Scan center (default: exact Tc).")
    p.add_argument("--nprocs", type=int, default=1, help="0=all cores")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    cfg = SweepConfig(
        n=args.n,
        limit=args.limit,
        samples=args.samples,
        seed=args.seed,
        steps=args.steps,
        tc=args.tc,
        nprocs=args.nprocs,
    )
    run_sweep(cfg)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Per-temperature statistics of a sweep_temperatures.py output file.

Input lines:  T dT iterations magnetization energy
Consecutive lines with the same T form one group. For each group one line is
written:

  T dT count <|m|> sd(|m|) U4 <e> sd(e) <iterations> sd(iterations)

with m = M / N, e = E / N and the Binder cumulant U4 = 1 - <m^4> / (3 <m^2>^2).
The lattice side n is taken from -n or from the file name prefix ("32.txt",
"32.dat.gz" -> 32).
"""

from __future__ import annotations

import argparse
import math
import os
import sys
from dataclasses import dataclass, field
from typing import IO, Iterable, Iterator, List, Optional, Tuple

Record = Tuple[float, float, float, float, float]


@dataclass
class RunningMoments:
    """Power sums of a stream of values."""
    n: float = 0.0
    s1: float = 0.0
    s2: float = 0.0
    s4: float = 0.0

    def add(self, x: float) -> None:
        self.n += 1.0
        self.s1 += x
        x2 = x * x
        self.s2 += x2
        self.s4 += x2 * x2

    def mean(self) -> float:
        if self.n == 0:
            return float("nan")
        return self.s1 / self.n

    def variance(self) -> float:
        """Unbiased (n - 1) sample variance."""
        if self.n < 2:
            return float("nan")
        return self.s2 / (self.n - 1.0) - self.s1 * self.s1 / self.n / (self.n - 1.0)

    def std(self) -> float:
        v = self.variance()
        if math.isnan(v):
            return v
        # Cancellation can push a zero variance slightly negative.
        return math.sqrt(max(0.0, v))

    def binder(self) -> float:
        if self.s2 == 0.0:
            return float("nan")
        return 1.0 - self.s4 / self.s2 / self.s2 / 3.0 * self.n


@dataclass
class GroupStats:
    t: float
    dt: float
    m: RunningMoments = field(default_factory=RunningMoments)
    e: RunningMoments = field(default_factory=RunningMoments)
    iterations: RunningMoments = field(default_factory=RunningMoments)

    def format(self) -> str:
        return " ".join(
            str(v)
            for v in (
                self.t,
                self.dt,
                int(self.m.n),
                self.m.mean(),
                self.m.std(),
                self.m.binder(),
                self.e.mean(),
                self.e.std(),
                self.iterations.mean(),
                self.iterations.std(),
            )
        )


def parse_record(line: str, lineno: int = 0) -> Record:
    words = line.split()
    if len(words) != 5:
        raise ValueError(f"line {lineno}: expected 5 fields (t dt iterations M E), got {len(words)}")
    try:
        t, dt, tau, m, e = (float(w) for w in words)
    except ValueError as exc:
        raise ValueError(f"line {lineno}: {exc}") from exc
    return t, dt, tau, m, e


def aggregate(lines: Iterable[str], n_sites: int) -> Iterator[GroupStats]:
    """Group consecutive records by T and accumulate normalized observables."""
    group: Optional[GroupStats] = None
    for lineno, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        t, dt, tau, m, e = parse_record(line, lineno)
        if group is not None and group.t != t:
            yield group
            group = None
        if group is None:
            group = GroupStats(t=t, dt=dt)
        group.m.add(abs(m) / n_sites)
        group.e.add(e / n_sites)
        group.iterations.add(tau)
    if group is not None:
        yield group


def infer_lattice_size(path: str) -> int:
    name = os.path.basename(path).split(".", 1)[0]
    try:
        return int(name)
    except ValueError:
        raise ValueError(f"cannot infer lattice size from file name {path!r}; pass -n") from None


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser()
    p.add_argument("data", type=str, help="Output of sweep_temperatures.py")
    p.add_argument("-n", type=int, default=None, help="Lattice side (default: from file name).")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None, out: Optional[IO[str]] = None) -> None:
    args = parse_args(argv)
    out = out or sys.stdout
    n = args.n if args.n is not None else infer_lattice_size(args.data)
    with open(args.data) as f:
        for group in aggregate(f, n * n):
            print(group.format(), file=out)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Exact sampling of the 2D ferromagnetic Ising model by coupling from the past.

Model:
    H = - sum_{<i,j>} s_i s_j
on an n x n periodic square lattice with s_i = ±1 (stored as 0/1).

Propp-Wilson with a monotone heat-bath update:
  1) Every random update is reduced to a (site, threshold class) pair. A single
     class tau in {0..5} couples all five neighbor-count outcomes: the new spin
     is up iff tau <= (number of up neighbors).
  2) Two bounding chains (all-up ceiling, all-down floor) consume the same
     draws. The update is monotone, so ceiling >= floor is preserved and any
     other starting configuration stays sandwiched in between.
  3) If the chains have not met at time 0, the window is doubled further into
     the past, reusing the recent draws, and the whole window is replayed.

On coalescence the common configuration is an exact sample from the Boltzmann
distribution at temperature T (kB = J = 1).
"""

from __future__ import annotations
import bisect, math, random
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

import numpy as np

# Draw records pack the site index into the low bits and the class above it.
CELL_INDEX_BITS = 29
CELL_INDEX_MASK = (1 << CELL_INDEX_BITS) - 1

# Classes that do not depend on the neighborhood.
FORCE_UP = 0
FORCE_DOWN = 5


def critical_temperature() -> float:
    """Onsager's T_c = 2 / ln(1 + sqrt(2)) for the square lattice."""
    return 2.0 / math.log(1.0 + math.sqrt(2.0))


def validate_lattice_size(n: int) -> int:
    """Return N = n*n, or raise if n is unusable with the packed draw encoding."""
    if int(n) != n or n < 1:
        raise ValueError(f"lattice side must be a positive integer, got {n!r}")
    N = int(n) * int(n)
    if N >= 1 << CELL_INDEX_BITS:
        raise ValueError(
            f"lattice of {N} sites does not fit the {CELL_INDEX_BITS}-bit site index"
        )
    return N


# ----------------------------
# Topology
# ----------------------------

@dataclass(frozen=True)
class NeighborTable:
    """4-neighbor lookup tables for an nxn periodic square lattice (site = x + n*y)."""
    left: np.ndarray   # x - 1
    right: np.ndarray  # x + 1
    up: np.ndarray     # y - 1
    down: np.ndarray   # y + 1

    def __len__(self) -> int:
        return int(self.left.size)

    def of(self, i: int) -> Tuple[int, int, int, int]:
        return (int(self.left[i]), int(self.right[i]), int(self.up[i]), int(self.down[i]))

    def rows(self) -> List[Tuple[int, int, int, int]]:
        """Plain-int rows, for tight per-site loops."""
        return list(zip(self.left.tolist(), self.right.tolist(), self.up.tolist(), self.down.tolist()))


def build_neighbor_table(n: int) -> NeighborTable:
    """Precompute the 4 neighbor indices for each site."""
    N = validate_lattice_size(n)

    def idx(x: int, y: int) -> int:
        return (x % n) + n * (y % n)

    left = np.empty(N, dtype=np.int32)
    right = np.empty(N, dtype=np.int32)
    up = np.empty(N, dtype=np.int32)
    down = np.empty(N, dtype=np.int32)

    for i in range(N):
        x = i % n
        y = i // n
        left[i] = idx(x - 1, y)
        right[i] = idx(x + 1, y)
        up[i] = idx(x, y - 1)
        down[i] = idx(x, y + 1)

    return NeighborTable(left=left, right=right, up=up, down=down)


# ----------------------------
# Heat-bath transition model
# ----------------------------

def gibbs_probability(beta: float, m: int) -> float:
    """
    Conditional probability that a site is up given m up neighbors.

    Local field h = 2m - 4, so P(up) = 1 / (1 + exp(-2 beta h)).
    Written so that large beta never overflows.
    """
    x = 2.0 * beta * (2 * m - 4)
    if x >= 0.0:
        return 1.0 / (1.0 + math.exp(-x))
    e = math.exp(x)
    return e / (1.0 + e)


@dataclass(frozen=True)
class TransitionModel:
    """
    The two distinct heat-bath probabilities at inverse temperature beta.

    p2 = p(3) = 1 - p(1), p4 = p(4) = 1 - p(0); p(2) = 0.5 by symmetry.
    """
    beta: float
    p2: float
    p4: float

    def probability(self, m: int) -> float:
        return (1.0 - self.p4, 1.0 - self.p2, 0.5, self.p2, self.p4)[m]

    @property
    def bounds(self) -> Tuple[float, float, float, float, float]:
        """Ascending bin edges of [0, 1); the bins map to classes 5, 4, 3, 2, 1, 0."""
        return (1.0 - self.p4, 1.0 - self.p2, 0.5, self.p2, self.p4)


def transition_model(beta: float) -> TransitionModel:
    if not (math.isfinite(beta) and beta > 0.0):
        raise ValueError(f"inverse temperature must be finite and > 0, got {beta!r}")
    return TransitionModel(beta=beta, p2=gibbs_probability(beta, 3), p4=gibbs_probability(beta, 4))


def threshold_class(u: float, model: TransitionModel) -> int:
    """
    Map a uniform variate u in [0, 1) to the class tau.

    For every neighbor count m, P(tau <= m) = p(m), so "up iff tau <= m"
    is an exact heat-bath update regardless of m.
    """
    return 5 - bisect.bisect_right(model.bounds, u)


def pack_draw(index: int, tau: int) -> int:
    return index | (tau << CELL_INDEX_BITS)


def unpack_draw(draw: int) -> Tuple[int, int]:
    return draw & CELL_INDEX_MASK, draw >> CELL_INDEX_BITS


# ----------------------------
# Shared randomness
# ----------------------------

class DrawLog:
    """
    The shared past: a stack of packed (site, class) draws.

    New draws are pushed on top and lie further in the past, so a replay pops
    from the top down to index 0. The entries of a window of length W are
    exactly the bottom W of the stack and keep their positions when the window
    is extended.
    """

    def __init__(self, model: TransitionModel, n_sites: int):
        self.model = model
        self.n_sites = n_sites
        self._data = np.empty(0, dtype=np.uint32)

    def __len__(self) -> int:
        return int(self._data.size)

    def extend(self, count: int, rng: random.Random) -> None:
        """Draw `count` more updates from rng and push them further into the past."""
        N = self.n_sites
        model = self.model
        fresh = np.empty(count, dtype=np.uint32)
        for k in range(count):
            i = rng.randrange(N)
            fresh[k] = pack_draw(i, threshold_class(rng.random(), model))
        self._data = np.concatenate([self._data, fresh])

    def replay_order(self) -> Iterator[Tuple[int, int]]:
        """Yield (site, class) from the oldest draw to the most recent."""
        for draw in reversed(self._data.tolist()):
            yield unpack_draw(draw)

    def chronological(self) -> np.ndarray:
        """Packed draws in time order (oldest first)."""
        return self._data[::-1].copy()


# ----------------------------
# Bounding chains
# ----------------------------

class BoundingChains:
    """All-up ceiling and all-down floor driven by identical draws."""

    def __init__(self, neighbors: NeighborTable):
        self.neighbors = neighbors
        self._rows = neighbors.rows()
        N = len(neighbors)
        self.ceiling = np.ones(N, dtype=np.int8)
        self.floor = np.zeros(N, dtype=np.int8)

    def reset(self) -> None:
        self.ceiling.fill(1)
        self.floor.fill(0)

    def apply(self, index: int, tau: int) -> None:
        """Heat-bath update of site `index` in both chains with the same class."""
        hi = self.ceiling
        lo = self.floor
        if tau == FORCE_UP:
            hi[index] = 1
            lo[index] = 1
            return
        if tau == FORCE_DOWN:
            hi[index] = 0
            lo[index] = 0
            return
        a, b, c, d = self._rows[index]
        m_hi = int(hi[a]) + int(hi[b]) + int(hi[c]) + int(hi[d])
        m_lo = int(lo[a]) + int(lo[b]) + int(lo[c]) + int(lo[d])
        hi[index] = 1 if tau <= m_hi else 0
        lo[index] = 1 if tau <= m_lo else 0

    def replay(self, log: DrawLog) -> None:
        for index, tau in log.replay_order():
            self.apply(index, tau)

    def coalesced(self) -> bool:
        return bool(np.array_equal(self.ceiling, self.floor))

    def distance(self) -> int:
        """Number of sites where the bounding chains still disagree."""
        return int(np.count_nonzero(self.ceiling != self.floor))


# ----------------------------
# Observables
# ----------------------------

def magnetization(spins: np.ndarray) -> int:
    """#up - #down."""
    return 2 * int(np.count_nonzero(spins)) - int(spins.size)


def energy(spins: np.ndarray, neighbors: NeighborTable) -> int:
    """E = -sum over bonds of s_i s_j, each bond counted once."""
    s = 2 * spins.astype(np.int64) - 1
    m = (
        spins[neighbors.left].astype(np.int64)
        + spins[neighbors.right]
        + spins[neighbors.up]
        + spins[neighbors.down]
    )
    return -int(np.sum(s * (m - 2)))


def spin_snapshot(spins: np.ndarray, n: int, up: str = "+", down: str = "-") -> str:
    """Row-major text rendering, one lattice row per line."""
    grid = spins.reshape(n, n)
    return "\n".join("".join(up if c else down for c in row) for row in grid.tolist())


# ----------------------------
# Backward doubling
# ----------------------------

class ProppWilsonIsing:
    """
    Backward-doubling driver for one (n, beta).

    The first attempt covers one sweep (N draws); each `rerun` doubles the
    window by drawing as many new updates as are already logged.
    """

    def __init__(self, n: int, beta: float):
        self.n = n
        self.n_sites = validate_lattice_size(n)
        self.model = transition_model(beta)
        self.neighbors = build_neighbor_table(n)
        self.log = DrawLog(self.model, self.n_sites)
        self.chains = BoundingChains(self.neighbors)

    @property
    def window(self) -> int:
        return len(self.log)

    def rerun(self, rng: random.Random) -> bool:
        """Extend the past, restart both chains, replay everything; True on coalescence."""
        count = len(self.log) or self.n_sites
        self.log.extend(count, rng)
        self.chains.reset()
        self.chains.replay(self.log)
        return self.chains.coalesced()

    @property
    def spins(self) -> np.ndarray:
        return self.chains.ceiling

    def magnetization(self) -> int:
        return magnetization(self.spins)

    def energy(self) -> int:
        return energy(self.spins, self.neighbors)

    def spin_snapshot(self) -> str:
        return spin_snapshot(self.spins, self.n)


@dataclass(frozen=True)
class Sample:
    """One exact sample and the number of doublings it needed."""
    n: int
    temperature: float
    iterations: int
    magnetization: int
    energy: int
    spins: np.ndarray = field(compare=False)

    def snapshot(self) -> str:
        return spin_snapshot(self.spins, self.n)


def run(rng: random.Random, n: int, temperature: float, limit: int) -> Optional[Sample]:
    """
    Draw one exact sample at `temperature`, allowing at most `limit` attempts.

    Returns None when the chains have not coalesced after `limit` attempts;
    that is an expected outcome, not an error.
    """
    if not (math.isfinite(temperature) and temperature > 0.0):
        raise ValueError(f"temperature must be finite and > 0, got {temperature!r}")
    if limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit!r}")
    ising = ProppWilsonIsing(n, 1.0 / temperature)
    for k in range(limit):
        if ising.rerun(rng):
            return Sample(
                n=n,
                temperature=temperature,
                iterations=k,
                magnetization=ising.magnetization(),
                energy=ising.energy(),
                spins=ising.spins.copy(),
            )
    return None


def main():
    # Parameters (edit these)
    n = 20
    T = 2.1
    seed = 1

    print(f"Propp-Wilson on {n}x{n}, T={T} (Tc={critical_temperature():.6f}), seed={seed}")
    rng = random.Random(seed)
    ising = ProppWilsonIsing(n, 1.0 / T)
    k = 0
    while not ising.rerun(rng):
        print(f"  attempt {k}: window={ising.window}  mismatched sites={ising.chains.distance()}")
        k += 1
    print(f"Coalesced after {k} doublings (window={ising.window})")
    print(f"M={ising.magnetization()}  E={ising.energy()}")


if __name__ == "__main__":
    main()

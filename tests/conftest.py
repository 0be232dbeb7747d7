from __future__ import annotations

import numpy as np
import pytest


def _heat_bath(spins: np.ndarray, rows, index: int, tau: int) -> None:
    """Single-chain form of the coupled update: up iff tau <= #up neighbors."""
    a, b, c, d = rows[index]
    m = int(spins[a]) + int(spins[b]) + int(spins[c]) + int(spins[d])
    spins[index] = 1 if tau <= m else 0


@pytest.fixture
def heat_bath():
    return _heat_bath

#!/usr/bin/env python3
"""
Plot per-temperature statistics written by aggregate_stats.py.

Three stacked panels against T: <|m|> with its spread, the Binder cumulant,
and the mean number of Propp-Wilson doublings. The exact Tc is marked.
"""

from __future__ import annotations

import argparse
from typing import Dict, List, Optional

import numpy as np

from propp_wilson_ising import critical_temperature

COLUMNS = ("t", "dt", "count", "m", "m_sd", "binder", "e", "e_sd", "iter", "iter_sd")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser()
    p.add_argument("stats", type=str, help="Output of aggregate_stats.py")
    p.add_argument("--out", type=str, default="ising_stats.png", help="Output PNG path")
    p.add_argument("-n", type=int, default=None, help="Lattice side (title only).")
    return p.parse_args(argv)


def load_stats(path: str) -> Dict[str, np.ndarray]:
    """Columns of an aggregate_stats.py file, keyed by COLUMNS."""
    data = np.loadtxt(path, ndmin=2)
    if data.shape[1] != len(COLUMNS):
        raise ValueError(f"{path}: expected {len(COLUMNS)} columns, got {data.shape[1]}")
    return {name: data[:, k] for k, name in enumerate(COLUMNS)}


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    stats = load_stats(args.stats)

    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    tc = critical_temperature()
    t = stats["t"]
    # Single-sample groups have no spread.
    m_sd = np.where(np.isfinite(stats["m_sd"]), stats["m_sd"], 0.0)
    it_sd = np.where(np.isfinite(stats["iter_sd"]), stats["iter_sd"], 0.0)

    fig, axes = plt.subplots(3, 1, figsize=(6.0, 8.0), dpi=160, sharex=True)
    axes[0].errorbar(t, stats["m"], yerr=m_sd, fmt=".", markersize=3.0, capsize=2.0)
    axes[0].set_ylabel(r"$\langle |m| \rangle$")
    axes[1].plot(t, stats["binder"], ".-", linewidth=1.0, markersize=3.0)
    axes[1].set_ylabel(r"$U_4$")
    axes[2].errorbar(t, stats["iter"], yerr=it_sd, fmt=".", markersize=3.0, capsize=2.0)
    axes[2].set_ylabel("doublings")
    axes[2].set_xlabel(r"$T$")
    for ax in axes:
        ax.axvline(tc, color="C1", linewidth=1.0, alpha=0.8)
        ax.grid(True, alpha=0.25)

    title = "Propp-Wilson exact samples, 2D Ising"
    if args.n is not None:
        title += f" (n={args.n})"
    axes[0].set_title(title)
    axes[0].text(tc, 1.02, r"$T_c$", transform=axes[0].get_xaxis_transform(), ha="center", fontsize=8)
    fig.tight_layout()
    fig.savefig(args.out, dpi=200)
    plt.close(fig)

    print(f"Saved: {args.out}")


if __name__ == "__main__":
    main()

from __future__ import annotations

import math

import pytest

import aggregate_stats
import plot_stats
from aggregate_stats import RunningMoments, aggregate, infer_lattice_size, parse_record

RECORDS = [
    "2.0 0.1 0 4 -8",
    "2.0 0.1 1 -2 0",
    "",
    "2.0 0.1 2 0 8",
    "1.5 -0.4 3 4 -8",
]


def test_running_moments():
    s = RunningMoments()
    for x in (1.0, 2.0, 3.0, 4.0):
        s.add(x)
    assert s.mean() == pytest.approx(2.5)
    assert s.variance() == pytest.approx(5.0 / 3.0)
    assert s.std() == pytest.approx(math.sqrt(5.0 / 3.0))
    assert s.binder() == pytest.approx(1.0 - 4 * 354 / (3 * 900))


def test_running_moments_degenerate():
    s = RunningMoments()
    assert math.isnan(s.mean())
    assert math.isnan(s.binder())
    s.add(0.5)
    assert s.mean() == 0.5
    assert math.isnan(s.std())
    assert s.binder() == pytest.approx(2.0 / 3.0)


def test_identical_samples():
    s = RunningMoments()
    for _ in range(7):
        s.add(0.25)
    assert s.mean() == pytest.approx(0.25)
    assert s.std() == pytest.approx(0.0, abs=1e-7)
    assert s.binder() == pytest.approx(2.0 / 3.0)


def test_aggregate_groups_consecutive_temperatures():
    groups = list(aggregate(RECORDS, 4))
    assert [(g.t, g.dt) for g in groups] == [(2.0, 0.1), (1.5, -0.4)]

    g = groups[0]
    assert g.m.n == 3
    assert g.m.mean() == pytest.approx(0.5)
    assert g.m.std() == pytest.approx(0.5)
    assert g.m.binder() == pytest.approx(1.0 - 1.0625 / 1.5625)
    assert g.e.mean() == pytest.approx(0.0)
    assert g.e.std() == pytest.approx(2.0)
    assert g.iterations.mean() == pytest.approx(1.0)
    assert g.iterations.std() == pytest.approx(1.0)

    last = groups[1]
    assert last.m.n == 1
    assert last.m.mean() == pytest.approx(1.0)
    assert last.e.mean() == pytest.approx(-2.0)


def test_group_format():
    words = next(aggregate(RECORDS, 4)).format().split()
    assert len(words) == 10
    assert words[:3] == ["2.0", "0.1", "3"]
    assert float(words[3]) == pytest.approx(0.5)


@pytest.mark.parametrize("line", ["1 2 3", "1 2 3 4 5 6", "a 0 1 2 3"])
def test_malformed_records(line):
    with pytest.raises(ValueError, match="line 2"):
        list(aggregate(["2.0 0.1 0 4 -8", line], 4))
    with pytest.raises(ValueError):
        parse_record(line)


def test_infer_lattice_size():
    assert infer_lattice_size("/tmp/runs/32.txt") == 32
    assert infer_lattice_size("8.dat.gz") == 8
    with pytest.raises(ValueError, match="pass -n"):
        infer_lattice_size("sweep.txt")


def test_main_reads_file(tmp_path, capsys):
    path = tmp_path / "2.txt"
    path.write_text("\n".join(RECORDS) + "\n")
    aggregate_stats.main([str(path)])
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 2
    assert lines[1].split()[:3] == ["1.5", "-0.4", "1"]

    aggregate_stats.main([str(path), "-n", "1"])
    first = capsys.readouterr().out.splitlines()[0].split()
    assert float(first[6]) == pytest.approx(0.0)
    assert float(first[3]) == pytest.approx(2.0)


def test_plot_from_aggregated_file(tmp_path, capsys):
    pytest.importorskip("matplotlib")
    data = tmp_path / "2.txt"
    data.write_text("\n".join(RECORDS) + "\n")
    stats_path = tmp_path / "stats.txt"
    with open(stats_path, "w") as f:
        aggregate_stats.main([str(data)], out=f)

    stats = plot_stats.load_stats(str(stats_path))
    assert stats["t"].tolist() == [2.0, 1.5]
    assert stats["count"].tolist() == [3.0, 1.0]

    out = tmp_path / "stats.png"
    plot_stats.main([str(stats_path), "--out", str(out), "-n", "2"])
    assert out.exists()
    assert "Saved:" in capsys.readouterr().out

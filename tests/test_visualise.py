import json
from pathlib import Path

import networkx as nx
import pandas as pd
import pytest

from conftest import RAW_ROSTER
from visualise import (
    NO_YEAR_COLOR,
    YEAR_PALETTE,
    build_view,
    link_width,
    plot_constellation,
    run_cli,
    year_color,
)


def test_link_width_scales_with_ratio() -> None:
    assert link_width(0.0) == pytest.approx(1.1)
    assert link_width(1.0) == pytest.approx(4.1)
    assert link_width(1.0, compact=True) == pytest.approx(3.3)
    assert link_width(5.0) == link_width(1.0)


def test_year_color() -> None:
    assert year_color(None, [7, 8]) == NO_YEAR_COLOR
    assert year_color(7, [7, 8, None]) == YEAR_PALETTE[0]
    assert year_color(8, [7, 8, None]) == YEAR_PALETTE[1]


def test_build_view_drops_hidden_selection(roster) -> None:
    result, active, links = build_view(roster, 1000, 800, "ideal", 3, active_id="s1")
    assert active.id == "s1"
    assert [l.target.name for l in links] == ["Ben", "Dev", "Cleo"]
    # links point at positioned students
    assert all(hasattr(l.target, "x") for l in links)

    result, active, links = build_view(roster, 1000, 800, "ideal", 3, group_filter=8, active_id="s1")
    assert active is None
    assert links == []


def test_build_view_only_links_visible_students(roster) -> None:
    _, active, links = build_view(roster, 1000, 800, "ideal", 12, group_filter=7, active_id="s1")
    assert [l.target.name for l in links] == ["Ben"]


def test_plot_constellation_traces(roster) -> None:
    result, active, links = build_view(roster, 1000, 800, "ideal", 3, active_id="s1")
    fig = plot_constellation(result, links, active.id, 1000, 800)
    # one trace per link, one for year labels, one for nodes
    assert len(fig.data) == len(links) + 2
    nodes = fig.data[-1]
    assert list(nodes.customdata) == [n.id for n in result.positioned]
    assert tuple(fig.layout.yaxis.range) == (800, 0)
    assert fig.data[0].line.width == pytest.approx(link_width(1.0))


def test_plot_without_selection(roster) -> None:
    result, active, links = build_view(roster, 600, 600, kind="ring")
    fig = plot_constellation(result, links, None, 600, 600)
    assert len(fig.data) == 1


def test_cli_writes_outputs(tmp_path: Path, capsys) -> None:
    src = tmp_path / "roster.json"
    src.write_text(json.dumps(RAW_ROSTER), encoding="utf-8")
    prefix = tmp_path / "out"
    summary = run_cli(["--input", str(src), "--output-prefix", str(prefix), "--links", "3", "--active", "s1"])
    assert summary["nodes"] == len(RAW_ROSTER)
    assert summary["mode"] == "ideal"
    # strongest pair is listed under the summary
    assert "Ava - Ben: 8.00" in capsys.readouterr().out

    nodes = pd.read_csv(f"{prefix}_nodes.csv")
    edges = pd.read_csv(f"{prefix}_edges.csv")
    assert len(nodes) == len(RAW_ROSTER)
    assert len(edges) == summary["edges"]
    G = nx.read_gml(f"{prefix}.gml")
    assert G.number_of_edges() == summary["edges"]
    assert Path(f"{prefix}.html").exists()


def test_cli_falls_back_on_unknown_mode(tmp_path: Path) -> None:
    src = tmp_path / "roster.json"
    src.write_text(json.dumps(RAW_ROSTER), encoding="utf-8")
    summary = run_cli(["--input", str(src), "--output-prefix", str(tmp_path / "x"), "--mode", "vibes"])
    assert summary["mode"] == "ideal"

import math

import pytest

from conftest import make_entity
from data import normalize
from layout import (
    DEFAULT_LAYOUT,
    LAYOUTS,
    Point,
    PositionedEntity,
    clamp_point,
    hash_seed,
    keep_active_visible,
    layout,
    layout_clusters,
    layout_ring,
    ring_points,
)


MARGIN = DEFAULT_LAYOUT["margin"]


def _coords(result):
    return {n.id: (n.x, n.y) for n in result.positioned}


def test_flat_ring_of_four_points_up_first() -> None:
    entities = [make_entity(f"s{i}", name=n) for i, n in enumerate(["A", "B", "C", "D"])]
    result = layout(entities, 400, 400, 0.0, kind="ring")
    expected = [(200, 40), (360, 200), (200, 360), (40, 200)]
    got = [(n.x, n.y) for n in result.positioned]
    for (x, y), (ex, ey) in zip(got, expected):
        assert x == pytest.approx(ex)
        assert y == pytest.approx(ey)
    assert result.group_centers == {}


def test_flat_ring_orders_by_year_then_name() -> None:
    entities = [
        make_entity("a", name="zed", year=7),
        make_entity("b", name="Amy", year=8),
        make_entity("c", name="bob", year=7),
        make_entity("d", name="Ann"),
    ]
    result = layout_ring(entities, 500, 500)
    assert [n.id for n in result.positioned] == ["c", "a", "b", "d"]
    assert result.groups == [7, 8, None]


def test_ring_points_handles_zero_items() -> None:
    assert ring_points(0, 100, 100, 50) == []


@pytest.mark.parametrize("kind", sorted(LAYOUTS))
@pytest.mark.parametrize("size", [(400, 400), (1200, 800), (320, 900), (60, 60)])
def test_positions_stay_inside_margin(roster, kind, size) -> None:
    w, h = size
    for rotation in (0.0, 1.3, -4.0):
        result = layout(roster, w, h, rotation, kind=kind)
        assert len(result.positioned) == len(roster)
        for n in result.positioned:
            assert MARGIN <= n.x <= w - MARGIN
            assert MARGIN <= n.y <= h - MARGIN


def test_tiny_viewport_pins_to_centre() -> None:
    assert clamp_point(5, 2000, 30, 1000, MARGIN) == Point(15, 974)


@pytest.mark.parametrize("kind", sorted(LAYOUTS))
def test_empty_dataset(kind) -> None:
    result = layout([], 400, 400, kind=kind)
    assert result.positioned == []
    assert result.group_centers == {}
    assert result.groups == []


def test_layout_does_not_mutate_entities(roster) -> None:
    before = list(roster)
    result = layout(roster, 800, 600)
    assert roster == before
    assert all(isinstance(n, PositionedEntity) for n in result.positioned)
    assert {n.id for n in result.positioned} == {e.id for e in roster}
    assert not hasattr(roster[0], "x")


def test_clusters_group_by_year_with_no_year_bucket(roster) -> None:
    result = layout_clusters(roster, 1000, 1000)
    assert result.groups == [7, 8, 9, None]
    assert set(result.group_centers) == {7, 8, 9, None}
    big_r = 1000 * DEFAULT_LAYOUT["cluster_radius"]
    first = result.group_centers[7]
    assert first.x == pytest.approx(500)
    assert first.y == pytest.approx(500 - big_r)
    for n in result.positioned:
        assert n.group_center == result.group_centers[n.year]


def test_single_member_group_sits_on_its_centre(roster) -> None:
    result = layout_clusters(roster, 1000, 1000)
    eli = next(n for n in result.positioned if n.name == "Eli")
    assert (eli.x, eli.y) == pytest.approx(tuple(result.group_centers[9]))


@pytest.mark.parametrize("rotation", [0.0, 0.7, -2.1])
def test_inner_ring_turns_at_a_fraction_of_rotation(roster, rotation) -> None:
    result = layout_clusters(roster, 1000, 1000, rotation)
    # year 7 is the first of four groups; Ava sorts first inside it
    outer = -math.pi / 2 + rotation + (0 / 4) * 2 * math.pi
    inner = -math.pi / 2 + DEFAULT_LAYOUT["inner_rotation"] * outer
    base, step, lo, hi = DEFAULT_LAYOUT["cluster_scale"]
    local_r = 1000 * DEFAULT_LAYOUT["cluster_member_radius"] * min(max(base + 2 * step, lo), hi)
    center = result.group_centers[7]
    ava = next(n for n in result.positioned if n.name == "Ava")
    assert ava.x == pytest.approx(center.x + local_r * math.cos(inner))
    assert ava.y == pytest.approx(center.y + local_r * math.sin(inner))


def test_members_ring_around_centre(roster) -> None:
    result = layout_clusters(roster, 1000, 1000)
    year7 = [n for n in result.positioned if n.year == 7]
    center = result.group_centers[7]
    dists = [math.hypot(n.x - center.x, n.y - center.y) for n in year7]
    assert dists[0] == pytest.approx(dists[1])
    assert dists[0] > 0


def test_rotation_spins_centres(roster) -> None:
    still = layout_clusters(roster, 1000, 1000, 0.0)
    spun = layout_clusters(roster, 1000, 1000, math.pi / 2)
    # a quarter turn moves year 7 from the top to the right
    assert spun.group_centers[7].x == pytest.approx(500 + 1000 * DEFAULT_LAYOUT["cluster_radius"])
    assert spun.group_centers[7].y == pytest.approx(500)
    assert _coords(still) != _coords(spun)


def test_layout_is_deterministic(roster) -> None:
    for kind in LAYOUTS:
        assert _coords(layout(roster, 900, 700, 0.4, kind=kind)) == _coords(layout(roster, 900, 700, 0.4, kind=kind))


def test_filter_keeps_ring_position(roster) -> None:
    full = layout_clusters(roster, 1000, 1000)
    only8 = layout_clusters(roster, 1000, 1000, group_filter="Year 8")
    assert only8.groups == [8]
    assert {n.year for n in only8.positioned} == {8}
    assert only8.group_centers[8] == full.group_centers[8]
    assert _coords(only8) == {k: v for k, v in _coords(full).items() if k in {"s3", "s4"}}


def test_single_group_can_be_recentred(roster) -> None:
    result = layout_clusters(roster, 1000, 800, group_filter=8, center_single_group=True)
    assert result.group_centers[8] == Point(500, 400)
    for n in result.positioned:
        assert n.group_center == Point(500, 400)


def test_filter_without_digits_selects_no_year_bucket(roster) -> None:
    result = layout(roster, 800, 800, group_filter="unassigned")
    assert [n.name for n in result.positioned] == ["Fin"]


def test_ring_and_scatter_filter(roster) -> None:
    full = layout(roster, 800, 800, kind="ring")
    only7 = layout(roster, 800, 800, kind="ring", group_filter=7)
    assert {n.year for n in only7.positioned} == {7}
    assert _coords(only7) == {k: v for k, v in _coords(full).items() if k in {"s1", "s2"}}
    assert len(layout(roster, 800, 800, kind="scatter", group_filter="all").positioned) == len(roster)


def test_scatter_is_keyed_by_id() -> None:
    a = normalize([{"id": "alpha"}, {"id": "beta"}])
    b = normalize([{"id": "beta"}, {"id": "alpha"}, {"id": "gamma"}])
    pa = _coords(layout(a, 800, 600, kind="scatter"))
    pb = _coords(layout(b, 800, 600, kind="scatter"))
    assert pa["alpha"] == pb["alpha"]
    assert pa["beta"] == pb["beta"]
    assert hash_seed("") == 2166136261
    assert hash_seed("a") == 0xE40C292C


def test_unknown_layout_kind() -> None:
    with pytest.raises(ValueError):
        layout([], 100, 100, kind="spiral")


def test_keep_active_visible(roster) -> None:
    only8 = layout(roster, 800, 800, group_filter=8)
    assert keep_active_visible("s3", only8) == "s3"
    assert keep_active_visible("s1", only8) is None
    assert keep_active_visible(None, only8) is None

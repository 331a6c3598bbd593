"""Deterministic geometric layouts for the roster.

Three families are available:

- ``ring``: every student on one circle, ordered by year then name.
- ``clusters``: one small ring per year, with the year centres spread around a big ring.
  ``rotation`` spins the big ring and, at 35% strength, each small ring.
- ``scatter``: an organic cloud seeded from each student's id (same input, same picture).

Every function returns fresh PositionedEntity objects; the input Entities are untouched.
All points are clamped to the viewport minus a margin.
"""
from __future__ import annotations
import logging
import math
import random
from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from data import Entity, ENTITY_FIELDS, parse_year

logger = logging.getLogger(__name__)

ALL_GROUPS = "all"

DEFAULT_LAYOUT = {
    "margin": 26.0,
    "start_offset": -math.pi / 2,    # first item points up
    "ring_radius": 0.40,             # * min(W, H)
    "cluster_radius": 0.28,          # year centres, * min(W, H)
    "cluster_member_radius": 0.06,   # * min(W, H), scaled by group size
    "cluster_scale": (0.7, 0.06, 0.8, 1.6),  # base, per member, lower, upper
    "inner_rotation": 0.35,
    "scatter_spread": (140.0, 0.36, 120.0, 0.28),  # min x, * W, min y, * H
    "scatter_jitter": (18.0, 14.0),
}


class Point(NamedTuple):
    x: float
    y: float


@dataclass(frozen=True)
class PositionedEntity(Entity):
    x: float = 0.0
    y: float = 0.0
    group_center: Optional[Point] = None

    @classmethod
    def place(cls, entity: Entity, x: float, y: float, center: Optional[Point] = None) -> "PositionedEntity":
        attrs = {f: getattr(entity, f) for f in ENTITY_FIELDS}
        return cls(x=x, y=y, group_center=center, **attrs)


class Layout(NamedTuple):
    positioned: List[PositionedEntity]
    group_centers: Dict[Optional[int], Point]
    groups: List[Optional[int]]


def _config(overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    cfg = dict(DEFAULT_LAYOUT)
    if overrides:
        cfg.update(overrides)
    return cfg


def clamp(n: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, n))


def clamp_point(x: float, y: float, width: float, height: float, margin: float) -> Point:
    """Keep a point inside [margin, size - margin]; a too-small axis pins to its centre."""
    def _axis(v: float, size: float) -> float:
        if size - margin < margin:
            return size / 2.0
        return clamp(v, margin, size - margin)
    return Point(_axis(x, width), _axis(y, height))


def ring_points(count: int, cx: float, cy: float, radius: float,
                offset: float = -math.pi / 2, rotation: float = 0.0) -> List[Point]:
    """Item i of count sits at angle offset + (i / count) * 2pi + rotation."""
    denom = max(count, 1)
    pts = []
    for i in range(count):
        theta = offset + (i / denom) * 2 * math.pi + rotation
        pts.append(Point(cx + radius * math.cos(theta), cy + radius * math.sin(theta)))
    return pts


def group_key(entity: Entity) -> Optional[int]:
    return entity.year


def _group_sort_key(key: Optional[int]) -> Tuple[int, int]:
    # absent year sorts last
    return (1, 0) if key is None else (0, key)


def _name_key(entity: Entity) -> Tuple[str, str, str]:
    return (entity.name.lower(), entity.name, entity.id)


def ordered_groups(entities: List[Entity]) -> List[Optional[int]]:
    return sorted({group_key(e) for e in entities}, key=_group_sort_key)


def resolve_filter(group_filter: Any) -> Any:
    """Select everything for "all" or None, otherwise read the filter like a year.

    A value with no digits selects the students without a year."""
    if group_filter is None:
        return ALL_GROUPS
    if isinstance(group_filter, str) and group_filter.strip().lower() == ALL_GROUPS:
        return ALL_GROUPS
    return parse_year(group_filter)


def _apply_filter(nodes: List[PositionedEntity], group_filter: Any) -> List[PositionedEntity]:
    wanted = resolve_filter(group_filter)
    if wanted == ALL_GROUPS:
        return nodes
    return [n for n in nodes if group_key(n) == wanted]


def layout_ring(entities: List[Entity], width: float, height: float, rotation: float = 0.0,
                group_filter: Any = ALL_GROUPS, config: Optional[Dict[str, Any]] = None) -> Layout:
    """Flat ring of every student, sorted by year then name.

    The ring is always laid out for the full roster and the filter is applied afterwards,
    so filtered students keep their unfiltered positions."""
    cfg = _config(config)
    margin = cfg["margin"]
    cx, cy = width / 2.0, height / 2.0
    radius = min(width, height) * cfg["ring_radius"]
    ordered = sorted(entities, key=lambda e: (_group_sort_key(group_key(e)), _name_key(e)))
    pts = ring_points(len(ordered), cx, cy, radius, cfg["start_offset"], rotation)
    nodes = [
        PositionedEntity.place(e, *clamp_point(p.x, p.y, width, height, margin))
        for e, p in zip(ordered, pts)
    ]
    nodes = _apply_filter(nodes, group_filter)
    groups = ordered_groups(nodes)
    return Layout(nodes, {}, groups)


def layout_clusters(entities: List[Entity], width: float, height: float, rotation: float = 0.0,
                    group_filter: Any = ALL_GROUPS, center_single_group: bool = False,
                    config: Optional[Dict[str, Any]] = None) -> Layout:
    """Year constellations: a small ring per year, year centres around a big ring.

    Filtering keeps every centre where it would be unfiltered; with center_single_group
    a lone remaining group is moved to the viewport centre instead."""
    cfg = _config(config)
    margin = cfg["margin"]
    cx, cy = width / 2.0, height / 2.0
    short_side = min(width, height)
    big_r = short_side * cfg["cluster_radius"]
    base_r = short_side * cfg["cluster_member_radius"]
    scale_base, scale_step, scale_lo, scale_hi = cfg["cluster_scale"]

    by_group: Dict[Optional[int], List[Entity]] = {}
    for e in entities:
        by_group.setdefault(group_key(e), []).append(e)
    groups = sorted(by_group, key=_group_sort_key)

    offset = cfg["start_offset"] + rotation
    denom = max(len(groups), 1)
    centers: Dict[Optional[int], Point] = {}
    angles: Dict[Optional[int], float] = {}
    for idx, g in enumerate(groups):
        a = offset + (idx / denom) * 2 * math.pi
        angles[g] = a
        centers[g] = Point(cx + math.cos(a) * big_r, cy + math.sin(a) * big_r)

    wanted = resolve_filter(group_filter)
    if wanted != ALL_GROUPS:
        groups = [g for g in groups if g == wanted]
        centers = {g: centers[g] for g in groups}
    if center_single_group and len(groups) == 1:
        centers[groups[0]] = Point(cx, cy)

    shown = {g: clamp_point(c.x, c.y, width, height, margin) for g, c in centers.items()}
    nodes = []
    for g in groups:
        members = sorted(by_group[g], key=_name_key)
        center = centers[g]
        if len(members) == 1:
            local_r = 0.0
        else:
            local_r = base_r * clamp(scale_base + len(members) * scale_step, scale_lo, scale_hi)
        local_offset = cfg["start_offset"] + angles[g] * cfg["inner_rotation"]
        for e, p in zip(members, ring_points(len(members), center.x, center.y, local_r, local_offset)):
            nodes.append(PositionedEntity.place(e, *clamp_point(p.x, p.y, width, height, margin), center=shown[g]))
    return Layout(nodes, shown, groups)


def hash_seed(text: str) -> int:
    """32-bit FNV-1a hash of a string."""
    h = 2166136261
    for ch in str(text):
        h ^= ord(ch)
        h = (h * 16777619) & 0xFFFFFFFF
    return h


def layout_scatter(entities: List[Entity], width: float, height: float, rotation: float = 0.0,
                   group_filter: Any = ALL_GROUPS, config: Optional[Dict[str, Any]] = None) -> Layout:
    """Organic cloud around the centre; each position is seeded by the student id."""
    cfg = _config(config)
    margin = cfg["margin"]
    cx, cy = width / 2.0, height / 2.0
    min_x, fx, min_y, fy = cfg["scatter_spread"]
    spread_x, spread_y = max(min_x, width * fx), max(min_y, height * fy)
    jitter_x, jitter_y = cfg["scatter_jitter"]

    nodes = []
    for e in entities:
        rnd = random.Random(hash_seed(e.id))
        r = rnd.random() ** 0.62
        a = rnd.random() * 2 * math.pi + rotation
        jx = (rnd.random() * 2 - 1) * jitter_x
        jy = (rnd.random() * 2 - 1) * jitter_y
        x = cx + math.cos(a) * r * spread_x + jx
        y = cy + math.sin(a) * r * spread_y + jy
        nodes.append(PositionedEntity.place(e, *clamp_point(x, y, width, height, margin)))
    nodes = _apply_filter(nodes, group_filter)
    return Layout(nodes, {}, ordered_groups(nodes))


LAYOUTS = {
    "clusters": layout_clusters,
    "ring": layout_ring,
    "scatter": layout_scatter,
}


def layout(entities: List[Entity], width: float, height: float, rotation: float = 0.0,
           group_filter: Any = ALL_GROUPS, kind: str = "clusters",
           center_single_group: bool = False, config: Optional[Dict[str, Any]] = None) -> Layout:
    if kind not in LAYOUTS:
        raise ValueError(f"Unknown layout {kind!r}; expected one of {sorted(LAYOUTS)}")
    entities = list(entities or [])
    width, height = max(float(width), 0.0), max(float(height), 0.0)
    if kind == "clusters":
        result = layout_clusters(entities, width, height, rotation, group_filter, center_single_group, config)
    else:
        result = LAYOUTS[kind](entities, width, height, rotation, group_filter, config)
    logger.debug("Laid out %d of %d students (%s)", len(result.positioned), len(entities), kind)
    return result


def keep_active_visible(active_id: Optional[str], result: Layout) -> Optional[str]:
    """Drop a selection that is no longer on screen."""
    if active_id and any(n.id == active_id for n in result.positioned):
        return active_id
    return None

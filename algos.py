import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import networkx as nx
import pandas as pd

from data import Entity, TAG_FIELDS

logger = logging.getLogger(__name__)

DEFAULT_MODE = "ideal"

CONNECT_MODES = [
    {"key": "ideal", "label": "Ideal band"},
    {"key": "instruments", "label": "Same instruments"},
    {"key": "influences", "label": "Similar influences"},
]

MODE_ALIASES = {"band": "ideal"}

# Weight per shared tag, per mode
MODE_WEIGHTS: Dict[str, Dict[str, float]] = {
    "instruments": {"instruments": 5.0, "roles": 1.0, "genres": 0.5, "artists": 0.5, "geek": 0.0},
    "influences": {"artists": 4.0, "genres": 2.0, "instruments": 0.5, "roles": 0.5, "geek": 0.0},
    "ideal": {"instruments": 3.0, "genres": 2.0, "artists": 2.0, "roles": 1.0, "geek": 0.75},
}

# Modes that reward a shared wish to collaborate
COLLAB_BONUS_MODES = {"ideal": 1.0}
COLLAB_OPEN = {"yes", "maybe"}

# (min, max) number of links drawn for the active student
LINK_LIMITS = {"desktop": (3, 12), "mobile": (3, 8)}
DEFAULT_LINKS = {"desktop": 6, "mobile": 3}


@dataclass(frozen=True)
class Link:
    source: Entity
    target: Entity
    raw_score: float
    ratio: float


def resolve_mode(mode: Any) -> str:
    """Return the canonical mode key; unknown modes fall back to the blended default."""
    key = str(mode or "").strip().lower()
    key = MODE_ALIASES.get(key, key)
    if key not in MODE_WEIGHTS:
        logger.debug("Unknown mode %r, using %r", mode, DEFAULT_MODE)
        return DEFAULT_MODE
    return key


def _tag_set(entity: Entity, field: str) -> set:
    return {str(t).strip().lower() for t in (getattr(entity, field, None) or ()) if str(t).strip()}


def overlap_counts(a: Entity, b: Entity) -> Dict[str, int]:
    """Number of distinct shared tokens per tag attribute."""
    return {f: len(_tag_set(a, f) & _tag_set(b, f)) for f in TAG_FIELDS}


def shared_tags(a: Entity, b: Entity) -> Dict[str, List[str]]:
    """Sorted shared tokens per attribute, only for attributes with any overlap."""
    shared = {}
    for f in TAG_FIELDS:
        inter = sorted(_tag_set(a, f) & _tag_set(b, f))
        if inter:
            shared[f] = inter
    return shared


def collab_bonus(a: Entity, b: Entity) -> float:
    """+1 for each side that says yes while the other is open to it."""
    ca = str(a.collab or "").strip().lower()
    cb = str(b.collab or "").strip().lower()
    bonus = 0.0
    if ca == "yes" and cb in COLLAB_OPEN:
        bonus += 1.0
    if cb == "yes" and ca in COLLAB_OPEN:
        bonus += 1.0
    return bonus


def score(a: Optional[Entity], b: Optional[Entity], mode: Any = DEFAULT_MODE) -> float:
    """Weighted tag overlap between two students; 0 for a missing or identical student."""
    if a is None or b is None or a.id == b.id:
        return 0.0
    key = resolve_mode(mode)
    weights = MODE_WEIGHTS[key]
    counts = overlap_counts(a, b)
    total = sum(counts[f] * weights.get(f, 0.0) for f in TAG_FIELDS)
    if key in COLLAB_BONUS_MODES:
        total += COLLAB_BONUS_MODES[key] * collab_bonus(a, b)
    return max(total, 0.0)


def clamp_links(top_n: Any, context: str = "desktop") -> int:
    lo, hi = LINK_LIMITS.get(context, LINK_LIMITS["desktop"])
    try:
        n = float(top_n)
    except (TypeError, ValueError):
        return lo
    if math.isnan(n):
        return lo
    return int(max(lo, min(hi, n)))


def select_links(
    active: Optional[Entity],
    pool: List[Entity],
    mode: Any = DEFAULT_MODE,
    top_n: Any = None,
    context: str = "desktop",
) -> List[Link]:
    """Rank pool members against the active student and keep the strongest top_n.

    top_n is clamped to LINK_LIMITS[context]. Zero scores are dropped; ties are ordered
    by name then id. The first link has ratio 1.0 and ratios never increase."""
    if active is None or not pool:
        return []
    if top_n is None:
        top_n = DEFAULT_LINKS.get(context, DEFAULT_LINKS["desktop"])
    limit = clamp_links(top_n, context)

    scored = []
    for cand in pool:
        if cand is None or cand.id == active.id:
            continue
        s = score(active, cand, mode)
        if s > 0:
            scored.append((cand, s))
    scored.sort(key=lambda x: (-x[1], x[0].name.lower(), x[0].id))
    scored = scored[:limit]

    max_score = scored[0][1] if scored else 1.0
    return [
        Link(source=active, target=cand, raw_score=s, ratio=max(0.0, min(1.0, s / max_score)))
        for cand, s in scored
    ]


def match_summary(links: List[Link]) -> List[Dict[str, Any]]:
    """Rows for the matches panel, strongest first."""
    return [
        {"id": l.target.id, "name": l.target.name, "ratio": l.ratio, "year": l.target.year}
        for l in links
    ]


def build_link_graph(
    entities: List[Entity],
    mode: Any = DEFAULT_MODE,
    top_n: Any = None,
    context: str = "desktop",
) -> nx.Graph:
    """Undirected graph of every student's top links.

    An edge appears when either endpoint selects the other; weight is the raw score."""
    key = resolve_mode(mode)
    G = nx.Graph()
    for e in entities:
        attrs = {"label": e.name}
        if e.year is not None:
            attrs["year"] = e.year
        for f in TAG_FIELDS:
            attrs[f] = ", ".join(e.tags(f))
        G.add_node(e.id, **attrs)
    for e in entities:
        for link in select_links(e, entities, key, top_n, context):
            u, v = link.source.id, link.target.id
            if G.has_edge(u, v):
                continue
            shared = shared_tags(link.source, link.target)
            G.add_edge(
                u, v,
                weight=link.raw_score,
                shared=", ".join(f"{f}: {'/'.join(items)}" for f, items in shared.items()),
            )
    G.graph["mode"] = key
    return G


def compute_communities(G: nx.Graph) -> Dict[str, int]:
    """Assign community ids via greedy modularity."""
    if G.number_of_edges() == 0:
        return {n: i for i, n in enumerate(G.nodes())}
    from networkx.algorithms.community import greedy_modularity_communities
    comms = list(greedy_modularity_communities(G, weight="weight"))
    mapping = {}
    for i, cset in enumerate(comms):
        for n in cset:
            mapping[n] = i
    return mapping


def graph_summary(G: nx.Graph) -> Dict[str, Any]:
    communities = compute_communities(G)
    return {
        "nodes": G.number_of_nodes(),
        "edges": G.number_of_edges(),
        "communities": len(set(communities.values())),
        "avg_degree": sum(dict(G.degree()).values()) / max(G.number_of_nodes(), 1),
        "mode": G.graph.get("mode", DEFAULT_MODE),
    }


def graph_to_edge_dataframe(G: nx.Graph) -> pd.DataFrame:
    data = []
    for u, v, d in G.edges(data=True):
        data.append({
            "source": u,
            "target": v,
            "weight": d.get("weight"),
            "shared": d.get("shared", ""),
        })
    return pd.DataFrame(data, columns=["source", "target", "weight", "shared"])


def graph_to_node_dataframe(G: nx.Graph) -> pd.DataFrame:
    communities = compute_communities(G)
    data = []
    for n, d in G.nodes(data=True):
        data.append({
            "id": n,
            "label": d.get("label", n),
            "year": d.get("year"),
            "degree": G.degree(n),
            "weighted_degree": sum(ed.get("weight", 0.0) for _, _, ed in G.edges(n, data=True)),
            "community": communities.get(n, -1),
        })
    return pd.DataFrame(data, columns=["id", "label", "year", "degree", "weighted_degree", "community"])


def strongest_pairs(G: nx.Graph, limit: int = 10) -> List[Tuple[str, str, float]]:
    """Heaviest edges, strongest first."""
    pairs = [(u, v, float(d.get("weight", 0.0))) for u, v, d in G.edges(data=True)]
    return sorted(pairs, key=lambda x: (-x[2], x[0], x[1]))[:limit]

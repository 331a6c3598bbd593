import logging
import math
import pathlib
from typing import Any, Dict, List, Optional

import networkx as nx

from data import (
    Entity,
    TAG_FIELDS,
    load_data,
    normalize,
    search,
    find_entity,
    entities_to_dataframe,
)
from algos import (
    CONNECT_MODES,
    DEFAULT_LINKS,
    DEFAULT_MODE,
    LINK_LIMITS,
    Link,
    build_link_graph,
    graph_summary,
    graph_to_edge_dataframe,
    graph_to_node_dataframe,
    match_summary,
    resolve_mode,
    select_links,
    shared_tags,
    strongest_pairs,
)
from layout import ALL_GROUPS, LAYOUTS, Layout, keep_active_visible, layout

try:
    import plotly.graph_objects as go
except ImportError:
    go = None

try:
    import streamlit as st
except ImportError:
    st = None

try:
    from streamlit_plotly_events import plotly_events
except ImportError:
    plotly_events = None

logger = logging.getLogger(__name__)

# ------------------- Core helpers -------------------

YEAR_PALETTE = [
    '#00ff66', '#38bdf8', '#eab308', '#f97316',
    '#a78bfa', '#fb7185', '#10b981', '#84cc16',
]
NO_YEAR_COLOR = '#7f7f7f'
LINK_COLOR = '#cfd6df'
ACTIVE_COLOR = '#00ffff'


def link_width(ratio: float, compact: bool = False) -> float:
    return 1.1 + max(0.0, min(1.0, ratio)) * (2.2 if compact else 3.0)


def year_color(year: Optional[int], groups: List[Optional[int]]) -> str:
    if year is None:
        return NO_YEAR_COLOR
    known = [g for g in groups if g is not None]
    idx = known.index(year) if year in known else year
    return YEAR_PALETTE[idx % len(YEAR_PALETTE)]


def year_label(year: Optional[int]) -> str:
    return "No year" if year is None else f"Year {year}"


def _hover(e: Entity) -> str:
    lines = [e.name, year_label(e.year)]
    for f in TAG_FIELDS:
        if e.tags(f):
            lines.append(f"{f}={', '.join(e.tags(f))}")
    return "<br>".join(lines)


def plot_constellation(
    result: Layout,
    links: List[Link],
    active_id: Optional[str] = None,
    width: float = 1200,
    height: float = 800,
    compact: bool = False,
):
    """Return a Plotly Figure of positioned students and the active student's links.

    Positions are screen coordinates, so the y axis is reversed."""
    if go is None:
        raise RuntimeError("Plotly not installed. Please pip install plotly.")

    by_id = {n.id: n for n in result.positioned}
    traces = []
    for l in links:
        src, dst = by_id.get(l.source.id), by_id.get(l.target.id)
        if src is None or dst is None:
            continue
        shared = shared_tags(l.source, l.target)
        traces.append(go.Scatter(
            x=[src.x, dst.x], y=[src.y, dst.y], mode='lines',
            line=dict(color=LINK_COLOR, width=link_width(l.ratio, compact)),
            opacity=0.35 + 0.65 * l.ratio,
            hoverinfo='text',
            text="<br>".join(f"{f}: {', '.join(v)}" for f, v in shared.items()),
            showlegend=False,
        ))

    if result.group_centers:
        traces.append(go.Scatter(
            x=[c.x for c in result.group_centers.values()],
            y=[c.y for c in result.group_centers.values()],
            mode='text', text=[year_label(g) for g in result.group_centers],
            textfont=dict(color='#555555', size=11),
            hoverinfo='none', showlegend=False,
        ))

    linked = {l.target.id for l in links}
    sizes, line_w, colors = [], [], []
    for n in result.positioned:
        colors.append(year_color(n.year, result.groups))
        if n.id == active_id:
            sizes.append(22); line_w.append(4)
        elif n.id in linked:
            sizes.append(16); line_w.append(2)
        else:
            sizes.append(12); line_w.append(1)
    traces.append(go.Scatter(
        x=[n.x for n in result.positioned], y=[n.y for n in result.positioned],
        mode='markers+text' if not compact else 'markers',
        text=[n.name for n in result.positioned], textposition='top center',
        textfont=dict(color='#cccccc', size=10),
        hovertext=[_hover(n) for n in result.positioned], hoverinfo='text',
        customdata=[n.id for n in result.positioned],
        marker=dict(
            size=sizes, color=colors,
            line=dict(width=line_w, color=[ACTIVE_COLOR if n.id == active_id else '#222222'
                                           for n in result.positioned]),
        ),
        showlegend=False,
    ))

    fig = go.Figure(
        data=traces,
        layout=go.Layout(
            showlegend=False, hovermode='closest',
            margin=dict(b=0, l=0, r=0, t=0),
            xaxis=dict(range=[0, width], showgrid=False, zeroline=False, showticklabels=False),
            yaxis=dict(range=[height, 0], showgrid=False, zeroline=False, showticklabels=False,
                       scaleanchor='x'),
            width=width, height=height,
            plot_bgcolor='#000000', paper_bgcolor='#000000',
            font=dict(color='white'),
        )
    )
    return fig


def build_view(
    entities: List[Entity],
    width: float,
    height: float,
    mode: str = DEFAULT_MODE,
    top_n: Any = None,
    rotation: float = 0.0,
    group_filter: Any = ALL_GROUPS,
    kind: str = "clusters",
    active_id: Optional[str] = None,
    compact: bool = False,
):
    """Full recompute of layout and links for one frame of the UI."""
    context = "mobile" if compact else "desktop"
    result = layout(entities, width, height, rotation, group_filter, kind=kind, center_single_group=compact)
    active_id = keep_active_visible(active_id, result)
    active = find_entity(result.positioned, active_id)
    links = select_links(active, result.positioned, mode, top_n, context)
    return result, active, links


# ------------------- Streamlit UI -------------------

def run_streamlit_app():
    st.set_page_config(page_title="Band Constellation", layout="wide")
    st.title("Band Constellation")
    uploaded = st.file_uploader("Upload roster (JSON / CSV / Excel)", type=["json", "csv", "xlsx", "xls"])
    if not uploaded:
        st.info("Upload a roster file to begin.")
        return
    suffix = pathlib.Path(uploaded.name).suffix.lower()
    temp_path = pathlib.Path("_uploaded_tmp" + suffix)
    temp_path.write_bytes(uploaded.getbuffer())

    try:
        entities = normalize(load_data(str(temp_path)))
    except Exception as e:
        st.error(f"Failed to parse file: {e}")
        return
    if not entities:
        st.error("No students found. Check input file format.")
        return

    st.sidebar.header("Matching")
    mode_labels = {m["label"]: m["key"] for m in CONNECT_MODES}
    mode = mode_labels[st.sidebar.radio("Connect by", list(mode_labels))]
    compact = st.sidebar.checkbox("Compact (mobile) view", value=False)
    context = "mobile" if compact else "desktop"
    lo, hi = LINK_LIMITS[context]
    top_n = st.sidebar.slider("Links", lo, hi, DEFAULT_LINKS[context])

    st.sidebar.header("Layout")
    kind = st.sidebar.selectbox("Arrangement", list(LAYOUTS))
    years = sorted({e.year for e in entities if e.year is not None})
    year_choice = st.sidebar.selectbox("Year", ["All"] + [year_label(y) for y in years])
    group_filter = ALL_GROUPS if year_choice == "All" else years[[year_label(y) for y in years].index(year_choice)]
    rotation = math.radians(st.sidebar.slider("Rotation (degrees)", -180, 180, 0, 5))
    width = st.sidebar.number_input("Width (px)", 320, 2400, 480 if compact else 1200, 20)
    height = st.sidebar.number_input("Height (px)", 320, 1600, 720 if compact else 800, 20)

    # Search & selection
    active_id = st.session_state.get("active_id")
    query = st.sidebar.text_input("Search name")
    matches = search(entities, query)
    if query and not matches:
        st.sidebar.info("No matches")
    if matches:
        disp = [f"{e.name} ({e.id})" for e in matches]
        sel = st.sidebar.selectbox("Matches", disp)
        if sel:
            active_id = matches[disp.index(sel)].id
    if st.sidebar.button("Clear selection"):
        active_id = None

    result, active, links = build_view(
        entities, width, height, mode, top_n, rotation, group_filter, kind, active_id, compact
    )
    st.session_state["active_id"] = active.id if active else None

    fig = plot_constellation(result, links, active.id if active else None, width, height, compact)
    if plotly_events:
        clicked = plotly_events(fig, click_event=True, hover_event=False,
                                override_width=width, override_height=height)
        # nodes are the last trace
        if clicked and clicked[0].get("curveNumber") == len(fig.data) - 1:
            idx = clicked[0].get("pointIndex")
            if idx is not None and 0 <= idx < len(result.positioned):
                node_id = result.positioned[idx].id
                st.session_state["active_id"] = None if node_id == st.session_state.get("active_id") else node_id
                st.rerun()
    else:
        st.plotly_chart(fig, use_container_width=False)
        st.caption("Install streamlit-plotly-events for clickable nodes.")

    if active:
        st.sidebar.markdown("---")
        st.sidebar.subheader(active.name)
        st.sidebar.caption(year_label(active.year))
        for f in TAG_FIELDS:
            if active.tags(f):
                st.sidebar.markdown(f"**{f.title()}:** {', '.join(active.tags(f))}")
        st.subheader(f"Matches for {active.name}")
        if not links:
            st.caption("No matches in this view.")
        for row in match_summary(links):
            st.markdown(f"{row['name']} · {year_label(row['year'])}")
            st.progress(row["ratio"])

    with st.expander("Roster"):
        st.dataframe(entities_to_dataframe(entities), use_container_width=True)


# ------------------- CLI -------------------

def run_cli(argv: Optional[List[str]] = None) -> Dict[str, Any]:
    import argparse
    parser = argparse.ArgumentParser(description="Build and visualise the band constellation")
    parser.add_argument("--input", required=True, help="Input JSON/CSV/Excel path")
    parser.add_argument("--output-prefix", default="constellation", help="Prefix for output files")
    parser.add_argument("--mode", default=DEFAULT_MODE, help="ideal | instruments | influences")
    parser.add_argument("--links", type=int, default=DEFAULT_LINKS["desktop"], help="Links per student")
    parser.add_argument("--layout", default="clusters", choices=sorted(LAYOUTS))
    parser.add_argument("--width", type=float, default=1200)
    parser.add_argument("--height", type=float, default=800)
    parser.add_argument("--active", default=None, help="Student id to draw links for")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    entities = normalize(load_data(args.input))
    mode = resolve_mode(args.mode)
    G = build_link_graph(entities, mode, args.links)
    summary = graph_summary(G)
    print("Summary:", summary)
    for u, v, w in strongest_pairs(G, limit=5):
        print(f"  {G.nodes[u].get('label', u)} - {G.nodes[v].get('label', v)}: {w:.2f}")
    graph_to_node_dataframe(G).to_csv(f"{args.output_prefix}_nodes.csv", index=False)
    graph_to_edge_dataframe(G).to_csv(f"{args.output_prefix}_edges.csv", index=False)
    nx.write_gml(G, f"{args.output_prefix}.gml")
    if go:
        result, active, links = build_view(
            entities, args.width, args.height, mode, args.links, kind=args.layout, active_id=args.active
        )
        if args.active and active is None:
            logger.warning("Student %r not found; drawing without links", args.active)
        fig = plot_constellation(result, links, active.id if active else None, args.width, args.height)
        fig.write_html(f"{args.output_prefix}.html")
        print("Interactive HTML written.")
    else:
        print("Plotly not installed; skipping HTML export.")
    return summary


if __name__ == "__main__":
    # Run the Streamlit app under `streamlit run`, otherwise the CLI
    if st is not None and st.runtime.exists():
        run_streamlit_app()
    else:
        run_cli()

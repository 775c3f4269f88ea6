"""Dash application rendering the live call graph as it accumulates."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import dash
import dash_cytoscape as cyto
from dash import Dash, Input, Output, State, dcc, html
from dash.exceptions import PreventUpdate

from call_graph_live.analysis.export import export_flow_diagram, node_label
from call_graph_live.analysis.heat import HeatTier, classify_heat
from call_graph_live.analysis.identity import qualified_name
from call_graph_live.analysis.models import CallFrame, CallSequence, GraphState
from call_graph_live.io.gateway import MERMAID_FILENAME, create_gateway
from call_graph_live.pipelines.session import VisualizationSession

cyto.load_extra_layouts()

LAYOUT_PRESETS = {
    "dagre": {"name": "dagre", "nodeSep": 120, "rankSep": 40, "animate": True, "animationDuration": 300},
    "cose": {"name": "cose", "idealEdgeLength": 120, "nodeRepulsion": 4200},
    "breadthfirst": {"name": "breadthfirst", "directed": True, "spacingFactor": 1.1, "padding": 25},
}

SAMPLE_SEQUENCE = CallSequence(
    frames=(
        CallFrame(source_file="test.js", line_number=1, structure_name="Test", method_name="test"),
        CallFrame(source_file="test2.js", line_number=2, structure_name="Test2", method_name="test2"),
    )
)


def _base_stylesheet() -> List[dict]:
    stylesheet: List[dict] = [
        {
            "selector": "node",
            "style": {
                "label": "data(label)",
                "text-wrap": "wrap",
                "text-max-width": "200px",
                "line-height": 1.5,
                "width": "label",
                "height": "label",
                "padding": "8px",
                "font-size": "10px",
                "text-valign": "center",
                "text-halign": "center",
                "shape": "round-rectangle",
                "background-color": "#fafbff",
                "border-width": 1,
                "border-color": "#ddd",
                "color": "#333",
            },
        },
        {
            "selector": "edge",
            "style": {
                "label": "data(count)",
                "font-size": "10px",
                "text-outline-width": 3,
                "text-outline-color": "#fff",
                "width": 1,
                "line-color": "#ddd",
                "target-arrow-color": "#ddd",
                "target-arrow-shape": "triangle",
                "curve-style": "bezier",
                "opacity": 0.8,
            },
        },
    ]
    return stylesheet


def build_stylesheet() -> List[dict]:
    """Cytoscape stylesheet: base styles plus one rule per heat tier for nodes and edges."""

    stylesheet = _base_stylesheet()
    for tier in HeatTier:
        style = tier.style
        stylesheet.append(
            {
                "selector": f'node[heat = "{tier.label}"]',
                "style": {"background-color": style.node_fill, "border-color": style.node_border},
            }
        )
        stylesheet.append(
            {
                "selector": f'edge[heat = "{tier.label}"]',
                "style": {
                    "line-color": style.edge_color,
                    "target-arrow-color": style.edge_color,
                    "opacity": style.edge_opacity,
                    "width": style.edge_width,
                },
            }
        )
    stylesheet.extend(
        [
            {
                "selector": "node[search_match = true]",
                "style": {"border-width": 3, "border-color": "#f97316"},
            },
            {
                "selector": "node:selected",
                "style": {"border-width": 2, "border-color": "#4682B4"},
            },
        ]
    )
    return stylesheet


def _create_elements(state: GraphState, search_term: str = "") -> Tuple[List[dict], List[dict]]:
    nodes: List[dict] = []
    edges: List[dict] = []
    term_lower = (search_term or "").strip().lower()

    for node in state.nodes.values():
        name = qualified_name(node)
        nodes.append(
            {
                "data": {
                    "id": node.id,
                    "label": node_label(node),
                    "file": node.source_file,
                    "lineNumber": node.last_line_number,
                    "structureName": node.structure_name,
                    "methodName": node.method_name,
                    "count": node.occurrence_count,
                    "heat": classify_heat(node.occurrence_count).label,
                    "search_match": term_lower in name.lower() if term_lower else False,
                }
            }
        )

    for edge in state.edges.values():
        edges.append(
            {
                "data": {
                    "id": f"{edge.source}->{edge.target}",
                    "source": edge.source,
                    "target": edge.target,
                    "count": edge.occurrence_count,
                    "heat": classify_heat(edge.occurrence_count).label,
                }
            }
        )

    return nodes, edges


def _layout_config(layout_mode: Optional[str], direction: Optional[str]) -> dict:
    layout_config = dict(LAYOUT_PRESETS.get(layout_mode or "dagre", LAYOUT_PRESETS["dagre"]))
    if layout_config["name"] == "dagre":
        layout_config["rankDir"] = direction or "TB"
    layout_config.setdefault("padding", 30)
    if layout_config.get("name") == "cose":
        layout_config.setdefault("animate", True)
        layout_config.setdefault("randomize", False)
    return layout_config


def _legend_item(tier: HeatTier) -> html.Div:
    bounds = f"{tier.lower}+" if tier.upper is None else f"{tier.lower}-{tier.upper}"
    chip = html.Span(
        className="legend-chip",
        style={"backgroundColor": tier.style.node_fill, "borderColor": tier.style.node_border},
    )
    return html.Div([chip, f"{tier.label} ({bounds})"], className="legend-item")


def _status_text(state: GraphState, session: VisualizationSession) -> str:
    text = f"{state.node_count} methods, {state.edge_count} call edges (revision {state.revision})"
    last = session.last_sequence
    if last is not None:
        text += f"; last sequence: {len(last)} frames"
        if last.trace_id:
            text += f" [{last.trace_id}]"
    return text


def create_app(
    session: VisualizationSession,
    *,
    poll_interval_ms: int = 1000,
    stream_queue_size: int = 256,
) -> Dash:
    """Create the viewer and mount the ingestion gateway on its Flask server."""

    app = dash.Dash(__name__)
    app.title = "Live Call Graph"
    app.server.register_blueprint(create_gateway(session, stream_queue_size=stream_queue_size))

    app.layout = html.Div(
        [
            html.Div(
                [
                    html.Div(
                        [
                            html.H1("Real-time Method Call Visualization", className="title"),
                            html.P(id="graph-status", className="subtitle"),
                        ],
                        className="header",
                    ),
                    html.Div(
                        [
                            html.Label("Graph layout"),
                            dcc.Dropdown(
                                id="layout-mode",
                                options=[
                                    {"label": "Hierarchical (dagre)", "value": "dagre"},
                                    {"label": "Force-directed (cose)", "value": "cose"},
                                    {"label": "Breadthfirst", "value": "breadthfirst"},
                                ],
                                value="dagre",
                                clearable=False,
                            ),
                        ],
                        className="control",
                    ),
                    html.Div(
                        [
                            html.Label("Direction"),
                            dcc.RadioItems(
                                id="layout-direction",
                                options=[
                                    {"label": "Vertical", "value": "TB"},
                                    {"label": "Horizontal", "value": "LR"},
                                ],
                                value="TB",
                                className="radio-control",
                            ),
                        ],
                        className="control",
                    ),
                    html.Div(
                        [
                            html.Label("Highlight"),
                            dcc.Input(
                                id="search-term",
                                type="text",
                                placeholder="Method name fragment...",
                                debounce=True,
                            ),
                        ],
                        className="control",
                    ),
                    html.Div(
                        [
                            html.Button("Add test nodes", id="add-test", n_clicks=0),
                            html.Button("Clear graph", id="clear-graph", n_clicks=0),
                            html.Button("Export as Mermaid", id="export-mermaid", n_clicks=0),
                        ],
                        className="actions",
                    ),
                    html.Div(id="action-info", className="path-info"),
                    html.Div(
                        [
                            _legend_item(tier) for tier in HeatTier
                        ],
                        className="legend",
                    ),
                ],
                className="sidebar",
            ),
            html.Div(
                [
                    cyto.Cytoscape(
                        id="call-graph",
                        style={"width": "100%", "height": "100%", "minHeight": "72vh"},
                        layout=_layout_config("dagre", "TB"),
                        elements=[],
                        stylesheet=build_stylesheet(),
                        wheelSensitivity=0.1,
                    ),
                ],
                className="graph-panel",
            ),
            dcc.Store(id="graph-revision", data=-1),
            dcc.Interval(id="refresh", interval=poll_interval_ms, n_intervals=0),
            dcc.Download(id="mermaid-download"),
        ],
        className="page",
    )

    @app.callback(
        Output("action-info", "children"),
        Input("add-test", "n_clicks"),
        Input("clear-graph", "n_clicks"),
        prevent_initial_call=True,
    )
    def handle_actions(_add_clicks: int, _clear_clicks: int) -> str:
        if dash.ctx.triggered_id == "clear-graph":
            session.reset()
            return "Graph cleared."
        delivered = session.publish(SAMPLE_SEQUENCE)
        return f"Test sequence delivered to {delivered} subscribers."

    @app.callback(
        Output("call-graph", "elements"),
        Output("call-graph", "layout"),
        Output("graph-status", "children"),
        Output("graph-revision", "data"),
        Input("refresh", "n_intervals"),
        Input("layout-mode", "value"),
        Input("layout-direction", "value"),
        Input("search-term", "value"),
        Input("action-info", "children"),
        State("graph-revision", "data"),
    )
    def update_graph(
        _n_intervals: int,
        layout_mode: str,
        direction: str,
        search_term: str | None,
        _action: str | None,
        known_revision: int,
    ) -> Tuple[List[dict], dict, str, int]:
        if dash.ctx.triggered_id == "refresh" and session.accumulator.revision == known_revision:
            raise PreventUpdate

        state = session.snapshot()
        nodes, edges = _create_elements(state, search_term or "")
        return nodes + edges, _layout_config(layout_mode, direction), _status_text(state, session), state.revision

    @app.callback(
        Output("mermaid-download", "data"),
        Input("export-mermaid", "n_clicks"),
        State("layout-direction", "value"),
        prevent_initial_call=True,
    )
    def export_mermaid(_n_clicks: int, direction: str) -> Dict[str, str]:
        text = export_flow_diagram(session.snapshot(), direction="LR" if direction == "LR" else "TD")
        return dcc.send_string(text, MERMAID_FILENAME)

    app.index_string = """
<!DOCTYPE html>
<html>
    <head>
        {%metas%}
        <title>{%title%}</title>
        {%favicon%}
        {%css%}
        <style>
            body {
                margin: 0;
                background: #f8fafc;
                color: #0f172a;
                font-family: 'Inter', sans-serif;
            }
            .page {
                display: grid;
                grid-template-columns: 320px 1fr;
                height: 100vh;
            }
            .sidebar {
                padding: 1.35rem;
                background: #ffffff;
                box-shadow: inset -1px 0 0 rgba(148, 163, 184, 0.35);
                display: flex;
                flex-direction: column;
                gap: 1.1rem;
                overflow-y: auto;
            }
            .graph-panel {
                padding: 1rem 1.7rem 1.7rem 1.5rem;
            }
            .graph-panel > div {
                width: 100%;
                height: 100%;
            }
            .header .title {
                margin: 0;
                font-size: 1.25rem;
                font-weight: 600;
            }
            .header .subtitle {
                margin: 0.3rem 0 0;
                color: #475569;
                font-size: 0.85rem;
            }
            .control {
                display: flex;
                flex-direction: column;
                gap: 0.55rem;
            }
            .control label {
                font-size: 0.78rem;
                text-transform: uppercase;
                letter-spacing: 0.08em;
                color: #64748b;
            }
            .actions {
                display: flex;
                flex-wrap: wrap;
                gap: 0.5rem;
            }
            .actions button {
                padding: 8px 16px;
            }
            .path-info {
                font-size: 0.8rem;
                color: #475569;
            }
            .legend {
                display: grid;
                gap: 0.4rem;
            }
            .legend-item {
                display: flex;
                align-items: center;
                gap: 0.45rem;
                font-size: 0.84rem;
            }
            .legend-chip {
                width: 13px;
                height: 13px;
                border-radius: 4px;
                border: 1px solid;
            }
        </style>
    </head>
    <body>
        {%app_entry%}
        <footer>
            {%config%}
            {%scripts%}
            {%renderer%}
        </footer>
    </body>
</html>
"""

    return app


__all__ = ["build_stylesheet", "create_app"]

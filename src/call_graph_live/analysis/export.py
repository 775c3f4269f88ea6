"""Exporters turning a graph snapshot into Mermaid flowcharts and JSON documents."""

from __future__ import annotations

import json
import re
from pathlib import Path

from call_graph_live.analysis.heat import classify_heat
from call_graph_live.analysis.models import GraphEdge, GraphNode, GraphState

FLOWCHART_DIRECTIONS = ("TD", "TB", "LR", "RL", "BT")

_ILLEGAL_ID_CHARS = re.compile(r"[^A-Za-z0-9_]")
_LABEL_ESCAPES = (
    ("#", "#35;"),
    ('"', "#quot;"),
    ("<", "#lt;"),
    (">", "#gt;"),
)
_LABEL_WHITESPACE = re.compile(r"[\r\n\t]+")


def _node_sort_key(node: GraphNode) -> tuple[str, str, str, str]:
    return (node.source_file, node.structure_name, node.method_name, node.id)


def _mermaid_id(node_id: str) -> str:
    return "n" + _ILLEGAL_ID_CHARS.sub("_", node_id)


def _escape_label(text: str) -> str:
    text = _LABEL_WHITESPACE.sub(" ", text)
    for raw, entity in _LABEL_ESCAPES:
        text = text.replace(raw, entity)
    return text


def _label_parts(node: GraphNode) -> tuple[str, str]:
    return (f"{node.source_file}:{node.last_line_number}", f"{node.structure_name}:{node.method_name}()")


def node_label(node: GraphNode, *, separator: str = "\n") -> str:
    """``file:line`` over ``Structure:method()``, as shown by the viewer."""

    return separator.join(_label_parts(node))


def export_flow_diagram(state: GraphState, *, direction: str = "TD") -> str:
    """
    Render ``state`` as a Mermaid ``flowchart``.

    Nodes are declared first, then one connection per edge labelled with its occurrence count.
    Ordering depends only on node content, so exporting the same state twice gives identical text.
    """

    direction = direction.upper()
    if direction not in FLOWCHART_DIRECTIONS:
        raise ValueError(f"Unsupported flowchart direction: {direction}")

    ordered = sorted(state.nodes.values(), key=_node_sort_key)
    rank = {node.id: idx for idx, node in enumerate(ordered)}

    lines = [f"flowchart {direction}"]
    for node in ordered:
        label = "<br>".join(_escape_label(part) for part in _label_parts(node))
        lines.append(f'    {_mermaid_id(node.id)}["{label}"]')

    lines.append("")

    edges: list[GraphEdge] = sorted(state.edges.values(), key=lambda edge: (rank[edge.source], rank[edge.target]))
    for edge in edges:
        lines.append(f"    {_mermaid_id(edge.source)} -->|{edge.occurrence_count}| {_mermaid_id(edge.target)}")

    return "\n".join(lines) + "\n"


def state_to_payload(state: GraphState) -> dict:
    """JSON-serialisable description of ``state`` including heat tiers."""

    ordered = sorted(state.nodes.values(), key=_node_sort_key)
    payload = {
        "revision": state.revision,
        "node_count": state.node_count,
        "edge_count": state.edge_count,
        "nodes": [],
        "edges": [],
    }
    for node in ordered:
        payload["nodes"].append(
            {
                "id": node.id,
                "file": node.source_file,
                "lineNumber": node.last_line_number,
                "structureName": node.structure_name,
                "methodName": node.method_name,
                "count": node.occurrence_count,
                "heat": classify_heat(node.occurrence_count).label,
            }
        )
    rank = {node.id: idx for idx, node in enumerate(ordered)}
    for edge in sorted(state.edges.values(), key=lambda item: (rank[item.source], rank[item.target])):
        payload["edges"].append(
            {
                "source": edge.source,
                "target": edge.target,
                "count": edge.occurrence_count,
                "heat": classify_heat(edge.occurrence_count).label,
            }
        )
    return payload


def export_graph_json(state: GraphState, destination: Path) -> None:
    """Persist ``state`` to a JSON document."""

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    with destination.open("w", encoding="utf-8") as handle:
        json.dump(state_to_payload(state), handle, indent=2)


__all__ = [
    "FLOWCHART_DIRECTIONS",
    "export_flow_diagram",
    "export_graph_json",
    "node_label",
    "state_to_payload",
]

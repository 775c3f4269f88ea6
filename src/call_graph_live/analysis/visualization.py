"""Static rendering of call graph snapshots."""

from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import networkx as nx

from call_graph_live.analysis.heat import classify_heat
from call_graph_live.analysis.models import GraphState


def _subset_graph(graph: nx.DiGraph, max_nodes: int | None) -> nx.DiGraph:
    if max_nodes is None or graph.number_of_nodes() <= max_nodes:
        return graph

    ranked = sorted(graph.nodes(data="count"), key=lambda item: item[1], reverse=True)
    keep = {node for node, _ in ranked[:max_nodes]}
    return graph.subgraph(keep).copy()


def plot_call_graph(
    state: GraphState,
    output_path: Path,
    *,
    max_nodes: int | None = 200,
    layout: str = "spring",
    show_labels: bool = True,
    title: str | None = None,
) -> Path:
    """
    Render a snapshot to ``output_path`` using matplotlib.

    Node and edge colours follow the heat tier of their occurrence count. Large graphs can be
    limited via ``max_nodes``, keeping the most frequently observed methods.
    """

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    graph = _subset_graph(state.to_networkx(), max_nodes)
    if graph.number_of_nodes() == 0:
        raise ValueError("Graph contains no nodes to visualize.")

    node_colours = [classify_heat(data["count"]).style.node_border for _, data in graph.nodes(data=True)]
    node_sizes = [300 + 40 * min(data["count"], 50) for _, data in graph.nodes(data=True)]
    edge_styles = [classify_heat(data["count"]).style for _, _, data in graph.edges(data=True)]

    if layout == "kamada-kawai":
        positions = nx.kamada_kawai_layout(graph)
    elif layout == "shell":
        positions = nx.shell_layout(graph)
    else:
        positions = nx.spring_layout(graph, seed=42, iterations=100)

    plt.figure(figsize=(12, 12))
    nx.draw_networkx_edges(
        graph,
        positions,
        edge_color=[style.edge_color for style in edge_styles],
        width=[style.edge_width for style in edge_styles],
        arrows=True,
        arrowstyle="-|>",
    )
    nx.draw_networkx_nodes(graph, positions, node_color=node_colours, node_size=node_sizes, alpha=0.9)
    nx.draw_networkx_edge_labels(
        graph,
        positions,
        edge_labels={(source, target): data["count"] for source, target, data in graph.edges(data=True)},
        font_size=7,
    )

    if show_labels and graph.number_of_nodes() <= 150:
        labels = {}
        for node, data in graph.nodes(data=True):
            name = data["method_name"]
            if data["structure_name"]:
                name = f"{data['structure_name']}.{name}"
            labels[node] = f"{name} ({data['count']})"
        nx.draw_networkx_labels(graph, positions, labels=labels, font_size=7)

    if title is None:
        title = f"{graph.number_of_nodes()} methods, {graph.number_of_edges()} call edges"

    plt.title(title)
    plt.axis("off")
    plt.tight_layout()
    plt.savefig(output_path, dpi=200)
    plt.close()
    return output_path


__all__ = ["plot_call_graph"]

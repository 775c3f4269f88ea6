"""Command line entry points for the project."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

import networkx as nx
import typer

from call_graph_live import __version__
from call_graph_live.analysis.export import FLOWCHART_DIRECTIONS, export_flow_diagram, export_graph_json
from call_graph_live.analysis.models import GraphState, MalformedSubmission
from call_graph_live.analysis.visualization import plot_call_graph
from call_graph_live.config import ClientConfig, ServerConfig
from call_graph_live.pipelines.replay import accumulate, load_sequences, replay_sequences
from call_graph_live.pipelines.session import VisualizationSession
from call_graph_live.ui import create_app


def _sanitize_for_graphml(graph: nx.DiGraph) -> nx.DiGraph:
    """Return a copy of the graph with GraphML-friendly attributes."""

    def sanitize(mapping):
        for key in list(mapping.keys()):
            value = mapping[key]
            if value is None:
                # remove nulls for GraphML compatibility
                del mapping[key]
                continue
            if isinstance(value, (list, tuple, set)):
                mapping[key] = ",".join(str(item) for item in value)
            elif isinstance(value, dict):
                mapping[key] = json.dumps(value)

    copy = graph.copy()
    sanitize(copy.graph)
    for _, data in copy.nodes(data=True):
        sanitize(data)
    for _, _, data in copy.edges(data=True):
        sanitize(data)
    return copy


def _resolve_inputs(inputs: List[Path]) -> List[Path]:
    resolved: List[Path] = []
    for item in inputs:
        candidate = item.expanduser().resolve()
        if not candidate.exists():
            raise typer.BadParameter(f"Input not found: {candidate}")
        resolved.append(candidate)
    if not resolved:
        raise typer.BadParameter("At least one --input sequence file is required.")
    return resolved


def _state_from_inputs(inputs: List[Path]) -> GraphState:
    resolved = _resolve_inputs(inputs)
    try:
        return accumulate(resolved).snapshot()
    except MalformedSubmission as exc:
        raise typer.BadParameter(str(exc)) from exc


def _client_config(endpoint: Optional[str], timeout: Optional[float]) -> ClientConfig:
    config = ClientConfig.from_env()
    if endpoint:
        config.endpoint = endpoint
    if timeout is not None:
        config.timeout = timeout
    return config


app = typer.Typer(help="Live call graph visualizer: ingest call sequences and watch the graph grow.")


@app.callback(invoke_without_command=True)
def version(display_version: bool = typer.Option(False, "--version", "-V", help="Show version and exit.")) -> None:
    """Print the package version when requested."""

    if display_version:
        typer.echo(__version__)
        raise typer.Exit()


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, help="Host interface for the Dash server (env CALLGRAPH_HOST)."),
    port: Optional[int] = typer.Option(None, help="Port for the Dash server (env PORT, default 3001)."),
    debug: bool = typer.Option(False, help="Enable Dash debug mode."),
    poll_interval: Optional[int] = typer.Option(None, help="Viewer refresh interval in milliseconds."),
    trace_window: Optional[int] = typer.Option(None, help="How many trace ids to remember for duplicate detection."),
    log_level: str = typer.Option("INFO", help="Logging level (DEBUG, INFO, WARNING...)."),
) -> None:
    """Run the ingestion gateway and the live viewer."""

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level: {log_level}")
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        config = ServerConfig.from_env(
            host=host,
            port=port,
            debug=debug or None,
            poll_interval_ms=poll_interval,
            trace_window=trace_window,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    session = VisualizationSession.from_config(config)
    app_instance = create_app(
        session,
        poll_interval_ms=config.poll_interval_ms,
        stream_queue_size=config.stream_queue_size,
    )
    typer.echo(f"Accepting call sequences at http://{config.host}:{config.port}/api/stackframes")
    app_instance.run(host=config.host, port=config.port, debug=config.debug)


@app.command("send")
def send(
    input: Path = typer.Option(..., "--input", "-i", help="JSON file holding one call sequence submission."),
    endpoint: Optional[str] = typer.Option(None, help="Gateway URL (env CALLGRAPH_ENDPOINT)."),
    timeout: Optional[float] = typer.Option(None, help="Request timeout in seconds."),
) -> None:
    """Post a single recorded call sequence to a running gateway."""

    path = _resolve_inputs([input])[0]
    try:
        sequences = load_sequences(path)
    except MalformedSubmission as exc:
        raise typer.BadParameter(str(exc)) from exc
    if len(sequences) != 1:
        raise typer.BadParameter(f"Expected exactly one sequence in {path}, found {len(sequences)}. Use 'replay'.")

    summary = replay_sequences(sequences, config=_client_config(endpoint, timeout))
    if summary.failure_count:
        for _, status, text in summary.rejected:
            typer.secho(f"Rejected ({status}): {text}", fg=typer.colors.RED)
        for _, error in summary.failed:
            typer.secho(f"Failed: {error}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.secho("Sequence accepted.", fg=typer.colors.GREEN)


@app.command("replay")
def replay(
    input: List[Path] = typer.Option(..., "--input", "-i", help="Sequence files (JSON, JSON array or JSONL)."),
    endpoint: Optional[str] = typer.Option(None, help="Gateway URL (env CALLGRAPH_ENDPOINT)."),
    timeout: Optional[float] = typer.Option(None, help="Request timeout in seconds."),
) -> None:
    """Replay recorded call sequences against a running gateway."""

    sequences = []
    for path in _resolve_inputs(input):
        try:
            sequences.extend(load_sequences(path))
        except MalformedSubmission as exc:
            raise typer.BadParameter(str(exc)) from exc

    typer.echo(f"Replaying {len(sequences)} sequences...")
    summary = replay_sequences(sequences, config=_client_config(endpoint, timeout))

    typer.echo(f"Attempted: {summary.attempted}")
    typer.echo(f"Accepted: {summary.accepted}")
    typer.echo(f"Failures: {summary.failure_count}")
    if summary.rejected:
        typer.secho("Rejected submissions:", fg=typer.colors.RED)
        for idx, status, text in summary.rejected[:10]:
            typer.echo(f"  #{idx} -> {status}: {text.strip()}")
    if summary.failed:
        typer.secho("Transport errors:", fg=typer.colors.RED)
        for idx, error in summary.failed[:10]:
            typer.echo(f"  #{idx} -> {error}")
    if summary.failure_count:
        raise typer.Exit(code=1)


@app.command("export")
def export(
    input: List[Path] = typer.Option(..., "--input", "-i", help="Sequence files to accumulate."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Destination file (stdout when omitted)."),
    export_format: str = typer.Option("mermaid", "--format", "-f", help="Output format: mermaid, json or graphml."),
    direction: str = typer.Option("TD", help="Mermaid flowchart direction (TD, TB, LR, RL, BT)."),
) -> None:
    """Accumulate recorded sequences offline and export the resulting graph."""

    state = _state_from_inputs(input)
    fmt = export_format.lower()

    if fmt == "mermaid":
        if direction.upper() not in FLOWCHART_DIRECTIONS:
            raise typer.BadParameter(f"Unsupported direction: {direction}")
        text = export_flow_diagram(state, direction=direction)
        if output is None:
            typer.echo(text, nl=False)
            return
        destination = output.expanduser().resolve()
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(text, encoding="utf-8")
    elif fmt in ("json", "graphml"):
        if output is None:
            raise typer.BadParameter(f"--output is required for the {fmt} format")
        destination = output.expanduser().resolve()
        destination.parent.mkdir(parents=True, exist_ok=True)
        if fmt == "json":
            export_graph_json(state, destination)
        else:
            nx.write_graphml(_sanitize_for_graphml(state.to_networkx()), destination)
    else:
        raise typer.BadParameter(f"Unsupported format: {export_format}")

    typer.echo(f"Nodes: {state.node_count}  Edges: {state.edge_count}")
    typer.echo(f"Graph written to {destination}")


@app.command("render")
def render(
    input: List[Path] = typer.Option(..., "--input", "-i", help="Sequence files to accumulate."),
    output: Path = typer.Option(Path("call-graph.png"), "--output", "-o", help="Destination PNG."),
    max_nodes: Optional[int] = typer.Option(200, help="Limit the number of nodes drawn for readability."),
    layout: str = typer.Option("spring", help="Layout algorithm: spring, shell or kamada-kawai."),
    show_labels: bool = typer.Option(True, help="Render node labels (best for <=150 nodes)."),
) -> None:
    """Render recorded sequences into a static image."""

    state = _state_from_inputs(input)
    try:
        png_path = plot_call_graph(
            state,
            output.expanduser().resolve(),
            max_nodes=max_nodes,
            layout=layout,
            show_labels=show_labels,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    typer.echo(f"Nodes: {state.node_count}  Edges: {state.edge_count}")
    typer.echo(f"Visualization saved to {png_path}")


def run() -> None:
    """Entry point used by ``python -m call_graph_live.cli``."""

    app()


if __name__ == "__main__":
    run()

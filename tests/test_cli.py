"""Tests for the Typer command line interface."""

from __future__ import annotations

import json
from pathlib import Path

import networkx as nx
from typer.testing import CliRunner

from call_graph_live import __version__
from call_graph_live.cli import app

runner = CliRunner()

SUBMISSION = {
    "sequence": [
        {"file": "app.js", "lineNumber": 25, "structureName": "UserController", "methodName": "authenticate"},
        {"file": "auth.js", "lineNumber": 47, "structureName": "AuthService", "methodName": "verifyCredentials"},
        {"file": "crypto.js", "lineNumber": 12, "structureName": "CryptoUtil", "methodName": "hashPassword"},
    ],
    "timestamp": "2024-05-01T10:15:30Z",
}


def _write_sample(path: Path, payload=None) -> Path:
    path.write_text(json.dumps(payload if payload is not None else [SUBMISSION, SUBMISSION]), encoding="utf-8")
    return path


def test_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_export_mermaid_to_stdout(tmp_path: Path) -> None:
    sample = _write_sample(tmp_path / "trace.json")
    result = runner.invoke(app, ["export", "-i", str(sample)])

    assert result.exit_code == 0, result.output
    assert result.output.startswith("flowchart TD\n")
    assert result.output.count("-->|2|") == 2


def test_export_mermaid_to_file(tmp_path: Path) -> None:
    sample = _write_sample(tmp_path / "trace.json")
    destination = tmp_path / "out" / "graph.md"
    result = runner.invoke(app, ["export", "-i", str(sample), "-o", str(destination), "--direction", "LR"])

    assert result.exit_code == 0, result.output
    assert destination.read_text(encoding="utf-8").startswith("flowchart LR\n")
    assert "Nodes: 3  Edges: 2" in result.output


def test_export_json_and_graphml(tmp_path: Path) -> None:
    sample = _write_sample(tmp_path / "trace.json")
    json_path = tmp_path / "graph.json"
    graphml_path = tmp_path / "graph.graphml"

    assert runner.invoke(app, ["export", "-i", str(sample), "-f", "json", "-o", str(json_path)]).exit_code == 0
    assert runner.invoke(app, ["export", "-i", str(sample), "-f", "graphml", "-o", str(graphml_path)]).exit_code == 0

    payload = json.loads(json_path.read_text(encoding="utf-8"))
    assert payload["node_count"] == 3
    graph = nx.read_graphml(graphml_path)
    assert graph.number_of_nodes() == 3
    assert graph.number_of_edges() == 2


def test_export_rejects_bad_input(tmp_path: Path) -> None:
    missing = runner.invoke(app, ["export", "-i", str(tmp_path / "missing.json")])
    assert missing.exit_code != 0

    malformed = _write_sample(tmp_path / "bad.json", {"sequence": []})
    assert runner.invoke(app, ["export", "-i", str(malformed)]).exit_code != 0

    sample = _write_sample(tmp_path / "trace.json")
    assert runner.invoke(app, ["export", "-i", str(sample), "-f", "dot", "-o", str(tmp_path / "g.dot")]).exit_code != 0
    assert runner.invoke(app, ["export", "-i", str(sample), "-f", "json"]).exit_code != 0


def test_render_png(tmp_path: Path) -> None:
    sample = _write_sample(tmp_path / "trace.json")
    destination = tmp_path / "graph.png"
    result = runner.invoke(app, ["render", "-i", str(sample), "-o", str(destination), "--layout", "shell"])

    assert result.exit_code == 0, result.output
    assert destination.exists()
    assert destination.stat().st_size > 0


def test_send_requires_single_sequence(tmp_path: Path) -> None:
    sample = _write_sample(tmp_path / "trace.json")
    result = runner.invoke(app, ["send", "-i", str(sample)])
    assert result.exit_code != 0

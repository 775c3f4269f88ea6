"""Stable node identities for call frames."""

from __future__ import annotations

import hashlib
import json

from call_graph_live.analysis.models import CallFrame, EdgeKey, GraphNode, NodeId


def _canonical(source_file: str, structure_name: str, method_name: str) -> bytes:
    # JSON array encoding keeps field boundaries unambiguous
    return json.dumps([source_file, structure_name, method_name], ensure_ascii=False).encode("utf-8")


def node_id(source_file: str, structure_name: str, method_name: str) -> NodeId:
    """Return the SHA-256 hex digest identifying a (file, structure, method) triple."""

    return hashlib.sha256(_canonical(source_file, structure_name, method_name)).hexdigest()


def frame_identity(frame: CallFrame) -> NodeId:
    """
    Derive the graph node key for ``frame``.

    The line number does not participate, so calls to the same method from different call sites
    collapse into a single node.
    """

    return node_id(frame.source_file, frame.structure_name, frame.method_name)


def edge_key(caller: CallFrame, callee: CallFrame) -> EdgeKey:
    return (frame_identity(caller), frame_identity(callee))


def qualified_name(item: CallFrame | GraphNode) -> str:
    """Human readable ``Structure.method`` name for a frame or node."""

    if item.structure_name:
        return f"{item.structure_name}.{item.method_name}"
    return item.method_name


__all__ = ["edge_key", "frame_identity", "node_id", "qualified_name"]

"""Incremental accumulation of call sequences into a frequency-weighted call graph."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict

import networkx as nx

from call_graph_live.analysis.identity import frame_identity
from call_graph_live.analysis.models import (
    CallSequence,
    EdgeKey,
    GraphEdge,
    GraphNode,
    GraphState,
    MergeResult,
    NodeId,
)

LOGGER = logging.getLogger(__name__)


class CallGraphAccumulator:
    """
    Own the canonical call graph and fold incoming call sequences into it.

    Nodes are keyed by :func:`frame_identity` and edges by ``(caller, callee)`` node ids; both carry
    an occurrence ``count`` that only ever grows. Each merge applies a whole sequence under a single
    lock, so concurrent merges never lose an increment and :meth:`snapshot` never observes a
    half-applied sequence.

    Sequences carrying a ``trace_id`` are applied at most once: redelivery of an identical sequence
    (same trace id, timestamp and frames) seen among the last ``trace_window`` merges is ignored.
    Distinct sequences sharing a trace id all count, and sequences without a trace id are always
    applied.
    """

    def __init__(self, *, trace_window: int = 10_000) -> None:
        if trace_window < 0:
            raise ValueError("trace_window must not be negative")
        self._graph = nx.DiGraph(name="live_call_graph")
        self._lock = threading.Lock()
        self._revision = 0
        self._trace_window = trace_window
        self._seen_deliveries: OrderedDict[CallSequence, None] = OrderedDict()

    @property
    def revision(self) -> int:
        return self._revision

    def __len__(self) -> int:
        with self._lock:
            return self._graph.number_of_nodes()

    def merge(self, sequence: CallSequence) -> MergeResult:
        """Fold ``sequence`` into the graph, outermost frame first."""

        if not isinstance(sequence, CallSequence):
            raise TypeError(f"Expected CallSequence, got {type(sequence).__name__}")

        identities = [frame_identity(frame) for frame in sequence.frames]
        touched_nodes: set[NodeId] = set()
        touched_edges: set[EdgeKey] = set()
        created_nodes: set[NodeId] = set()
        created_edges: set[EdgeKey] = set()

        with self._lock:
            if sequence.trace_id is not None and self._already_seen(sequence):
                LOGGER.debug("Ignoring duplicate delivery of %s", sequence.trace_id)
                return MergeResult(revision=self._revision, duplicate=True)

            for frame, current in zip(sequence.frames, identities):
                if current in self._graph:
                    data = self._graph.nodes[current]
                    data["count"] += 1
                    data["last_line_number"] = frame.line_number
                else:
                    self._graph.add_node(
                        current,
                        source_file=frame.source_file,
                        structure_name=frame.structure_name,
                        method_name=frame.method_name,
                        last_line_number=frame.line_number,
                        count=1,
                    )
                    created_nodes.add(current)
                touched_nodes.add(current)

            for caller, callee in zip(identities, identities[1:]):
                if self._graph.has_edge(caller, callee):
                    self._graph.edges[caller, callee]["count"] += 1
                else:
                    self._graph.add_edge(caller, callee, count=1)
                    created_edges.add((caller, callee))
                touched_edges.add((caller, callee))

            self._revision += 1
            revision = self._revision

        LOGGER.debug(
            "Merged %d frames (%d new nodes, %d new edges) at revision %d",
            len(sequence),
            len(created_nodes),
            len(created_edges),
            revision,
        )
        return MergeResult(
            nodes=frozenset(touched_nodes),
            edges=frozenset(touched_edges),
            created_nodes=frozenset(created_nodes),
            created_edges=frozenset(created_edges),
            revision=revision,
        )

    def snapshot(self) -> GraphState:
        """Return an immutable copy of the current nodes and edges."""

        with self._lock:
            nodes = {
                node: GraphNode(
                    id=node,
                    source_file=data["source_file"],
                    structure_name=data["structure_name"],
                    method_name=data["method_name"],
                    last_line_number=data["last_line_number"],
                    occurrence_count=data["count"],
                )
                for node, data in self._graph.nodes(data=True)
            }
            edges = {
                (source, target): GraphEdge(source=source, target=target, occurrence_count=data["count"])
                for source, target, data in self._graph.edges(data=True)
            }
            revision = self._revision
        return GraphState(nodes=nodes, edges=edges, revision=revision)

    def reset(self) -> None:
        """Discard every node, edge and remembered delivery."""

        with self._lock:
            self._graph.clear()
            self._seen_deliveries.clear()
            self._revision += 1
        LOGGER.info("Call graph reset")

    def _already_seen(self, sequence: CallSequence) -> bool:
        # caller holds self._lock; sequences are frozen, so equal value means the same delivery
        if sequence in self._seen_deliveries:
            self._seen_deliveries.move_to_end(sequence)
            return True
        if self._trace_window:
            self._seen_deliveries[sequence] = None
            while len(self._seen_deliveries) > self._trace_window:
                self._seen_deliveries.popitem(last=False)
        return False


__all__ = ["CallGraphAccumulator"]

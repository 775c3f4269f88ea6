"""Value types for call sequences and the accumulated call graph."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping, Tuple

import networkx as nx

NodeId = str
EdgeKey = Tuple[NodeId, NodeId]

_FRACTION = re.compile(r"(\.\d{6})\d+")


class MalformedSubmission(ValueError):
    """Raised when a submitted payload is not a valid call sequence."""


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise MalformedSubmission(f"timestamp must be an ISO 8601 string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # .NET round-trip timestamps carry 7 fractional digits
    text = _FRACTION.sub(r"\1", text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise MalformedSubmission(f"timestamp is not ISO 8601: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True, slots=True)
class CallFrame:
    """One level of a captured call stack."""

    source_file: str
    line_number: int
    structure_name: str
    method_name: str

    @classmethod
    def from_payload(cls, payload: Any, *, index: int = 0) -> "CallFrame":
        if not isinstance(payload, Mapping):
            raise MalformedSubmission(f"frame {index} must be an object")

        method = payload.get("methodName")
        if not isinstance(method, str) or not method:
            raise MalformedSubmission(f"frame {index} is missing methodName")

        source = payload.get("file", payload.get("sourceFile", ""))
        if source is None:
            source = ""
        if not isinstance(source, str):
            raise MalformedSubmission(f"frame {index} file must be a string")

        structure = payload.get("structureName", "")
        if structure is None:
            structure = ""
        if not isinstance(structure, str):
            raise MalformedSubmission(f"frame {index} structureName must be a string")

        line = payload.get("lineNumber", 0)
        if line is None:
            line = 0
        if isinstance(line, bool) or not isinstance(line, int) or line < 0:
            raise MalformedSubmission(f"frame {index} lineNumber must be a non-negative integer")

        return cls(source_file=source, line_number=line, structure_name=structure, method_name=method)

    def to_payload(self) -> dict:
        return {
            "file": self.source_file,
            "lineNumber": self.line_number,
            "structureName": self.structure_name,
            "methodName": self.method_name,
        }


@dataclass(frozen=True, slots=True)
class CallSequence:
    """An ordered call path, outermost caller first and innermost callee last."""

    frames: Tuple[CallFrame, ...]
    timestamp: datetime | None = None
    trace_id: str | None = None

    def __post_init__(self) -> None:
        if not self.frames:
            raise MalformedSubmission("a call sequence needs at least one frame")
        if not isinstance(self.frames, tuple):
            object.__setattr__(self, "frames", tuple(self.frames))

    def __len__(self) -> int:
        return len(self.frames)

    @classmethod
    def from_payload(cls, payload: Any) -> "CallSequence":
        """Validate a decoded JSON submission and build the sequence it describes."""

        if not isinstance(payload, Mapping):
            raise MalformedSubmission("payload must be a JSON object")

        raw_frames = payload.get("sequence", payload.get("frames"))
        if not isinstance(raw_frames, list):
            raise MalformedSubmission("payload must carry a 'sequence' list of frames")
        if not raw_frames:
            raise MalformedSubmission("frame list is empty")

        frames = tuple(CallFrame.from_payload(item, index=idx) for idx, item in enumerate(raw_frames))

        trace_id = payload.get("traceId")
        if trace_id == "":
            trace_id = None
        if trace_id is not None and not isinstance(trace_id, str):
            raise MalformedSubmission("traceId must be a string")

        return cls(frames=frames, timestamp=_parse_timestamp(payload.get("timestamp")), trace_id=trace_id)

    def to_payload(self) -> dict:
        return {
            "sequence": [frame.to_payload() for frame in self.frames],
            "timestamp": self.timestamp.isoformat() if self.timestamp else "",
            "traceId": self.trace_id or "",
        }


@dataclass(frozen=True, slots=True)
class GraphNode:
    id: NodeId
    source_file: str
    structure_name: str
    method_name: str
    last_line_number: int
    occurrence_count: int


@dataclass(frozen=True, slots=True)
class GraphEdge:
    source: NodeId
    target: NodeId
    occurrence_count: int

    @property
    def key(self) -> EdgeKey:
        return (self.source, self.target)


@dataclass(frozen=True, slots=True)
class GraphState:
    """Read-only view of the accumulated graph at one revision."""

    nodes: Mapping[NodeId, GraphNode] = field(default_factory=dict)
    edges: Mapping[EdgeKey, GraphEdge] = field(default_factory=dict)
    revision: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", MappingProxyType(dict(self.nodes)))
        object.__setattr__(self, "edges", MappingProxyType(dict(self.edges)))

    @property
    def is_empty(self) -> bool:
        return not self.nodes and not self.edges

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return len(self.edges)

    def to_networkx(self) -> nx.DiGraph:
        """Materialise the state as a directed graph keyed by node id."""

        graph = nx.DiGraph(revision=self.revision)
        for node in self.nodes.values():
            graph.add_node(
                node.id,
                source_file=node.source_file,
                structure_name=node.structure_name,
                method_name=node.method_name,
                last_line_number=node.last_line_number,
                count=node.occurrence_count,
            )
        for edge in self.edges.values():
            graph.add_edge(edge.source, edge.target, count=edge.occurrence_count)
        return graph


@dataclass(frozen=True, slots=True)
class MergeResult:
    """Node ids and edge keys a merge created or incremented."""

    nodes: frozenset[NodeId] = frozenset()
    edges: frozenset[EdgeKey] = frozenset()
    created_nodes: frozenset[NodeId] = frozenset()
    created_edges: frozenset[EdgeKey] = frozenset()
    revision: int = 0
    duplicate: bool = False

    @property
    def touched(self) -> bool:
        return bool(self.nodes or self.edges)


__all__ = [
    "CallFrame",
    "CallSequence",
    "EdgeKey",
    "GraphEdge",
    "GraphNode",
    "GraphState",
    "MalformedSubmission",
    "MergeResult",
    "NodeId",
]

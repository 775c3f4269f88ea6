"""Tests for the incremental call graph accumulator."""

from __future__ import annotations

import random
import threading
from collections import Counter
from datetime import datetime, timezone

import pytest

from call_graph_live.analysis.accumulator import CallGraphAccumulator
from call_graph_live.analysis.identity import frame_identity
from call_graph_live.analysis.models import CallFrame, CallSequence

AUTHENTICATE = CallFrame(source_file="app.js", line_number=25, structure_name="UserController", method_name="authenticate")
VERIFY = CallFrame(source_file="auth.js", line_number=47, structure_name="AuthService", method_name="verifyCredentials")


def _frame(method: str, line: int = 1, structure: str = "Svc", file: str = "svc.py") -> CallFrame:
    return CallFrame(source_file=file, line_number=line, structure_name=structure, method_name=method)


def _sequence(*frames: CallFrame, trace_id: str | None = None) -> CallSequence:
    return CallSequence(frames=tuple(frames), trace_id=trace_id)


def test_two_frame_scenario() -> None:
    accumulator = CallGraphAccumulator()
    result = accumulator.merge(_sequence(AUTHENTICATE, VERIFY))
    state = accumulator.snapshot()

    auth_id = frame_identity(AUTHENTICATE)
    verify_id = frame_identity(VERIFY)

    assert state.node_count == 2
    assert state.edge_count == 1
    assert state.nodes[auth_id].occurrence_count == 1
    assert state.nodes[verify_id].occurrence_count == 1
    edge = state.edges[(auth_id, verify_id)]
    assert edge.source == auth_id
    assert edge.target == verify_id
    assert edge.occurrence_count == 1

    assert result.nodes == {auth_id, verify_id}
    assert result.edges == {(auth_id, verify_id)}
    assert result.created_nodes == result.nodes
    assert result.touched


def test_repeat_merge_increments_counters() -> None:
    accumulator = CallGraphAccumulator()
    accumulator.merge(_sequence(AUTHENTICATE, VERIFY))
    second = accumulator.merge(_sequence(AUTHENTICATE, VERIFY))
    state = accumulator.snapshot()

    assert state.node_count == 2
    assert state.edge_count == 1
    assert all(node.occurrence_count == 2 for node in state.nodes.values())
    assert all(edge.occurrence_count == 2 for edge in state.edges.values())
    assert second.created_nodes == frozenset()
    assert second.created_edges == frozenset()
    assert second.touched


def test_self_loop_scenario() -> None:
    accumulator = CallGraphAccumulator()
    frame = _frame("recurse")
    accumulator.merge(_sequence(frame, frame))
    state = accumulator.snapshot()

    identity = frame_identity(frame)
    assert state.node_count == 1
    assert state.nodes[identity].occurrence_count == 2
    assert state.edge_count == 1
    assert state.edges[(identity, identity)].occurrence_count == 1


def test_single_frame_scenario() -> None:
    accumulator = CallGraphAccumulator()
    result = accumulator.merge(_sequence(AUTHENTICATE))
    state = accumulator.snapshot()

    assert state.node_count == 1
    assert state.edge_count == 0
    assert result.edges == frozenset()


def test_reset_scenario() -> None:
    accumulator = CallGraphAccumulator()
    for _ in range(5):
        accumulator.merge(_sequence(AUTHENTICATE, VERIFY, _frame("hash")))
    accumulator.reset()
    state = accumulator.snapshot()

    assert state.is_empty
    assert len(state.nodes) == 0
    assert len(state.edges) == 0
    assert len(accumulator) == 0


def test_edges_are_directed() -> None:
    accumulator = CallGraphAccumulator()
    a, b = _frame("a"), _frame("b")
    accumulator.merge(_sequence(a, b))
    accumulator.merge(_sequence(b, a))
    state = accumulator.snapshot()

    a_id, b_id = frame_identity(a), frame_identity(b)
    assert set(state.edges) == {(a_id, b_id), (b_id, a_id)}
    assert state.edges[(a_id, b_id)].occurrence_count == 1
    assert state.edges[(b_id, a_id)].occurrence_count == 1


def test_line_number_tracks_last_occurrence() -> None:
    accumulator = CallGraphAccumulator()
    accumulator.merge(_sequence(_frame("run", line=10)))
    accumulator.merge(_sequence(_frame("run", line=42)))
    (node,) = accumulator.snapshot().nodes.values()

    assert node.occurrence_count == 2
    assert node.last_line_number == 42


def test_counts_are_order_independent() -> None:
    frames = [_frame(name) for name in "abcde"]
    rng = random.Random(7)
    sequences = [_sequence(*rng.choices(frames, k=rng.randint(1, 6))) for _ in range(40)]

    expected = Counter(frame_identity(frame) for sequence in sequences for frame in sequence.frames)

    forward = CallGraphAccumulator()
    for sequence in sequences:
        forward.merge(sequence)
    shuffled = list(sequences)
    rng.shuffle(shuffled)
    backward = CallGraphAccumulator()
    for sequence in shuffled:
        backward.merge(sequence)

    forward_state = forward.snapshot()
    backward_state = backward.snapshot()
    assert {key: node.occurrence_count for key, node in forward_state.nodes.items()} == dict(expected)
    assert {key: node.occurrence_count for key, node in backward_state.nodes.items()} == dict(expected)
    assert {key: edge.occurrence_count for key, edge in forward_state.edges.items()} == {
        key: edge.occurrence_count for key, edge in backward_state.edges.items()
    }


def test_counts_never_decrease() -> None:
    accumulator = CallGraphAccumulator()
    frames = [_frame(name) for name in "xyz"]
    rng = random.Random(3)
    previous_nodes: dict = {}
    previous_edges: dict = {}
    for _ in range(30):
        accumulator.merge(_sequence(*rng.choices(frames, k=rng.randint(1, 4))))
        state = accumulator.snapshot()
        for key, count in previous_nodes.items():
            assert state.nodes[key].occurrence_count >= count
        for key, count in previous_edges.items():
            assert state.edges[key].occurrence_count >= count
        previous_nodes = {key: node.occurrence_count for key, node in state.nodes.items()}
        previous_edges = {key: edge.occurrence_count for key, edge in state.edges.items()}


def test_duplicate_trace_is_applied_once() -> None:
    accumulator = CallGraphAccumulator()
    first = accumulator.merge(_sequence(AUTHENTICATE, VERIFY, trace_id="trace-1"))
    again = accumulator.merge(_sequence(AUTHENTICATE, VERIFY, trace_id="trace-1"))

    assert first.touched
    assert again.duplicate
    assert not again.touched
    assert all(node.occurrence_count == 1 for node in accumulator.snapshot().nodes.values())


def test_distinct_sequences_sharing_a_trace_id_all_count() -> None:
    accumulator = CallGraphAccumulator()
    run = _frame("run", structure="A", file="a.py")
    other = _frame("other", structure="B", file="b.py")

    first = accumulator.merge(_sequence(run, trace_id="trace-0badf00d"))
    second = accumulator.merge(_sequence(other, trace_id="trace-0badf00d"))
    third = accumulator.merge(_sequence(run, other, trace_id="trace-0badf00d"))

    assert not first.duplicate
    assert not second.duplicate
    assert not third.duplicate
    state = accumulator.snapshot()
    assert state.node_count == 2
    assert state.nodes[frame_identity(run)].occurrence_count == 2
    assert state.nodes[frame_identity(other)].occurrence_count == 2
    assert state.edges[(frame_identity(run), frame_identity(other))].occurrence_count == 1


def test_same_trace_with_new_timestamp_counts() -> None:
    accumulator = CallGraphAccumulator()
    accumulator.merge(CallSequence(frames=(AUTHENTICATE,), timestamp=datetime(2024, 5, 1, tzinfo=timezone.utc), trace_id="t"))
    result = accumulator.merge(
        CallSequence(frames=(AUTHENTICATE,), timestamp=datetime(2024, 5, 2, tzinfo=timezone.utc), trace_id="t")
    )

    assert not result.duplicate
    assert accumulator.snapshot().nodes[frame_identity(AUTHENTICATE)].occurrence_count == 2


def test_trace_window_forgets_old_traces() -> None:
    accumulator = CallGraphAccumulator(trace_window=2)
    for trace in ("t1", "t2", "t3"):
        accumulator.merge(_sequence(AUTHENTICATE, trace_id=trace))
    accumulator.merge(_sequence(AUTHENTICATE, trace_id="t1"))

    (node,) = accumulator.snapshot().nodes.values()
    assert node.occurrence_count == 4


def test_reset_forgets_traces() -> None:
    accumulator = CallGraphAccumulator()
    accumulator.merge(_sequence(AUTHENTICATE, trace_id="trace-1"))
    accumulator.reset()
    result = accumulator.merge(_sequence(AUTHENTICATE, trace_id="trace-1"))

    assert not result.duplicate
    assert accumulator.snapshot().node_count == 1


def test_revision_advances_on_change() -> None:
    accumulator = CallGraphAccumulator()
    assert accumulator.revision == 0
    result = accumulator.merge(_sequence(AUTHENTICATE))
    assert result.revision == accumulator.revision == 1
    accumulator.merge(_sequence(AUTHENTICATE, trace_id="x"))
    accumulator.merge(_sequence(AUTHENTICATE, trace_id="x"))
    assert accumulator.revision == 2
    accumulator.reset()
    assert accumulator.snapshot().revision == 3


def test_snapshot_is_immutable_and_detached() -> None:
    accumulator = CallGraphAccumulator()
    accumulator.merge(_sequence(AUTHENTICATE, VERIFY))
    state = accumulator.snapshot()

    with pytest.raises(TypeError):
        state.nodes["new"] = None  # type: ignore[index]

    accumulator.merge(_sequence(AUTHENTICATE, VERIFY))
    assert all(node.occurrence_count == 1 for node in state.nodes.values())


def test_merge_rejects_non_sequences() -> None:
    accumulator = CallGraphAccumulator()
    with pytest.raises(TypeError):
        accumulator.merge({"sequence": []})  # type: ignore[arg-type]
    assert accumulator.snapshot().is_empty


def test_concurrent_merges_lose_no_increments() -> None:
    accumulator = CallGraphAccumulator()
    shared = (_frame("entry"), _frame("handler"), _frame("entry"))
    per_thread = 200
    threads = 8
    barrier = threading.Barrier(threads)
    snapshots_ok: list[bool] = []

    def worker(worker_id: int) -> None:
        own = _frame(f"worker{worker_id}")
        barrier.wait()
        for _ in range(per_thread):
            accumulator.merge(_sequence(*shared, own))
            state = accumulator.snapshot()
            entry = state.nodes[frame_identity(shared[0])].occurrence_count
            handler = state.nodes[frame_identity(shared[1])].occurrence_count
            # sequences are applied atomically, so entry is always exactly twice handler
            snapshots_ok.append(entry == 2 * handler)

    pool = [threading.Thread(target=worker, args=(idx,)) for idx in range(threads)]
    for thread in pool:
        thread.start()
    for thread in pool:
        thread.join()

    state = accumulator.snapshot()
    total = per_thread * threads
    entry_id = frame_identity(shared[0])
    handler_id = frame_identity(shared[1])
    assert state.nodes[entry_id].occurrence_count == 2 * total
    assert state.nodes[handler_id].occurrence_count == total
    assert state.edges[(entry_id, handler_id)].occurrence_count == total
    assert state.edges[(handler_id, entry_id)].occurrence_count == total
    for idx in range(threads):
        assert state.nodes[frame_identity(_frame(f"worker{idx}"))].occurrence_count == per_thread
    assert all(snapshots_ok)


def test_to_networkx_carries_counts() -> None:
    accumulator = CallGraphAccumulator()
    accumulator.merge(_sequence(AUTHENTICATE, VERIFY))
    graph = accumulator.snapshot().to_networkx()

    assert graph.number_of_nodes() == 2
    assert graph.number_of_edges() == 1
    assert graph.nodes[frame_identity(AUTHENTICATE)]["method_name"] == "authenticate"
    assert graph.edges[frame_identity(AUTHENTICATE), frame_identity(VERIFY)]["count"] == 1

"""Tests for frame identity derivation."""

from __future__ import annotations

from call_graph_live.analysis.identity import edge_key, frame_identity, node_id, qualified_name
from call_graph_live.analysis.models import CallFrame


def _frame(file: str = "app.js", line: int = 25, structure: str = "UserController", method: str = "authenticate") -> CallFrame:
    return CallFrame(source_file=file, line_number=line, structure_name=structure, method_name=method)


def test_identity_ignores_line_number() -> None:
    assert frame_identity(_frame(line=25)) == frame_identity(_frame(line=99))


def test_identity_is_repeatable() -> None:
    frame = _frame()
    assert frame_identity(frame) == frame_identity(frame)
    assert frame_identity(frame) == node_id("app.js", "UserController", "authenticate")


def test_identity_distinguishes_each_field() -> None:
    base = frame_identity(_frame())
    assert frame_identity(_frame(file="other.js")) != base
    assert frame_identity(_frame(structure="AuthService")) != base
    assert frame_identity(_frame(method="logout")) != base


def test_identity_has_unambiguous_field_boundaries() -> None:
    # naive concatenation would make these collide
    assert node_id("a-b", "c", "d") != node_id("a", "b-c", "d")
    assert node_id("", "Foo", "bar") != node_id("Foo", "", "bar")


def test_identity_is_full_sha256_hex() -> None:
    identity = frame_identity(_frame())
    assert len(identity) == 64
    int(identity, 16)


def test_edge_key_is_ordered() -> None:
    caller = _frame()
    callee = _frame(file="auth.js", structure="AuthService", method="verifyCredentials")
    assert edge_key(caller, callee) == (frame_identity(caller), frame_identity(callee))
    assert edge_key(caller, callee) != edge_key(callee, caller)


def test_qualified_name() -> None:
    assert qualified_name(_frame()) == "UserController.authenticate"
    assert qualified_name(_frame(structure="")) == "authenticate"

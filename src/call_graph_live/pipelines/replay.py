"""Load recorded call sequences, accumulate them offline or replay them to a running gateway."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

import requests

from call_graph_live.analysis.accumulator import CallGraphAccumulator
from call_graph_live.analysis.models import CallSequence, MalformedSubmission
from call_graph_live.config import ClientConfig

LOGGER = logging.getLogger(__name__)


def _read_payloads(path: Path) -> list:
    text = Path(path).read_text(encoding="utf-8")
    stripped = text.strip()
    if not stripped:
        return []
    if path.suffix.lower() in (".jsonl", ".ndjson"):
        payloads = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                payloads.append(json.loads(line))
            except json.JSONDecodeError as exc:
                raise MalformedSubmission(f"{path}:{lineno}: invalid JSON ({exc.msg})") from exc
        return payloads
    try:
        document = json.loads(stripped)
    except json.JSONDecodeError as exc:
        raise MalformedSubmission(f"{path}: invalid JSON ({exc.msg})") from exc
    if isinstance(document, list):
        return document
    return [document]


def load_sequences(path: Path) -> List[CallSequence]:
    """
    Read call sequences from ``path``.

    Accepts a single submission object, a JSON array of submissions, or JSON Lines (``.jsonl``).
    Any malformed entry raises :class:`MalformedSubmission` naming the file and entry.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Sequence file not found: {path}")

    sequences: List[CallSequence] = []
    for idx, payload in enumerate(_read_payloads(path)):
        try:
            sequences.append(CallSequence.from_payload(payload))
        except MalformedSubmission as exc:
            raise MalformedSubmission(f"{path} entry {idx}: {exc}") from exc
    return sequences


def accumulate(paths: Iterable[Path], *, trace_window: int = 10_000) -> CallGraphAccumulator:
    """Fold every sequence found in ``paths`` into a fresh accumulator."""

    accumulator = CallGraphAccumulator(trace_window=trace_window)
    total = 0
    for path in paths:
        for sequence in load_sequences(path):
            accumulator.merge(sequence)
            total += 1
    LOGGER.info("Accumulated %d sequences into %d nodes", total, len(accumulator))
    return accumulator


@dataclass(slots=True)
class ReplaySummary:
    attempted: int = 0
    accepted: int = 0
    rejected: List[tuple[int, int, str]] = field(default_factory=list)
    failed: List[tuple[int, str]] = field(default_factory=list)

    @property
    def failure_count(self) -> int:
        return len(self.rejected) + len(self.failed)


def replay_sequences(
    sequences: Iterable[CallSequence],
    *,
    config: ClientConfig | None = None,
    session: Optional[requests.Session] = None,
) -> ReplaySummary:
    """
    Post ``sequences`` to the gateway one by one.

    HTTP rejections and transport errors are recorded per sequence index instead of aborting.
    """

    config = config or ClientConfig.from_env()
    sess = session or requests.Session()
    summary = ReplaySummary()

    for idx, sequence in enumerate(sequences):
        summary.attempted += 1
        try:
            response = sess.post(config.endpoint, json=sequence.to_payload(), timeout=config.timeout)
        except requests.RequestException as exc:
            LOGGER.warning("Replay of sequence %d failed: %s", idx, exc)
            summary.failed.append((idx, str(exc)))
            continue
        if response.ok:
            summary.accepted += 1
        else:
            summary.rejected.append((idx, response.status_code, response.text))

    return summary


__all__ = ["ReplaySummary", "accumulate", "load_sequences", "replay_sequences"]

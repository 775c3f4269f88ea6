"""Wiring of one shared accumulator to the broadcast channel."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from call_graph_live.analysis.accumulator import CallGraphAccumulator
from call_graph_live.analysis.models import CallSequence, GraphState, MergeResult
from call_graph_live.config import ServerConfig
from call_graph_live.io.broadcast import Broadcaster, Subscription

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class VisualizationSession:
    """
    A single visualization session: every sequence published on ``broadcaster`` is merged into
    ``accumulator``, and the viewer reads from the same accumulator.
    """

    accumulator: CallGraphAccumulator
    broadcaster: Broadcaster = field(default_factory=Broadcaster)
    last_result: MergeResult | None = None
    last_sequence: CallSequence | None = None
    _subscription: Subscription | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self._subscription = self.broadcaster.subscribe(self._on_sequence)

    @classmethod
    def from_config(cls, config: ServerConfig) -> "VisualizationSession":
        return cls(accumulator=CallGraphAccumulator(trace_window=config.trace_window))

    def _on_sequence(self, sequence: CallSequence) -> None:
        self.last_result = self.accumulator.merge(sequence)
        self.last_sequence = sequence

    def submit(self, payload: Any) -> int:
        """Validate a raw submission and publish it; returns the number of subscribers reached."""

        sequence = CallSequence.from_payload(payload)
        return self.publish(sequence)

    def publish(self, sequence: CallSequence) -> int:
        delivered = self.broadcaster.publish(sequence)
        LOGGER.info(
            "Accepted %d-frame sequence %s, emitted to %d subscribers",
            len(sequence),
            sequence.trace_id or "(untraced)",
            delivered,
        )
        return delivered

    def snapshot(self) -> GraphState:
        return self.accumulator.snapshot()

    def reset(self) -> None:
        self.accumulator.reset()
        self.last_result = None
        self.last_sequence = None

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None


__all__ = ["VisualizationSession"]

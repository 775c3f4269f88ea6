"""Frequency tiers ("heat") derived from occurrence counts."""

from __future__ import annotations

import functools
from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True, slots=True)
class HeatStyle:
    node_fill: str
    node_border: str
    edge_color: str
    edge_opacity: float
    edge_width: float


@functools.total_ordering
class HeatTier(Enum):
    """Ordered frequency buckets. ``upper`` is the inclusive upper bound of the tier."""

    VERY_LOW = ("very-low", 3)
    LOW = ("low", 7)
    MEDIUM = ("medium", 15)
    HIGH = ("high", 30)
    VERY_HIGH = ("very-high", None)

    def __init__(self, label: str, upper: int | None) -> None:
        self.label = label
        self.upper = upper

    @property
    def rank(self) -> int:
        return _ORDER.index(self)

    def __lt__(self, other: "HeatTier") -> bool:
        if not isinstance(other, HeatTier):
            return NotImplemented
        return self.rank < other.rank

    @property
    def lower(self) -> int:
        """Inclusive lower bound of the tier."""

        if self.rank == 0:
            return 1
        previous = _ORDER[self.rank - 1]
        return previous.upper + 1

    @property
    def style(self) -> HeatStyle:
        return HEAT_STYLES[self]


_ORDER = list(HeatTier)

HEAT_STYLES: dict[HeatTier, HeatStyle] = {
    HeatTier.VERY_LOW: HeatStyle("#f0f2fc", "#e0e0e0", "#e0e0e0", 0.7, 1.0),
    HeatTier.LOW: HeatStyle("#e1e5f7", "#bdbdbd", "#bdbdbd", 0.8, 1.0),
    HeatTier.MEDIUM: HeatStyle("#d7ddfa", "#7ab7e0", "#9ecae1", 0.85, 1.0),
    HeatTier.HIGH: HeatStyle("#cdd4fa", "#4a99c9", "#4292c6", 0.9, 1.0),
    HeatTier.VERY_HIGH: HeatStyle("#c0c9fc", "#08519c", "#084594", 1.0, 1.5),
}


def classify_heat(count: int) -> HeatTier:
    """Map an occurrence count (>= 1) onto its heat tier."""

    if isinstance(count, bool) or not isinstance(count, int):
        raise TypeError(f"count must be an integer, got {type(count).__name__}")
    if count < 1:
        raise ValueError(f"count must be at least 1, got {count}")
    for tier in _ORDER:
        if tier.upper is None or count <= tier.upper:
            return tier
    raise AssertionError("unreachable: the last tier is unbounded")


__all__ = ["HEAT_STYLES", "HeatStyle", "HeatTier", "classify_heat"]

"""
Points and Distance Functions
=============================
The single source of truth for "exact distance" in every other component.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Callable, Sequence, TYPE_CHECKING

import numpy as np

from metricsearch.model.errors import ConfigError

if TYPE_CHECKING:
    import numpy.typing as npt


@dataclass(frozen=True)
class Point:
    """An immutable point of the metric space."""
    id: int
    coordinates: tuple[float, ...]
    label: str = ""

    def __post_init__(self) -> None:
        # Accept lists / numpy arrays but always store a plain float tuple
        object.__setattr__(self, "coordinates", tuple(float(c) for c in self.coordinates))

    @property
    def dimension(self) -> int:
        return len(self.coordinates)

    @property
    def name(self) -> str:
        """Label when available, otherwise the id (used in step descriptions)."""
        return self.label or str(self.id)

    def to_array(self) -> npt.NDArray[np.float64]:
        return np.asarray(self.coordinates, dtype=np.float64)

    def moved_to(self, coordinates: Sequence[float]) -> Point:
        return Point(self.id, tuple(coordinates), self.label)


class Metric(StrEnum):
    """Minkowski distances offered to the user."""
    L1 = "L1"
    L2 = "L2"
    L3 = "L3"
    LINF = "LINF"

    @property
    def order(self) -> float:
        match self:
            case Metric.L1:
                return 1.0
            case Metric.L2:
                return 2.0
            case Metric.L3:
                return 3.0
            case _:
                return np.inf


DistanceFunction = Callable[[Point, Point], float]


def distance(a: Point, b: Point, metric: Metric = Metric.L2) -> float:
    """
    Exact distance between two points.

    Args:
        a: First point.
        b: Second point.
        metric: Which Minkowski distance to use.

    Returns:
        Non-negative distance.

    Raises:
        ConfigError: If the points have different dimensionality.
    """
    if a.dimension != b.dimension:
        raise ConfigError(
            f"Dimension mismatch: point {a.name} has {a.dimension} coordinates, "
            f"point {b.name} has {b.dimension}."
        )
    diff = a.to_array() - b.to_array()
    return float(np.linalg.norm(diff, ord=metric.order))


def distance_function(metric: Metric) -> DistanceFunction:
    """Bind a metric so it can be passed around as a plain two-argument function."""
    def _distance(a: Point, b: Point) -> float:
        return distance(a, b, metric)
    return _distance


@dataclass(frozen=True)
class DistanceRecord:
    """One exact distance computation, in the order it happened."""
    a: int
    b: int
    value: float


class CountingDistance:
    """
    A metric that counts and records every exact computation it performs.

    Indexes route their run-time computations through one of these so a
    simulation can report how many distances it paid for.
    """

    def __init__(self, metric: Metric = Metric.L2) -> None:
        self.metric = metric
        self._measure = distance_function(metric)
        self.calls = 0
        self.records: list[DistanceRecord] = []

    def __call__(self, a: Point, b: Point) -> float:
        value = self._measure(a, b)
        self.calls += 1
        self.records.append(DistanceRecord(a.id, b.id, value))
        return value

    def reset(self) -> None:
        self.calls = 0
        self.records.clear()

"""
Dataset (Point Collection)
==========================
Holds the ordered collection of points a simulation runs on.

Why is this file needed?
------------------------
1. Identity: It hands out unique point ids and never reuses an occupied one.
2. Editing: Points can be added, moved and removed between runs; every run
   receives an immutable snapshot, so editing never disturbs a running generator.
3. Reproducibility: Random datasets come from a seeded numpy Generator, so the
   same seed always yields the same points.
"""
from __future__ import annotations

import logging
from typing import Iterator, Optional, Sequence

import numpy as np

from metricsearch.config import DEFAULT_DIMENSION, DEFAULT_POINT_COUNT, DEFAULT_SEED, DOMAIN_SIZE, QUERY_POINT_ID
from metricsearch.model.errors import ConfigError
from metricsearch.model.geometry import Point

logger = logging.getLogger(__name__)


class Dataset:
    """Ordered, editable collection of points with monotonic id allocation."""

    def __init__(self, points: Optional[Sequence[Point]] = None) -> None:
        self._points: dict[int, Point] = {}
        self._next_id = 0
        for point in points or ():
            self.add_point(point)

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[Point]:
        return iter(self._points.values())

    def __contains__(self, point_id: object) -> bool:
        return point_id in self._points

    def __repr__(self) -> str:
        return f"Dataset(n={len(self)}, dimension={self.dimension})"

    @property
    def dimension(self) -> Optional[int]:
        first = next(iter(self._points.values()), None)
        return first.dimension if first else None

    def next_id(self) -> int:
        """Return an id no point of this dataset uses."""
        while self._next_id in self._points:
            self._next_id += 1
        return self._next_id

    def get(self, point_id: int) -> Point:
        try:
            return self._points[point_id]
        except KeyError:
            raise KeyError(f"Point with id {point_id} does not exist in the dataset.") from None

    def create_point(self, coordinates: Sequence[float], label: str = "") -> Point:
        point = Point(self.next_id(), tuple(coordinates), label)
        self.add_point(point)
        return point

    def add_point(self, point: Point) -> Point:
        """
        Add a point, keeping its id when free.

        Returns:
            The stored point (re-identified if its id was already taken).
        """
        if self.dimension is not None and point.dimension != self.dimension:
            raise ConfigError(
                f"Point {point.name} has {point.dimension} coordinates, dataset uses {self.dimension}."
            )
        if point.id < 0 or point.id in self._points:
            point = Point(self.next_id(), point.coordinates, point.label)
        self._points[point.id] = point
        return point

    def move_point(self, point_id: int, coordinates: Sequence[float]) -> Point:
        moved = self.get(point_id).moved_to(coordinates)
        if moved.dimension != self.dimension:
            raise ConfigError(f"Cannot move point {point_id} to a different dimension.")
        self._points[point_id] = moved
        return moved

    def remove_point(self, point_id: int) -> None:
        self.get(point_id)
        del self._points[point_id]

    def clear(self) -> None:
        self._points.clear()
        self._next_id = 0

    def clone(self) -> Dataset:
        copy = Dataset()
        copy._points = dict(self._points)
        copy._next_id = self._next_id
        return copy

    def snapshot(self) -> tuple[Point, ...]:
        """Immutable view handed to a RunConfig."""
        return tuple(self._points.values())

    @classmethod
    def generate(
        cls,
        count: int = DEFAULT_POINT_COUNT,
        seed: int = DEFAULT_SEED,
        dimension: int = DEFAULT_DIMENSION,
        domain_size: float = DOMAIN_SIZE,
    ) -> Dataset:
        """Uniformly random points in [0, domain_size) per coordinate."""
        if count < 1:
            raise ConfigError(f"Cannot generate {count} points.")
        if dimension < 1:
            raise ConfigError(f"Dimension must be positive, got {dimension}.")
        rng = np.random.default_rng(seed)
        coordinates = rng.uniform(0.0, domain_size, size=(count, dimension))
        dataset = cls()
        for row in coordinates:
            dataset.create_point(np.round(row, 2))
        logger.debug(f"Generated {count} points (seed={seed}, dimension={dimension}).")
        return dataset


def teaching_example() -> tuple[Dataset, Point]:
    """
    The six labelled points of the range-query teaching diagram.

    Under L2 with radius 35 around the returned query point, A-D lie inside the
    query ball and E, F lie outside.
    """
    dataset = Dataset()
    for label, coordinates in (
        ("A", (30.0, 40.0)),
        ("B", (60.0, 75.0)),
        ("C", (75.0, 40.0)),
        ("D", (45.0, 20.0)),
        ("E", (90.0, 90.0)),
        ("F", (10.0, 70.0)),
    ):
        dataset.create_point(coordinates, label)
    query = Point(QUERY_POINT_ID, (50.0, 50.0), "Q")
    return dataset, query

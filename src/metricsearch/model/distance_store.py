"""
Distance Store (AESA / LAESA Preprocessing)
===========================================
Memoised exact distances keyed by unordered point-id pairs.

Why is this file needed?
------------------------
1. Preprocessing: AESA stores the full distance matrix (all n(n-1)/2 pairs),
   LAESA only the pivot rows (pivots x points). Both are built here.
2. Lower bounds: The triangle inequality gives |d(q,p) - D(p,o)| <= d(q,o) for
   any pivot p. `lower_bound()` evaluates it from stored values only, so it
   never costs a distance computation.
3. Accounting: Computations made after the build (query distances, insertion
   rows) go through a `CountingDistance` and are reported by the run.
"""
from __future__ import annotations

import logging
from typing import Iterable, Sequence

from metricsearch.model.errors import ConfigError, InvariantViolation
from metricsearch.model.geometry import CountingDistance, DistanceRecord, Metric, Point, distance
from metricsearch.model.run_config import PivotPolicy

logger = logging.getLogger(__name__)


def _key(a: int, b: int) -> tuple[int, int]:
    return (a, b) if a <= b else (b, a)


class DistanceStore:
    """Symmetric distance memo. A point is always at distance 0 from itself."""

    def __init__(self, metric: Metric = Metric.L2) -> None:
        self.metric = metric
        self._values: dict[tuple[int, int], float] = {}
        self._points: dict[int, Point] = {}
        self._pivots: tuple[Point, ...] = ()
        self._counter = CountingDistance(metric)

    @classmethod
    def build(cls, dataset: Sequence[Point], pivots: Sequence[Point], metric: Metric = Metric.L2) -> DistanceStore:
        """
        Precompute the stored distances.

        Args:
            dataset: All points of the index.
            pivots: The whole dataset for AESA, a strict subset for LAESA.
            metric: Distance used for every computation.

        Raises:
            ConfigError: If a pivot is not part of the dataset.
        """
        store = cls(metric)
        store._points = {p.id: p for p in dataset}
        unknown = [p.id for p in pivots if p.id not in store._points]
        if unknown:
            raise ConfigError(f"Pivots {unknown} are not part of the dataset.")
        store._pivots = tuple(pivots)

        if len(store._pivots) == len(store._points):
            points = list(store._points.values())
            for i, a in enumerate(points):
                for b in points[i + 1:]:
                    store._values[_key(a.id, b.id)] = distance(a, b, metric)
        else:
            for p in store._pivots:
                for o in store._points.values():
                    if o.id != p.id:
                        store._values.setdefault(_key(p.id, o.id), distance(p, o, metric))

        logger.debug(f"Distance store built: {len(store._points)} points, "
                     f"{len(store._pivots)} pivots, {store.pair_count} stored pairs.")
        return store

    @property
    def pivots(self) -> tuple[Point, ...]:
        return self._pivots

    @property
    def pair_count(self) -> int:
        return len(self._values)

    @property
    def distance_calls(self) -> int:
        """Exact computations performed after the build."""
        return self._counter.calls

    @property
    def records(self) -> list[DistanceRecord]:
        return self._counter.records

    @property
    def is_full_matrix(self) -> bool:
        return len(self._pivots) == len(self._points)

    def has(self, a: Point, b: Point) -> bool:
        return a.id == b.id or _key(a.id, b.id) in self._values

    def stored(self, a: Point, b: Point) -> float:
        """
        Return a stored distance without computing anything.

        Raises:
            InvariantViolation: If the pair was never stored.
        """
        if a.id == b.id:
            return 0.0
        try:
            return self._values[_key(a.id, b.id)]
        except KeyError:
            raise InvariantViolation(f"Distance between {a.name} and {b.name} is not stored.") from None

    def get_or_compute(self, a: Point, b: Point) -> float:
        """Stored value if present, otherwise compute, count and store it."""
        if a.id == b.id:
            return 0.0
        key = _key(a.id, b.id)
        value = self._values.get(key)
        if value is None:
            value = self._counter(a, b)
            self._values[key] = value
        return value

    def lower_bound(self, query: Point, candidate: Point, pivots: Iterable[Point]) -> float:
        """
        Triangle-inequality lower bound on d(query, candidate).

        Both d(query, p) and D(p, candidate) must already be stored for every pivot.
        An empty pivot set gives the trivial bound 0.
        """
        bound = 0.0
        for p in pivots:
            bound = max(bound, abs(self.stored(query, p) - self.stored(p, candidate)))
        return bound

    def add_point(self, point: Point) -> None:
        """Register a point so its rows can be filled by `get_or_compute`."""
        if point.id in self._points:
            raise InvariantViolation(f"Point id {point.id} is already in the distance store.")
        self._points[point.id] = point


def select_pivots(
    points: Sequence[Point],
    count: int,
    policy: PivotPolicy = PivotPolicy.MAX_SPREAD,
    metric: Metric = Metric.L2,
) -> tuple[Point, ...]:
    """
    Choose LAESA pivots.

    FIRST takes the first `count` points. MAX_SPREAD runs a farthest-first
    traversal starting at the first point: each next pivot maximises its
    minimum distance to the pivots chosen so far (ties go to the earlier point).
    """
    if not 1 <= count <= len(points):
        raise ConfigError(f"Cannot select {count} pivots from {len(points)} points.")
    if policy == PivotPolicy.FIRST:
        return tuple(points[:count])

    chosen = [0]
    nearest = [distance(points[0], p, metric) for p in points]
    while len(chosen) < count:
        best, best_value = -1, -1.0
        for i, value in enumerate(nearest):
            if i not in chosen and value > best_value:
                best, best_value = i, value
        chosen.append(best)
        nearest = [min(n, distance(points[best], p, metric)) for n, p in zip(nearest, points)]
    return tuple(points[i] for i in chosen)

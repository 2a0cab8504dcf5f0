"""
Step Generator Base
===================
Shared machinery of every simulation.

A generator is an explicit cursor: it keeps its phase and position in plain
attributes and `advance()` performs exactly one bounded unit of work, returning
the resulting `Step` (or None once exhausted). Generators are not restartable;
a restart builds a fresh one from the same RunConfig.

Classes:
    NearestNeighbors: The k best (distance, id) pairs seen so far.
    StepGenerator: Abstract cursor with candidate / eliminated / result bookkeeping.

Functions:
    store_snapshot, tree_snapshot: Immutable copies of an index for `Step.index`.
"""
from __future__ import annotations

import bisect
import logging
import math
from abc import ABC, abstractmethod
from typing import ClassVar, Iterable, Optional

from metricsearch.model.distance_store import DistanceStore
from metricsearch.model.errors import InvariantViolation
from metricsearch.model.geometry import DistanceRecord, Point
from metricsearch.model.mtree import MTree
from metricsearch.model.pseudocode import get_line_count, line_index
from metricsearch.model.run_config import MethodType, OperationType, RunConfig
from metricsearch.model.step import Circle, IndexSnapshot, Step, StepEvent, VisualType

logger = logging.getLogger(__name__)


class NearestNeighbors:
    """Bounded result list ordered by (distance, point id)."""

    def __init__(self, k: int) -> None:
        self.k = k
        self._items: list[tuple[float, int, Point]] = []

    def __len__(self) -> int:
        return len(self._items)

    @property
    def full(self) -> bool:
        return len(self._items) >= self.k

    @property
    def threshold(self) -> float:
        """Distance of the k-th neighbour, infinite until k are known."""
        return self._items[-1][0] if self.full else math.inf

    def accepts(self, point: Point, d: float) -> bool:
        return not self.full or (d, point.id) < self._items[-1][:2]

    def offer(self, point: Point, d: float) -> tuple[bool, Optional[Point]]:
        """
        Try to add `point` at distance `d`.

        Returns:
            (accepted, displaced point or None)

        Raises:
            InvariantViolation: If the threshold would grow.
        """
        if not self.accepts(point, d):
            return False, None
        before = self.threshold
        bisect.insort(self._items, (d, point.id, point))
        displaced = self._items.pop()[2] if len(self._items) > self.k else None
        if self.threshold > before:
            raise InvariantViolation(f"k-NN threshold increased from {before} to {self.threshold}.")
        return True, displaced

    def points(self) -> tuple[Point, ...]:
        return tuple(p for _, _, p in self._items)


def store_snapshot(store: DistanceStore) -> IndexSnapshot:
    return IndexSnapshot(pivot_ids=tuple(p.id for p in store.pivots), stored_pairs=store.pair_count)


def tree_snapshot(tree: MTree) -> IndexSnapshot:
    return IndexSnapshot(regions=tuple(tree.regions()), statistics=tree.statistics())


class StepGenerator(ABC):
    """
    Base class of all simulations.

    Subclasses list the (method, operation) pairs they implement in KEYS and
    implement `_next_step()`, returning one Step built with `_emit()`.
    """
    KEYS: ClassVar[tuple[tuple[MethodType, OperationType], ...]] = ()

    def __init__(self, config: RunConfig) -> None:
        self.config = config
        self.query = config.query_point
        self._line_count = get_line_count(config.method, config.operation)
        self._step_number = 0
        self._exhausted = False

        is_query = config.operation != OperationType.INSERT
        self._candidates: dict[int, Point] = {p.id: p for p in config.dataset} if is_query else {}
        self._eliminated: list[Point] = []
        self._found: list[tuple[float, int, Point]] = []
        self._inserted: list[Point] = []
        self._neighbors = NearestNeighbors(config.k) if config.operation == OperationType.KNN else None

    @property
    def exhausted(self) -> bool:
        """True once the final step has been emitted."""
        return self._exhausted

    def advance(self) -> Optional[Step]:
        if self._exhausted:
            return None
        return self._next_step()

    @abstractmethod
    def _next_step(self) -> Step:
        """Perform one unit of work and return its step."""

    @abstractmethod
    def _distance_log(self) -> tuple[list[DistanceRecord], int]:
        """(records, count) of the exact distances computed by this run."""

    @abstractmethod
    def _index_snapshot(self) -> IndexSnapshot:
        """Copy of the index structure in its current state."""

    # --- shared state ---

    @property
    def threshold(self) -> Optional[float]:
        match self.config.operation:
            case OperationType.RANGE:
                return self.config.radius
            case OperationType.KNN:
                return self._neighbors.threshold
            case _:
                return None

    def _result(self) -> tuple[Point, ...]:
        if self._neighbors is not None:
            return self._neighbors.points()
        if self.config.operation == OperationType.RANGE:
            return tuple(p for _, _, p in self._found)
        return tuple(self._inserted)

    def _eliminate(self, points: Iterable[Point]) -> list[Point]:
        """Move still-undecided `points` to the eliminated set."""
        removed = [p for p in points if self._candidates.pop(p.id, None) is not None]
        self._eliminated.extend(removed)
        return removed

    def _accept(self, point: Point, d: float) -> bool:
        """
        Decide a point whose exact distance is known.

        Returns:
            Whether the point entered the result.
        """
        self._candidates.pop(point.id, None)
        if self._neighbors is not None:
            accepted, displaced = self._neighbors.offer(point, d)
            if displaced is not None:
                self._eliminated.append(displaced)
        else:
            accepted = d <= self.config.radius
            if accepted:
                bisect.insort(self._found, (d, point.id, point))
        if not accepted:
            self._eliminated.append(point)
        return accepted

    def _decision(self, point: Point, d: float) -> tuple[StepEvent, str]:
        if self._accept(point, d):
            return StepEvent.INCLUDE, f"d(q, {point.name}) = {d:.3f}: {point.name} is in the result."
        return StepEvent.ELIMINATE_DISTANCE, f"d(q, {point.name}) = {d:.3f}: {point.name} is discarded."

    # --- step construction ---

    def _emit(
        self,
        tag: str,
        event: StepEvent,
        description: str,
        *,
        active: Iterable[Point] = (),
        lower_bound: Optional[float] = None,
        circles: Iterable[Circle] = (),
        tree_path: tuple[int, ...] = (),
        final: bool = False,
    ) -> Step:
        index = line_index(self.config.method, self.config.operation, tag)
        if not 0 <= index < self._line_count:
            raise InvariantViolation(f"Line index {index} is outside the pseudocode listing.")

        threshold = self.threshold
        shapes = list(circles)
        if threshold is not None and math.isfinite(threshold):
            shapes.insert(0, Circle(self.query, threshold, VisualType.QUERY))

        records, calls = self._distance_log()
        self._step_number += 1
        step = Step(
            step_number=self._step_number,
            line_index=index,
            event=event,
            candidates=tuple(self._candidates.values()),
            eliminated=tuple(self._eliminated),
            result=self._result(),
            active=tuple(active),
            distances_computed=tuple(records),
            lower_bound=lower_bound,
            threshold=threshold,
            distance_calls=calls,
            circles=tuple(shapes),
            tree_path=tree_path,
            index=self._index_snapshot(),
            description=description,
        )
        if final:
            self._exhausted = True
        logger.debug(f"Step {step.step_number} [{event}] {description}")
        return step

    def _start(self) -> Step:
        what = self.config.threshold_label
        return self._emit(
            "init", StepEvent.INIT,
            f"{self.config.method} {self.config.operation} ({what}) over {len(self.config.dataset)} points.",
        )

    def _finish(self) -> Step:
        if self._candidates:
            raise InvariantViolation(f"{len(self._candidates)} candidates are still undecided at the end.")
        names = ", ".join(p.name for p in self._result()) or "none"
        return self._emit("return", StepEvent.FINISH, f"Result: {names}.", final=True)

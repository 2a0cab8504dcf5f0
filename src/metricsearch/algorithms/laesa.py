"""
LAESA Simulations
=================
Linear AESA: only the distances between a fixed pivot set and every point are
stored. The query is first measured against all pivots; the remaining points
are then bounded by those pivots and eliminated or measured.
"""
from __future__ import annotations

import logging
from enum import Enum, auto
from typing import Optional

from metricsearch.algorithms.base import StepGenerator, store_snapshot
from metricsearch.algorithms.registry import register_generator
from metricsearch.model.distance_store import DistanceStore, select_pivots
from metricsearch.model.geometry import DistanceRecord, Point
from metricsearch.model.run_config import MethodType, OperationType, RunConfig
from metricsearch.model.step import Circle, IndexSnapshot, Step, StepEvent, VisualType

logger = logging.getLogger(__name__)


def resolve_pivots(config: RunConfig) -> tuple[Point, ...]:
    """Explicit `pivot_ids` win over the pivot policy."""
    if config.pivot_ids is not None:
        by_id = {p.id: p for p in config.dataset}
        return tuple(by_id[pid] for pid in config.pivot_ids)
    return select_pivots(config.dataset, config.resolved_pivot_count(), config.pivot_policy, config.metric)


def build_store(config: RunConfig) -> DistanceStore:
    pivots = resolve_pivots(config)
    logger.debug(f"LAESA pivots: {', '.join(p.name for p in pivots)}")
    return DistanceStore.build(config.dataset, pivots, config.metric)


class _Phase(Enum):
    START = auto()
    PIVOT_COMPUTE = auto()
    PIVOT_COMPARE = auto()
    BOUND = auto()
    VISIT = auto()
    COMPUTE = auto()
    COMPARE = auto()
    FINISH = auto()


class _LaesaSearch(StepGenerator):
    """Pivot phase shared by range and k-NN search."""

    def __init__(self, config: RunConfig, store: Optional[DistanceStore] = None) -> None:
        super().__init__(config)
        self.store = store or build_store(config)
        self.pivots = self.store.pivots
        pivot_ids = {p.id for p in self.pivots}
        self.others = [p for p in config.dataset if p.id not in pivot_ids]
        self._phase = _Phase.START
        self._pivot_index = 0
        self._index = 0
        self._current: Optional[Point] = None
        self._distance = 0.0

    def _distance_log(self) -> tuple[list[DistanceRecord], int]:
        return self.store.records, self.store.distance_calls

    def _index_snapshot(self) -> IndexSnapshot:
        return store_snapshot(self.store)

    def _pivot_compute(self) -> Step:
        pivot = self.pivots[self._pivot_index]
        self._distance = self.store.get_or_compute(self.query, pivot)
        self._phase = _Phase.PIVOT_COMPARE
        return self._emit(
            "compute_pivot", StepEvent.COMPUTE,
            f"Pivot {pivot.name}: d(q, {pivot.name}) = {self._distance:.3f}",
            active=(pivot,),
            circles=(Circle(pivot, self._distance, VisualType.PIVOT),),
        )

    def _pivot_compare(self, after_pivots: _Phase) -> Step:
        pivot = self.pivots[self._pivot_index]
        event, description = self._decision(pivot, self._distance)
        self._pivot_index += 1
        if self._pivot_index < len(self.pivots):
            self._phase = _Phase.PIVOT_COMPUTE
        else:
            self._phase = after_pivots if self.others else _Phase.FINISH
        return self._emit(
            "compare_pivot", event, description,
            active=(pivot,),
            circles=(Circle(pivot, self._distance, VisualType.PIVOT),),
        )

    def _compute(self) -> Step:
        point = self._current
        self._distance = self.store.get_or_compute(self.query, point)
        self._phase = _Phase.COMPARE
        return self._emit(
            "compute", StepEvent.COMPUTE, f"d(q, {point.name}) = {self._distance:.3f}", active=(point,),
        )


@register_generator
class LaesaRange(_LaesaSearch):
    KEYS = ((MethodType.LAESA, OperationType.RANGE),)

    def _next_step(self) -> Step:
        match self._phase:
            case _Phase.START:
                self._phase = _Phase.PIVOT_COMPUTE
                return self._start()
            case _Phase.PIVOT_COMPUTE:
                return self._pivot_compute()
            case _Phase.PIVOT_COMPARE:
                return self._pivot_compare(_Phase.BOUND)
            case _Phase.BOUND:
                return self._bound()
            case _Phase.COMPUTE:
                return self._compute()
            case _Phase.COMPARE:
                point = self._current
                event, description = self._decision(point, self._distance)
                self._advance_object()
                return self._emit("compare", event, description, active=(point,))
            case _:
                return self._finish()

    def _advance_object(self) -> None:
        self._index += 1
        self._phase = _Phase.BOUND if self._index < len(self.others) else _Phase.FINISH

    def _bound(self) -> Step:
        point = self.others[self._index]
        self._current = point
        bound = self.store.lower_bound(self.query, point, self.pivots)
        radius = self.config.radius
        circles = (Circle(self.query, bound, VisualType.BOUND),)
        if bound > radius:
            self._eliminate((point,))
            self._advance_object()
            return self._emit(
                "eliminate", StepEvent.ELIMINATE_BOUND,
                f"LB({point.name}) = {bound:.3f} > r = {radius:g}: {point.name} eliminated.",
                active=(point,), lower_bound=bound, circles=circles,
            )
        self._phase = _Phase.COMPUTE
        return self._emit(
            "bound", StepEvent.LOWER_BOUND,
            f"LB({point.name}) = {bound:.3f} <= r = {radius:g}: distance needed.",
            active=(point,), lower_bound=bound, circles=circles,
        )


@register_generator
class LaesaKnn(_LaesaSearch):
    KEYS = ((MethodType.LAESA, OperationType.KNN),)

    def __init__(self, config: RunConfig, store: Optional[DistanceStore] = None) -> None:
        super().__init__(config, store)
        self._bounds: dict[int, float] = {}
        self._order: list[Point] = []

    def _next_step(self) -> Step:
        match self._phase:
            case _Phase.START:
                self._phase = _Phase.PIVOT_COMPUTE
                return self._start()
            case _Phase.PIVOT_COMPUTE:
                return self._pivot_compute()
            case _Phase.PIVOT_COMPARE:
                return self._pivot_compare(_Phase.BOUND)
            case _Phase.BOUND:
                return self._bound()
            case _Phase.VISIT:
                return self._visit()
            case _Phase.COMPUTE:
                return self._compute()
            case _Phase.COMPARE:
                point = self._current
                event, description = self._decision(point, self._distance)
                self._index += 1
                self._phase = _Phase.VISIT if self._index < len(self._order) else _Phase.FINISH
                return self._emit("compare", event, description, active=(point,))
            case _:
                return self._finish()

    def _bound(self) -> Step:
        point = self.others[len(self._bounds)]
        bound = self.store.lower_bound(self.query, point, self.pivots)
        self._bounds[point.id] = bound
        if len(self._bounds) == len(self.others):
            position = {p.id: i for i, p in enumerate(self.others)}
            self._order = sorted(self.others, key=lambda p: (self._bounds[p.id], position[p.id]))
            self._index = 0
            self._phase = _Phase.VISIT
        return self._emit(
            "bound", StepEvent.LOWER_BOUND, f"LB({point.name}) = {bound:.3f}",
            active=(point,), lower_bound=bound,
            circles=(Circle(self.query, bound, VisualType.BOUND),),
        )

    def _visit(self) -> Step:
        point = self._order[self._index]
        bound = self._bounds[point.id]
        threshold = self.threshold
        if self._neighbors.full and bound > threshold:
            remaining = self._eliminate(self._order[self._index:])
            self._phase = _Phase.FINISH
            return self._emit(
                "eliminate", StepEvent.ELIMINATE_BOUND,
                f"LB({point.name}) = {bound:.3f} > τ = {threshold:.3f}: "
                f"{len(remaining)} remaining point(s) eliminated.",
                active=remaining, lower_bound=bound,
                circles=(Circle(self.query, bound, VisualType.BOUND),),
            )
        self._current = point
        return self._compute()


@register_generator
class LaesaInsert(StepGenerator):
    """Adds one column to the pivot table: the distances from every pivot to the new point."""
    KEYS = ((MethodType.LAESA, OperationType.INSERT),)

    def __init__(self, config: RunConfig, store: Optional[DistanceStore] = None) -> None:
        super().__init__(config)
        self.store = store or build_store(config)
        self.store.add_point(self.query)
        self._index = 0

    def _distance_log(self) -> tuple[list[DistanceRecord], int]:
        return self.store.records, self.store.distance_calls

    def _index_snapshot(self) -> IndexSnapshot:
        return store_snapshot(self.store)

    def _next_step(self) -> Step:
        pivots = self.store.pivots
        if self._index < len(pivots):
            pivot = pivots[self._index]
            self._index += 1
            d = self.store.get_or_compute(pivot, self.query)
            return self._emit(
                "compute", StepEvent.COMPUTE,
                f"D({pivot.name}, {self.query.name}) = {d:.3f} ({self._index}/{len(pivots)})",
                active=(pivot,),
                circles=(Circle(pivot, d, VisualType.PIVOT),),
            )
        self._inserted.append(self.query)
        return self._emit(
            "append", StepEvent.STORE,
            f"{self.query.name} appended with {len(pivots)} pivot distance(s).",
            active=(self.query,), final=True,
        )

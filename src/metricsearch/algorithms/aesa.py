"""
AESA Simulations
================
Approximating and Eliminating Search Algorithm over a full distance matrix.

Each round picks the candidate with the smallest lower bound as the next
pivot, computes its exact distance to the query and then tightens the lower
bound of every remaining candidate using all pivots seen so far. Candidates
whose bound exceeds the threshold are eliminated without ever computing
their distance.
"""
from __future__ import annotations

import logging
import math
from enum import Enum, auto
from typing import Optional

from metricsearch.algorithms.base import StepGenerator, store_snapshot
from metricsearch.algorithms.registry import register_generator
from metricsearch.model.distance_store import DistanceStore
from metricsearch.model.geometry import DistanceRecord, Point
from metricsearch.model.run_config import MethodType, OperationType, RunConfig
from metricsearch.model.step import Circle, IndexSnapshot, Step, StepEvent, VisualType

logger = logging.getLogger(__name__)


class _Phase(Enum):
    START = auto()
    PICK = auto()
    COMPUTE = auto()
    COMPARE = auto()
    SCAN = auto()
    FINISH = auto()


@register_generator
class AesaSearch(StepGenerator):
    """AESA range and k-NN search."""
    KEYS = ((MethodType.AESA, OperationType.RANGE), (MethodType.AESA, OperationType.KNN))

    def __init__(self, config: RunConfig, store: Optional[DistanceStore] = None) -> None:
        super().__init__(config)
        self.store = store or DistanceStore.build(config.dataset, config.dataset, config.metric)
        self._phase = _Phase.START
        self._pivots: list[Point] = []
        self._pivot: Optional[Point] = None
        self._distance = 0.0
        self._scan: list[Point] = []
        self._scan_index = 0
        self._next: Optional[Point] = config.dataset[0]
        self._next_bound = math.inf

    def _distance_log(self) -> tuple[list[DistanceRecord], int]:
        return self.store.records, self.store.distance_calls

    def _index_snapshot(self) -> IndexSnapshot:
        return store_snapshot(self.store)

    def _next_step(self) -> Step:
        match self._phase:
            case _Phase.START:
                self._phase = _Phase.PICK
                return self._start()
            case _Phase.PICK:
                return self._pick()
            case _Phase.COMPUTE:
                self._distance = self.store.get_or_compute(self.query, self._pivot)
                self._phase = _Phase.COMPARE
                return self._emit(
                    "compute", StepEvent.COMPUTE,
                    f"d(q, {self._pivot.name}) = {self._distance:.3f}",
                    active=(self._pivot,),
                    circles=(Circle(self._pivot, self._distance, VisualType.PIVOT),),
                )
            case _Phase.COMPARE:
                return self._compare()
            case _Phase.SCAN:
                return self._scan_candidate()
            case _:
                return self._finish()

    def _pick(self) -> Step:
        pivot = self._next
        self._pivots.append(pivot)
        self._pivot = pivot
        self._phase = _Phase.COMPUTE
        if len(self._pivots) == 1:
            return self._emit("pick", StepEvent.SELECT_PIVOT, f"First pivot: {pivot.name}.", active=(pivot,))
        return self._emit(
            "pick", StepEvent.SELECT_PIVOT,
            f"Next pivot: {pivot.name} (smallest lower bound {self._next_bound:.3f}).",
            active=(pivot,), lower_bound=self._next_bound,
        )

    def _compare(self) -> Step:
        pivot = self._pivot
        event, description = self._decision(pivot, self._distance)

        self._scan = list(self._candidates.values())
        self._scan_index = 0
        self._next, self._next_bound = None, math.inf
        self._phase = _Phase.SCAN if self._scan else _Phase.FINISH
        return self._emit(
            "compare", event, description,
            active=(pivot,),
            circles=(Circle(pivot, self._distance, VisualType.PIVOT),),
        )

    def _scan_candidate(self) -> Step:
        candidate = self._scan[self._scan_index]
        self._scan_index += 1
        bound = self.store.lower_bound(self.query, candidate, self._pivots)
        threshold = self.threshold

        if bound > threshold:
            self._eliminate((candidate,))
            tag, event = "eliminate", StepEvent.ELIMINATE_BOUND
            description = f"LB({candidate.name}) = {bound:.3f} > {threshold:.3f}: {candidate.name} eliminated."
        else:
            if bound < self._next_bound:
                self._next, self._next_bound = candidate, bound
            tag, event = "bound", StepEvent.LOWER_BOUND
            description = f"LB({candidate.name}) = {bound:.3f}: {candidate.name} stays a candidate."

        if self._scan_index == len(self._scan):
            self._phase = _Phase.PICK if self._candidates else _Phase.FINISH
        return self._emit(
            tag, event, description,
            active=(candidate,), lower_bound=bound,
            circles=(Circle(self.query, bound, VisualType.BOUND),),
        )


@register_generator
class AesaInsert(StepGenerator):
    """Extends the distance matrix with a new point (one row, n distances)."""
    KEYS = ((MethodType.AESA, OperationType.INSERT),)

    def __init__(self, config: RunConfig, store: Optional[DistanceStore] = None) -> None:
        super().__init__(config)
        self.store = store or DistanceStore.build(config.dataset, config.dataset, config.metric)
        self.store.add_point(self.query)
        self._targets = list(config.dataset)
        self._index = 0

    def _distance_log(self) -> tuple[list[DistanceRecord], int]:
        return self.store.records, self.store.distance_calls

    def _index_snapshot(self) -> IndexSnapshot:
        return store_snapshot(self.store)

    def _next_step(self) -> Step:
        if self._index < len(self._targets):
            other = self._targets[self._index]
            self._index += 1
            d = self.store.get_or_compute(self.query, other)
            return self._emit(
                "compute", StepEvent.COMPUTE,
                f"D({self.query.name}, {other.name}) = {d:.3f} "
                f"({self._index}/{len(self._targets)})",
                active=(other,),
                circles=(Circle(self.query, d, VisualType.PIVOT),),
            )
        self._inserted.append(self.query)
        return self._emit(
            "append", StepEvent.STORE,
            f"{self.query.name} appended; the matrix now covers {len(self._targets) + 1} points.",
            active=(self.query,), final=True,
        )

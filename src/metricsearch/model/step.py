"""
Simulation Steps
================
A Step is the immutable snapshot emitted by a generator after one unit of work.
Everything a view needs to draw the current state (candidate and result sets,
circles, the pseudocode line, a copy of the index) travels inside the step;
nothing refers back to generator internals.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Optional

from metricsearch.model.geometry import DistanceRecord, Point
from metricsearch.model.mtree import Region, TreeStatistics


class StepEvent(StrEnum):
    """What happened in a step."""
    INIT = "INIT"
    SELECT_PIVOT = "SELECT_PIVOT"
    COMPUTE = "COMPUTE"
    INCLUDE = "INCLUDE"
    ELIMINATE_DISTANCE = "ELIMINATE_DISTANCE"
    ELIMINATE_BOUND = "ELIMINATE_BOUND"
    LOWER_BOUND = "LOWER_BOUND"
    VISIT_NODE = "VISIT_NODE"
    DESCEND = "DESCEND"
    PRUNE = "PRUNE"
    ENQUEUE = "ENQUEUE"
    CHOOSE_ENTRY = "CHOOSE_ENTRY"
    STORE = "STORE"
    SPLIT = "SPLIT"
    FINISH = "FINISH"
    DIAGNOSTIC = "DIAGNOSTIC"


class VisualType(StrEnum):
    """Render hint for a circle."""
    QUERY = "QUERY"              # query ball (radius or k-th distance)
    PIVOT = "PIVOT"              # ring of d(q, p) around the active pivot
    BOUND = "BOUND"              # lower bound ring
    REGION = "REGION"            # M-Tree covering region
    PRUNED = "PRUNED"            # region that was pruned
    SPLIT = "SPLIT"              # new regions produced by a split


@dataclass(frozen=True)
class Circle:
    center: Point
    radius: float
    kind: VisualType


@dataclass(frozen=True)
class IndexSnapshot:
    """
    The index structure as it was when a step was emitted.

    Distance-matrix runs fill `pivot_ids` and `stored_pairs`; M-Tree runs fill
    `regions` and `statistics`. Insertions change the index, so every step
    carries its own copy.
    """
    pivot_ids: tuple[int, ...] = ()
    stored_pairs: int = 0
    regions: tuple[Region, ...] = ()
    statistics: Optional[TreeStatistics] = None


@dataclass(frozen=True)
class Step:
    step_number: int
    line_index: int
    event: StepEvent
    candidates: tuple[Point, ...] = ()
    eliminated: tuple[Point, ...] = ()
    result: tuple[Point, ...] = ()
    active: tuple[Point, ...] = ()
    distances_computed: tuple[DistanceRecord, ...] = ()
    lower_bound: Optional[float] = None
    threshold: Optional[float] = None
    distance_calls: int = 0
    circles: tuple[Circle, ...] = ()
    tree_path: tuple[int, ...] = ()
    index: Optional[IndexSnapshot] = None
    description: str = ""

    def ids(self, attribute: str) -> list[int]:
        """Point ids of `candidates`, `eliminated`, `result` or `active`."""
        return [p.id for p in getattr(self, attribute)]

    @property
    def is_diagnostic(self) -> bool:
        return self.event == StepEvent.DIAGNOSTIC


def diagnostic_step(step_number: int, message: str, previous: Optional[Step] = None) -> Step:
    """
    Build the step shown when a run is stopped by an internal error.

    The sets of the last good step are carried over so the view keeps its state.
    """
    if previous is None:
        return Step(step_number=step_number, line_index=0, event=StepEvent.DIAGNOSTIC, description=message)
    return Step(
        step_number=step_number,
        line_index=previous.line_index,
        event=StepEvent.DIAGNOSTIC,
        candidates=previous.candidates,
        eliminated=previous.eliminated,
        result=previous.result,
        distances_computed=previous.distances_computed,
        threshold=previous.threshold,
        distance_calls=previous.distance_calls,
        tree_path=previous.tree_path,
        index=previous.index,
        description=message,
    )

"""
M-Tree Simulations
==================
Range search (depth-first with an explicit stack), k-NN search (best-first
over a pending-region queue) and insertion (one decision per step).

Pruning rules, where Op is the pivot of the parent entry:
    parent bound:  max(|d(q, Op) - d(e, Op)| - r(e), 0) > threshold
    region bound:  max(d(q, e) - r(e), 0) > threshold
Both bounds are reported as the step's `lower_bound`, the threshold being the
query radius (range) or the current k-th distance (k-NN).
"""
from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from metricsearch.algorithms.base import StepGenerator, tree_snapshot
from metricsearch.algorithms.registry import register_generator
from metricsearch.model.geometry import DistanceRecord, Point
from metricsearch.model.mtree import (
    Entry, InsertPath, LeafNode, MTree, Node, RoutingEntry, RoutingNode, subtree_points,
)
from metricsearch.model.run_config import MethodType, OperationType, RunConfig
from metricsearch.model.step import Circle, IndexSnapshot, Step, StepEvent, VisualType

logger = logging.getLogger(__name__)


def build_tree(config: RunConfig) -> MTree:
    """Bulk-load the dataset; construction distances are not charged to the run."""
    tree = MTree.build(config.dataset, config.metric, config.node_capacity, config.max_tree_height)
    tree.reset_counter()
    return tree


def _entry_points(entry: Entry) -> list[Point]:
    if isinstance(entry, RoutingEntry):
        return subtree_points(entry.child)
    return [entry.point]


def _region(entry: Entry, kind: VisualType) -> tuple[Circle, ...]:
    if isinstance(entry, RoutingEntry):
        return (Circle(entry.pivot, entry.covering_radius, kind),)
    return ()


@dataclass
class _Frame:
    """A node on the search stack (or taken from the pending queue)."""
    node: Node
    path: tuple[int, ...]
    query_to_parent: Optional[float]
    region: tuple[Circle, ...] = ()
    index: int = 0
    entered: bool = False


class _Phase(Enum):
    START = auto()
    SEARCH = auto()
    POP = auto()
    ENTRIES = auto()
    DESCEND = auto()
    STORE = auto()
    SPLIT = auto()
    FINISH = auto()


class _MTreeSearch(StepGenerator):

    def __init__(self, config: RunConfig, tree: Optional[MTree] = None) -> None:
        super().__init__(config)
        self.tree = build_tree(config) if tree is None else tree
        # Searches never modify the tree
        self._snapshot = tree_snapshot(self.tree)
        self._phase = _Phase.START

    def _distance_log(self) -> tuple[list[DistanceRecord], int]:
        return self.tree.records, self.tree.distance_calls

    def _index_snapshot(self) -> IndexSnapshot:
        return self._snapshot

    def _prune(self, entry: Entry, tag: str, bound: float, path: tuple[int, ...]) -> Step:
        removed = self._eliminate(_entry_points(entry))
        threshold = self.threshold
        if isinstance(entry, RoutingEntry):
            event = StepEvent.PRUNE
            description = (f"Region of {entry.pivot.name} pruned: bound {bound:.3f} > {threshold:.3f} "
                           f"({len(removed)} point(s) eliminated).")
        else:
            event = StepEvent.ELIMINATE_BOUND
            description = f"{entry.point.name} eliminated: bound {bound:.3f} > {threshold:.3f}."
        return self._emit(
            tag, event, description,
            active=removed, lower_bound=bound,
            circles=_region(entry, VisualType.PRUNED), tree_path=path,
        )

    def _parent_bound(self, frame: _Frame, entry: Entry) -> Optional[float]:
        if frame.query_to_parent is None:
            return None
        return max(abs(frame.query_to_parent - entry.distance_to_parent) - entry.radius, 0.0)

    def _visit_step(self, frame: _Frame, tag: str, bound: Optional[float] = None) -> Step:
        kind = "leaf" if isinstance(frame.node, LeafNode) else "routing node"
        where = "root" if not frame.path else "/".join(str(i) for i in frame.path)
        return self._emit(
            tag, StepEvent.VISIT_NODE,
            f"Visiting {kind} {where} ({len(frame.node.entries)} entries).",
            lower_bound=bound, circles=frame.region, tree_path=frame.path,
        )


@register_generator
class MTreeRange(_MTreeSearch):
    KEYS = ((MethodType.MTREE, OperationType.RANGE),)

    def __init__(self, config: RunConfig, tree: Optional[MTree] = None) -> None:
        super().__init__(config, tree)
        self._stack: list[_Frame] = []

    def _next_step(self) -> Step:
        if self._phase == _Phase.START:
            self._stack.append(_Frame(self.tree.root, (), None))
            self._phase = _Phase.SEARCH
            return self._start()

        while self._stack and self._stack[-1].entered and self._stack[-1].index >= len(self._stack[-1].node.entries):
            self._stack.pop()
        if not self._stack:
            return self._finish()

        frame = self._stack[-1]
        if not frame.entered:
            frame.entered = True
            return self._visit_step(frame, "visit")
        entry = frame.node.entries[frame.index]
        path = frame.path + (frame.index,)
        frame.index += 1
        return self._entry(frame, entry, path)

    def _entry(self, frame: _Frame, entry: Entry, path: tuple[int, ...]) -> Step:
        radius = self.config.radius
        bound = self._parent_bound(frame, entry)
        if bound is not None and bound > radius:
            return self._prune(entry, "parent", bound, path)

        d = self.tree.distance(self.query, entry.obj)
        if isinstance(entry, RoutingEntry):
            bound = max(d - entry.covering_radius, 0.0)
            if bound > radius:
                return self._prune(entry, "routing", bound, path)
            region = _region(entry, VisualType.REGION)
            self._stack.append(_Frame(entry.child, path, d, region))
            return self._emit(
                "descend", StepEvent.DESCEND,
                f"d(q, {entry.pivot.name}) = {d:.3f}, covering radius {entry.covering_radius:.3f}: "
                f"region intersects the query ball, descending.",
                active=(entry.pivot,), lower_bound=bound, circles=region, tree_path=path,
            )

        event, description = self._decision(entry.point, d)
        return self._emit(
            "include" if event == StepEvent.INCLUDE else "leaf", event, description,
            active=(entry.point,), tree_path=path,
        )


@register_generator
class MTreeKnn(_MTreeSearch):
    KEYS = ((MethodType.MTREE, OperationType.KNN),)

    def __init__(self, config: RunConfig, tree: Optional[MTree] = None) -> None:
        super().__init__(config, tree)
        self._pending: list[tuple[float, int, _Frame]] = []
        self._sequence = 0
        self._frame: Optional[_Frame] = None

    def _enqueue(self, dmin: float, frame: _Frame) -> None:
        heapq.heappush(self._pending, (dmin, self._sequence, frame))
        self._sequence += 1

    def _next_step(self) -> Step:
        match self._phase:
            case _Phase.START:
                self._enqueue(0.0, _Frame(self.tree.root, (), None))
                self._phase = _Phase.POP
                return self._start()
            case _Phase.POP:
                if not self._pending:
                    return self._finish()
                return self._pop()
            case _Phase.ENTRIES:
                return self._entry()
            case _:
                return self._finish()

    def _pop(self) -> Step:
        dmin, _, frame = heapq.heappop(self._pending)
        threshold = self.threshold
        if dmin > threshold:
            frames = [frame] + [f for _, _, f in sorted(self._pending, key=lambda t: (t[0], t[1]))]
            self._pending.clear()
            removed = self._eliminate(p for f in frames for p in subtree_points(f.node))
            self._phase = _Phase.FINISH
            return self._emit(
                "stop", StepEvent.PRUNE,
                f"Closest pending region has dmin {dmin:.3f} > τ = {threshold:.3f}: "
                f"{len(frames)} region(s) with {len(removed)} point(s) discarded.",
                active=removed, lower_bound=dmin,
                circles=tuple(c for f in frames for c in f.region), tree_path=frame.path,
            )
        frame.entered = True
        self._frame = frame
        self._phase = _Phase.ENTRIES if frame.node.entries else _Phase.POP
        return self._visit_step(frame, "pop", dmin)

    def _entry(self) -> Step:
        frame = self._frame
        entry = frame.node.entries[frame.index]
        path = frame.path + (frame.index,)
        frame.index += 1
        if frame.index >= len(frame.node.entries):
            self._phase = _Phase.POP

        threshold = self.threshold
        bound = self._parent_bound(frame, entry)
        if bound is not None and bound > threshold:
            return self._prune(entry, "parent", bound, path)

        d = self.tree.distance(self.query, entry.obj)
        if isinstance(entry, RoutingEntry):
            dmin = max(d - entry.covering_radius, 0.0)
            if dmin > threshold:
                return self._prune(entry, "enqueue", dmin, path)
            region = _region(entry, VisualType.REGION)
            self._enqueue(dmin, _Frame(entry.child, path, d, region))
            return self._emit(
                "enqueue", StepEvent.ENQUEUE,
                f"d(q, {entry.pivot.name}) = {d:.3f}: region queued with dmin {dmin:.3f}.",
                active=(entry.pivot,), lower_bound=dmin, circles=region, tree_path=path,
            )

        event, description = self._decision(entry.point, d)
        return self._emit("compare", event, description, active=(entry.point,), tree_path=path)


@register_generator
class MTreeInsert(StepGenerator):
    """Routes a new point to a leaf, stores it and splits overflowing nodes."""
    KEYS = ((MethodType.MTREE, OperationType.INSERT),)

    def __init__(self, config: RunConfig, tree: Optional[MTree] = None) -> None:
        super().__init__(config)
        self.tree = build_tree(config) if tree is None else tree
        self._node: Node = self.tree.root
        self._path: InsertPath = []
        self._tree_path: tuple[int, ...] = ()
        self._distance_to_parent = 0.0
        self._phase = _Phase.DESCEND if isinstance(self._node, RoutingNode) else _Phase.STORE

    def _distance_log(self) -> tuple[list[DistanceRecord], int]:
        return self.tree.records, self.tree.distance_calls

    def _index_snapshot(self) -> IndexSnapshot:
        return tree_snapshot(self.tree)

    def _next_step(self) -> Step:
        match self._phase:
            case _Phase.DESCEND:
                return self._choose()
            case _Phase.STORE:
                return self._store()
            case _:
                return self._split()

    def _choose(self) -> Step:
        node = self._node
        choice = self.tree.choose_entry(node, self.query)
        entry = node.entries[choice.index]
        self._path.append((node, choice.index))
        self._tree_path += (choice.index,)
        self._distance_to_parent = choice.distance
        self._node = entry.child
        if isinstance(self._node, LeafNode):
            self._phase = _Phase.STORE

        if choice.covered:
            reason = f"already covered by {entry.pivot.name} (d = {choice.distance:.3f})"
        elif choice.new_radius > choice.previous_radius:
            reason = (f"no region covers it; {entry.pivot.name} needs the least enlargement, "
                      f"radius {choice.previous_radius:.3f} -> {choice.new_radius:.3f}")
        else:
            reason = f"closest to {entry.pivot.name} (d = {choice.distance:.3f})"
        return self._emit(
            "choose", StepEvent.CHOOSE_ENTRY, f"{self.query.name}: {reason}.",
            active=(entry.pivot,), circles=_region(entry, VisualType.REGION), tree_path=self._tree_path,
        )

    def _store(self) -> Step:
        overflow = self.tree.add_to_leaf(self._node, self.query, self._distance_to_parent)
        self._inserted.append(self.query)
        self._phase = _Phase.SPLIT
        size = len(self._node.entries)
        if overflow:
            description = f"{self.query.name} stored; the leaf holds {size} > {self.tree.capacity} entries."
        else:
            description = f"{self.query.name} stored in a leaf with {size} entries."
        return self._emit(
            "store", StepEvent.STORE, description,
            active=(self.query,), tree_path=self._tree_path, final=not overflow,
        )

    def _split(self) -> Step:
        node = self._node
        result = self.tree.split(self._path, node)
        seed1, seed2 = result.seeds
        done = result.new_root or not result.parent_overflow
        if not done:
            self._node, _ = self._path.pop()
            self._tree_path = self._tree_path[:-1]

        kind = "Leaf" if result.was_leaf else "Routing node"
        description = (f"{kind} split: pivots {seed1.name} ({len(result.groups[0])} entries, "
                       f"r = {result.radii[0]:.3f}) and {seed2.name} ({len(result.groups[1])} entries, "
                       f"r = {result.radii[1]:.3f}).")
        if result.new_root:
            description += f" New root, height {self.tree.height}."
        elif not done:
            description += " The parent overflows."
        return self._emit(
            "split", StepEvent.SPLIT, description,
            active=result.seeds,
            circles=(Circle(seed1, result.radii[0], VisualType.SPLIT),
                     Circle(seed2, result.radii[1], VisualType.SPLIT)),
            tree_path=self._tree_path, final=done,
        )

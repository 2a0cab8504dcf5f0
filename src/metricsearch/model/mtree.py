"""
M-Tree
======
A balanced metric tree of nested covering balls.

Structure:
    RoutingNode -> list[RoutingEntry]   (pivot, covering radius, child subtree)
    LeafNode    -> list[DataEntry]      (the indexed points)

Every entry also stores its distance to the pivot of the parent entry, which
lets searches discard an entry by the triangle inequality before computing
d(query, entry). Nodes are owned by their parent entry and hold no back-
pointers; insertion tracks its own root-to-leaf path instead.

The primitive operations `choose_entry`, `add_to_leaf` and `split` are public
so a step generator can drive an insertion one decision at a time; `insert`
chains them for bulk loading.
"""
from __future__ import annotations

import copy
import heapq
import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional, Sequence, Union

from metricsearch.config import DEFAULT_MAX_TREE_HEIGHT, DEFAULT_NODE_CAPACITY, MIN_NODE_CAPACITY
from metricsearch.model.errors import ConfigError, InvariantViolation
from metricsearch.model.geometry import CountingDistance, DistanceRecord, Metric, Point, distance

logger = logging.getLogger(__name__)

# Floating point slack for validation only
_TOLERANCE = 1e-9


@dataclass
class DataEntry:
    point: Point
    distance_to_parent: float = 0.0

    @property
    def obj(self) -> Point:
        return self.point

    @property
    def radius(self) -> float:
        return 0.0


@dataclass
class RoutingEntry:
    pivot: Point
    covering_radius: float
    distance_to_parent: float
    child: Node

    @property
    def obj(self) -> Point:
        return self.pivot

    @property
    def radius(self) -> float:
        return self.covering_radius


@dataclass
class LeafNode:
    entries: list[DataEntry] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return True


@dataclass
class RoutingNode:
    entries: list[RoutingEntry] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return False


Node = Union[LeafNode, RoutingNode]
Entry = Union[DataEntry, RoutingEntry]

# (routing node, index of the entry taken) from the root down
InsertPath = list[tuple[RoutingNode, int]]


@dataclass(frozen=True)
class EntryChoice:
    """Outcome of routing a new point through one routing node."""
    index: int
    distance: float
    covered: bool
    previous_radius: float
    new_radius: float
    distances: tuple[float, ...]


@dataclass(frozen=True)
class SplitResult:
    """Outcome of splitting one overflowing node."""
    was_leaf: bool
    seeds: tuple[Point, Point]
    groups: tuple[tuple[Point, ...], tuple[Point, ...]]
    radii: tuple[float, float]
    new_root: bool
    parent_overflow: bool


@dataclass(frozen=True)
class Region:
    """A covering ball, for rendering."""
    pivot: Point
    radius: float
    depth: int


@dataclass(frozen=True)
class TreeStatistics:
    points: int
    nodes: int
    leaves: int
    routing_nodes: int
    height: int
    fill: float


def subtree_points(node: Node) -> list[Point]:
    """All points stored below `node`, in left-to-right order."""
    if isinstance(node, LeafNode):
        return [e.point for e in node.entries]
    points: list[Point] = []
    for entry in node.entries:
        points.extend(subtree_points(entry.child))
    return points


class MTree:
    """
    Args:
        metric: Distance used for every computation.
        capacity: Maximum number of entries per node (M).
        max_height: Insertions that would grow the tree beyond this height fail.
    """

    def __init__(
        self,
        metric: Metric = Metric.L2,
        capacity: int = DEFAULT_NODE_CAPACITY,
        max_height: int = DEFAULT_MAX_TREE_HEIGHT,
    ) -> None:
        if capacity < MIN_NODE_CAPACITY:
            raise ConfigError(f"Node capacity must be at least {MIN_NODE_CAPACITY}, got {capacity}.")
        if max_height < 1:
            raise ConfigError(f"Maximum tree height must be positive, got {max_height}.")
        self.metric = metric
        self.capacity = capacity
        self.max_height = max_height
        self.root: Node = LeafNode()
        self._ids: set[int] = set()
        self._counter = CountingDistance(metric)

    @classmethod
    def build(
        cls,
        points: Sequence[Point],
        metric: Metric = Metric.L2,
        capacity: int = DEFAULT_NODE_CAPACITY,
        max_height: int = DEFAULT_MAX_TREE_HEIGHT,
    ) -> MTree:
        """Insert `points` in order into an empty tree."""
        tree = cls(metric, capacity, max_height)
        for point in points:
            tree.insert(point)
        logger.debug(f"M-Tree built: {len(tree)} points, height {tree.height}.")
        return tree

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, point_id: object) -> bool:
        return point_id in self._ids

    @property
    def height(self) -> int:
        node, height = self.root, 1
        while isinstance(node, RoutingNode):
            node = node.entries[0].child
            height += 1
        return height

    # --- distance accounting ---

    @property
    def distance_calls(self) -> int:
        return self._counter.calls

    @property
    def records(self) -> list[DistanceRecord]:
        return self._counter.records

    def reset_counter(self) -> None:
        self._counter.reset()

    def distance(self, a: Point, b: Point) -> float:
        """Counted exact distance."""
        return self._counter(a, b)

    # --- insertion primitives ---

    def check_insertable(self, point: Point) -> None:
        if point.id in self._ids:
            raise InvariantViolation(f"Point id {point.id} is already in the M-Tree.")

    def choose_entry(self, node: RoutingNode, point: Point) -> EntryChoice:
        """
        Pick the subtree of `node` that receives `point` and enlarge its radius.

        The closest pivot among the entries already covering the point wins;
        when none covers it, the entry needing the smallest enlargement wins
        (ties: smaller radius, then entry order).
        """
        distances = tuple(self.distance(point, e.pivot) for e in node.entries)
        covering = [i for i, e in enumerate(node.entries) if distances[i] <= e.covering_radius]
        if covering:
            index = min(covering, key=lambda i: (distances[i], i))
        else:
            index = min(
                range(len(node.entries)),
                key=lambda i: (distances[i] - node.entries[i].covering_radius, node.entries[i].covering_radius, i),
            )
        entry = node.entries[index]
        previous = entry.covering_radius
        entry.covering_radius = max(previous, distances[index])
        return EntryChoice(index, distances[index], bool(covering), previous, entry.covering_radius, distances)

    def add_to_leaf(self, leaf: LeafNode, point: Point, distance_to_parent: float) -> bool:
        """Store `point` in `leaf`. Returns whether the leaf now overflows."""
        self.check_insertable(point)
        leaf.entries.append(DataEntry(point, distance_to_parent))
        self._ids.add(point.id)
        return len(leaf.entries) > self.capacity

    def split(self, path: InsertPath, node: Node) -> SplitResult:
        """
        Split an overflowing `node` whose ancestors are described by `path`.

        The farthest pair of entry objects become the two new pivots; every
        other entry goes to the nearer one. `node` keeps the first group, a new
        sibling takes the second. At the root a new root is created.

        Raises:
            InvariantViolation: If a root split would exceed `max_height`.
        """
        entries = list(node.entries)
        objects = [e.obj for e in entries]
        n = len(objects)
        pair: dict[tuple[int, int], float] = {}
        for i in range(n):
            for j in range(i + 1, n):
                pair[(i, j)] = self.distance(objects[i], objects[j])

        def d(i: int, j: int) -> float:
            if i == j:
                return 0.0
            return pair[(i, j)] if i < j else pair[(j, i)]

        first, second = 0, 1
        for (i, j), value in pair.items():
            if value > pair[(first, second)]:
                first, second = i, j

        group1: list[int] = []
        group2: list[int] = []
        for i in range(n):
            if i == first:
                group1.append(i)
            elif i == second:
                group2.append(i)
            elif d(i, first) <= d(i, second):
                group1.append(i)
            else:
                group2.append(i)

        def regroup(indices: list[int], seed: int) -> tuple[list[Entry], float]:
            moved: list[Entry] = []
            radius = 0.0
            for i in indices:
                entry = copy.copy(entries[i])
                entry.distance_to_parent = d(i, seed)
                radius = max(radius, d(i, seed) + entry.radius)
                moved.append(entry)
            return moved, radius

        entries1, radius1 = regroup(group1, first)
        entries2, radius2 = regroup(group2, second)
        seed1, seed2 = objects[first], objects[second]
        sibling: Node = LeafNode() if isinstance(node, LeafNode) else RoutingNode()

        is_root = not path
        if is_root and self.height + 1 > self.max_height:
            raise InvariantViolation(
                f"Splitting the root would grow the M-Tree beyond height {self.max_height}."
            )

        if is_root:
            parent_distances = (0.0, 0.0)
        elif len(path) >= 2:
            grandparent, gp_index = path[-2]
            gp_pivot = grandparent.entries[gp_index].pivot
            parent_distances = (self.distance(seed1, gp_pivot), self.distance(seed2, gp_pivot))
        else:
            parent_distances = (0.0, 0.0)

        node.entries = entries1
        sibling.entries = entries2
        routing1 = RoutingEntry(seed1, radius1, parent_distances[0], node)
        routing2 = RoutingEntry(seed2, radius2, parent_distances[1], sibling)

        parent_overflow = False
        if is_root:
            self.root = RoutingNode([routing1, routing2])
            logger.debug(f"Root split, M-Tree height is now {self.height}.")
        else:
            parent, index = path[-1]
            parent.entries[index] = routing1
            parent.entries.insert(index + 1, routing2)
            parent_overflow = len(parent.entries) > self.capacity

        return SplitResult(
            was_leaf=isinstance(node, LeafNode),
            seeds=(seed1, seed2),
            groups=(tuple(objects[i] for i in group1), tuple(objects[i] for i in group2)),
            radii=(radius1, radius2),
            new_root=is_root,
            parent_overflow=parent_overflow,
        )

    def insert(self, point: Point) -> None:
        """Insert `point`, splitting overflowing nodes up to the root."""
        self.check_insertable(point)
        path: InsertPath = []
        node = self.root
        distance_to_parent = 0.0
        while isinstance(node, RoutingNode):
            choice = self.choose_entry(node, point)
            path.append((node, choice.index))
            distance_to_parent = choice.distance
            node = node.entries[choice.index].child

        overflow = self.add_to_leaf(node, point, distance_to_parent)
        while overflow:
            result = self.split(path, node)
            if result.new_root:
                break
            node, _ = path.pop()
            overflow = result.parent_overflow

    # --- reference searches ---

    def range_search(self, query: Point, radius: float) -> list[Point]:
        """All points within `radius` of `query`, ordered by (distance, id)."""
        found: list[tuple[float, int, Point]] = []
        self._range(self.root, query, radius, None, found)
        found.sort(key=lambda t: (t[0], t[1]))
        return [p for _, _, p in found]

    def _range(
        self,
        node: Node,
        query: Point,
        radius: float,
        query_to_parent: Optional[float],
        found: list[tuple[float, int, Point]],
    ) -> None:
        for entry in node.entries:
            if query_to_parent is not None:
                if abs(query_to_parent - entry.distance_to_parent) - entry.radius > radius:
                    continue
            d = self.distance(query, entry.obj)
            if isinstance(entry, RoutingEntry):
                if d - entry.covering_radius <= radius:
                    self._range(entry.child, query, radius, d, found)
            elif d <= radius:
                found.append((d, entry.point.id, entry.point))

    def knn_search(self, query: Point, k: int) -> list[Point]:
        """The `k` nearest points to `query`, ordered by (distance, id)."""
        if k < 1:
            raise ConfigError(f"k must be a positive integer, got {k}.")
        best: list[tuple[float, int, Point]] = []
        pending: list[tuple[float, int, Node, Optional[float]]] = [(0.0, 0, self.root, None)]
        sequence = 1

        def threshold() -> float:
            return best[-1][0] if len(best) == k else float("inf")

        while pending:
            dmin, _, node, query_to_parent = heapq.heappop(pending)
            if dmin > threshold():
                break
            for entry in node.entries:
                if query_to_parent is not None:
                    if abs(query_to_parent - entry.distance_to_parent) - entry.radius > threshold():
                        continue
                d = self.distance(query, entry.obj)
                if isinstance(entry, RoutingEntry):
                    child_dmin = max(d - entry.covering_radius, 0.0)
                    if child_dmin <= threshold():
                        heapq.heappush(pending, (child_dmin, sequence, entry.child, d))
                        sequence += 1
                elif len(best) < k or (d, entry.point.id) < best[-1][:2]:
                    best.append((d, entry.point.id, entry.point))
                    best.sort(key=lambda t: (t[0], t[1]))
                    del best[k:]
        return [p for _, _, p in best]

    # --- inspection ---

    def iter_nodes(self) -> Iterator[tuple[Node, int]]:
        """Depth-first (node, depth) pairs, root first."""
        stack: list[tuple[Node, int]] = [(self.root, 0)]
        while stack:
            node, depth = stack.pop()
            yield node, depth
            if isinstance(node, RoutingNode):
                for entry in reversed(node.entries):
                    stack.append((entry.child, depth + 1))

    def points(self) -> list[Point]:
        return subtree_points(self.root)

    def regions(self) -> list[Region]:
        regions: list[Region] = []
        for node, depth in self.iter_nodes():
            if isinstance(node, RoutingNode):
                regions.extend(Region(e.pivot, e.covering_radius, depth) for e in node.entries)
        return regions

    def statistics(self) -> TreeStatistics:
        nodes = leaves = entries = 0
        for node, _ in self.iter_nodes():
            nodes += 1
            entries += len(node.entries)
            if isinstance(node, LeafNode):
                leaves += 1
        return TreeStatistics(
            points=len(self),
            nodes=nodes,
            leaves=leaves,
            routing_nodes=nodes - leaves,
            height=self.height,
            fill=entries / (nodes * self.capacity) if nodes else 0.0,
        )

    def validate(self) -> list[str]:
        """
        Check the structural invariants without counting distances.

        Returns:
            Human readable problems; empty when the tree is sound.
        """
        errors: list[str] = []
        seen: set[int] = set()
        leaf_depths: set[int] = set()

        def visit(node: Node, parent: Optional[Point], depth: int, is_root: bool) -> None:
            if len(node.entries) > self.capacity:
                errors.append(f"Node at depth {depth} holds {len(node.entries)} entries (capacity {self.capacity}).")
            if not node.entries and not is_root:
                errors.append(f"Empty non-root node at depth {depth}.")
            for entry in node.entries:
                expected = distance(entry.obj, parent, self.metric) if parent is not None else 0.0
                if abs(entry.distance_to_parent - expected) > _TOLERANCE:
                    errors.append(
                        f"Entry {entry.obj.name} stores parent distance {entry.distance_to_parent:.6g}, "
                        f"actual {expected:.6g}."
                    )
                if isinstance(entry, RoutingEntry):
                    for p in subtree_points(entry.child):
                        actual = distance(entry.pivot, p, self.metric)
                        if actual > entry.covering_radius + _TOLERANCE:
                            errors.append(
                                f"Covering radius {entry.covering_radius:.6g} of {entry.pivot.name} "
                                f"misses point {p.name} at {actual:.6g}."
                            )
                    visit(entry.child, entry.pivot, depth + 1, False)
                else:
                    if entry.point.id in seen:
                        errors.append(f"Point id {entry.point.id} is stored twice.")
                    seen.add(entry.point.id)
            if isinstance(node, LeafNode):
                leaf_depths.add(depth)

        visit(self.root, None, 0, True)
        if len(leaf_depths) > 1:
            errors.append(f"Leaves at different depths: {sorted(leaf_depths)}.")
        if seen != self._ids:
            errors.append("Indexed ids differ from the ids stored in leaves.")
        return errors

    def clone(self) -> MTree:
        """Independent copy (points are shared, they are immutable)."""
        return copy.deepcopy(self)

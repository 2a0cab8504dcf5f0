"""
Run Configuration
=================
The immutable description of one simulation: which index (method), which
operation, which data, which query and which parameters.

Invalid combinations are rejected by `RunConfig.validate()` before any
generator is constructed, so a run never starts on bad input.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Optional

from metricsearch.config import (
    DEFAULT_K, DEFAULT_MAX_TREE_HEIGHT, DEFAULT_NODE_CAPACITY, DEFAULT_PIVOT_COUNT, DEFAULT_RADIUS,
    MIN_NODE_CAPACITY,
)
from metricsearch.model.errors import ConfigError
from metricsearch.model.geometry import Metric, Point

logger = logging.getLogger(__name__)


class MethodType(StrEnum):
    """Metric index used to answer the query."""
    AESA = "AESA"
    LAESA = "LAESA"
    MTREE = "MTREE"


class OperationType(StrEnum):
    """Operation simulated on the index."""
    KNN = "KNN"
    RANGE = "RANGE"
    INSERT = "INSERT"


class PivotPolicy(StrEnum):
    """How LAESA picks its pivots when they are not given explicitly."""
    FIRST = "FIRST"                # first `pivot_count` points in dataset order
    MAX_SPREAD = "MAX_SPREAD"      # farthest-first traversal from the first point


@dataclass(frozen=True)
class RunConfig:
    method: MethodType
    operation: OperationType
    dataset: tuple[Point, ...]
    query_point: Point
    k: int = DEFAULT_K
    radius: float = DEFAULT_RADIUS
    metric: Metric = Metric.L2

    # LAESA
    pivot_policy: PivotPolicy = PivotPolicy.MAX_SPREAD
    pivot_count: Optional[int] = None
    pivot_ids: Optional[tuple[int, ...]] = None

    # M-Tree
    node_capacity: int = DEFAULT_NODE_CAPACITY
    max_tree_height: int = DEFAULT_MAX_TREE_HEIGHT

    _ids: frozenset[int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "dataset", tuple(self.dataset))
        if self.pivot_ids is not None:
            object.__setattr__(self, "pivot_ids", tuple(self.pivot_ids))
        object.__setattr__(self, "_ids", frozenset(p.id for p in self.dataset))

    @property
    def threshold_label(self) -> str:
        match self.operation:
            case OperationType.KNN:
                return f"k={self.k}"
            case OperationType.RANGE:
                return f"r={self.radius:g}"
            case _:
                return f"new point {self.query_point.name}"

    def resolved_pivot_count(self) -> int:
        """Number of LAESA pivots this run uses."""
        if self.pivot_ids is not None:
            return len(self.pivot_ids)
        if self.pivot_count is not None:
            return self.pivot_count
        return max(1, min(DEFAULT_PIVOT_COUNT, len(self.dataset) - 1))

    def validate(self) -> RunConfig:
        """
        Check the configuration and return it unchanged.

        Raises:
            ConfigError: On the first problem found.
        """
        n = len(self.dataset)
        if n == 0:
            raise ConfigError("The dataset is empty.")
        if len(self._ids) != n:
            raise ConfigError("The dataset contains duplicate point ids.")

        dimension = self.dataset[0].dimension
        if dimension < 1:
            raise ConfigError("Points must have at least one coordinate.")
        for point in self.dataset:
            if point.dimension != dimension:
                raise ConfigError(
                    f"Point {point.name} has {point.dimension} coordinates, expected {dimension}."
                )
        if self.query_point.dimension != dimension:
            raise ConfigError(
                f"Query point has {self.query_point.dimension} coordinates, dataset uses {dimension}."
            )

        if self.query_point.id in self._ids:
            raise ConfigError(f"Query point id {self.query_point.id} is already used by the dataset.")

        match self.operation:
            case OperationType.KNN:
                if isinstance(self.k, bool) or not isinstance(self.k, int):
                    raise ConfigError(f"k must be an integer, got {self.k!r}.")
                if self.k < 1:
                    raise ConfigError(f"k must be a positive integer, got {self.k}.")
                if self.k >= n:
                    raise ConfigError(f"k must be smaller than the dataset size ({n}), got {self.k}.")
            case OperationType.RANGE:
                if not math.isfinite(self.radius) or self.radius < 0:
                    raise ConfigError(f"Radius must be a non-negative number, got {self.radius}.")

        if self.method == MethodType.LAESA:
            self._validate_pivots(n)
        if self.method == MethodType.MTREE:
            if self.node_capacity < MIN_NODE_CAPACITY:
                raise ConfigError(
                    f"Node capacity must be at least {MIN_NODE_CAPACITY}, got {self.node_capacity}."
                )
            if self.max_tree_height < 1:
                raise ConfigError(f"Maximum tree height must be positive, got {self.max_tree_height}.")
        return self

    def _validate_pivots(self, n: int) -> None:
        if self.pivot_ids is not None:
            if len(set(self.pivot_ids)) != len(self.pivot_ids):
                raise ConfigError("Pivot ids contain duplicates.")
            unknown = [pid for pid in self.pivot_ids if pid not in self._ids]
            if unknown:
                raise ConfigError(f"Pivot ids {unknown} are not in the dataset.")
        count = self.resolved_pivot_count()
        if not 1 <= count <= n - 1:
            raise ConfigError(f"LAESA needs between 1 and {n - 1} pivots, got {count}.")

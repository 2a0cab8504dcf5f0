from __future__ import annotations

import dataclasses
import logging

from metricsearch.config import QUERY_POINT_ID
from metricsearch.model.errors import ConfigError, InvariantViolation
from metricsearch.model.geometry import Point
from metricsearch.model.run_config import MethodType, OperationType, RunConfig
from metricsearch.algorithms.base import StepGenerator

logger = logging.getLogger(__name__)

_REGISTRY: dict[tuple[MethodType, OperationType], type[StepGenerator]] = {}


def register_generator(cls: type[StepGenerator]) -> type[StepGenerator]:
    """Class decorator to register a generator under each of its KEYS."""
    keys = getattr(cls, "KEYS", ())
    if not keys:
        raise ValueError(f"{cls.__name__} must define KEYS")
    for key in keys:
        _REGISTRY[key] = cls
    return cls


def list_keys() -> list[tuple[MethodType, OperationType]]:
    return list(_REGISTRY.keys())


def _with_insert_id(config: RunConfig) -> RunConfig:
    """Give a point to be inserted the next free id unless it already has one."""
    if config.operation != OperationType.INSERT or config.query_point.id != QUERY_POINT_ID:
        return config
    next_id = max((p.id for p in config.dataset), default=-1) + 1
    point = Point(next_id, config.query_point.coordinates, config.query_point.label)
    return dataclasses.replace(config, query_point=point)


def prepare_generator(config: RunConfig) -> StepGenerator:
    """
    Validate `config` and build a fresh generator with a freshly built index.

    Raises:
        ConfigError: If the configuration is invalid or the index cannot be built from it.
    """
    config = _with_insert_id(config).validate()
    cls = _REGISTRY.get((config.method, config.operation))
    if cls is None:
        raise ConfigError(f"No simulation registered for {config.method} {config.operation}.")

    logger.info(f"Preparing {cls.__name__} for {config.method} {config.operation} "
                f"({len(config.dataset)} points, {config.threshold_label}).")
    try:
        return cls(config)
    except InvariantViolation as e:
        raise ConfigError(f"Cannot build the {config.method} index: {e}") from e

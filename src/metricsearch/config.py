"""
Configuration & Defaults
========================
This module serves as the central registry for global constants.

Why is this file needed?
------------------------
1. Abstraction: It prevents magic numbers (domain size, node capacity, playback
   delay, ...) from being scattered throughout the algorithms and the controller.
2. Consistency: The CLI, the run configuration and the tests all read their
   defaults from the same place, so a changed default changes everywhere.

Exports:
    DOMAIN_SIZE (float): Side length of the square in which random points live.
    QUERY_POINT_ID (int): Reserved id of a query point that is not in the dataset.
    DEFAULT_* / MIN_* / MAX_*: Defaults and limits used by RunConfig and the CLI.
"""
from typing import Final

# Application identity (used by the QCoreApplication factory)
ORG_ID: Final[str] = "metric-search-teaching"
APP_ID: Final[str] = "metricsearch"

# Dataset
DOMAIN_SIZE: Final[float] = 10.0
DEFAULT_POINT_COUNT: Final[int] = 15
MIN_POINT_COUNT: Final[int] = 5
MAX_POINT_COUNT: Final[int] = 300
DEFAULT_DIMENSION: Final[int] = 2
DEFAULT_SEED: Final[int] = 42

QUERY_POINT_ID: Final[int] = -1
DEFAULT_QUERY_COORDINATES: Final[tuple[float, float]] = (DOMAIN_SIZE / 2, DOMAIN_SIZE / 2)

# Query parameters
DEFAULT_K: Final[int] = 3
DEFAULT_RADIUS: Final[float] = 2.0

# LAESA
DEFAULT_PIVOT_COUNT: Final[int] = 3

# M-Tree
DEFAULT_NODE_CAPACITY: Final[int] = 4
MIN_NODE_CAPACITY: Final[int] = 2
DEFAULT_MAX_TREE_HEIGHT: Final[int] = 12

# Playback (milliseconds between automatic steps)
DEFAULT_STEP_DELAY_MS: Final[int] = 1000
MIN_STEP_DELAY_MS: Final[int] = 0
MAX_STEP_DELAY_MS: Final[int] = 10_000

"""
Error Taxonomy
==============
Two kinds of failure exist in a simulation:

ConfigError:
    The run configuration is invalid (bad k / radius, mismatched dimensionality,
    empty dataset, ...). Raised synchronously before a run starts.

InvariantViolation:
    An internal defect detected while a run is in progress (threshold regression,
    tree height overflow, duplicate id). The playback controller turns it into a
    diagnostic step and finishes the run.

Pruned nodes, eliminated points and empty results are normal outcomes, not errors.
"""


class ConfigError(ValueError):
    """Invalid run configuration or malformed input data."""


class InvariantViolation(RuntimeError):
    """An algorithm or data structure invariant was broken."""

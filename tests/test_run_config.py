import math

import pytest

from metricsearch.model.errors import ConfigError
from metricsearch.model.geometry import Point


@pytest.mark.parametrize("method, operation, kwargs", [
    ("AESA", "KNN", {"k": 0}),
    ("AESA", "KNN", {"k": 6}),
    ("AESA", "KNN", {"k": 2.5}),
    ("MTREE", "KNN", {"k": True}),
    ("LAESA", "KNN", {"k": 10}),
    ("AESA", "RANGE", {"radius": -1.0}),
    ("MTREE", "RANGE", {"radius": math.nan}),
    ("LAESA", "RANGE", {"pivot_count": 0}),
    ("LAESA", "RANGE", {"pivot_count": 6}),
    ("LAESA", "RANGE", {"pivot_ids": (0, 99)}),
    ("LAESA", "RANGE", {"pivot_ids": (1, 1)}),
    ("MTREE", "KNN", {"node_capacity": 1}),
    ("MTREE", "RANGE", {"max_tree_height": 0}),
])
def test_invalid_parameters_are_rejected(make_config, example, method, operation, kwargs):
    dataset, query = example
    with pytest.raises(ConfigError):
        make_config(method, operation, dataset, query, **kwargs).validate()


def test_empty_dataset_is_rejected(make_config, query):
    with pytest.raises(ConfigError):
        make_config("AESA", "RANGE", (), query).validate()


def test_duplicate_ids_are_rejected(make_config, query):
    dataset = (Point(0, (0, 0)), Point(0, (1, 1)))
    with pytest.raises(ConfigError):
        make_config("AESA", "RANGE", dataset, query).validate()


def test_dimension_mismatch_is_rejected(make_config, example):
    dataset, _ = example
    with pytest.raises(ConfigError):
        make_config("AESA", "RANGE", dataset, Point(-1, (1, 2, 3))).validate()
    mixed = dataset + (Point(50, (1, 2, 3)),)
    with pytest.raises(ConfigError):
        make_config("AESA", "RANGE", mixed, Point(-1, (1, 2))).validate()


def test_query_id_must_not_collide(make_config, example):
    dataset, _ = example
    for operation in ("RANGE", "INSERT"):
        with pytest.raises(ConfigError):
            make_config("AESA", operation, dataset, Point(0, (1, 1))).validate()


def test_valid_configuration_passes(make_config, example):
    dataset, query = example
    config = make_config("LAESA", "KNN", dataset, query, k=5)
    assert config.validate() is config
    # min(default pivot count, n - 1)
    assert config.resolved_pivot_count() == 3
    assert make_config("LAESA", "KNN", dataset, query, pivot_ids=[4, 0]).resolved_pivot_count() == 2


def test_config_is_immutable(make_config, example):
    dataset, query = example
    config = make_config("AESA", "RANGE", list(dataset), query)
    assert isinstance(config.dataset, tuple)
    with pytest.raises(AttributeError):
        config.radius = 3.0

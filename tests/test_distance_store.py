import pytest

from metricsearch.model.distance_store import DistanceStore, select_pivots
from metricsearch.model.errors import ConfigError, InvariantViolation
from metricsearch.model.geometry import Metric, Point, distance
from metricsearch.model.run_config import PivotPolicy


def test_full_matrix_stores_every_pair(example):
    dataset, _ = example
    store = DistanceStore.build(dataset, dataset)
    assert store.is_full_matrix
    assert store.pair_count == 15
    assert store.distance_calls == 0
    a, e = dataset[0], dataset[4]
    assert store.stored(a, e) == store.stored(e, a) == pytest.approx(distance(a, e))


def test_pivot_rows_only(example):
    dataset, _ = example
    store = DistanceStore.build(dataset, dataset[:2])
    assert not store.is_full_matrix
    # 2 rows of 5, the pivot-pivot pair shared
    assert store.pair_count == 9
    assert store.has(dataset[0], dataset[5])
    assert not store.has(dataset[2], dataset[3])
    with pytest.raises(InvariantViolation):
        store.stored(dataset[2], dataset[3])


def test_unknown_pivot_is_rejected(example):
    dataset, _ = example
    with pytest.raises(ConfigError):
        DistanceStore.build(dataset, (Point(77, (0, 0)),))


def test_get_or_compute_is_memoised(example):
    dataset, query = example
    store = DistanceStore.build(dataset, dataset)
    first = store.get_or_compute(query, dataset[0])
    again = store.get_or_compute(dataset[0], query)
    assert first == again
    assert store.distance_calls == 1
    assert [(r.a, r.b) for r in store.records] == [(query.id, dataset[0].id)]
    # stored pairs cost nothing
    store.get_or_compute(dataset[1], dataset[2])
    assert store.distance_calls == 1


def test_lower_bound_uses_stored_values_only(example):
    dataset, query = example
    store = DistanceStore.build(dataset, dataset)
    pivots = dataset[:2]
    for p in pivots:
        store.get_or_compute(query, p)
    calls = store.distance_calls
    for candidate in dataset[2:]:
        bound = store.lower_bound(query, candidate, pivots)
        assert 0.0 <= bound <= distance(query, candidate) + 1e-12
    assert store.distance_calls == calls
    assert store.lower_bound(query, dataset[3], ()) == 0.0


def test_lower_bound_needs_the_query_distance(example):
    dataset, query = example
    store = DistanceStore.build(dataset, dataset)
    with pytest.raises(InvariantViolation):
        store.lower_bound(query, dataset[1], dataset[:1])


def test_add_point_extends_rows(example):
    dataset, _ = example
    store = DistanceStore.build(dataset, dataset[:2])
    new = Point(6, (50, 50))
    store.add_point(new)
    for p in store.pivots:
        store.get_or_compute(p, new)
    assert store.distance_calls == 2
    assert store.pair_count == 11
    with pytest.raises(InvariantViolation):
        store.add_point(new)


def test_first_pivot_policy(example):
    dataset, _ = example
    assert select_pivots(dataset, 2, PivotPolicy.FIRST) == dataset[:2]


def test_max_spread_pivot_policy(example):
    dataset, _ = example
    pivots = select_pivots(dataset, 3, PivotPolicy.MAX_SPREAD, Metric.L2)
    # A, then E (farthest from A), then C (farthest from both)
    assert [p.label for p in pivots] == ["A", "E", "C"]


def test_pivot_count_is_checked(example):
    dataset, _ = example
    with pytest.raises(ConfigError):
        select_pivots(dataset, 0)
    with pytest.raises(ConfigError):
        select_pivots(dataset, 7)

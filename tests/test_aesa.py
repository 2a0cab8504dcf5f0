import math

import pytest

from metricsearch.algorithms.registry import prepare_generator
from metricsearch.model.step import StepEvent


def test_range_on_teaching_example(make_config, example, run_steps):
    dataset, query = example
    steps = run_steps(make_config("AESA", "RANGE", dataset, query, radius=35.0))

    first, last = steps[0], steps[-1]
    assert first.event == StepEvent.INIT
    assert first.ids("candidates") == [0, 1, 2, 3, 4, 5]
    assert last.event == StepEvent.FINISH
    assert [p.label for p in last.result] == ["A", "B", "C", "D"]
    assert last.ids("eliminated") == [4, 5]
    assert last.candidates == ()

    pivots = [s.active[0].label for s in steps if s.event == StepEvent.SELECT_PIVOT]
    assert pivots == ["A", "D", "C", "B"]
    assert last.distance_calls == 4
    assert len(steps) == 24
    bound_eliminations = [s for s in steps if s.event == StepEvent.ELIMINATE_BOUND]
    assert [s.active[0].label for s in bound_eliminations] == ["E", "F"]


def test_first_pivot_is_the_first_point(make_config, example):
    dataset, query = example
    generator = prepare_generator(make_config("AESA", "KNN", dataset, query, k=2))
    generator.advance()
    pick = generator.advance()
    assert pick.event == StepEvent.SELECT_PIVOT
    assert pick.active == (dataset[0],)
    assert pick.lower_bound is None


def test_knn_breaks_distance_ties_by_id(make_config, example, run_steps):
    dataset, query = example
    # B and C are both at sqrt(725) from the query
    steps = run_steps(make_config("AESA", "KNN", dataset, query, k=2))
    assert [p.label for p in steps[-1].result] == ["A", "B"]
    assert steps[-1].threshold == pytest.approx(math.sqrt(725))


def test_scan_steps_report_bound_and_threshold(make_config, example, run_steps):
    dataset, query = example
    steps = run_steps(make_config("AESA", "RANGE", dataset, query, radius=35.0))
    for step in steps:
        if step.event in (StepEvent.LOWER_BOUND, StepEvent.ELIMINATE_BOUND):
            assert step.lower_bound is not None
            assert step.threshold == 35.0
            assert (step.lower_bound > 35.0) == (step.event == StepEvent.ELIMINATE_BOUND)


def test_advance_after_exhaustion_returns_none(make_config, example):
    dataset, query = example
    generator = prepare_generator(make_config("AESA", "RANGE", dataset, query, radius=1.0))
    while generator.advance() is not None:
        pass
    assert generator.exhausted
    assert generator.advance() is None


def test_insert_extends_the_matrix(make_config, example, run_steps):
    dataset, query = example
    config = make_config("AESA", "INSERT", dataset, query)
    generator = prepare_generator(config)
    steps = []
    while (step := generator.advance()) is not None:
        steps.append(step)

    assert [s.event for s in steps] == [StepEvent.COMPUTE] * 6 + [StepEvent.STORE]
    new = steps[-1].result[0]
    assert new.id == 6
    assert new.coordinates == query.coordinates
    assert steps[-1].distance_calls == 6
    assert generator.store.pair_count == 21
    assert [s.active[0].id for s in steps[:-1]] == [0, 1, 2, 3, 4, 5]
    assert all(s.index.pivot_ids == (0, 1, 2, 3, 4, 5) for s in steps)
    assert [s.index.stored_pairs for s in steps] == [16, 17, 18, 19, 20, 21, 21]

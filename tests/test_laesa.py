from metricsearch.algorithms.registry import prepare_generator
from metricsearch.model.run_config import PivotPolicy
from metricsearch.model.step import StepEvent


def test_range_measures_pivots_first(make_config, example, run_steps):
    dataset, query = example
    steps = run_steps(make_config("LAESA", "RANGE", dataset, query, radius=35.0))

    # INIT, then (compute, compare) for pivots A, E, C
    pivot_steps = steps[1:7]
    assert [s.event for s in pivot_steps[::2]] == [StepEvent.COMPUTE] * 3
    assert [s.active[0].label for s in pivot_steps[::2]] == ["A", "E", "C"]
    assert [s.event for s in pivot_steps[1::2]] == [
        StepEvent.INCLUDE, StepEvent.ELIMINATE_DISTANCE, StepEvent.INCLUDE,
    ]

    last = steps[-1]
    assert [p.label for p in last.result] == ["A", "B", "C", "D"]
    assert last.ids("eliminated") == [4, 5]
    assert last.distance_calls == 5
    assert len(steps) == 15
    eliminated = [s for s in steps if s.event == StepEvent.ELIMINATE_BOUND]
    assert [s.active[0].label for s in eliminated] == ["F"]
    assert eliminated[0].lower_bound > 35.0


def test_range_with_explicit_pivots(make_config, example, run_steps):
    dataset, query = example
    steps = run_steps(make_config("LAESA", "RANGE", dataset, query, radius=35.0, pivot_ids=(3,)))
    assert steps[1].active[0].label == "D"
    assert [p.label for p in steps[-1].result] == ["A", "B", "C", "D"]


def test_knn_visits_by_lower_bound(make_config, example, run_steps):
    dataset, query = example
    steps = run_steps(make_config("LAESA", "KNN", dataset, query, k=2))

    bounds = [s for s in steps if s.event == StepEvent.LOWER_BOUND]
    assert [s.active[0].label for s in bounds] == ["B", "D", "F"]

    computed = [s.active[0].label for s in steps if s.event == StepEvent.COMPUTE]
    assert computed == ["A", "E", "C", "B", "D"]

    # F is discarded together with everything after it in one step
    bulk = [s for s in steps if s.event == StepEvent.ELIMINATE_BOUND]
    assert len(bulk) == 1
    assert [p.label for p in bulk[0].active] == ["F"]
    assert bulk[0].lower_bound > bulk[0].threshold
    assert steps[steps.index(bulk[0]) + 1].event == StepEvent.FINISH

    last = steps[-1]
    assert [p.label for p in last.result] == ["A", "B"]
    assert last.distance_calls == 5


def test_first_pivot_policy(make_config, example, run_steps):
    dataset, query = example
    config = make_config("LAESA", "KNN", dataset, query, k=3, pivot_policy=PivotPolicy.FIRST, pivot_count=2)
    steps = run_steps(config)
    assert [s.active[0].label for s in steps[1:5:2]] == ["A", "B"]
    assert len(steps[-1].result) == 3


def test_insert_computes_pivot_column(make_config, example):
    dataset, query = example
    generator = prepare_generator(make_config("LAESA", "INSERT", dataset, query, pivot_count=2))
    steps = []
    while (step := generator.advance()) is not None:
        steps.append(step)
    assert [s.event for s in steps] == [StepEvent.COMPUTE, StepEvent.COMPUTE, StepEvent.STORE]
    assert steps[-1].distance_calls == 2
    assert steps[-1].result[0].id == 6
    assert all(generator.store.has(p, steps[-1].result[0]) for p in generator.store.pivots)
    pivot_ids = tuple(p.id for p in generator.store.pivots)
    assert all(s.index.pivot_ids == pivot_ids for s in steps)
    assert steps[0].index.stored_pairs + 1 == steps[-1].index.stored_pairs

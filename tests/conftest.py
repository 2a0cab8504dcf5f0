"""Shared fixtures: a headless Qt platform, datasets and a brute-force oracle."""
import os

# Must be set before the first Qt application object is created
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from metricsearch.algorithms.registry import prepare_generator
from metricsearch.model.dataset import Dataset, teaching_example
from metricsearch.model.geometry import Metric, Point, distance
from metricsearch.model.run_config import MethodType, OperationType, RunConfig


@pytest.fixture
def example():
    """The six labelled teaching points and their query point."""
    dataset, query = teaching_example()
    return dataset.snapshot(), query


@pytest.fixture
def random_points():
    return Dataset.generate(40, seed=7).snapshot()


@pytest.fixture
def query():
    return Point(-1, (5.0, 5.0), "q")


@pytest.fixture
def make_config():
    def _make(method, operation, dataset, query, **kwargs) -> RunConfig:
        return RunConfig(
            method=MethodType(method), operation=OperationType(operation),
            dataset=tuple(dataset), query_point=query, **kwargs,
        )
    return _make


@pytest.fixture
def run_steps():
    """Run a configuration to exhaustion and return every step."""
    def _run(config: RunConfig) -> list:
        generator = prepare_generator(config)
        steps = []
        while (step := generator.advance()) is not None:
            steps.append(step)
        assert generator.exhausted
        return steps
    return _run


@pytest.fixture
def oracle():
    """Brute-force answers ordered by (distance, id)."""
    class Oracle:
        @staticmethod
        def ranked(dataset, query, metric=Metric.L2):
            return sorted(dataset, key=lambda p: (distance(query, p, metric), p.id))

        def range(self, dataset, query, radius, metric=Metric.L2):
            return tuple(p for p in self.ranked(dataset, query, metric) if distance(query, p, metric) <= radius)

        def knn(self, dataset, query, k, metric=Metric.L2):
            return tuple(self.ranked(dataset, query, metric)[:k])
    return Oracle()

import pytest

from metricsearch.config import DOMAIN_SIZE, QUERY_POINT_ID
from metricsearch.model.dataset import Dataset, teaching_example
from metricsearch.model.errors import ConfigError
from metricsearch.model.geometry import Point, distance


def test_generate_is_reproducible():
    a = Dataset.generate(20, seed=3).snapshot()
    b = Dataset.generate(20, seed=3).snapshot()
    c = Dataset.generate(20, seed=4).snapshot()
    assert a == b
    assert a != c


def test_generated_points_lie_in_the_domain():
    points = Dataset.generate(50, seed=1, dimension=3).snapshot()
    assert len(points) == 50
    assert [p.id for p in points] == list(range(50))
    for p in points:
        assert p.dimension == 3
        assert all(0.0 <= c <= DOMAIN_SIZE for c in p.coordinates)


def test_generate_rejects_bad_arguments():
    with pytest.raises(ConfigError):
        Dataset.generate(0)
    with pytest.raises(ConfigError):
        Dataset.generate(5, dimension=0)


def test_ids_are_never_reused_while_occupied():
    dataset = Dataset()
    for x in range(3):
        dataset.create_point((x, 0))
    dataset.remove_point(1)
    new = dataset.create_point((9, 9))
    assert new.id == 3
    assert sorted(p.id for p in dataset) == [0, 2, 3]


def test_add_point_reassigns_taken_or_reserved_ids():
    dataset = Dataset([Point(0, (0, 0))])
    assert dataset.add_point(Point(0, (1, 1))).id == 1
    assert dataset.add_point(Point(QUERY_POINT_ID, (2, 2))).id == 2
    assert dataset.add_point(Point(10, (3, 3))).id == 10


def test_add_point_rejects_other_dimension():
    dataset = Dataset([Point(0, (0, 0))])
    with pytest.raises(ConfigError):
        dataset.add_point(Point(1, (0, 0, 0)))


def test_move_and_remove():
    dataset = Dataset()
    p = dataset.create_point((1, 1), "A")
    moved = dataset.move_point(p.id, (4, 5))
    assert dataset.get(p.id) == moved
    assert moved.label == "A"
    dataset.remove_point(p.id)
    assert p.id not in dataset
    with pytest.raises(KeyError):
        dataset.remove_point(p.id)


def test_clone_is_independent():
    dataset = Dataset.generate(5, seed=0)
    copy = dataset.clone()
    copy.create_point((1, 1))
    copy.remove_point(0)
    assert len(dataset) == 5
    assert 0 in dataset
    assert len(copy) == 5


def test_clear_resets_ids():
    dataset = Dataset.generate(5, seed=0)
    dataset.clear()
    assert len(dataset) == 0
    assert dataset.dimension is None
    assert dataset.create_point((0, 0)).id == 0


def test_teaching_example_geometry():
    dataset, query = teaching_example()
    assert [p.label for p in dataset] == ["A", "B", "C", "D", "E", "F"]
    assert query.id == QUERY_POINT_ID
    inside = {p.label for p in dataset if distance(query, p) <= 35}
    assert inside == {"A", "B", "C", "D"}

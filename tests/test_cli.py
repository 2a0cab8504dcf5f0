import logging

import pytest

from metricsearch.__main__ import build_config, build_parser, main
from metricsearch.config import DEFAULT_POINT_COUNT
from metricsearch.model.pseudocode import get_pseudocode
from metricsearch.model.run_config import MethodType, OperationType


@pytest.fixture(autouse=True)
def reset_logging(qapp):
    # qapp: the Qt application must exist before the runner asks for one
    yield
    logging.getLogger("metricsearch").handlers.clear()


@pytest.mark.parametrize("method", ["AESA", "laesa", "MTREE"])
def test_manual_run_on_teaching_example(capsys, method):
    code = main(["--method", method, "--operation", "RANGE", "--radius", "35", "--example", "--manual"])
    assert code == 0
    assert "Result: A, B, C, D" in capsys.readouterr().out


def test_timer_driven_run(capsys):
    code = main(["--method", "MTREE", "--operation", "KNN", "--k", "2", "--delay-ms", "0", "--count", "20"])
    assert code == 0
    assert "[FINISH]" in capsys.readouterr().out


def test_insert_run(capsys):
    code = main(["--method", "MTREE", "--operation", "INSERT", "--query", "1", "2", "--manual", "--capacity", "3"])
    assert code == 0
    assert "[STORE]" in capsys.readouterr().out


def test_invalid_configuration_exits_with_2(capsys):
    assert main(["--operation", "KNN", "--k", "6", "--example", "--manual"]) == 2
    assert main(["--count", "1", "--manual"]) == 2
    assert main(["--delay-ms", "-5"]) == 2


def test_default_configuration():
    args = build_parser().parse_args([])
    config = build_config(args)
    assert len(config.dataset) == DEFAULT_POINT_COUNT
    assert config.query_point.dimension == 2
    assert config.validate() is config


def test_listing_is_logged_before_the_run(capsys):
    code = main(["--method", "LAESA", "--operation", "KNN", "--k", "2", "--example", "--manual", "--listing"])
    assert code == 0
    out = capsys.readouterr().out
    listing = get_pseudocode(MethodType.LAESA, OperationType.KNN)
    assert f"  0 | {listing[0]}" in out
    assert out.index(listing[-1]) < out.index("[INIT]")

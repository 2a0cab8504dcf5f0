import pytest

from metricsearch.algorithms.registry import prepare_generator
from metricsearch.controller.playback import PlaybackController, PlaybackState
from metricsearch.model.errors import ConfigError
from metricsearch.model.geometry import Point
from metricsearch.model.step import StepEvent


@pytest.fixture
def controller(qtbot):
    controller = PlaybackController(delay_ms=0)
    yield controller
    controller.timer.stop()


@pytest.fixture
def range_config(make_config, example):
    dataset, query = example
    return make_config("AESA", "RANGE", dataset, query, radius=35.0)


def _fresh_steps(config):
    generator = prepare_generator(config)
    steps = []
    while (step := generator.advance()) is not None:
        steps.append(step)
    return steps


def test_initial_state(controller):
    assert controller.state == PlaybackState.IDLE
    assert controller.current_step() is None
    # Commands without a configuration are ignored
    assert controller.advance() is None
    controller.play()
    assert controller.state == PlaybackState.IDLE


def test_invalid_configuration_keeps_previous_run(controller, range_config, make_config, example):
    dataset, query = example
    controller.configure(range_config)
    controller.advance()
    with pytest.raises(ConfigError):
        controller.configure(make_config("AESA", "KNN", dataset, query, k=0))
    assert controller.config == range_config
    assert controller.current_step().step_number == 1


def test_manual_stepping(qtbot, controller, range_config):
    controller.configure(range_config)
    with qtbot.waitSignal(controller.step_changed) as blocker:
        step = controller.advance()
    assert blocker.args == [step]
    assert step.event == StepEvent.INIT
    assert controller.state == PlaybackState.PAUSED
    assert controller.current_step() is step

    while controller.state != PlaybackState.FINISHED:
        controller.advance()
    assert controller.current_step().event == StepEvent.FINISH
    assert controller.steps == _fresh_steps(range_config)

    count = len(controller.steps)
    assert controller.advance() is None
    controller.play()
    assert controller.state == PlaybackState.FINISHED
    assert len(controller.steps) == count


def test_timer_playback_runs_to_the_end(qtbot, controller, range_config):
    controller.configure(range_config)
    with qtbot.waitSignal(
        controller.state_changed, timeout=5000,
        check_params_cb=lambda state: state == PlaybackState.FINISHED,
    ):
        controller.play()
        assert controller.state == PlaybackState.RUNNING
    assert controller.steps == _fresh_steps(range_config)


def test_pause_stops_the_timer(controller, range_config):
    controller.set_speed(10_000)
    controller.configure(range_config)
    controller.play()
    assert controller.timer.isActive()
    controller.pause()
    assert controller.state == PlaybackState.PAUSED
    assert not controller.timer.isActive()
    assert controller.steps == []


def test_restart_reproduces_the_run(controller, range_config):
    controller.configure(range_config)
    while controller.state != PlaybackState.FINISHED:
        controller.advance()
    first = controller.steps

    controller.restart()
    assert controller.state == PlaybackState.IDLE
    assert controller.current_step() is None
    while controller.state != PlaybackState.FINISHED:
        controller.advance()
    assert controller.steps == first


def test_speed_limits(controller):
    controller.set_speed(250)
    assert controller.delay_ms == 250
    with pytest.raises(ValueError):
        controller.set_speed(-1)
    with pytest.raises(ValueError):
        controller.set_speed(10_001)


def test_internal_error_ends_with_a_diagnostic_step(qtbot, controller, make_config):
    dataset = (Point(0, (0.0, 0.0)), Point(1, (1.0, 1.0)))
    config = make_config("MTREE", "INSERT", dataset, Point(-1, (2.0, 2.0)), node_capacity=2, max_tree_height=1)
    controller.configure(config)
    controller.advance()
    with qtbot.waitSignal(controller.error_occurred) as blocker:
        step = controller.advance()

    assert step.event == StepEvent.DIAGNOSTIC
    assert step.is_diagnostic
    assert "height" in blocker.args[0]
    assert step.result == controller.steps[0].result
    assert controller.state == PlaybackState.FINISHED
    assert controller.advance() is None

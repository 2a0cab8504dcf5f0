"""
Playback Controller
===================
Drives a step generator either automatically (QTimer) or one step at a time.

Why is this file needed?
------------------------
1. State machine: IDLE -> RUNNING <-> PAUSED -> FINISHED. Commands that make no
   sense in the current state are ignored (and logged), never raised.
2. Signals: Views subscribe to `step_changed`, `state_changed` and
   `error_occurred` instead of polling the generator.
3. Isolation: An internal error inside a generator stops the run with a
   diagnostic step; it never propagates into the Qt event loop.

Classes:
    PlaybackState: The four playback states.
    PlaybackController: QObject owning the current run.
"""
from __future__ import annotations

import logging
from enum import StrEnum
from typing import Optional

from PySide6.QtCore import QObject, QTimer, Signal

from metricsearch.algorithms.base import StepGenerator
from metricsearch.algorithms.registry import prepare_generator
from metricsearch.config import DEFAULT_STEP_DELAY_MS, MAX_STEP_DELAY_MS, MIN_STEP_DELAY_MS
from metricsearch.model.errors import InvariantViolation
from metricsearch.model.run_config import RunConfig
from metricsearch.model.step import Step, diagnostic_step

logger = logging.getLogger(__name__)


class PlaybackState(StrEnum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    FINISHED = "FINISHED"


class PlaybackController(QObject):
    """Owns the current RunConfig, its generator and the emitted steps."""
    step_changed = Signal(object)      # Step
    state_changed = Signal(object)     # PlaybackState
    error_occurred = Signal(str)

    def __init__(self, delay_ms: int = DEFAULT_STEP_DELAY_MS, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._config: Optional[RunConfig] = None
        self._generator: Optional[StepGenerator] = None
        self._steps: list[Step] = []
        self._state = PlaybackState.IDLE

        self.timer = QTimer(self)
        self.timer.timeout.connect(self._on_timeout)
        self.set_speed(delay_ms)

    # --- queries ---

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def config(self) -> Optional[RunConfig]:
        return self._config

    @property
    def steps(self) -> list[Step]:
        """Every step of the current run so far."""
        return list(self._steps)

    @property
    def delay_ms(self) -> int:
        return self.timer.interval()

    def current_step(self) -> Optional[Step]:
        return self._steps[-1] if self._steps else None

    # --- commands ---

    def configure(self, config: RunConfig) -> None:
        """
        Validate `config` and start over with it (IDLE, no steps).

        Raises:
            ConfigError: If the configuration is invalid. The previous run is kept.
        """
        generator = prepare_generator(config)
        self._config = generator.config
        logger.info(f"Configured {self._config.method} {self._config.operation} "
                    f"({self._config.threshold_label}).")
        self._reset(generator)

    def restart(self) -> None:
        """Rebuild the generator from the current configuration."""
        if self._config is None:
            logger.warning("Restart ignored: no configuration.")
            return
        logger.info("Restarting simulation.")
        self._reset(prepare_generator(self._config))

    def play(self) -> None:
        if self._generator is None:
            logger.warning("Play ignored: no configuration.")
            return
        if self._state == PlaybackState.FINISHED:
            logger.warning("Play ignored: the simulation has finished. Restart it first.")
            return
        if self._state == PlaybackState.RUNNING:
            return
        self.timer.start()
        self._set_state(PlaybackState.RUNNING)

    def pause(self) -> None:
        if self._state != PlaybackState.RUNNING:
            logger.warning(f"Pause ignored in state {self._state}.")
            return
        self.timer.stop()
        self._set_state(PlaybackState.PAUSED)

    def advance(self) -> Optional[Step]:
        """Manually perform one step; automatic playback is paused."""
        if self._generator is None:
            logger.warning("Step ignored: no configuration.")
            return None
        if self._state == PlaybackState.FINISHED:
            logger.warning("Step ignored: the simulation has finished.")
            return None
        self.timer.stop()
        step = self._advance()
        if self._state != PlaybackState.FINISHED:
            self._set_state(PlaybackState.PAUSED)
        return step

    def set_speed(self, delay_ms: int) -> None:
        """
        Set the delay between automatic steps.

        Raises:
            ValueError: If `delay_ms` is outside the allowed range.
        """
        if not MIN_STEP_DELAY_MS <= delay_ms <= MAX_STEP_DELAY_MS:
            raise ValueError(
                f"Step delay must be between {MIN_STEP_DELAY_MS} and {MAX_STEP_DELAY_MS} ms, got {delay_ms}."
            )
        self.timer.setInterval(delay_ms)

    # --- internals ---

    def _reset(self, generator: StepGenerator) -> None:
        self.timer.stop()
        self._generator = generator
        self._steps = []
        self._set_state(PlaybackState.IDLE)

    def _on_timeout(self) -> None:
        if self._state == PlaybackState.RUNNING:
            self._advance()

    def _advance(self) -> Optional[Step]:
        try:
            step = self._generator.advance()
        except InvariantViolation as e:
            logger.error(f"Simulation stopped by an internal error: {e}")
            step = diagnostic_step(len(self._steps) + 1, str(e), self.current_step())
            self._publish(step)
            self.error_occurred.emit(str(e))
            self._finish()
            return step

        if step is not None:
            self._publish(step)
        if step is None or self._generator.exhausted:
            self._finish()
        return step

    def _publish(self, step: Step) -> None:
        self._steps.append(step)
        self.step_changed.emit(step)

    def _finish(self) -> None:
        self.timer.stop()
        if self._state != PlaybackState.FINISHED:
            logger.info(f"Simulation finished after {len(self._steps)} steps.")
        self._set_state(PlaybackState.FINISHED)

    def _set_state(self, state: PlaybackState) -> None:
        if state != self._state:
            self._state = state
            self.state_changed.emit(state)

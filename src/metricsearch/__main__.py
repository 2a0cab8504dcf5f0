"""
Headless Runner
===============
Runs one simulation without a GUI and logs every step.

Usage:
    $ python -m metricsearch --method AESA --operation RANGE --radius 2
    $ python -m metricsearch --method MTREE --operation KNN --k 3 --manual
    $ python -m metricsearch --example --method LAESA --operation RANGE --radius 35
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from metricsearch.app.application import create_app
from metricsearch.config import (
    DEFAULT_K, DEFAULT_MAX_TREE_HEIGHT, DEFAULT_NODE_CAPACITY, DEFAULT_POINT_COUNT, DEFAULT_QUERY_COORDINATES,
    DEFAULT_RADIUS, DEFAULT_SEED, DEFAULT_STEP_DELAY_MS, MAX_POINT_COUNT, MIN_POINT_COUNT, QUERY_POINT_ID,
)
from metricsearch.controller.playback import PlaybackController, PlaybackState
from metricsearch.logging_config import setup_logging
from metricsearch.model.dataset import Dataset, teaching_example
from metricsearch.model.errors import ConfigError
from metricsearch.model.geometry import Metric, Point
from metricsearch.model.pseudocode import get_pseudocode
from metricsearch.model.run_config import MethodType, OperationType, PivotPolicy, RunConfig
from metricsearch.model.step import Step

logger = logging.getLogger("metricsearch.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="metricsearch", description="Step through a metric similarity search.")
    parser.add_argument("--method", type=str.upper, choices=[m.value for m in MethodType], default=MethodType.AESA)
    parser.add_argument("--operation", type=str.upper, choices=[o.value for o in OperationType],
                        default=OperationType.RANGE)
    parser.add_argument("--k", type=int, default=DEFAULT_K)
    parser.add_argument("--radius", type=float, default=DEFAULT_RADIUS)
    parser.add_argument("--metric", type=str.upper, choices=[m.value for m in Metric], default=Metric.L2)
    parser.add_argument("--query", type=float, nargs="+", metavar="X",
                        help="Query (or new point) coordinates; defaults to the centre of the domain.")

    data = parser.add_argument_group("dataset")
    data.add_argument("--example", action="store_true", help="Use the six labelled teaching points.")
    data.add_argument("--count", type=int, default=DEFAULT_POINT_COUNT)
    data.add_argument("--seed", type=int, default=DEFAULT_SEED)

    index = parser.add_argument_group("index")
    index.add_argument("--pivots", type=int, help="LAESA pivot count.")
    index.add_argument("--pivot-policy", type=str.upper, choices=[p.value for p in PivotPolicy],
                       default=PivotPolicy.MAX_SPREAD)
    index.add_argument("--capacity", type=int, default=DEFAULT_NODE_CAPACITY, help="M-Tree node capacity.")
    index.add_argument("--max-height", type=int, default=DEFAULT_MAX_TREE_HEIGHT)

    playback = parser.add_argument_group("playback")
    playback.add_argument("--delay-ms", type=int, default=DEFAULT_STEP_DELAY_MS)
    playback.add_argument("--manual", action="store_true", help="Advance synchronously instead of on a timer.")
    playback.add_argument("--listing", action="store_true", help="Log the pseudocode listing before the run.")
    playback.add_argument("--log-level", type=str.upper, default="INFO",
                          choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    playback.add_argument("--log-file", type=str)
    return parser


def build_config(args: argparse.Namespace) -> RunConfig:
    """
    Raises:
        ConfigError: If the dataset cannot be built from the arguments.
    """
    if args.example:
        dataset, query = teaching_example()
        if args.query:
            query = query.moved_to(args.query)
    else:
        if not MIN_POINT_COUNT <= args.count <= MAX_POINT_COUNT:
            raise ConfigError(f"Point count must be between {MIN_POINT_COUNT} and {MAX_POINT_COUNT}.")
        coordinates = tuple(args.query) if args.query else DEFAULT_QUERY_COORDINATES
        dataset = Dataset.generate(args.count, args.seed, dimension=len(coordinates))
        query = Point(QUERY_POINT_ID, coordinates, "q")

    return RunConfig(
        method=MethodType(args.method),
        operation=OperationType(args.operation),
        dataset=dataset.snapshot(),
        query_point=query,
        k=args.k,
        radius=args.radius,
        metric=Metric(args.metric),
        pivot_policy=PivotPolicy(args.pivot_policy),
        pivot_count=args.pivots,
        node_capacity=args.capacity,
        max_tree_height=args.max_height,
    )


def _log_step(step: Step) -> None:
    logger.info(f"#{step.step_number:>3} [{step.event}] line {step.line_index}: {step.description}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=getattr(logging, args.log_level), log_file=args.log_file)

    app = create_app([sys.argv[0]])
    controller = PlaybackController()
    controller.step_changed.connect(_log_step)
    try:
        controller.set_speed(args.delay_ms)
        controller.configure(build_config(args))
    except (ConfigError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    if args.listing:
        config = controller.config
        for number, line in enumerate(get_pseudocode(config.method, config.operation)):
            logger.info(f"{number:>3} | {line}")

    if args.manual:
        while controller.state != PlaybackState.FINISHED:
            controller.advance()
    else:
        controller.state_changed.connect(lambda state: app.quit() if state == PlaybackState.FINISHED else None)
        controller.play()
        app.exec()

    final = controller.current_step()
    if final is None or final.is_diagnostic:
        return 1
    names = ", ".join(p.name for p in final.result) or "none"
    logger.info(f"Done in {len(controller.steps)} steps, {final.distance_calls} distance computations. "
                f"Result: {names}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Logging Configuration
=====================
Sets up the `metricsearch` logger tree.

Every module logs through `logging.getLogger(__name__)`, so one handler pair on
the package logger covers all of them:
    metricsearch.algorithms.*   per-step details (DEBUG), generator set-up (INFO)
    metricsearch.controller.*   run lifecycle (INFO), ignored commands (WARNING),
                                internal errors that stop a run (ERROR)
    metricsearch.model.*        index construction (DEBUG)
    metricsearch.cli            the step log and result of a headless run
"""
import logging
import sys
from typing import Optional


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Configures the 'metricsearch' logger.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to save logs to a file.
    """
    logger = logging.getLogger("metricsearch")
    logger.setLevel(level)

    # Repeated CLI runs in one interpreter (tests) must not stack handlers
    if logger.hasHandlers():
        logger.handlers.clear()

    # Format: Time - Module - Level - Message
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w', encoding='utf-8'))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.info(f"Logging initialized at {logging.getLevelName(level)}.")

"""
Structured logging setup.

Every module logs through a child of the ``ftc_assistant`` logger so a
single handler controls formatting for the whole service.

Usage:
    from ftc_assistant.utils.logging import get_logger
    logger = get_logger("ftc_assistant.pipeline.planner")
    logger.info("[PLANNER] Plan ready: code=%s hard=%s", plan.needs_code, plan.is_hard)
"""

from __future__ import annotations

import logging
import sys

ROOT_LOGGER_NAME = "ftc_assistant"

_configured = False


def setup_logging(level: int | str = logging.INFO) -> None:
    """
    Configure structured logging for the entire application.

    Later calls only adjust the level of the existing handler.
    """
    global _configured
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if _configured:
        root.setLevel(level)
        for existing in root.handlers:
            existing.setLevel(level)
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)

    root.setLevel(level)
    root.addHandler(handler)
    root.propagate = False

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger under the ``ftc_assistant`` namespace.

    Automatically calls ``setup_logging()`` on first use to ensure
    the root handler is attached.
    """
    setup_logging()
    return logging.getLogger(name)

"""
Shared logging setup for the command line scripts.
"""
from __future__ import annotations

import logging

import site_config


def setup_logging(level: str | None = None) -> None:
    """
    Configure logging once using site_config.LOG_LEVEL (or `level`).
    Safe to call multiple times.
    """
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    level_name = str(level or site_config.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )

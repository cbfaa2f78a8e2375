"""
docpulse.logging_setup — Process-wide logging format
=====================================================

Modules only ever do ``logger = logging.getLogger(__name__)``; the entry
point calls :func:`configure_logging` once.
"""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
DATE_FORMAT = "%H:%M:%S"


def configure_logging(level: int | str = logging.INFO) -> None:
    """Install the docpulse log format on the root logger."""
    if isinstance(level, str):
        name = level.upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {name}")
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT)
    logging.getLogger("docpulse").setLevel(level)

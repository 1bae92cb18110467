from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Attach a stdout handler to the package logger once and set its level."""

    lg = logging.getLogger("ticker_aggregator")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    lg.setLevel(level)
    if not lg.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setLevel(level)
        h.setFormatter(logging.Formatter(LOG_FORMAT))
        lg.addHandler(h)
    return lg

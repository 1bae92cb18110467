"""Core package initialisation for :mod:`ticker_aggregator`.

The package fetches tickers for one symbol from several exchanges at once,
normalises them into :class:`~ticker_aggregator.domain.Ticker` values and
aggregates the results.  Logging is left unconfigured at import time; the
HTTP application calls :func:`ticker_aggregator.logging_setup.configure_logging`
on startup so that library users keep control over their own handlers.
"""

from __future__ import annotations

__version__ = "1.0.0"

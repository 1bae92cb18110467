from __future__ import annotations

import importlib
import logging
from typing import Iterable, List

from ..errors import ExchangeNotConfiguredError, NoAdaptersConfiguredError
from .base import ConnectorSpec

logger = logging.getLogger(__name__)


def load_connectors(enabled: Iterable[str]) -> List[ConnectorSpec]:
    """Import ``connectors.<name>`` for every enabled exchange and collect its spec."""

    connectors: List[ConnectorSpec] = []
    seen: set[str] = set()
    for raw_name in enabled:
        name = raw_name.strip().lower()
        if not name or name in seen:
            continue
        seen.add(name)
        module_name = f"{__name__.rsplit('.', 1)[0]}.{name}"
        try:
            module = importlib.import_module(module_name)
        except ModuleNotFoundError as exc:
            if exc.name != module_name:
                raise
            raise ExchangeNotConfiguredError(name) from exc
        spec = getattr(module, "connector", None)
        if not isinstance(spec, ConnectorSpec):
            raise RuntimeError(
                f"Connector module '{module_name}' must define 'connector' of type ConnectorSpec"
            )
        connectors.append(spec)
    if not connectors:
        raise NoAdaptersConfiguredError("No connectors were loaded. Check ENABLED_EXCHANGES configuration")
    logger.info("Loaded %d connectors: %s", len(connectors), ", ".join(c.name for c in connectors))
    return connectors

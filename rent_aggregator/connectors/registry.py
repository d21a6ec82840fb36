# rent_aggregator/connectors/registry.py

"""Instantiate the portal connectors configured in Settings."""

import importlib
import logging
from typing import Any

from rent_aggregator.config.settings import Settings
from rent_aggregator.connectors.base_connector import BaseConnector
from rent_aggregator.connectors.request_executor import RequestExecutor

logger = logging.getLogger("rent_aggregator.registry")


def load_connector_class(dotted_path: str) -> type[Any]:
    """Dynamically import a connector class from its dotted module path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls: type[Any] = getattr(module, class_name)
    return cls


def load_connectors(
    sources: list[dict[str, str]] | None = None,
    executor: RequestExecutor | None = None,
) -> list[BaseConnector]:
    """Build one connector per enabled source sharing *executor*.

    Sources that fail to import or initialise are skipped with a
    warning so one broken portal never blocks the others.
    """
    shared = executor or RequestExecutor()
    connectors: list[BaseConnector] = []
    for src in sources if sources is not None else Settings.enabled_sources():
        try:
            cls = load_connector_class(src["connector"])
            connectors.append(cls(executor=shared))
        except Exception as exc:
            logger.warning(
                "Skipping connector %s: initialization failed: %s",
                src.get("id", "?"),
                exc,
                exc_info=True,
            )
    logger.info(
        "Loaded %d connector(s): %s",
        len(connectors),
        ", ".join(c.SOURCE_ID for c in connectors),
    )
    return connectors

"""Source connectors and the capability-checked registry."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Type

import httpx

from ingestion.connectors.ats import AshbyConnector, GreenhouseConnector, LeverConnector
from ingestion.connectors.base import BaseConnector
from ingestion.connectors.code_list import CodeListConnector
from ingestion.connectors.page_scraper import PageScraperConnector
from ingestion.connectors.search_api import SearchAPIConnector
from ingestion.resilience.protect import ResilienceRegistry
from ingestion.settings import Settings
from ingestion.utils.logging import get_logger

CONNECTOR_CLASSES: Dict[str, Type[BaseConnector]] = {
    cls.name: cls
    for cls in (
        SearchAPIConnector,
        CodeListConnector,
        GreenhouseConnector,
        LeverConnector,
        AshbyConnector,
        PageScraperConnector,
    )
}

logger = get_logger(__name__)


def select_connector_classes(settings: Settings, names: Optional[Iterable[str]] = None) -> List[Type[BaseConnector]]:
    """Enabled (or requested) connectors whose required settings are present."""
    requested = list(names) if names is not None else list(settings.enabled_sources)
    selected: List[Type[BaseConnector]] = []
    for name in requested:
        cls = CONNECTOR_CLASSES.get(name)
        if cls is None:
            raise ValueError(f"알 수 없는 소스: {name}")
        if not cls.is_configured(settings):
            logger.info("connector.unconfigured", extra={"source": name, "required": list(cls.required_settings)})
            continue
        selected.append(cls)
    return selected


def build_connectors(
    settings: Settings,
    *,
    client: httpx.AsyncClient,
    registry: ResilienceRegistry,
    names: Optional[Iterable[str]] = None,
) -> List[BaseConnector]:
    return [
        cls(settings, client=client, protected=registry.get(cls.name))
        for cls in select_connector_classes(settings, names)
    ]


__all__ = ["BaseConnector", "CONNECTOR_CLASSES", "build_connectors", "select_connector_classes"]

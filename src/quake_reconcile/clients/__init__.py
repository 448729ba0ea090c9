"""Source fetchers: ``async (since, min_magnitude) -> FetchResult`` callables."""

from __future__ import annotations

from datetime import datetime
from typing import Awaitable, Callable, Iterable, Optional

import httpx

from quake_reconcile.clients.fdsn_client import SourceClient
from quake_reconcile.models import FetchResult
from quake_reconcile.sources import SOURCES

Fetcher = Callable[[datetime, float], Awaitable[FetchResult]]


def static_fetcher(records: Iterable[dict], error: Optional[str] = None) -> Fetcher:
    """Fetcher serving records produced elsewhere (e.g. the PHIVOLCS scraper)."""
    records = list(records)

    async def fetch(since: datetime, min_magnitude: float) -> FetchResult:
        return FetchResult(records=list(records), error=error)

    return fetch


def build_fetchers(
    names: Iterable[str],
    client: Optional[httpx.AsyncClient] = None,
) -> dict[str, Fetcher]:
    """HTTP fetchers for every named source that has an endpoint."""
    fetchers: dict[str, Fetcher] = {}
    for name in names:
        config = SOURCES.get(name)
        if config is None or not config.base_url:
            continue
        fetchers[name] = SourceClient(config, client).fetch
    return fetchers


__all__ = ["Fetcher", "SourceClient", "build_fetchers", "static_fetcher"]

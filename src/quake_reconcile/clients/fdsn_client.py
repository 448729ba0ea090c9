"""Async HTTP client for earthquake provider feeds.

One client per source. ``fetch`` never raises for fetch problems: retries
are exhausted and the failure comes back as ``FetchResult.error`` so the
pipeline can treat every source the same way.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone

import httpx

from quake_reconcile.models import FetchResult
from quake_reconcile.sources import SourceConfig

logger = logging.getLogger(__name__)

# FDSN format parameter per source
FORMAT_MAP = {"usgs": "geojson", "emsc": "json"}


class RateLimiter:
    """Simple token-bucket rate limiter."""

    def __init__(self, rpm: int):
        self.min_interval = 60.0 / max(rpm, 1)
        self._last_call = 0.0

    async def acquire(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_call
        if elapsed < self.min_interval:
            await asyncio.sleep(self.min_interval - elapsed)
        self._last_call = time.monotonic()


class SourceClient:
    """Fetches raw records for one configured source."""

    def __init__(self, config: SourceConfig, client: httpx.AsyncClient | None = None):
        if not config.base_url:
            raise ValueError(f"{config.name} has no HTTP endpoint")
        self.config = config
        self._rate_limiter = RateLimiter(config.rate_limit_rpm)
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    def _params(self, since: datetime, min_magnitude: float) -> dict:
        fmt = self.config.format
        if fmt == "fdsn_geojson":
            return {
                "format": FORMAT_MAP.get(self.config.name, "geojson"),
                "starttime": since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S"),
                "minmagnitude": str(min_magnitude),
                "limit": str(self.config.limit),
                "orderby": "time",
            }
        if fmt == "geonet_geojson":
            # MMI -1 includes unnoticeable events
            return {"MMI": "-1"}
        return {}

    def _extract(self, payload) -> list[dict]:
        if self.config.format == "jma_list":
            if not isinstance(payload, list):
                raise ValueError("expected a JSON list")
            return payload[: self.config.limit]
        if not isinstance(payload, dict):
            raise ValueError("expected a GeoJSON object")
        features = payload.get("features") or []
        return features[: self.config.limit]

    async def fetch(self, since: datetime, min_magnitude: float) -> FetchResult:
        """Fetch raw records newer than ``since`` at or above ``min_magnitude``.

        Feeds that cannot filter server-side return their whole window;
        the pipeline applies the window and floor after normalization.
        """
        params = self._params(since, min_magnitude)
        client = await self._get_client()
        last_error = "no attempt made"

        for attempt in range(self.config.max_retries + 1):
            await self._rate_limiter.acquire()
            try:
                resp = await client.get(
                    self.config.base_url, params=params, timeout=self.config.timeout_seconds,
                )
                # FDSN returns 204 No Content when no events match
                if resp.status_code == 204:
                    return FetchResult(records=[])
                resp.raise_for_status()
                return FetchResult(records=self._extract(resp.json()))
            except (httpx.HTTPStatusError, httpx.RequestError) as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                if attempt < self.config.max_retries:
                    backoff = self.config.retry_backoff_base ** attempt
                    logger.warning(
                        "[%s] attempt %d/%d failed (%s), retrying in %.1fs",
                        self.config.name, attempt + 1, self.config.max_retries + 1,
                        exc, backoff,
                    )
                    await asyncio.sleep(backoff)
            except ValueError as exc:
                # Undecodable body; retrying will not help
                return FetchResult(error=f"invalid response body: {exc}")

        return FetchResult(
            error=f"all {self.config.max_retries + 1} attempts failed: {last_error}"
        )

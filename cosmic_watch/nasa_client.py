"""
Client for NASA's Near Earth Object Web Service.

Every call goes through :meth:`NASANeoClient.get_or_fetch`, which serves
fresh cached responses without touching the network and turns every upstream
failure into a typed error from :mod:`cosmic_watch.errors`.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from cosmic_watch.cache import TTLCache, cache_key
from cosmic_watch.config import Settings, get_settings
from cosmic_watch.errors import (
    AsteroidNotFoundError,
    RateLimitedError,
    UpstreamBadGatewayError,
    UpstreamUnavailableError,
)
from cosmic_watch.normalizer import BrowsePage, normalize_browse

logger = logging.getLogger(__name__)


class NASANeoClient:
    """Respectful consumer of public data. Caches for an hour, never retries."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        cache: Optional[TTLCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.base_url = self.settings.nasa_base_url.rstrip("/")
        self.api_key = self.settings.nasa_api_key
        self.timeout = self.settings.nasa_timeout
        self.cache = cache if cache is not None else TTLCache(ttl=self.settings.cache_ttl)
        self._transport = transport
        self._in_flight: Dict[str, asyncio.Future] = {}

    async def get_or_fetch(self, endpoint: str, params: Optional[dict] = None) -> Any:
        """Return cached data for ``endpoint``/``params`` or fetch it upstream."""
        params = dict(params or {})
        key = cache_key(endpoint, params)

        entry = self.cache.get_entry(key)
        if self.cache.is_valid(entry):
            logger.debug(f"Cache hit for {key}")
            return entry.data

        # Concurrent misses on one key share a single outbound request
        pending = self._in_flight.get(key)
        if pending is None:
            logger.info(f"Cache miss for {key}, fetching from NASA")
            pending = asyncio.ensure_future(self._fetch(endpoint, params, key))
            self._in_flight[key] = pending
            pending.add_done_callback(lambda fut: self._settle(key, fut))

        # Once issued, a fetch runs to completion even if this caller goes away
        return await asyncio.shield(pending)

    def _settle(self, key: str, fut: asyncio.Future) -> None:
        """Forget a finished fetch and mark its failure as retrieved.

        Every waiter may have been cancelled by the time a shielded fetch
        fails, and asyncio would otherwise report the exception as unhandled.
        """
        self._in_flight.pop(key, None)
        if not fut.cancelled():
            fut.exception()

    async def _fetch(self, endpoint: str, params: dict, key: str) -> Any:
        url = f"{self.base_url}{endpoint}"
        query = {**params, "api_key": self.api_key}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.get(url, params=query)
            except httpx.RequestError as e:
                logger.error(f"NASA API unreachable for {endpoint}: {e!r}")
                raise UpstreamUnavailableError(str(e) or "NASA API unavailable") from e

        body = self._decode(response)

        if response.status_code == 429:
            logger.warning(f"NASA API rate limit hit for {endpoint}")
            raise RateLimitedError()

        if response.status_code != 200:
            message = _error_message(body) or f"NASA API responded with status {response.status_code}"
            logger.error(f"NASA API error: {response.status_code} - {message}")
            raise UpstreamBadGatewayError(message, upstream_status=response.status_code)

        if body is None:
            raise UpstreamBadGatewayError("Invalid response from NASA API", upstream_status=200)

        message = _error_message(body)
        if message:
            logger.error(f"NASA API returned an error body for {endpoint}: {message}")
            raise UpstreamBadGatewayError(message, upstream_status=200)

        self.cache.set(key, body)
        return body

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    async def get_feed(self, start_date: str, end_date: str) -> dict:
        """Retrieve NEO feed for a date range (max 7 days)."""
        return await self.get_or_fetch("/feed", {"start_date": start_date, "end_date": end_date})

    async def get_asteroid(self, asteroid_id: str) -> dict:
        """Lookup a specific NEO by ID."""
        try:
            return await self.get_or_fetch(f"/neo/{asteroid_id}")
        except UpstreamBadGatewayError as e:
            if e.upstream_status == 404:
                raise AsteroidNotFoundError() from e
            raise

    async def browse(self, page: int = 0, size: int = 20) -> BrowsePage:
        """Browse one upstream page, normalized."""
        page = max(0, int(page))
        data = await self.get_or_fetch("/neo/browse", {"page": page, "size": size})
        return normalize_browse(data, page)

    def clear_cache(self) -> None:
        self.cache.clear()


def _error_message(body: Any) -> Optional[str]:
    if isinstance(body, dict):
        return body.get("error_message")
    return None

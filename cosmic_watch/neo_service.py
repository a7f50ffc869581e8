"""Feed, browse, lookup and stats orchestration over the NASA client."""

import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from cosmic_watch.errors import UpstreamBadGatewayError, UpstreamError
from cosmic_watch.nasa_client import NASANeoClient
from cosmic_watch.normalizer import PageInfo, flatten_feed
from cosmic_watch.risk import LUNAR_DISTANCE_KM, enrich_asteroid, filter_by_risk_level

logger = logging.getLogger(__name__)

DEFAULT_PAGES_PER_FILTER = 5


class NeoService:
    """Serves enriched asteroid listings. Risk analysis is recomputed on every call."""

    def __init__(self, client: NASANeoClient, pages_per_filter: int = DEFAULT_PAGES_PER_FILTER):
        self.client = client
        self.pages_per_filter = max(1, pages_per_filter)

    async def get_feed(self, start_date: str, end_date: str, risk_level: Optional[str] = None) -> dict:
        """Everything approaching between two dates, enriched and optionally filtered."""
        data = await self.client.get_feed(start_date, end_date)
        if not isinstance(data, dict):
            raise UpstreamBadGatewayError("Invalid response from NASA API")
        asteroids = [enrich_asteroid(a) for a in flatten_feed(data.get("near_earth_objects"))]
        filtered = filter_by_risk_level(asteroids, risk_level)

        logger.info(f"Feed retrieved: {len(filtered)} of {len(asteroids)} objects for {start_date} to {end_date}")
        return {"count": len(filtered), "asteroids": filtered}

    async def browse(self, page: int = 0, size: int = 20, risk_level: Optional[str] = None) -> dict:
        """One logical page of the catalog.

        Upstream pagination knows nothing about risk levels, so a filtered
        request scans ``pages_per_filter`` upstream pages per logical page and
        truncates the matches to ``size``. The reported page count for that
        mode is an approximation.
        """
        if risk_level:
            return await self._browse_filtered(page, size, risk_level)

        result = await self.client.browse(page, size)
        asteroids = [enrich_asteroid(a) for a in result.near_earth_objects]
        return {
            "count": len(asteroids),
            "page": page,
            "totalPages": result.page.total_pages,
            "totalElements": result.page.total_elements,
            "asteroids": asteroids,
            "links": result.links,
        }

    async def _browse_filtered(self, page: int, size: int, risk_level: str) -> dict:
        collected = []
        page_info: Optional[PageInfo] = None

        first = page * self.pages_per_filter
        for upstream_page in range(first, first + self.pages_per_filter):
            result = await self.client.browse(upstream_page, size)
            collected.extend(result.near_earth_objects)
            page_info = result.page
            if len(result.near_earth_objects) < size:
                break

        asteroids = [enrich_asteroid(a) for a in collected]
        filtered = filter_by_risk_level(asteroids, risk_level)[:size]

        upstream_total = page_info.total_pages if page_info else 1
        logger.info(
            f"Filtered browse '{risk_level}' page {page}: {len(filtered)} matches from {len(collected)} scanned"
        )
        return {
            "count": len(filtered),
            "page": page,
            "totalPages": max(1, math.ceil(upstream_total / self.pages_per_filter)),
            "totalElements": len(filtered),
            "asteroids": filtered,
            "links": {},
        }

    async def lookup(self, asteroid_id: str) -> dict:
        """One asteroid by id, enriched. Unknown ids raise AsteroidNotFoundError."""
        asteroid = await self.client.get_asteroid(asteroid_id)
        logger.info(f"Details retrieved for object: {asteroid_id}")
        return enrich_asteroid(asteroid)

    async def get_stats(self, today: Optional[datetime] = None) -> dict:
        """Landing page numbers: catalog size, hazardous objects this week, closest pass."""
        today = today or datetime.utcnow()
        start_date = today.strftime("%Y-%m-%d")
        end_date = (today + timedelta(days=7)).strftime("%Y-%m-%d")

        browse_result, feed = await asyncio.gather(
            self.client.browse(0, 1),
            self._feed_or_empty(start_date, end_date),
        )

        hazardous_count = 0
        closest_ld = None
        for asteroid in flatten_feed(feed.get("near_earth_objects")):
            if asteroid.get("is_potentially_hazardous_asteroid"):
                hazardous_count += 1
            approaches = asteroid.get("close_approach_data") or []
            km = (approaches[0].get("miss_distance") or {}).get("kilometers") if approaches else None
            if km is None:
                continue
            try:
                ld = float(km) / LUNAR_DISTANCE_KM
            except (TypeError, ValueError):
                continue
            if closest_ld is None or ld < closest_ld:
                closest_ld = ld

        return {
            "totalNEOs": browse_result.page.total_elements,
            "hazardousCount": hazardous_count,
            "closestApproachLD": round(closest_ld, 1) if closest_ld is not None else None,
        }

    async def _feed_or_empty(self, start_date: str, end_date: str) -> dict:
        try:
            return await self.client.get_feed(start_date, end_date)
        except UpstreamError as e:
            logger.warning(f"Stats feed unavailable, reporting without it: {e.message}")
            return {"near_earth_objects": {}}

    def clear_cache(self) -> None:
        self.client.clear_cache()

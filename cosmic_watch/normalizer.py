"""Reshape NeoWs responses into one canonical form.

The browse endpoint returns ``near_earth_objects`` either as a list or as an
object of date-keyed lists. Everything downstream of this module only ever
sees a flat list.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from cosmic_watch.errors import UpstreamBadGatewayError


class PageInfo(BaseModel):
    number: int = 0
    total_pages: int = Field(default=1, ge=1)
    total_elements: int = 0


class BrowsePage(BaseModel):
    near_earth_objects: List[Any] = Field(default_factory=list)
    page: PageInfo
    links: Dict[str, Any] = Field(default_factory=dict)


def flatten_feed(near_earth_objects: Optional[dict]) -> list:
    """Concatenate each date's list in the mapping's own key order."""
    flattened = []
    for day in (near_earth_objects or {}):
        flattened.extend(near_earth_objects[day] or [])
    return flattened


def flatten_browse(raw: Any) -> list:
    """Accept either a list or an object of lists."""
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict):
        return [neo for day in raw.values() for neo in (day or []) if neo]
    return []


def normalize_browse(data: Any, page_number: int) -> BrowsePage:
    """Build a :class:`BrowsePage` from a raw browse response."""
    if not isinstance(data, dict):
        raise UpstreamBadGatewayError("Invalid response from NASA API")

    near_earth_objects = flatten_browse(data.get("near_earth_objects"))
    upstream_page = data.get("page") or {}

    total_pages = upstream_page.get("total_pages")
    total_elements = upstream_page.get("total_elements")

    return BrowsePage(
        near_earth_objects=near_earth_objects,
        page=PageInfo(
            number=page_number,
            total_pages=max(1, total_pages if total_pages is not None else 1),
            total_elements=total_elements if total_elements is not None else len(near_earth_objects),
        ),
        links=data.get("links") or {},
    )

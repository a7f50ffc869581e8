"""
Composite risk scoring for near-Earth objects.

Four independent factors contribute additively to a 0-100 score:

- Hazard flag: the upstream PHA classification
- Size: averaged estimated diameter in kilometers
- Velocity: relative velocity at the chosen close approach, km/h
- Proximity: miss distance measured in lunar distances

The chosen approach is the first one orbiting Earth, falling back to the
first record of any kind.
"""

import logging
import math
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

LUNAR_DISTANCE_KM = 384_400
MAX_SCORE = 100

LEVEL_LOW = "low"
LEVEL_MEDIUM = "medium"
LEVEL_HIGH = "high"
LEVEL_CRITICAL = "critical"

SAFE_DEFAULT = {"score": 0, "level": LEVEL_LOW}


class RiskFilter(str, Enum):
    """Risk levels a client may filter by. ``high`` includes ``critical``."""

    LOW = LEVEL_LOW
    MEDIUM = LEVEL_MEDIUM
    HIGH = LEVEL_HIGH


def _parse_float(value: Any, default: float) -> float:
    """NeoWs sends most numbers as strings."""
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return default if math.isnan(parsed) else parsed


def select_close_approach(approaches: list) -> Optional[dict]:
    """Prefer the Earth approach; otherwise the first record, if any."""
    for approach in approaches:
        if str(approach.get("orbiting_body") or "").lower() == "earth":
            return approach
    return approaches[0] if approaches else None


def _size_points(diameter_km: float) -> int:
    if diameter_km > 1:
        return 30
    if diameter_km > 0.5:
        return 20
    if diameter_km > 0.2:
        return 10
    return 5


def _velocity_points(velocity_kmh: float) -> int:
    if velocity_kmh > 100_000:
        return 25
    if velocity_kmh > 50_000:
        return 15
    if velocity_kmh > 25_000:
        return 8
    return 3


def _proximity_points(miss_distance_km: float) -> int:
    if miss_distance_km < LUNAR_DISTANCE_KM:
        return 15
    if miss_distance_km < LUNAR_DISTANCE_KM * 5:
        return 10
    if miss_distance_km < LUNAR_DISTANCE_KM * 20:
        return 5
    return 2


def calculate_risk_score(asteroid: dict) -> int:
    """Calculate the composite risk score, capped at 100.

    Raises on malformed input (for example a missing ``close_approach_data``
    key); callers that must not fail use :func:`enrich_asteroid`.
    """
    kilometers = (asteroid.get("estimated_diameter") or {}).get("kilometers")
    if kilometers:
        diameter_km = (
            kilometers["estimated_diameter_min"] + kilometers["estimated_diameter_max"]
        ) / 2
    else:
        diameter_km = 0.0

    approach = select_close_approach(asteroid["close_approach_data"])
    if approach is not None:
        velocity_kmh = _parse_float(
            (approach.get("relative_velocity") or {}).get("kilometers_per_hour"), 0.0
        )
        miss_distance_km = _parse_float(
            (approach.get("miss_distance") or {}).get("kilometers"), math.inf
        )
    else:
        velocity_kmh = 0.0
        miss_distance_km = math.inf

    score = 30 if asteroid.get("is_potentially_hazardous_asteroid") else 0
    score += _size_points(diameter_km)
    score += _velocity_points(velocity_kmh)
    score += _proximity_points(miss_distance_km)

    return min(MAX_SCORE, score)


def get_risk_level(score: int) -> str:
    """Map a score onto its discrete level. Boundaries are closed below."""
    if score >= 70:
        return LEVEL_CRITICAL
    if score >= 50:
        return LEVEL_HIGH
    if score >= 30:
        return LEVEL_MEDIUM
    return LEVEL_LOW


def enrich_asteroid(asteroid: Any) -> Any:
    """Return a copy of the asteroid with ``risk_analysis`` attached.

    A malformed record gets the safe default instead of an exception, so one
    bad item never fails a whole batch. Non-dict values pass through untouched.
    """
    if not isinstance(asteroid, dict):
        return asteroid

    try:
        score = calculate_risk_score(asteroid)
        risk_analysis = {"score": score, "level": get_risk_level(score)}
    except Exception as e:
        logger.warning(f"Risk scoring failed for asteroid {asteroid.get('id')}: {e!r}")
        risk_analysis = dict(SAFE_DEFAULT)

    return {**asteroid, "risk_analysis": risk_analysis}


def matches_risk_level(asteroid: dict, requested: str) -> bool:
    """Check an enriched asteroid against a requested filter level."""
    level = (asteroid.get("risk_analysis") or {}).get("level")
    requested = requested.lower()
    if requested == LEVEL_HIGH:
        return level in (LEVEL_HIGH, LEVEL_CRITICAL)
    return level == requested


def filter_by_risk_level(asteroids: list, requested: Optional[str]) -> list:
    """Keep the matching asteroids in order. No level means no filtering."""
    if not requested:
        return asteroids
    return [a for a in asteroids if isinstance(a, dict) and matches_risk_level(a, requested)]

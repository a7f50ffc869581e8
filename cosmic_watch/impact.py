"""
Hypothetical impact scenarios written by a language model.

Purely illustrative: the text describes what *would* happen if a given
asteroid struck Earth, and is never cached or stored.
"""

import logging
from typing import Optional

import openai

from cosmic_watch.config import Settings, get_settings
from cosmic_watch.errors import ImpactNarrativeError, NarratorNotConfiguredError
from cosmic_watch.schemas import HypotheticalImpactRequest

logger = logging.getLogger(__name__)

MAX_TOKENS = 500

# Upstream statuses the caller is allowed to see; everything else is a 500
PASSTHROUGH_STATUSES = {401, 429}


def build_prompt(asteroid: HypotheticalImpactRequest) -> str:
    """Render the scientist prompt, with '?' for anything unknown."""
    diameter_km = asteroid.diameter_km or 0
    diameter_m = diameter_km * 1000
    diameter = f"{diameter_km:.2f}" if diameter_km > 0 else "?"
    meters = f"{diameter_m:.0f}" if diameter_m > 0 else "?"
    velocity = f"{asteroid.velocity_kmh:,.0f}" if asteroid.velocity_kmh is not None else "?"
    miss = f"{asteroid.miss_distance_km / 1e6:.2f}" if asteroid.miss_distance_km is not None else "?"

    return (
        "You are an expert planetary scientist. Given an asteroid with these characteristics:\n"
        f"- Name: {asteroid.name or 'Unknown'}\n"
        f"- Diameter: {diameter} km ({meters} meters)\n"
        f"- Velocity: {velocity} km/h\n"
        f"- Miss distance: {miss} million km (if it were to hit)\n"
        f"- Risk level: {asteroid.risk_score or 'unknown'}\n"
        f"- Potentially hazardous: {'Yes' if asteroid.is_hazardous else 'No'}\n"
        "\n"
        "Write a concise, scientifically-informed paragraph (3-5 sentences) describing what would "
        "happen if this asteroid actually hit Earth. Consider: impact energy, crater size, blast "
        "radius, regional vs global effects, tsunamis if ocean impact, climate effects. Be realistic "
        "but engaging. Use plain language."
    )


class ImpactNarrator:
    """Asks a chat model for a short impact scenario."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[openai.AsyncOpenAI] = None,
    ):
        settings = settings or get_settings()
        self.model = settings.openai_model
        if client is None and settings.openai_api_key:
            client = openai.AsyncOpenAI(api_key=settings.openai_api_key)
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def describe(self, asteroid: HypotheticalImpactRequest) -> str:
        if not self.configured:
            raise NarratorNotConfiguredError()

        try:
            completion = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": build_prompt(asteroid)}],
                max_tokens=MAX_TOKENS,
            )
        except openai.APIStatusError as e:
            logger.error(f"Impact scenario request rejected: {e.status_code} {e.message}")
            status_code = e.status_code if e.status_code in PASSTHROUGH_STATUSES else 500
            raise ImpactNarrativeError(e.message, status_code=status_code) from e
        except openai.OpenAIError as e:
            logger.error(f"Impact scenario request failed: {e!r}")
            raise ImpactNarrativeError(str(e) or "Failed to generate hypothetical impact scenario") from e

        choices = completion.choices or []
        text = (choices[0].message.content or "").strip() if choices else ""
        if not text:
            raise ImpactNarrativeError("No response from AI")

        logger.info(f"Impact scenario generated for {asteroid.name or 'unnamed object'}")
        return text

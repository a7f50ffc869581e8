"""Environment-driven configuration."""

import os
from functools import lru_cache
from typing import List


class Settings:
    """Configuration that adapts to environment without complaint."""

    def __init__(self):
        self.nasa_api_key = os.getenv("NASA_API_KEY", "DEMO_KEY")
        self.nasa_base_url = os.getenv("NASA_API_BASE_URL", "https://api.nasa.gov/neo/rest/v1")
        self.nasa_timeout = float(os.getenv("NASA_TIMEOUT_SECONDS", "15"))
        self.mongodb_url = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
        self.database_name = os.getenv("DATABASE_NAME", "cosmic_watch")
        self.jwt_secret = os.getenv("JWT_SECRET", "cosmic-watch-secret-change-in-production")
        self.jwt_algorithm = "HS256"
        self.access_token_expire_minutes = int(os.getenv("JWT_EXPIRE_MINUTES", str(7 * 24 * 60)))
        self.environment = os.getenv("ENVIRONMENT", "development")
        self.cors_origins: List[str] = [
            origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
        ]
        self.port = int(os.getenv("PORT", "5001"))

        # Upstream responses are reused for this many seconds
        self.cache_ttl = int(os.getenv("CACHE_TTL_SECONDS", "3600"))

        # Upstream pages scanned per logical page when filtering by risk level
        self.filter_page_multiplier = int(os.getenv("FILTER_PAGE_MULTIPLIER", "5"))

        self.chat_history_limit = int(os.getenv("CHAT_HISTORY_LIMIT", "100"))

        # Impact scenarios are only offered when a key is present
        self.openai_api_key = os.getenv("OPENAI_API_KEY")
        self.openai_model = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """Single source of truth, cached for efficiency."""
    return Settings()

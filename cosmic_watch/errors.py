"""Error taxonomy for the NEO core.

Every error carries the HTTP status it should surface as. The application
layer renders them into the ``{"success": false, "message": ...}`` envelope.
"""

from typing import Optional

RATE_LIMIT_MESSAGE = (
    "NASA API rate limit exceeded. Get a free key at https://api.nasa.gov "
    "and set NASA_API_KEY in the backend environment."
)


class NeoServiceError(Exception):
    """Base for failures raised by the NEO core."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UpstreamError(NeoServiceError):
    """The NASA API could not produce a usable answer."""

    status_code = 502


class RateLimitedError(UpstreamError):
    status_code = 429

    def __init__(self, message: str = RATE_LIMIT_MESSAGE):
        super().__init__(message)


class UpstreamBadGatewayError(UpstreamError):
    """Upstream answered, but not with a 200 carrying usable data."""

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class UpstreamUnavailableError(UpstreamError):
    """No response at all: connection failure or timeout."""

    def __init__(self, message: str = "NASA API unavailable"):
        super().__init__(message)


class AsteroidNotFoundError(NeoServiceError):
    status_code = 404

    def __init__(self, message: str = "Asteroid not found"):
        super().__init__(message)


class ImpactNarrativeError(NeoServiceError):
    """The language model could not produce an impact scenario."""

    def __init__(self, message: str = "Failed to generate hypothetical impact scenario", status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class NarratorNotConfiguredError(ImpactNarrativeError):
    def __init__(self, message: str = "OpenAI API is not configured. Add OPENAI_API_KEY to your .env file."):
        super().__init__(message, status_code=503)

"""Nimbus Backend — Error types raised by the fetch pipeline"""


class WeatherError(Exception):
    """Base class for every failure the weather pipeline reports."""


class ProviderError(WeatherError):
    """Weather provider unreachable or returned an unusable payload."""


class ProviderHttpError(ProviderError):
    """Weather provider answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        self.message = message or "Unknown error"
        super().__init__(f"API Error: {status_code} - {self.message}")


class ProviderPayloadError(ProviderError):
    """Weather provider answered 2xx but the body could not be used.

    The request still reached the provider, so it counts against the call budget.
    """


class RateLimitExceeded(WeatherError):
    """Provider call budget exhausted for the current window."""

    def __init__(self, retry_after: float):
        self.retry_after = max(0.0, retry_after)
        minutes = -(-int(self.retry_after) // 60)  # ceil
        super().__init__(
            f"API limit reached. Try again in {minutes} minutes or use cached data."
        )


class GeocodingError(WeatherError):
    """Geocoding service unreachable or returned a non-2xx status."""


class GeocodingNotFound(GeocodingError):
    def __init__(self, query: str):
        self.query = query
        super().__init__(f"Location not found: {query!r}")


class EnrichmentFailure(WeatherError):
    """Gemini insight generation failed; callers drop the enrichment."""

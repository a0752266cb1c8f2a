"""Nimbus Backend — Fetch orchestration (cache → budget → provider → fallback)

All state lives on a WeatherService instance owned by the application; the
cache and budget tracker are mutated only between awaits on a single event
loop, so no locks are taken.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from budget import CallBudgetTracker
from cache import ResponseCache
from config import BATCH_MAX_CONCURRENT
from data_fetchers import TomorrowClient, OpenMeteoGeocoder, full_location_name
from errors import (
    ProviderError, ProviderPayloadError, GeocodingError, GeocodingNotFound, RateLimitExceeded,
)
from insights import GeminiInsights
from models import ApiUsage, GeocodeResult, WeatherData

logger = logging.getLogger("nimbus.orchestrator")

LIMIT_WARNING = "API limit reached. Using cached data."


class FetchSource(str, Enum):
    CACHE_FRESH = "cache_fresh"
    FETCHED = "fetched"
    CACHE_STALE_FALLBACK = "cache_stale_fallback"


@dataclass
class FetchResult:
    data: WeatherData
    source: FetchSource
    warning: Optional[str] = None
    error: Optional[Exception] = None
    age_seconds: Optional[float] = None


@dataclass
class BatchFetchResult:
    data: dict[str, WeatherData] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    api_calls_made: int = 0
    from_cache: list[str] = field(default_factory=list)


class WeatherService:
    def __init__(
        self,
        provider: TomorrowClient,
        geocoder: OpenMeteoGeocoder,
        cache: Optional[ResponseCache] = None,
        budget: Optional[CallBudgetTracker] = None,
        insights: Optional[GeminiInsights] = None,
    ):
        self.provider = provider
        self.geocoder = geocoder
        self.cache = cache if cache is not None else ResponseCache()
        self.budget = budget if budget is not None else CallBudgetTracker()
        self.insights = insights
        self._refreshing: dict[str, asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()

    # ─────────────────────── Single city ────────────────────────

    async def get_weather(self, city: str, force_refresh: bool = False, enhance: bool = True) -> FetchResult:
        """Serve a city's forecast from cache or provider.

        Returns a FetchResult whose ``source`` tells fresh cache, new fetch and
        stale fallback apart. Raises RateLimitExceeded, ProviderError or
        GeocodingError only when no cached entry of any age exists.
        """
        key = self.cache.normalize_key(city)
        if not key:
            raise GeocodingNotFound(city)

        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                if self.cache.is_refresh_due(key):
                    self.refresh_in_background(city)
                return FetchResult(cached, FetchSource.CACHE_FRESH, age_seconds=self.cache.age(key))

        if self.budget.has_reached_limit():
            self.budget.flag_limit_warning()
            stale = self.cache.get_stale(key)
            if stale is not None:
                logger.warning(f"Budget exhausted, serving cached data for {city}")
                return FetchResult(
                    stale, FetchSource.CACHE_STALE_FALLBACK,
                    warning=LIMIT_WARNING, age_seconds=self.cache.age(key),
                )
            raise RateLimitExceeded(self.budget.retry_after())

        try:
            data = await self._fetch_and_store(city, enhance)
        except GeocodingNotFound:
            raise
        except (ProviderError, GeocodingError) as e:
            logger.warning(f"Error fetching weather for {city}: {e}")
            stale = self.cache.get_stale(key)
            if stale is None:
                raise
            return FetchResult(
                stale, FetchSource.CACHE_STALE_FALLBACK,
                warning=f"Error refreshing: {e}. Using cached data.",
                error=e, age_seconds=self.cache.age(key),
            )
        return FetchResult(data, FetchSource.FETCHED, age_seconds=0.0)

    async def _fetch_and_store(self, city: str, enhance: bool = True) -> WeatherData:
        place = await self.geocoder.resolve(city)
        try:
            data = await self.provider.fetch_weather(place.lat, place.lng, city.strip())
        except ProviderPayloadError:
            # the provider answered, so the call is spent
            self.budget.record_call()
            raise
        self.budget.record_call()
        if place.country or place.region:
            data = data.model_copy(update={"fullLocationName": full_location_name(place)})
        if enhance and self.insights is not None:
            data = await self.insights.enhance(data)
        self.cache.put(city, data)
        return data

    # ─────────────────────── Background refresh ─────────────────

    def refresh_in_background(self, city: str) -> Optional[asyncio.Task]:
        """Schedule a detached re-fetch; at most one per city is in flight."""
        key = self.cache.normalize_key(city)
        running = self._refreshing.get(key)
        if running is not None and not running.done():
            logger.debug(f"Background refresh already running for {key}")
            return None

        task = asyncio.create_task(self._background_refresh(city), name=f"refresh:{key}")
        self._refreshing[key] = task

        def _done(t: asyncio.Task, k: str = key):
            if self._refreshing.get(k) is t:
                del self._refreshing[k]

        task.add_done_callback(_done)
        return task

    async def _background_refresh(self, city: str):
        if self.budget.has_reached_limit():
            logger.info(f"Skipping background refresh for {city}: budget exhausted")
            return
        try:
            await self._fetch_and_store(city)
            logger.info(f"Background refresh complete for {city}")
        except Exception as e:
            logger.warning(f"Background refresh failed for {city}: {e}")

    def pending_refreshes(self) -> list[str]:
        return [k for k, t in self._refreshing.items() if not t.done()]

    async def wait_for_background(self):
        tasks = list(self._refreshing.values()) + list(self._background)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ─────────────────────── Batch ──────────────────────────────

    async def batch_fetch_weather(
        self,
        cities: list[str],
        max_concurrent: int = BATCH_MAX_CONCURRENT,
        prioritize_cached: bool = True,
        force_refresh: bool = False,
        respect_api_limits: bool = True,
    ) -> BatchFetchResult:
        """Fetch several cities, at most ``max_concurrent`` provider calls at a time."""
        result = BatchFetchResult()
        unique: dict[str, str] = {}
        for c in cities:
            key = self.cache.normalize_key(c)
            if key and key not in unique:
                unique[key] = c
        cities = list(unique.values())
        if not cities:
            return result

        use_only_cached = respect_api_limits and self.budget.is_near_limit()

        if (prioritize_cached or use_only_cached) and not force_refresh:
            for city in cities:
                cached = self.cache.get(city)
                if cached is not None:
                    result.data[city] = cached
                    result.from_cache.append(city)

        to_fetch = [c for c in cities if c not in result.data]

        if use_only_cached:
            self._fill_from_stale(result, to_fetch, "API rate limit approaching")
            return result

        max_concurrent = max(1, max_concurrent)
        for i in range(0, len(to_fetch), max_concurrent):
            chunk = to_fetch[i:i + max_concurrent]
            outcomes = await asyncio.gather(
                *(self.get_weather(c, force_refresh=force_refresh) for c in chunk),
                return_exceptions=True,
            )
            for city, outcome in zip(chunk, outcomes):
                if isinstance(outcome, Exception):
                    result.errors[city] = f"Failed to fetch: {outcome}"
                    continue
                result.data[city] = outcome.data
                if outcome.source is FetchSource.FETCHED:
                    result.api_calls_made += 1
                else:
                    result.from_cache.append(city)
                    if outcome.warning:
                        result.errors[city] = outcome.warning

            remaining = to_fetch[i + max_concurrent:]
            if remaining and respect_api_limits and self.budget.is_near_limit():
                logger.warning(f"Near API limit, skipping {len(remaining)} cities in batch")
                self._fill_from_stale(result, remaining, "API limit reached")
                break

        return result

    def _fill_from_stale(self, result: BatchFetchResult, cities: list[str], reason: str):
        for city in cities:
            stale = self.cache.get_stale(city)
            if stale is not None:
                result.data[city] = stale
                result.from_cache.append(city)
                result.errors[city] = f"{reason}. Using cached data."
            else:
                result.errors[city] = f"{reason}. Try again later."

    def prefetch_cities(self, cities: list[str]) -> Optional[asyncio.Task]:
        """Warm the cache in the background, one provider call at a time."""
        if self.budget.is_near_limit():
            logger.info("Near API limit, prefetch skipped")
            return None

        task = asyncio.create_task(self.batch_fetch_weather(cities, max_concurrent=1))
        self._background.add(task)

        def _done(t: asyncio.Task):
            self._background.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.warning(f"Background prefetch error: {t.exception()}")

        task.add_done_callback(_done)
        return task

    # ─────────────────────── Misc ───────────────────────────────

    def usage(self) -> ApiUsage:
        return self.budget.usage()

    def invalidate(self, city: str) -> bool:
        return self.cache.invalidate(city)

    async def search_cities(self, query: str) -> list[GeocodeResult]:
        return await self.geocoder.search(query)

    async def aclose(self):
        tasks = list(self._refreshing.values()) + list(self._background)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.provider.aclose()
        await self.geocoder.aclose()


def build_weather_service() -> WeatherService:
    """Wire a WeatherService from environment configuration."""
    insights = GeminiInsights()
    if not insights.enabled:
        logger.info("GEMINI_API_KEY not set, weather insights disabled")
        insights = None
    return WeatherService(
        provider=TomorrowClient(),
        geocoder=OpenMeteoGeocoder(),
        cache=ResponseCache(),
        budget=CallBudgetTracker(),
        insights=insights,
    )


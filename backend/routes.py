"""Nimbus Backend — FastAPI Routes"""

import logging
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from errors import GeocodingNotFound, GeocodingError, ProviderError, ProviderHttpError, RateLimitExceeded
from mock_data import get_mock_weather
from models import (
    WeatherResponse, BatchWeatherRequest, BatchWeatherResponse, PrefetchRequest,
    GeocodeResult, ApiUsage, CacheStats, CacheEntryInfo,
)
from orchestrator import WeatherService, build_weather_service

logger = logging.getLogger("nimbus")

VERSION = "1.0.0"


# ─────────────────────────── App Setup ──────────────────────────

app = FastAPI(title="Nimbus Weather API", version=VERSION)

_allowed_origins = [
    f"http://localhost:{p}" for p in range(5173, 5180)
] + [
    f"http://localhost:{p}" for p in range(8080, 8090)
] + [
    f"http://127.0.0.1:{p}" for p in range(5173, 5180)
] + [
    f"http://127.0.0.1:{p}" for p in range(8080, 8090)
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─────────────────────────── Lifecycle ──────────────────────────

@app.on_event("startup")
async def startup_event():
    app.state.weather_service = build_weather_service()
    logger.info("Weather service ready")


@app.on_event("shutdown")
async def shutdown_event():
    service = getattr(app.state, "weather_service", None)
    if service is not None:
        await service.aclose()


def get_weather_service(request: Request) -> WeatherService:
    return request.app.state.weather_service


# ─────────────────────────── Weather ────────────────────────────

@app.get("/api/weather/{city}", response_model=WeatherResponse)
async def get_city_weather(
    city: str,
    forceRefresh: bool = False,
    enhance: bool = True,
    mockFallback: bool = False,
    service: WeatherService = Depends(get_weather_service),
):
    logger.info(f"Weather request: {city} (forceRefresh={forceRefresh})")
    try:
        result = await service.get_weather(city, force_refresh=forceRefresh, enhance=enhance)
    except GeocodingNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RateLimitExceeded as e:
        if mockFallback:
            return _mock_response(service, city, f"API limit reached. Using offline data for {city}.")
        return JSONResponse(
            status_code=429,
            content={"detail": str(e), "retryAfterSeconds": round(e.retry_after, 1)},
            headers={"Retry-After": str(int(e.retry_after) + 1)},
        )
    except (ProviderError, GeocodingError) as e:
        if mockFallback:
            return _mock_response(service, city, f"Failed to fetch weather for {city}. Using offline data.")
        status = e.status_code if isinstance(e, ProviderHttpError) else None
        raise HTTPException(
            status_code=502,
            detail={"error": "Weather provider unavailable", "message": str(e), "providerStatus": status},
        )

    return WeatherResponse(
        weather=result.data,
        source=result.source.value,
        warning=result.warning,
        ageSeconds=round(result.age_seconds, 1) if result.age_seconds is not None else None,
        usage=service.usage(),
    )


def _mock_response(service: WeatherService, city: str, warning: str) -> WeatherResponse:
    logger.warning(warning)
    return WeatherResponse(
        weather=get_mock_weather(city),
        source="mock",
        warning=warning,
        usage=service.usage(),
    )


@app.post("/api/weather/batch", response_model=BatchWeatherResponse)
async def batch_weather(req: BatchWeatherRequest, service: WeatherService = Depends(get_weather_service)):
    result = await service.batch_fetch_weather(
        req.cities,
        max_concurrent=req.maxConcurrent,
        prioritize_cached=req.prioritizeCached,
        force_refresh=req.forceRefresh,
        respect_api_limits=req.respectApiLimits,
    )
    logger.info(
        f"Batch of {len(req.cities)}: {result.api_calls_made} API calls, "
        f"{len(result.from_cache)} from cache, {len(result.errors)} errors"
    )
    return BatchWeatherResponse(
        data=result.data,
        errors=result.errors,
        apiCallsMade=result.api_calls_made,
        fromCache=result.from_cache,
        usage=service.usage(),
    )


@app.post("/api/weather/prefetch", status_code=202)
async def prefetch_weather(req: PrefetchRequest, service: WeatherService = Depends(get_weather_service)):
    task = service.prefetch_cities(req.cities)
    return {"scheduled": task is not None, "cities": req.cities}


# ─────────────────────────── Utility Endpoints ──────────────────

@app.get("/api/geocode", response_model=list[GeocodeResult])
async def geocode(query: str, service: WeatherService = Depends(get_weather_service)):
    try:
        results = await service.search_cities(query)
    except GeocodingError as e:
        logger.warning(f"Geocode error: {e}")
        raise HTTPException(status_code=502, detail="Geocoding service unavailable")
    if not results:
        raise HTTPException(status_code=404, detail="Location not found")
    return results


@app.get("/api/usage", response_model=ApiUsage)
async def api_usage(service: WeatherService = Depends(get_weather_service)):
    return service.usage()


@app.get("/api/cache", response_model=CacheStats)
async def cache_stats(service: WeatherService = Depends(get_weather_service)):
    return CacheStats(
        size=len(service.cache),
        maxSize=service.cache.max_size,
        entries=[CacheEntryInfo(**e) for e in service.cache.stats()],
    )


@app.delete("/api/cache/{city}")
async def invalidate_city(city: str, service: WeatherService = Depends(get_weather_service)):
    if not service.invalidate(city):
        raise HTTPException(status_code=404, detail=f"No cached data for {city}")
    return {"invalidated": city}


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": VERSION, "time": datetime.now(timezone.utc).isoformat()}

"""Nimbus Backend — Pydantic Models"""

from typing import Optional
from pydantic import BaseModel, Field


class AirQuality(BaseModel):
    index: int = 35
    description: str = "Moderate"


class HourlyForecast(BaseModel):
    hour: str               # e.g. "10 AM"
    temp: int
    description: str = ""
    icon: str = "partly-cloudy"


class HourlyDetail(BaseModel):
    hour: str
    temp: int
    rainChance: int = 0     # percent
    humidity: int = 50      # percent


class DailyForecast(BaseModel):
    day: str                # e.g. "Monday"
    high: int
    low: int
    description: str = ""
    icon: str = "partly-cloudy"
    insight: Optional[str] = None
    airQuality: AirQuality = Field(default_factory=AirQuality)
    hourlyDetails: list[HourlyDetail] = []
    feelsLike: int
    windSpeed: int
    uvIndex: int
    uvRisk: str = "Low"


class WeatherData(BaseModel):
    """Normalized forecast bundle, independent of the provider wire format."""
    city: str
    fullLocationName: Optional[str] = None
    temperature: int
    description: str
    icon: str = "partly-cloudy"
    weatherInsights: Optional[str] = None
    hourlyForecast: list[HourlyForecast]
    dailyForecast: list[DailyForecast]


class GeocodeResult(BaseModel):
    name: str
    country: str = ""
    region: str = ""
    lat: float
    lng: float


class ApiUsage(BaseModel):
    hourlyCallsLeft: int
    dailyCallsLeft: int
    isNearLimit: bool
    hasReachedLimit: bool
    showWarning: bool = False
    retryAfterSeconds: float = 0.0


class WeatherResponse(BaseModel):
    weather: WeatherData
    source: str             # cache_fresh, fetched, cache_stale_fallback, mock
    warning: Optional[str] = None
    ageSeconds: Optional[float] = None
    usage: ApiUsage


class BatchWeatherRequest(BaseModel):
    cities: list[str] = Field(min_length=1, max_length=20)
    maxConcurrent: int = Field(default=3, ge=1, le=10)
    prioritizeCached: bool = True
    forceRefresh: bool = False
    respectApiLimits: bool = True


class BatchWeatherResponse(BaseModel):
    data: dict[str, WeatherData]
    errors: dict[str, str]
    apiCallsMade: int
    fromCache: list[str]
    usage: ApiUsage


class PrefetchRequest(BaseModel):
    cities: list[str] = Field(min_length=1, max_length=20)


class CacheEntryInfo(BaseModel):
    key: str
    ageSeconds: float
    accessCount: int
    refreshDue: bool


class CacheStats(BaseModel):
    size: int
    maxSize: int
    entries: list[CacheEntryInfo]

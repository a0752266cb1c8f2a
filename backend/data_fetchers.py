"""Nimbus Backend — External Data Fetchers (Tomorrow.io, Open-Meteo geocoding)"""

import logging
from datetime import datetime
from typing import Optional

import httpx
from cachetools import LRUCache

from config import (
    TOMORROW_API_KEY, TOMORROW_BASE_URL, WEATHER_UNITS,
    GEOCODING_BASE_URL, HTTP_TIMEOUT_SECONDS, TIMELINE_FIELDS,
    CITY_COORDS, WEATHER_CODE_DESCRIPTIONS, ICON_CODES, EPA_HEALTH_CONCERN,
)
from errors import (
    ProviderError, ProviderHttpError, ProviderPayloadError, GeocodingError, GeocodingNotFound,
)
from models import (
    WeatherData, HourlyForecast, DailyForecast, HourlyDetail, AirQuality, GeocodeResult,
)

logger = logging.getLogger("nimbus.fetchers")

# Local hours sampled for each day's detail strip
DETAIL_HOURS = (6, 9, 12, 15, 18, 21)
HOURLY_STRIP_LENGTH = 5
DAILY_FORECAST_LENGTH = 5


# ─────────────────────────── Formatting helpers ─────────────────

def _parse_time(iso_time: str) -> datetime:
    return datetime.fromisoformat(str(iso_time).replace("Z", "+00:00"))


def _hour_label(hour: int) -> str:
    ampm = "PM" if hour >= 12 else "AM"
    display = hour % 12 or 12
    return f"{display} {ampm}"


def format_hour(iso_time: str) -> str:
    """'2024-05-01T22:00:00-04:00' → '10 PM' (wall-clock time of the string)."""
    return _hour_label(_parse_time(iso_time).hour)


def format_day(iso_time: str) -> str:
    """'2024-05-01T06:00:00Z' → 'Wednesday'."""
    return _parse_time(iso_time).strftime("%A")


def get_uv_risk_level(uv_index: float) -> str:
    if uv_index < 3:
        return "Low"
    if uv_index < 6:
        return "Moderate"
    if uv_index < 8:
        return "High"
    if uv_index < 11:
        return "Very High"
    return "Extreme"


def map_weather_code_to_icon(weather_code: int) -> str:
    """Map a Tomorrow.io weather code to one of the dashboard icon types."""
    for icon, codes in ICON_CODES.items():
        if weather_code in codes:
            return icon
    # Unlisted codes fall back by family
    if 4000 <= weather_code < 5000:
        return "rainy"
    if 5000 <= weather_code < 6000:
        return "snow"
    if 6000 <= weather_code < 7000:
        return "windy"
    return "partly-cloudy"


def describe_weather_code(weather_code: int) -> str:
    if weather_code in WEATHER_CODE_DESCRIPTIONS:
        return WEATHER_CODE_DESCRIPTIONS[weather_code]
    return map_weather_code_to_icon(weather_code).replace("-", " ").title()


def describe_epa_concern(concern) -> str:
    if isinstance(concern, str):
        return concern
    return EPA_HEALTH_CONCERN.get(int(concern), "Moderate") if concern is not None else "Moderate"


def _first(values: dict, *names, default=0.0):
    for name in names:
        v = values.get(name)
        if v is not None:
            return v
    return default


# ─────────────────────────── Provider → bundle ──────────────────

def _timeline(timelines: list[dict], timestep: str) -> list[dict]:
    for t in timelines:
        if t.get("timestep") == timestep:
            return t.get("intervals") or []
    return []


def _hourly_details(day_start: str, day_values: dict, hourly: list[dict]) -> list[HourlyDetail]:
    day_date = _parse_time(day_start).date()
    by_hour = {}
    for interval in hourly:
        ts = _parse_time(interval["startTime"])
        if ts.date() == day_date and ts.hour in DETAIL_HOURS:
            by_hour[ts.hour] = interval["values"]

    details = []
    for hour in DETAIL_HOURS:
        v = by_hour.get(hour)
        if v is not None:
            details.append(HourlyDetail(
                hour=_hour_label(hour),
                temp=round(_first(v, "temperature")),
                rainChance=round(_first(v, "precipitationProbability")),
                humidity=round(_first(v, "humidity", default=50)),
            ))
        else:
            details.append(HourlyDetail(
                hour=_hour_label(hour),
                temp=round(_first(day_values, "temperatureAvg", "temperature")),
                rainChance=round(_first(day_values, "precipitationProbabilityAvg", "precipitationProbability")),
                humidity=round(_first(day_values, "humidityAvg", "humidity", default=50)),
            ))
    return details


def transform_tomorrow_data(payload: dict, city_name: str) -> WeatherData:
    """Convert a Tomorrow.io timelines response into the internal forecast bundle."""
    try:
        timelines = payload["data"]["timelines"]
        hourly = _timeline(timelines, "1h")
        daily = _timeline(timelines, "1d")
        current = hourly[0]["values"]

        current_code = int(_first(current, "weatherCode", default=1000))

        hourly_forecast = []
        for interval in hourly[:HOURLY_STRIP_LENGTH]:
            code = int(_first(interval["values"], "weatherCode", default=1000))
            hourly_forecast.append(HourlyForecast(
                hour=format_hour(interval["startTime"]),
                temp=round(_first(interval["values"], "temperature")),
                description=describe_weather_code(code),
                icon=map_weather_code_to_icon(code),
            ))

        daily_forecast = []
        for interval in daily[:DAILY_FORECAST_LENGTH]:
            v = interval["values"]
            code = int(_first(v, "weatherCodeMax", "weatherCode", default=1000))
            uv = _first(v, "uvIndexAvg", "uvIndexMax", "uvIndex")
            daily_forecast.append(DailyForecast(
                day=format_day(interval["startTime"]),
                high=round(_first(v, "temperatureMax", "temperature")),
                low=round(_first(v, "temperatureMin", "temperature")),
                description=describe_weather_code(code),
                icon=map_weather_code_to_icon(code),
                airQuality=AirQuality(
                    index=round(_first(v, "epaIndex", "particlePollutionIndex", default=35)),
                    description=describe_epa_concern(v.get("epaHealthConcern")),
                ),
                hourlyDetails=_hourly_details(interval["startTime"], v, hourly),
                feelsLike=round(_first(v, "temperatureApparentAvg", "temperatureApparent", "temperatureAvg", "temperature")),
                windSpeed=round(_first(v, "windSpeedAvg", "windSpeed")),
                uvIndex=round(uv),
                uvRisk=get_uv_risk_level(uv),
            ))
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise ProviderPayloadError(f"Unexpected timeline shape for {city_name!r}: {e}") from e

    return WeatherData(
        city=city_name or "Unknown Location",
        temperature=round(_first(current, "temperature")),
        description=describe_weather_code(current_code),
        icon=map_weather_code_to_icon(current_code),
        hourlyForecast=hourly_forecast,
        dailyForecast=daily_forecast,
    )


# ─────────────────────────── Tomorrow.io ────────────────────────

class TomorrowClient:
    """Tomorrow.io timelines client. Budget checks live in the orchestrator."""

    def __init__(
        self,
        api_key: str = TOMORROW_API_KEY,
        base_url: str = TOMORROW_BASE_URL,
        units: str = WEATHER_UNITS,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.units = units
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)

    async def fetch_timeline(self, location: str) -> dict:
        body = {
            "location": location,
            "fields": TIMELINE_FIELDS,
            "timesteps": ["1h", "1d"],
            "units": self.units,
            "startTime": "now",
            "endTime": "nowPlus5d",
            "timezone": "auto",
        }
        try:
            r = await self._http.post(
                f"{self.base_url}/timelines",
                json=body,
                headers={"apikey": self.api_key, "Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"Request error for {location}: {e}") from e

        if r.status_code >= 400:
            message = r.reason_phrase
            try:
                body = r.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                message = body.get("message") or message
            logger.warning(f"Tomorrow.io error {r.status_code}: {r.text[:200]}")
            raise ProviderHttpError(r.status_code, message)

        try:
            return r.json()
        except ValueError as e:
            raise ProviderPayloadError(f"Invalid JSON from Tomorrow.io for {location}: {e}") from e

    async def fetch_weather(self, lat: float, lng: float, city_name: str) -> WeatherData:
        payload = await self.fetch_timeline(f"{lat},{lng}")
        return transform_tomorrow_data(payload, city_name)

    async def aclose(self):
        if self._owns_http:
            await self._http.aclose()


# ─────────────────────────── Geocoding ──────────────────────────

class OpenMeteoGeocoder:
    """Place name → coordinates. Calls here do not count against the weather budget."""

    def __init__(
        self,
        base_url: str = GEOCODING_BASE_URL,
        http: Optional[httpx.AsyncClient] = None,
        known_cities: Optional[dict[str, tuple[float, float]]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
        self._known = CITY_COORDS if known_cities is None else known_cities
        self._resolved: LRUCache = LRUCache(maxsize=128)

    async def search(self, name: str, count: int = 5) -> list[GeocodeResult]:
        query = name.strip()
        if len(query) < 2:
            return []
        try:
            r = await self._http.get(
                f"{self.base_url}/search",
                params={"name": query, "count": count, "language": "en", "format": "json"},
            )
        except httpx.HTTPError as e:
            raise GeocodingError(f"Geocoding request failed for {query!r}: {e}") from e
        if r.status_code != 200:
            raise GeocodingError(f"Geocoding returned {r.status_code} for {query!r}")

        try:
            body = r.json()
        except ValueError as e:
            raise GeocodingError(f"Invalid JSON from geocoder for {query!r}: {e}") from e
        if not isinstance(body, dict):
            raise GeocodingError(f"Unexpected geocoder response for {query!r}")

        results = []
        for item in body.get("results") or []:
            try:
                results.append(GeocodeResult(
                    name=item["name"],
                    country=item.get("country", ""),
                    region=item.get("admin1", ""),
                    lat=float(item["latitude"]),
                    lng=float(item["longitude"]),
                ))
            except (KeyError, TypeError, ValueError):
                continue
        logger.info(f"Geocoding: {len(results)} candidates for {query!r}")
        return results

    async def resolve(self, name: str) -> GeocodeResult:
        key = name.strip().lower()
        if key in self._known:
            lat, lng = self._known[key]
            return GeocodeResult(name=name.strip(), lat=lat, lng=lng)
        if key in self._resolved:
            return self._resolved[key]

        results = await self.search(name, count=1)
        if not results:
            raise GeocodingNotFound(name)
        self._resolved[key] = results[0]
        return results[0]

    async def aclose(self):
        if self._owns_http:
            await self._http.aclose()


def full_location_name(place: GeocodeResult) -> str:
    return ", ".join(p for p in (place.name, place.region, place.country) if p)

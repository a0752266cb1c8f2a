"""Shared pytest fixtures: controllable clock, fake collaborators, sample payloads."""

from datetime import datetime, timedelta

import pytest

from budget import CallBudgetTracker
from cache import ResponseCache
from errors import ProviderError, GeocodingNotFound
from models import WeatherData, HourlyForecast, DailyForecast, GeocodeResult
from orchestrator import WeatherService


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_weather(city: str, temperature: int = 70) -> WeatherData:
    return WeatherData(
        city=city,
        temperature=temperature,
        description="Clear",
        icon="sunny",
        hourlyForecast=[HourlyForecast(hour=f"{h} AM", temp=temperature + h) for h in range(1, 6)],
        dailyForecast=[
            DailyForecast(day=d, high=temperature + 5, low=temperature - 10,
                          feelsLike=temperature, windSpeed=5, uvIndex=3)
            for d in ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")
        ],
    )


class FakeProvider:
    """Stands in for TomorrowClient; returns make_weather() or raises ``error``."""

    def __init__(self):
        self.calls: list[str] = []
        self.error: Exception | None = None
        self.temperature = 70
        self.closed = False

    async def fetch_weather(self, lat: float, lng: float, city_name: str) -> WeatherData:
        self.calls.append(city_name)
        if self.error is not None:
            raise self.error
        return make_weather(city_name, self.temperature)

    async def aclose(self):
        self.closed = True


class FakeGeocoder:
    def __init__(self):
        self.unknown: set[str] = set()
        self.closed = False

    async def resolve(self, name: str) -> GeocodeResult:
        if name.strip().lower() in self.unknown:
            raise GeocodingNotFound(name)
        return GeocodeResult(name=name.strip(), country="Testland", lat=1.0, lng=2.0)

    async def search(self, query: str, count: int = 5) -> list[GeocodeResult]:
        if query.strip().lower() in self.unknown:
            return []
        return [GeocodeResult(name=query.strip(), country="Testland", region="North", lat=1.0, lng=2.0)]

    async def aclose(self):
        self.closed = True


def make_timeline_payload(start: str = "2024-05-06T00:00:00-04:00", days: int = 5) -> dict:
    """Tomorrow.io timelines response with hourly and daily intervals."""
    t0 = datetime.fromisoformat(start)
    hourly = []
    for i in range(days * 24):
        ts = t0 + timedelta(hours=i)
        hourly.append({
            "startTime": ts.isoformat(),
            "values": {
                "temperature": 50 + ts.hour,
                "humidity": 60,
                "precipitationProbability": 10,
                "weatherCode": 1000 if ts.hour < 12 else 4001,
            },
        })
    daily = []
    for d in range(days):
        ts = t0 + timedelta(days=d)
        daily.append({
            "startTime": ts.isoformat(),
            "values": {
                "temperatureMax": 75.6,
                "temperatureMin": 48.2,
                "temperatureAvg": 61.0,
                "temperatureApparent": 59.4,
                "windSpeed": 7.7,
                "uvIndex": 6.2,
                "weatherCodeMax": 1101,
                "epaIndex": 42,
                "epaHealthConcern": 0,
            },
        })
    return {
        "data": {
            "timelines": [
                {"timestep": "1h", "intervals": hourly},
                {"timestep": "1d", "intervals": daily},
            ]
        }
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def service(clock, provider, geocoder):
    return WeatherService(
        provider=provider,
        geocoder=geocoder,
        cache=ResponseCache(max_size=10, ttl=30 * 60, refresh_threshold=20 * 60, clock=clock),
        budget=CallBudgetTracker(hourly_limit=25, daily_limit=1000, clock=clock),
    )


@pytest.fixture
def network_error():
    return ProviderError("Request error for 35.6762,139.6503: connection refused")

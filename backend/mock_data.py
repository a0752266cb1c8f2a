"""Nimbus Backend — Deterministic offline forecasts.

Served only when the caller opts in and neither the provider nor the cache
can produce data. The same city name always yields the same forecast.
"""

import random
from datetime import date, timedelta

from data_fetchers import DETAIL_HOURS, _hour_label, get_uv_risk_level
from models import WeatherData, HourlyForecast, DailyForecast, HourlyDetail, AirQuality

_CONDITIONS = [
    ("Clear", "sunny"),
    ("Partly Cloudy", "partly-cloudy"),
    ("Cloudy", "cloudy"),
    ("Rain", "rainy"),
    ("Thunderstorm", "thunderstorm"),
]
_AQI_LABELS = [(50, "Good"), (100, "Moderate"), (150, "Unhealthy for Sensitive Groups")]


def _aqi_label(index: int) -> str:
    for ceiling, label in _AQI_LABELS:
        if index <= ceiling:
            return label
    return "Unhealthy"


def get_mock_weather(city: str, start: date | None = None, start_hour: int = 10) -> WeatherData:
    name = city.strip() or "Unknown Location"
    rng = random.Random(name.lower())
    start = start or date.today()

    base = rng.randint(45, 85)
    condition, icon = rng.choice(_CONDITIONS[:3])

    hourly = []
    for i in range(5):
        desc, ic = (condition, icon) if i < 3 else rng.choice(_CONDITIONS)
        hourly.append(HourlyForecast(
            hour=_hour_label((start_hour + i) % 24),
            temp=base + i * 2 - rng.randint(0, 2),
            description=desc,
            icon=ic,
        ))

    daily = []
    for d in range(5):
        day_condition, day_icon = rng.choice(_CONDITIONS)
        high = base + rng.randint(-6, 8)
        low = high - rng.randint(12, 20)
        rain = 60 if day_icon in ("rainy", "thunderstorm") else rng.randint(0, 20)
        aqi = rng.randint(20, 80)
        uv = rng.randint(1, 9)
        details = [
            HourlyDetail(
                hour=_hour_label(h),
                temp=low + round((high - low) * (1 - abs(h - 15) / 9)),
                rainChance=rain,
                humidity=rng.randint(45, 90),
            )
            for h in DETAIL_HOURS
        ]
        daily.append(DailyForecast(
            day=(start + timedelta(days=d)).strftime("%A"),
            high=high,
            low=low,
            description=day_condition,
            icon=day_icon,
            airQuality=AirQuality(index=aqi, description=_aqi_label(aqi)),
            hourlyDetails=details,
            feelsLike=high - rng.randint(0, 3),
            windSpeed=rng.randint(3, 18),
            uvIndex=uv,
            uvRisk=get_uv_risk_level(uv),
        ))

    return WeatherData(
        city=name,
        temperature=base,
        description=condition,
        icon=icon,
        hourlyForecast=hourly,
        dailyForecast=daily,
    )

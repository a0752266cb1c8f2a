"""Nimbus Backend — Configuration & Constants"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env from project root (one level up from backend/)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path)

# ── API Keys ──
TOMORROW_API_KEY = os.environ.get("TOMORROW_API_KEY", os.environ.get("VITE_TOMORROW_API_KEY", ""))
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", os.environ.get("VITE_GEMINI_API_KEY", ""))

# ── Providers ──
TOMORROW_BASE_URL = os.environ.get("TOMORROW_BASE_URL", "https://api.tomorrow.io/v4")
GEOCODING_BASE_URL = os.environ.get("GEOCODING_BASE_URL", "https://geocoding-api.open-meteo.com/v1")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.0-flash")
WEATHER_UNITS = os.environ.get("WEATHER_UNITS", "imperial")
HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", 15))

# ── API usage budget ──
HOURLY_CALL_LIMIT = int(os.environ.get("HOURLY_CALL_LIMIT", 25))
DAILY_CALL_LIMIT = int(os.environ.get("DAILY_CALL_LIMIT", 1000))
HOURLY_WINDOW_SECONDS = 60 * 60
DAILY_WINDOW_SECONDS = 24 * 60 * 60
# Warn when this many calls (or fewer) remain
NEAR_LIMIT_HOURLY = 5
NEAR_LIMIT_DAILY = 50

# ── Response cache ──
CACHE_TTL_SECONDS = int(os.environ.get("CACHE_TTL_SECONDS", 30 * 60))
REFRESH_THRESHOLD_SECONDS = int(os.environ.get("REFRESH_THRESHOLD_SECONDS", 20 * 60))
MAX_CACHE_SIZE = int(os.environ.get("MAX_CACHE_SIZE", 10))

BATCH_MAX_CONCURRENT = int(os.environ.get("BATCH_MAX_CONCURRENT", 3))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# Fields requested from the Tomorrow.io timelines endpoint
TIMELINE_FIELDS = [
    "temperature", "temperatureApparent", "temperatureMin", "temperatureMax",
    "windSpeed", "windDirection", "humidity", "precipitationProbability",
    "precipitationIntensity", "weatherCode", "uvIndex", "visibility",
    "cloudCover", "pressureSurfaceLevel", "epaIndex", "epaHealthConcern",
]

# Known cities resolve without a geocoding round-trip
CITY_COORDS = {
    "new york": (40.7128, -74.0060),
    "paris": (48.8566, 2.3522),
    "miami": (25.7617, -80.1918),
    "denver": (39.7392, -104.9903),
    "chicago": (41.8781, -87.6298),
    "san francisco": (37.7749, -122.4194),
    "seattle": (47.6062, -122.3321),
    "london": (51.5074, -0.1278),
    "tokyo": (35.6762, 139.6503),
    "sydney": (-33.8688, 151.2093),
    "las vegas": (36.1699, -115.1398),
    "philadelphia": (39.9526, -75.1652),
    "easton": (40.6918, -75.2207),
    "boston": (42.3601, -71.0589),
    "los angeles": (34.0522, -118.2437),
    "austin": (30.2672, -97.7431),
    "portland": (45.5152, -122.6784),
    "atlanta": (33.7490, -84.3880),
    "houston": (29.7604, -95.3698),
    "dallas": (32.7767, -96.7970),
}

# Tomorrow.io weather code → display text
WEATHER_CODE_DESCRIPTIONS = {
    0: "Unknown",
    1000: "Clear",
    1100: "Mostly Clear",
    1101: "Partly Cloudy",
    1102: "Mostly Cloudy",
    1001: "Cloudy",
    1103: "Partly Cloudy",
    2000: "Fog",
    2100: "Light Fog",
    4000: "Drizzle",
    4001: "Rain",
    4200: "Light Rain",
    4201: "Heavy Rain",
    5000: "Snow",
    5001: "Flurries",
    5100: "Light Snow",
    5101: "Heavy Snow",
    6000: "Freezing Drizzle",
    6001: "Freezing Rain",
    6200: "Light Freezing Rain",
    6201: "Heavy Freezing Rain",
    7000: "Ice Pellets",
    7101: "Heavy Ice Pellets",
    7102: "Light Ice Pellets",
    8000: "Thunderstorm",
}

# Tomorrow.io weather code → dashboard icon type
ICON_CODES = {
    "sunny": {1000},
    "partly-cloudy": {1100, 1101, 1102},
    "cloudy": {1001, 1103},
    "rainy": {4000, 4001, 4200, 4201, 4203, 4204, 4205, 4213, 4214, 4215},
    "snow": {5000, 5001, 5100, 5101, 5103, 5104, 5105, 5106, 5107, 5115, 5116, 5117},
    "thunderstorm": {8000, 8001, 8003},
    "foggy": {2000, 2100},
    "windy": {6000, 6001, 6002, 6003, 6004, 7102},
}

# Tomorrow.io epaHealthConcern (0-5) → label
EPA_HEALTH_CONCERN = {
    0: "Good",
    1: "Moderate",
    2: "Unhealthy for Sensitive Groups",
    3: "Unhealthy",
    4: "Very Unhealthy",
    5: "Hazardous",
}

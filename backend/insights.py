"""Nimbus Backend — Gemini weather insights.

Pure enrichment: every public entry point returns the forecast it was given
(possibly with insights attached) and never raises.
"""

import asyncio
import logging
import threading
from typing import Optional

from cachetools import LRUCache

from config import GEMINI_API_KEY, GEMINI_MODEL
from errors import EnrichmentFailure
from models import WeatherData, DailyForecast

logger = logging.getLogger("nimbus.insights")

# Day-level insights only for the first few days to limit Gemini usage
INSIGHT_DAYS = 3


def _truncate(s: str, limit: int = 240) -> str:
    s = str(s).strip()
    if len(s) <= limit:
        return s
    truncated = s[:limit].rsplit(" ", 1)[0]
    return truncated.rstrip(".,;:") + "…"


def summary_prompt(data: WeatherData) -> str:
    today = data.dailyForecast[0] if data.dailyForecast else None
    range_line = (
        f"The forecast high is {today.high}°F and the low is {today.low}°F."
        if today else ""
    )
    return f"""Generate a concise 1-2 sentence summary of the weather for {data.city},
where the current temperature is {data.temperature}°F and the current condition is {data.description}.
{range_line}
Focus on significant weather changes, temperature trends, or notable conditions.
Keep it direct, conversational, and useful for everyday planning."""


def day_prompt(day: DailyForecast) -> str:
    return f"""Generate ONE very concise bullet point insight for {day.day} weather:
• High of {day.high}°F, low of {day.low}°F
• Weather condition: {day.description}
• Wind speed: {day.windSpeed} mph
• UV Index: {day.uvIndex}

Give a single short sentence (max 15 words) highlighting the most important aspect affecting someone's day.
Focus on practical implications, not just data."""


class GeminiInsights:
    def __init__(
        self,
        api_key: str = GEMINI_API_KEY,
        model_name: str = GEMINI_MODEL,
        model=None,
        cache_size: int = 128,
    ):
        self.api_key = api_key
        self.model_name = model_name
        self._model = model
        self._cache = LRUCache(maxsize=cache_size)
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self._model is not None or self.api_key)

    def _get_model(self):
        if self._model is None:
            import google.generativeai as genai
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(self.model_name)
        return self._model

    async def _generate(self, prompt: str) -> str:
        with self._lock:
            if prompt in self._cache:
                return self._cache[prompt]
        try:
            result = await self._get_model().generate_content_async(prompt)
            text = (result.text or "").strip()
        except Exception as e:
            raise EnrichmentFailure(f"Gemini request failed: {e}") from e
        if not text:
            raise EnrichmentFailure("Gemini returned an empty response")
        text = _truncate(text)
        with self._lock:
            self._cache[prompt] = text
        return text

    async def _safe_generate(self, prompt: str, label: str) -> Optional[str]:
        try:
            return await self._generate(prompt)
        except EnrichmentFailure as e:
            logger.warning(f"Gemini {label} dropped: {e}")
            return None

    async def enhance(self, weather: WeatherData) -> WeatherData:
        """Attach a forecast summary and per-day insights when Gemini is available."""
        if not self.enabled:
            logger.debug("Gemini API key not set, skipping insights")
            return weather

        days = weather.dailyForecast[:INSIGHT_DAYS]
        summary, *day_insights = await asyncio.gather(
            self._safe_generate(summary_prompt(weather), f"summary for {weather.city}"),
            *(self._safe_generate(day_prompt(d), f"insight for {d.day}") for d in days),
        )

        daily = [
            d.model_copy(update={"insight": insight}) if insight else d
            for d, insight in zip(days, day_insights)
        ] + weather.dailyForecast[INSIGHT_DAYS:]

        update = {"dailyForecast": daily}
        if summary:
            update["weatherInsights"] = summary
        logger.info(
            f"Gemini insights for {weather.city}: summary={'yes' if summary else 'no'}, "
            f"days={sum(1 for i in day_insights if i)}"
        )
        return weather.model_copy(update=update)

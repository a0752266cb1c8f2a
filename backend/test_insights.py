"""Gemini enrichment with a stand-in model: never raises, memoizes prompts."""

import asyncio

from conftest import make_weather
from insights import GeminiInsights, INSIGHT_DAYS, _truncate


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    def __init__(self, fail=False, text=None):
        self.prompts: list[str] = []
        self.fail = fail
        self.text = text

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.fail:
            raise RuntimeError("quota exceeded")
        if self.text is not None:
            return FakeResponse(self.text)
        first_line = prompt.splitlines()[0]
        return FakeResponse(f"insight: {first_line[-30:]}")


def test_enhance_attaches_summary_and_first_days():
    model = FakeModel()
    weather = make_weather("Paris")
    enriched = asyncio.run(GeminiInsights(api_key="", model=model).enhance(weather))

    assert enriched.weatherInsights.startswith("insight:")
    with_insight = [d.day for d in enriched.dailyForecast if d.insight]
    assert with_insight == ["Monday", "Tuesday", "Wednesday"]
    assert len(enriched.dailyForecast) == 5
    assert len(model.prompts) == 1 + INSIGHT_DAYS
    # the input is left untouched
    assert weather.weatherInsights is None


def test_model_failure_returns_base_forecast():
    weather = make_weather("Paris")
    enriched = asyncio.run(GeminiInsights(model=FakeModel(fail=True)).enhance(weather))
    assert enriched == weather


def test_empty_model_text_is_dropped():
    weather = make_weather("Paris")
    enriched = asyncio.run(GeminiInsights(model=FakeModel(text="   ")).enhance(weather))
    assert enriched.weatherInsights is None
    assert all(d.insight is None for d in enriched.dailyForecast)


def test_disabled_without_key_or_model():
    insights = GeminiInsights(api_key="")
    assert not insights.enabled
    weather = make_weather("Paris")
    assert asyncio.run(insights.enhance(weather)) is weather


def test_repeated_prompts_are_memoized():
    model = FakeModel()
    insights = GeminiInsights(model=model)
    weather = make_weather("Paris")

    async def run():
        await insights.enhance(weather)
        await insights.enhance(weather)

    asyncio.run(run())
    assert len(model.prompts) == 1 + INSIGHT_DAYS


def test_truncate_on_word_boundary():
    assert _truncate("short") == "short"
    long = "word " * 100
    out = _truncate(long, limit=20)
    assert out.endswith("…")
    assert len(out) <= 21

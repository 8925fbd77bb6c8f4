# testing/test_weather_suitability.py
"""
Tests for the lawn-care suitability check, the day score and crew advice.
"""

from datetime import date
from unittest.mock import patch

import pytest

from src.api import weather
from src.api.rescheduler import calculate_weather_suitability_score
from src.api.weather import (
    build_mock_daily,
    get_weather_forecast,
    get_weather_icon,
    get_weather_recommendations,
    is_weather_suitable_for_lawn_care,
)
from testing.mock_data import TODAY, make_condition, make_day, make_forecast


class TestSuitability:

    def test_calm_day_is_suitable(self):
        check = is_weather_suitable_for_lawn_care(make_condition())
        assert check.suitable
        assert check.reason is None

    @pytest.mark.parametrize("overrides", [
        dict(),
        dict(is_rainy=True, precipitation=2.0),
        dict(is_windy=True, wind_speed=40),
        dict(temperature=20),
        dict(temperature=110),
    ])
    def test_stormy_always_wins(self, overrides):
        """Stormy is checked first, whatever else is going on"""
        check = is_weather_suitable_for_lawn_care(make_condition(is_stormy=True, **overrides))
        assert not check.suitable
        assert check.reason == "Stormy conditions"

    def test_heavy_rain_needs_more_than_quarter_inch(self):
        assert is_weather_suitable_for_lawn_care(make_condition(is_rainy=True, precipitation=0.25)).suitable
        check = is_weather_suitable_for_lawn_care(make_condition(is_rainy=True, precipitation=0.3))
        assert check.reason == "Heavy rain"

    def test_wind_only_counts_when_flagged_windy(self):
        assert is_weather_suitable_for_lawn_care(make_condition(wind_speed=30)).suitable
        check = is_weather_suitable_for_lawn_care(make_condition(is_windy=True, wind_speed=16))
        assert check.reason == "High winds"

    def test_temperature_limits(self):
        assert is_weather_suitable_for_lawn_care(make_condition(temperature=39)).reason == "Too cold"
        assert is_weather_suitable_for_lawn_care(make_condition(temperature=40)).suitable
        assert is_weather_suitable_for_lawn_care(make_condition(temperature=95)).suitable
        assert is_weather_suitable_for_lawn_care(make_condition(temperature=96)).reason == "Too hot"

    def test_rain_beats_cold(self):
        check = is_weather_suitable_for_lawn_care(make_condition(is_rainy=True, precipitation=1, temperature=30))
        assert check.reason == "Heavy rain"


class TestSuitabilityScore:

    def test_perfect_day_scores_100(self):
        assert calculate_weather_suitability_score(make_day(1, temperature=75)) == 100

    @pytest.mark.parametrize("overrides,expected", [
        (dict(is_stormy=True), 0),
        (dict(is_rainy=True, precipitation=1), 10),
        (dict(is_windy=True, wind_speed=25), 20),
        (dict(temperature=30), 30),
        (dict(temperature=100), 30),
    ])
    def test_unsuitable_days_get_fixed_scores(self, overrides, expected):
        assert calculate_weather_suitability_score(make_day(1, **overrides)) == expected

    def test_penalties(self):
        # 100 - 70*0.7 - (12-10)*3 - (|72-75| <= 10 so nothing) = 45
        day = make_day(1, precipitation_chance=70, temperature=72, wind_speed=12)
        assert calculate_weather_suitability_score(day) == 45

    def test_temperature_penalty_beyond_ten_degrees(self):
        # |90-75| = 15 -> (15-10)*1.5 = 7.5 -> 92.5 rounds up to 93
        assert calculate_weather_suitability_score(make_day(1, temperature=90)) == 93

    def test_score_is_clamped_at_zero(self):
        day = make_day(1, precipitation_chance=100, wind_speed=30)
        assert calculate_weather_suitability_score(day) == 0

    def test_score_never_increases_with_worse_weather(self):
        chances = [calculate_weather_suitability_score(make_day(1, precipitation_chance=p)) for p in range(0, 101, 5)]
        winds = [calculate_weather_suitability_score(make_day(1, wind_speed=w)) for w in range(0, 16)]
        temps = [calculate_weather_suitability_score(make_day(1, temperature=t)) for t in range(75, 96)]
        for series in (chances, winds, temps):
            assert series == sorted(series, reverse=True)
            assert all(isinstance(s, int) and 0 <= s <= 100 for s in series)


class TestMockForecast:

    def test_seven_days_starting_today(self):
        daily = build_mock_daily(TODAY)
        assert len(daily) == 7
        assert daily[0].date == "2025-06-10"
        assert daily[0].day == "Today"
        assert daily[1].day == "Tomorrow"
        assert daily[6].date == "2025-06-16"

    def test_day_two_is_stormy(self):
        daily = build_mock_daily(TODAY)
        assert daily[2].condition.is_stormy
        assert calculate_weather_suitability_score(daily[2]) == 0

    def test_stormy_scenario_keeps_daily_outlook(self):
        calm = get_weather_forecast(start=TODAY)
        stormy = get_weather_forecast(use_stormy=True, start=TODAY)
        assert stormy.daily == calm.daily
        assert stormy.current.is_stormy
        assert stormy.alerts[0].severity == "warning"

    def test_load_forecast_uses_mock_without_api_key(self):
        with patch.object(weather.settings, "OPENWEATHER_API_KEY", None), \
                patch.object(weather, "fetch_openweather_forecast") as fetch:
            forecast = weather.load_forecast()
        fetch.assert_not_called()
        assert len(forecast.daily) == 7

    def test_load_forecast_falls_back_when_live_fetch_fails(self):
        with patch.object(weather.settings, "OPENWEATHER_API_KEY", "key"), \
                patch.object(weather, "fetch_openweather_forecast", return_value=[]):
            forecast = weather.load_forecast()
        assert len(forecast.daily) == 7
        assert forecast.location is not None


class TestOpenWeather:

    def test_convert_onecall_daily(self):
        item = {
            "dt": 1718024400,  # 2024-06-10 13:00 UTC
            "temp": {"day": 78.2, "min": 61.0, "max": 80.4},
            "feels_like": {"day": 79.0},
            "humidity": 55,
            "wind_speed": 12.5,
            "wind_deg": 90,
            "pop": 0.8,
            "rain": 12.7,
            "uvi": 7.1,
            "weather": [{"main": "Rain", "description": "moderate rain", "icon": "10d"}],
        }
        day = weather.convert_onecall_daily(item, tz_offset=0, offset_days=0)
        assert day.date == date(2024, 6, 10).isoformat()
        assert day.day == "Today"
        assert day.precipitation_chance == 80
        assert day.condition.precipitation == 0.5
        assert day.condition.is_rainy and day.condition.is_windy
        assert day.condition.wind_direction == "E"
        assert day.high == 80.4 and day.low == 61.0

    def test_fetch_returns_empty_list_on_http_error(self):
        with patch("src.api.weather.requests.get", side_effect=weather.requests.ConnectionError("down")):
            assert weather.fetch_openweather_forecast(1.0, 2.0, "key") == []

    def test_fetch_without_key_skips_the_call(self):
        with patch("src.api.weather.requests.get") as get:
            assert weather.fetch_openweather_forecast(1.0, 2.0, None) == []
        get.assert_not_called()


class TestRecommendations:

    def test_calm_sunny_day(self):
        forecast = make_forecast([make_day(0, uv_index=5), make_day(1)])
        assert get_weather_recommendations(forecast) == ["Ideal conditions for all lawn care services."]

    def test_stormy_current_conditions(self):
        forecast = get_weather_forecast(use_stormy=True, start=TODAY)
        advice = get_weather_recommendations(forecast)
        assert any("Stormy conditions" in a for a in advice)
        assert any("High winds" in a for a in advice)

    def test_rain_tomorrow(self):
        forecast = make_forecast([make_day(0), make_day(1, precipitation_chance=80)])
        assert "High chance of rain tomorrow (80%). Plan accordingly." in get_weather_recommendations(forecast)

    def test_icon_default(self):
        assert get_weather_icon("thunderstorm") == "cloud-lightning"
        assert get_weather_icon("hail") == "sun"

# weather.py
#
#   Weather model: forecast types, the lawn-care suitability check,
#   the mock forecast scenarios and an OpenWeather One Call client

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

import requests

from config import settings
from src import timezone_utils

logger = logging.getLogger(__name__)

ONECALL_URL = "https://api.openweathermap.org/data/3.0/onecall"

# thresholds for outdoor work (imperial units)
HEAVY_RAIN_INCHES = 0.25
HIGH_WIND_MPH = 15
MIN_WORK_TEMP_F = 40
MAX_WORK_TEMP_F = 95

REASON_STORMY = "Stormy conditions"
REASON_HEAVY_RAIN = "Heavy rain"
REASON_HIGH_WINDS = "High winds"
REASON_TOO_COLD = "Too cold"
REASON_TOO_HOT = "Too hot"


@dataclass(frozen=True)
class WeatherCondition:
    code: str
    description: str
    temperature: float
    feels_like: float
    humidity: float
    wind_speed: float
    wind_direction: str
    precipitation: float
    uv_index: float
    is_rainy: bool = False
    is_snowy: bool = False
    is_stormy: bool = False
    is_sunny: bool = False
    is_windy: bool = False
    icon: str = "clear-day"


@dataclass(frozen=True)
class DailyForecast:
    date: str  # YYYY-MM-DD
    day: str
    condition: WeatherCondition
    high: float
    low: float
    sunrise: str
    sunset: str
    precipitation_chance: float  # 0-100
    precipitation_amount: float = 0.0


@dataclass(frozen=True)
class HourlyForecast:
    time: str
    condition: WeatherCondition


@dataclass(frozen=True)
class WeatherAlert:
    type: str
    severity: str  # advisory | watch | warning
    title: str
    description: str
    start_time: str
    end_time: str


@dataclass(frozen=True)
class Location:
    city: str
    state: str
    country: str
    latitude: float
    longitude: float


@dataclass(frozen=True)
class WeatherForecast:
    current: WeatherCondition
    daily: List[DailyForecast]
    hourly: List[HourlyForecast] = field(default_factory=list)
    alerts: List[WeatherAlert] = field(default_factory=list)
    location: Optional[Location] = None

    def for_date(self, day: str) -> Optional[DailyForecast]:
        return next((d for d in self.daily if d.date == day), None)


@dataclass(frozen=True)
class SuitabilityCheck:
    suitable: bool
    reason: Optional[str] = None


def is_weather_suitable_for_lawn_care(condition: WeatherCondition) -> SuitabilityCheck:
    """
    Decide whether outdoor lawn work can go ahead in the given conditions.
    Checks run in priority order and the first failing one supplies the reason.
    """
    if condition.is_stormy:
        return SuitabilityCheck(False, REASON_STORMY)
    if condition.is_rainy and condition.precipitation > HEAVY_RAIN_INCHES:
        return SuitabilityCheck(False, REASON_HEAVY_RAIN)
    if condition.is_windy and condition.wind_speed > HIGH_WIND_MPH:
        return SuitabilityCheck(False, REASON_HIGH_WINDS)
    if condition.temperature < MIN_WORK_TEMP_F:
        return SuitabilityCheck(False, REASON_TOO_COLD)
    if condition.temperature > MAX_WORK_TEMP_F:
        return SuitabilityCheck(False, REASON_TOO_HOT)
    return SuitabilityCheck(True)


WEATHER_ICONS = {
    "clear": "sun",
    "partly-cloudy": "cloud-sun",
    "cloudy": "cloud",
    "rain": "cloud-rain",
    "light-rain": "cloud-drizzle",
    "thunderstorm": "cloud-lightning",
    "snow": "cloud-snow",
    "fog": "cloud-fog",
    "wind": "wind",
}


def get_weather_icon(code: str) -> str:
    return WEATHER_ICONS.get(code, "sun")


def get_weather_recommendations(forecast: WeatherForecast) -> List[str]:
    """Crew-facing advice for the current and next day's conditions."""
    recommendations = []
    current = forecast.current
    today = forecast.daily[0] if forecast.daily else None
    tomorrow = forecast.daily[1] if len(forecast.daily) > 1 else None

    if current.is_rainy:
        recommendations.append("Current rain may affect today's lawn services.")
    if current.is_stormy:
        recommendations.append("Stormy conditions present safety risks. Consider rescheduling outdoor work.")
    if current.is_windy and current.wind_speed > HIGH_WIND_MPH:
        recommendations.append("High winds may affect spraying services.")
    if current.uv_index > 7:
        recommendations.append("High UV index. Ensure crew has sun protection.")

    if tomorrow and tomorrow.precipitation_chance > 60:
        recommendations.append(
            f"High chance of rain tomorrow ({tomorrow.precipitation_chance:g}%). Plan accordingly."
        )

    if current.temperature > 85:
        recommendations.append("Hot temperatures. Recommend watering lawns in early morning or evening.")
    if today and today.high - today.low > 20:
        recommendations.append("Large temperature swing today. Monitor lawn stress.")

    if not recommendations:
        if current.is_sunny and not current.is_windy:
            recommendations.append("Ideal conditions for all lawn care services.")
        else:
            recommendations.append("Weather conditions acceptable for standard lawn care services.")

    return recommendations


# -------------------
# MOCK SCENARIOS
# -------------------
PARTLY_CLOUDY = WeatherCondition(
    code="partly-cloudy", description="Partly Cloudy", icon="partly-cloudy-day",
    temperature=72, feels_like=74, humidity=65, wind_speed=8, wind_direction="NE",
    precipitation=0, uv_index=6, is_sunny=True,
)

# (offset, condition overrides, high, low, precipitation chance, precipitation amount)
_MOCK_DAYS = [
    (0, dict(temperature=78, feels_like=80, humidity=60, wind_speed=10, uv_index=7), 79, 65, 10, 0),
    (1, dict(code="rain", description="Light Rain", icon="rain", temperature=72, feels_like=74,
             humidity=75, wind_speed=12, wind_direction="E", precipitation=0.25, uv_index=4,
             is_rainy=True, is_sunny=False, is_windy=True), 74, 63, 70, 0.25),
    (2, dict(code="rain", description="Rain", icon="rain", temperature=68, feels_like=70,
             humidity=85, wind_speed=15, wind_direction="E", precipitation=0.5, uv_index=3,
             is_rainy=True, is_stormy=True, is_sunny=False, is_windy=True), 70, 62, 90, 0.75),
    (3, dict(temperature=72, feels_like=74, humidity=70, wind_direction="NW"), 75, 60, 20, 0),
    (4, dict(code="clear", description="Clear", icon="clear-day", temperature=76, feels_like=78,
             humidity=55, wind_speed=5, wind_direction="W", uv_index=8), 78, 62, 0, 0),
    (5, dict(code="clear", description="Clear", icon="clear-day", temperature=80, feels_like=82,
             humidity=50, wind_speed=6, wind_direction="W", uv_index=9), 82, 65, 0, 0),
    (6, dict(temperature=81, feels_like=83, humidity=55, wind_speed=7, wind_direction="SW",
             uv_index=8), 83, 67, 10, 0),
]

_MOCK_HOURS = [
    ("11:00 AM", 72, 8), ("12:00 PM", 75, 9), ("1:00 PM", 77, 10), ("2:00 PM", 78, 10),
    ("3:00 PM", 79, 11), ("4:00 PM", 78, 10), ("5:00 PM", 76, 9), ("6:00 PM", 74, 8),
]

MOCK_LOCATION = Location("Anytown", "ST", "USA", 37.7749, -122.4194)


def _day_label(offset: int, day: date) -> str:
    if offset == 0:
        return "Today"
    if offset == 1:
        return "Tomorrow"
    return day.strftime("%A")


def build_mock_daily(start: date = None) -> List[DailyForecast]:
    """Seven mock forecast days starting at `start` (default: today)."""
    start = start or timezone_utils.today()
    daily = []
    for offset, overrides, high, low, chance, amount in _MOCK_DAYS:
        day = start + timedelta(days=offset)
        daily.append(DailyForecast(
            date=day.isoformat(),
            day=_day_label(offset, day),
            condition=replace(PARTLY_CLOUDY, **overrides),
            high=high,
            low=low,
            sunrise="5:42 AM",
            sunset="8:22 PM",
            precipitation_chance=chance,
            precipitation_amount=amount,
        ))
    return daily


def get_weather_forecast(use_stormy: bool = False, start: date = None) -> WeatherForecast:
    """
    Mock forecast for the service area. The stormy scenario keeps the same
    daily outlook but swaps in a thunderstorm now and a severe weather warning.
    """
    start = start or timezone_utils.today()
    daily = build_mock_daily(start)
    hourly = [
        HourlyForecast(t, replace(PARTLY_CLOUDY, temperature=temp, feels_like=temp + 2, wind_speed=wind))
        for t, temp, wind in _MOCK_HOURS
    ]
    rainy_day = (start + timedelta(days=2)).isoformat()

    if not use_stormy:
        return WeatherForecast(
            current=PARTLY_CLOUDY,
            daily=daily,
            hourly=hourly,
            alerts=[WeatherAlert(
                type="rain",
                severity="advisory",
                title="Rain Advisory",
                description="Heavy rain expected. Consider rescheduling outdoor services.",
                start_time=f"{rainy_day}T08:00:00",
                end_time=f"{rainy_day}T20:00:00",
            )],
            location=MOCK_LOCATION,
        )

    stormy_now = replace(
        PARTLY_CLOUDY, code="thunderstorm", description="Thunderstorm", icon="thunderstorm",
        temperature=68, feels_like=70, humidity=85, wind_speed=18, precipitation=0.5,
        is_rainy=True, is_stormy=True, is_sunny=False, is_windy=True,
    )
    return WeatherForecast(
        current=stormy_now,
        daily=daily,
        hourly=hourly,
        alerts=[WeatherAlert(
            type="thunderstorm",
            severity="warning",
            title="Severe Thunderstorm Warning",
            description="Severe thunderstorms expected with potential for lightning, heavy rain, "
                        "and strong winds. Avoid outdoor activities.",
            start_time=f"{start.isoformat()}T10:00:00",
            end_time=f"{start.isoformat()}T18:00:00",
        )],
        location=MOCK_LOCATION,
    )


def get_current_weather(use_stormy: bool = False) -> WeatherCondition:
    return get_weather_forecast(use_stormy).current


def get_weather_alerts(use_stormy: bool = False) -> List[WeatherAlert]:
    return get_weather_forecast(use_stormy).alerts


# -------------------
# OPENWEATHER
# -------------------
_OWM_CODES = {
    "Clear": "clear",
    "Clouds": "partly-cloudy",
    "Rain": "rain",
    "Drizzle": "light-rain",
    "Thunderstorm": "thunderstorm",
    "Snow": "snow",
    "Mist": "fog",
    "Fog": "fog",
    "Haze": "fog",
}

_COMPASS = ["N", "NE", "E", "SE", "S", "SW", "W", "NW"]


def _compass(degrees) -> str:
    return _COMPASS[int(((degrees or 0) % 360) / 45 + 0.5) % 8]


def _local_time(epoch, offset) -> str:
    if epoch is None:
        return ""
    dt = datetime.fromtimestamp(epoch + offset, tz=timezone.utc)
    return dt.strftime("%I:%M %p").lstrip("0")


def convert_onecall_daily(item: dict, tz_offset: int = 0, offset_days: int = 0) -> DailyForecast:
    """Map one One Call `daily` entry (imperial units) onto a DailyForecast."""
    weather = (item.get("weather") or [{}])[0]
    main = weather.get("main", "Clear")
    code = _OWM_CODES.get(main, "cloudy")
    temp = item.get("temp", {})
    wind_speed = item.get("wind_speed", 0)
    # One Call reports rain/snow volume in millimetres regardless of units
    precipitation = round((item.get("rain", 0) + item.get("snow", 0)) / 25.4, 2)
    day = datetime.fromtimestamp(item["dt"] + tz_offset, tz=timezone.utc).date()

    condition = WeatherCondition(
        code=code,
        description=weather.get("description", main).title(),
        icon=weather.get("icon", ""),
        temperature=temp.get("day", 0),
        feels_like=item.get("feels_like", {}).get("day", temp.get("day", 0)),
        humidity=item.get("humidity", 0),
        wind_speed=wind_speed,
        wind_direction=_compass(item.get("wind_deg")),
        precipitation=precipitation,
        uv_index=item.get("uvi", 0),
        is_rainy=main in ("Rain", "Drizzle"),
        is_snowy=main == "Snow",
        is_stormy=main == "Thunderstorm",
        is_sunny=main == "Clear",
        is_windy=wind_speed > 10,
    )
    return DailyForecast(
        date=day.isoformat(),
        day=_day_label(offset_days, day),
        condition=condition,
        high=temp.get("max", condition.temperature),
        low=temp.get("min", condition.temperature),
        sunrise=_local_time(item.get("sunrise"), tz_offset),
        sunset=_local_time(item.get("sunset"), tz_offset),
        precipitation_chance=round(item.get("pop", 0) * 100),
        precipitation_amount=precipitation,
    )


def fetch_openweather_forecast(lat: float, lon: float, api_key: str) -> List[DailyForecast]:
    """
    Fetch the daily outlook from OpenWeather One Call 3.0.
    Returns an empty list when the API is unreachable or answers with an error.
    """
    if not api_key:
        logger.warning("OPENWEATHER_API_KEY not configured, skipping live forecast")
        return []

    params = {
        "lat": lat,
        "lon": lon,
        "appid": api_key,
        "units": "imperial",
        "exclude": "minutely,hourly,alerts",
    }
    try:
        response = requests.get(ONECALL_URL, params=params, timeout=5)
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as e:
        logger.error(f"OpenWeather forecast error: {e}")
        return []

    tz_offset = payload.get("timezone_offset", 0)
    return [
        convert_onecall_daily(item, tz_offset, offset_days=i)
        for i, item in enumerate(payload.get("daily", []))
    ]


def load_forecast(use_stormy: bool = False) -> WeatherForecast:
    """
    Forecast used by the app. The live OpenWeather outlook replaces the mock
    daily days when an API key is configured; the stormy scenario and any
    live fetch failure fall back to the mock forecast.
    """
    forecast = get_weather_forecast(use_stormy)
    if use_stormy or not settings.OPENWEATHER_API_KEY:
        return forecast

    daily = fetch_openweather_forecast(settings.WEATHER_LAT, settings.WEATHER_LON, settings.OPENWEATHER_API_KEY)
    if not daily:
        logger.warning("Live forecast unavailable, using mock forecast")
        return forecast
    return replace(forecast, current=daily[0].condition, daily=daily, hourly=[], alerts=[], location=None)

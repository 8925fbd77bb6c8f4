# src/api/rescheduler.py
#
# Handles weather-driven rescheduling:
# 1. Scores each forecast day for outdoor lawn work (0-100)
# 2. Flags scheduled appointments whose day has unsuitable weather
# 3. Proposes the best alternative days within the next two weeks

import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, List, Optional

from config.settings import MAX_RESCHEDULE_OPTIONS, MIN_RESCHEDULE_SCORE, RESCHEDULE_WINDOW_DAYS
from src import timezone_utils
from src.api.scheduler import Appointment, count_on_date, upcoming_appointments
from src.api.weather import (
    REASON_HEAVY_RAIN,
    REASON_HIGH_WINDS,
    REASON_STORMY,
    REASON_TOO_COLD,
    REASON_TOO_HOT,
    DailyForecast,
    WeatherForecast,
    is_weather_suitable_for_lawn_care,
)

IDEAL_TEMP_F = 75
GOOD_WEATHER_SCORE = 80

# fixed scores for days that fail the basic suitability check
_UNSUITABLE_SCORES = {
    REASON_STORMY: 0,
    REASON_HEAVY_RAIN: 10,
    REASON_HIGH_WINDS: 20,
    REASON_TOO_COLD: 30,
    REASON_TOO_HOT: 30,
}


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


SEVERITY_ORDER = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}


@dataclass(frozen=True)
class WeatherImpact:
    affected: bool
    severity: Severity = Severity.LOW
    reason: Optional[str] = None


@dataclass(frozen=True)
class RescheduleOption:
    date: str
    time: str
    weather_suitability: int
    reason: str
    conflict_count: int


@dataclass
class RescheduleRecommendation:
    appointment_id: str
    customer_id: str
    original_date: str
    original_time: str
    customer_name: str
    service: str
    weather_issue: str
    options: List[RescheduleOption] = field(default_factory=list)


@dataclass(frozen=True)
class AffectedAppointment:
    appointment: Appointment
    weather_check: WeatherImpact


def calculate_weather_suitability_score(forecast: DailyForecast) -> int:
    """
    Rate a forecast day for lawn work on a 0-100 scale.

    Days that fail the basic suitability check get a fixed low score keyed
    to the failure reason. Otherwise the score starts at 100 and loses
    points for precipitation chance, wind above 10 mph and temperatures
    more than 10°F away from 75°F.
    """
    condition = forecast.condition
    suitability = is_weather_suitable_for_lawn_care(condition)
    if not suitability.suitable:
        return _UNSUITABLE_SCORES.get(suitability.reason, 40)

    score = 100.0
    score -= forecast.precipitation_chance * 0.7

    if condition.wind_speed > 10:
        score -= (condition.wind_speed - 10) * 3

    temp_diff = abs(condition.temperature - IDEAL_TEMP_F)
    if temp_diff > 10:
        score -= (temp_diff - 10) * 1.5

    # halves round up
    return int(max(0, min(100, math.floor(score + 0.5))))


def is_appointment_weather_affected(appointment: Appointment, forecast: WeatherForecast) -> WeatherImpact:
    """
    Check the appointment's day in the forecast. Days outside the forecast
    window are never affected.
    """
    day = forecast.for_date(appointment.date)
    if day is None:
        return WeatherImpact(affected=False)

    suitability = is_weather_suitable_for_lawn_care(day.condition)
    if not suitability.suitable:
        severe = suitability.reason in (REASON_STORMY, REASON_HEAVY_RAIN)
        return WeatherImpact(
            affected=True,
            severity=Severity.HIGH if severe else Severity.MEDIUM,
            reason=suitability.reason,
        )

    if day.precipitation_chance > 70:
        return WeatherImpact(
            affected=True,
            severity=Severity.HIGH if day.precipitation_chance > 90 else Severity.MEDIUM,
            reason="High chance of precipitation",
        )

    if day.condition.wind_speed > 15:
        return WeatherImpact(
            affected=True,
            severity=Severity.HIGH if day.condition.wind_speed > 20 else Severity.MEDIUM,
            reason=REASON_HIGH_WINDS,
        )

    return WeatherImpact(affected=False)


def find_best_reschedule_days(
    appointment: Appointment,
    forecast: WeatherForecast,
    other_appointments: Iterable[Appointment],
    today: date = None,
    window_days: int = RESCHEDULE_WINDOW_DAYS,
    min_score: int = MIN_RESCHEDULE_SCORE,
    limit: int = MAX_RESCHEDULE_OPTIONS,
) -> List[RescheduleOption]:
    """
    Rank alternative days for an appointment.

    Candidates are forecast days in [today, today + window_days], excluding
    the original date, scoring at least `min_score`. The suggested time is
    the original time. Ordered by score (best first), then by how many
    other appointments already sit on that day (fewest first).
    """
    today = today or timezone_utils.today()
    last_day = today + timedelta(days=window_days)
    others = list(other_appointments)

    options = []
    for day in forecast.daily:
        if day.date == appointment.date:
            continue
        candidate = date.fromisoformat(day.date)
        if candidate < today or candidate > last_day:
            continue

        score = calculate_weather_suitability_score(day)
        if score < min_score:
            continue

        options.append(RescheduleOption(
            date=day.date,
            time=appointment.time,
            weather_suitability=score,
            reason="Good weather conditions" if score > GOOD_WEATHER_SCORE else "Acceptable weather conditions",
            conflict_count=count_on_date(others, day.date),
        ))

    options.sort(key=lambda o: (-o.weather_suitability, o.conflict_count))
    return options[:limit]


def get_weather_affected_appointments(
    appointments: Iterable[Appointment],
    forecast: WeatherForecast,
    today: date = None,
) -> List[AffectedAppointment]:
    """Upcoming appointments hit by bad weather, by date then severity."""
    affected = []
    for appointment in upcoming_appointments(appointments, today):
        check = is_appointment_weather_affected(appointment, forecast)
        if check.affected:
            affected.append(AffectedAppointment(appointment, check))

    affected.sort(key=lambda a: (a.appointment.date, SEVERITY_ORDER[a.weather_check.severity]))
    return affected


def get_weather_affected_appointment_count(
    appointments: Iterable[Appointment],
    forecast: WeatherForecast,
    today: date = None,
) -> int:
    return len(get_weather_affected_appointments(appointments, forecast, today))


def get_reschedule_recommendations(
    appointments: Iterable[Appointment],
    forecast: WeatherForecast,
    today: date = None,
) -> List[RescheduleRecommendation]:
    """
    One recommendation per weather-affected upcoming appointment that has at
    least one acceptable alternative day.
    """
    today = today or timezone_utils.today()
    appointments = list(appointments)
    recommendations = []

    for appointment in upcoming_appointments(appointments, today):
        check = is_appointment_weather_affected(appointment, forecast)
        if not check.affected:
            continue

        others = [a for a in appointments if a.id != appointment.id]
        options = find_best_reschedule_days(appointment, forecast, others, today=today)
        if not options:
            continue

        recommendations.append(RescheduleRecommendation(
            appointment_id=appointment.id,
            customer_id=appointment.customer_id,
            original_date=appointment.date,
            original_time=appointment.time,
            customer_name=appointment.customer_name,
            service=appointment.service,
            weather_issue=check.reason or "Weather conditions",
            options=options,
        ))

    return recommendations


def format_reschedule_options(options: Iterable[RescheduleOption]) -> str:
    """Bullet list of options for customer messages, e.g. "- Tuesday, June 17 at 9:00 AM"."""
    lines = []
    for option in options:
        day = date.fromisoformat(option.date)
        lines.append(f"- {day.strftime('%A, %B')} {day.day} at {option.time}")
    return "\n".join(lines)

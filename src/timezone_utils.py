# src/timezone_utils.py
#
# Timezone utilities so "today" means the business's local day

from datetime import date, datetime, timezone

import pytz

from config.settings import APP_TIMEZONE

_tz = pytz.timezone(APP_TIMEZONE)


def now() -> datetime:
    """Current timezone-aware datetime in the business timezone."""
    return datetime.now(_tz)


def today() -> date:
    """Calendar day in the business timezone."""
    return now().date()


def utc_now_iso() -> str:
    """UTC timestamp used on history records and send results."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_iso_date(value) -> date:
    """
    Accept a date, a datetime or an ISO string and return the calendar day.
    Datetimes with tzinfo are converted to the business timezone first.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(_tz)
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    return parse_iso_date(datetime.fromisoformat(text.replace("Z", "+00:00")))

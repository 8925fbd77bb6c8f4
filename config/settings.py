# config/settings.py
#
#   loading environment variables such as provider timeouts from .env

import os
from dotenv import load_dotenv

load_dotenv()  # loads .env into environment


def _as_bool(value, default=False):
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# business
BUSINESS_NAME = os.getenv("BUSINESS_NAME", "LawnPro")
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "America/New_York")

# logging; LOG_LEVELS takes comma separated logger=level overrides
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVELS = os.getenv("LOG_LEVELS", "")

# outbound provider calls
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10"))
PROVIDER_MAX_RETRIES = int(os.getenv("PROVIDER_MAX_RETRIES", "1"))
PROVIDER_RETRY_DELAY_SECONDS = float(os.getenv("PROVIDER_RETRY_DELAY_SECONDS", "0.5"))

# seeded provider credentials (providers stay disabled when missing)
NOTIFY_FROM_EMAIL = os.getenv("NOTIFY_FROM_EMAIL", "notifications@lawnpro.example.com")
NOTIFY_FROM_NAME = os.getenv("NOTIFY_FROM_NAME", BUSINESS_NAME)
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")

# templates
STRICT_TEMPLATE_VARIABLES = _as_bool(os.getenv("STRICT_TEMPLATE_VARIABLES"), default=True)

# rescheduling
RESCHEDULE_WINDOW_DAYS = int(os.getenv("RESCHEDULE_WINDOW_DAYS", "14"))
MAX_RESCHEDULE_OPTIONS = int(os.getenv("MAX_RESCHEDULE_OPTIONS", "3"))
MIN_RESCHEDULE_SCORE = int(os.getenv("MIN_RESCHEDULE_SCORE", "40"))

# loading weather api key (mock forecast is used when missing)
OPENWEATHER_API_KEY = os.getenv("OPENWEATHER_API_KEY")
WEATHER_LAT = float(os.getenv("WEATHER_LAT", "37.7749"))
WEATHER_LON = float(os.getenv("WEATHER_LON", "-122.4194"))

# webhooks
MAILGUN_WEBHOOK_SIGNING_KEY = os.getenv("MAILGUN_WEBHOOK_SIGNING_KEY")

# src/webapp.py
#
#   FastAPI app: weather, appointments, rescheduling, notification admin,
#   invoice reminders and vendor delivery webhooks

import json
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qsl

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from config import settings
from src import timezone_utils
from src.api.rescheduler import (
    get_reschedule_recommendations,
    get_weather_affected_appointment_count,
    get_weather_affected_appointments,
)
from src.api.scheduler import AppointmentStatus
from src.api.weather import (
    get_current_weather,
    get_weather_alerts,
    get_weather_icon,
    get_weather_recommendations,
    load_forecast,
)
from src.db import get_store
from src.logging_config import setup_logging
from src.notifications.errors import (
    ConfigurationError,
    MissingTemplateVariablesError,
    NoProviderConfiguredError,
    NotFoundError,
    NotificationError,
    OptOutError,
    WebhookValidationError,
)
from src.notifications.invoices import (
    EscalationSettings,
    LateFeeSettings,
    ReminderSchedule,
    ReminderTier,
    days_until_due,
    should_send_invoice_reminder,
)
from src.notifications.models import (
    EmailProviderConfig,
    EmailProviderType,
    SMSProviderConfig,
    SMSProviderType,
)
from src.notifications.service import NotificationService
from src.notifications.templates import preview_template
from src.notifications.webhooks import PROVIDER_HEADER, parse_delivery_events, verify_mailgun_signature

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=f"{settings.BUSINESS_NAME} Notifications")


def get_service() -> NotificationService:
    return NotificationService(get_store())


def _status_for(error: NotificationError) -> int:
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, OptOutError):
        return 409
    if isinstance(error, MissingTemplateVariablesError):
        return 422
    if isinstance(error, NoProviderConfiguredError):
        return 503
    if isinstance(error, ConfigurationError):
        return 500
    return 400


def _http_error(error: NotificationError) -> HTTPException:
    return HTTPException(status_code=_status_for(error), detail=str(error))


# -------------------
# REQUEST MODELS
# -------------------
class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus


class RescheduleRequest(BaseModel):
    date: str
    time: str
    send_notification: bool = True


class TemplateUpdate(BaseModel):
    body: str
    name: Optional[str] = None
    subject: Optional[str] = None
    variables: Optional[List[str]] = None


class TemplatePreviewRequest(BaseModel):
    variables: Dict[str, str] = {}


class PreferenceUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: Optional[bool] = None
    sms: Optional[bool] = None
    weather_alerts: Optional[bool] = None
    appointment_reminders: Optional[bool] = None
    reschedule_notifications: Optional[bool] = None
    marketing_messages: Optional[bool] = None


class SendNotificationRequest(BaseModel):
    customer_id: str
    customer_name: str
    template_id: str
    variables: Dict[str, str] = {}


class EmailProviderConfigIn(BaseModel):
    type: EmailProviderType
    from_email: str
    from_name: str
    is_default: bool = False
    enabled: bool = False
    api_key: Optional[str] = None
    domain: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    secure: bool = False
    username: Optional[str] = None
    password: Optional[str] = None


class SMSProviderConfigIn(BaseModel):
    type: SMSProviderType
    is_default: bool = False
    enabled: bool = False
    account_sid: Optional[str] = None
    auth_token: Optional[str] = None
    from_number: Optional[str] = None
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    from_name: Optional[str] = None


class EmailProviderTest(BaseModel):
    config: EmailProviderConfigIn
    to: str


class SMSProviderTest(BaseModel):
    config: SMSProviderConfigIn
    to: str


class ReminderScheduleIn(BaseModel):
    before_due_enabled: bool = True
    before_due_days: List[int] = [7, 3, 1]
    on_due_date_enabled: bool = True
    after_due_enabled: bool = True
    after_due_days: List[int] = [3, 7, 14]


class LateFeeSettingsIn(BaseModel):
    enabled: bool = True
    grace_period: int = 5
    fee_type: str = "percentage"
    fee_amount: float = 5
    max_fee: Optional[float] = 50
    compounding: bool = False


class EscalationSettingsIn(BaseModel):
    enabled: bool = True
    days_overdue: int = 30
    escalation_type: str = "mail"
    template_id: str


class InvoiceReminderSettingsUpdate(BaseModel):
    enabled: Optional[bool] = None
    schedule: Optional[ReminderScheduleIn] = None
    templates: Optional[Dict[ReminderTier, Tuple[str, Optional[str]]]] = None
    late_fees: Optional[LateFeeSettingsIn] = None
    escalation: Optional[EscalationSettingsIn] = None
    customer_exceptions: Optional[List[str]] = None


class InvoiceReminderRequest(BaseModel):
    customer_id: str
    customer_name: str
    invoice_number: str
    amount: float
    due_date: str
    force: bool = False


# -------------------
# HEALTH / WEATHER
# -------------------
@app.get("/health")
async def health():
    return {"status": "ok", "timestamp": timezone_utils.utc_now_iso()}


@app.get("/weather/forecast")
async def weather_forecast(stormy: bool = False):
    return load_forecast(stormy)


@app.get("/weather/current")
async def current_weather(stormy: bool = False):
    condition = get_current_weather(stormy)
    return {"condition": condition, "icon": get_weather_icon(condition.code)}


@app.get("/weather/alerts")
async def weather_alerts(stormy: bool = False):
    return get_weather_alerts(stormy)


@app.get("/weather/recommendations")
async def weather_recommendations(stormy: bool = False):
    return {"recommendations": get_weather_recommendations(load_forecast(stormy))}


# -------------------
# APPOINTMENTS
# -------------------
@app.get("/appointments")
async def list_appointments():
    return get_store().appointments.list()


@app.post("/appointments/{appointment_id}/status")
async def update_appointment_status(appointment_id: str, update: AppointmentStatusUpdate):
    try:
        return get_store().appointments.update_status(appointment_id, update.status)
    except NotFoundError as e:
        raise _http_error(e)


# -------------------
# RESCHEDULING
# -------------------
@app.get("/reschedule/recommendations")
async def reschedule_recommendations(stormy: bool = False):
    return get_reschedule_recommendations(get_store().appointments.list(), load_forecast(stormy))


@app.get("/reschedule/affected")
async def affected_appointments(stormy: bool = False):
    return get_weather_affected_appointments(get_store().appointments.list(), load_forecast(stormy))


@app.get("/reschedule/affected/count")
async def affected_appointment_count(stormy: bool = False):
    count = get_weather_affected_appointment_count(get_store().appointments.list(), load_forecast(stormy))
    return {"count": count}


@app.post("/reschedule/{appointment_id}")
async def reschedule_appointment(appointment_id: str, request: RescheduleRequest,
                                 service: NotificationService = Depends(get_service)):
    """Move an appointment and optionally confirm the new slot with the customer."""
    appointments = service.store.appointments
    try:
        appointment = appointments.get(appointment_id)
    except NotFoundError as e:
        raise _http_error(e)

    try:
        timezone_utils.parse_iso_date(request.date)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {request.date}")

    original_date = appointment.date
    appointment = appointments.reschedule(appointment_id, request.date, request.time)
    logger.info(f"Appointment {appointment_id} moved from {original_date} to {appointment.date} {appointment.time}")

    notifications = []
    if request.send_notification:
        notifications = await service.send_reschedule_confirmation_notification(
            appointment.customer_id,
            appointment.customer_name,
            original_date,
            appointment.date,
            appointment.time,
            appointment.service,
        )
    return {"appointment": appointment, "notifications": notifications}


@app.post("/reschedule/{appointment_id}/notify")
async def notify_weather_reschedule(appointment_id: str, stormy: bool = False,
                                    service: NotificationService = Depends(get_service)):
    """Send the weather reschedule notice with the current recommendation's options."""
    recommendations = get_reschedule_recommendations(service.store.appointments.list(), load_forecast(stormy))
    recommendation = next((r for r in recommendations if r.appointment_id == appointment_id), None)
    if recommendation is None:
        raise HTTPException(status_code=404, detail=f"No reschedule recommendation for appointment {appointment_id}")

    notifications = await service.send_weather_reschedule_notification(
        recommendation.appointment_id,
        recommendation.customer_id,
        recommendation.customer_name,
        recommendation.original_date,
        recommendation.original_time,
        recommendation.service,
        recommendation.weather_issue,
        recommendation.options,
    )
    return {"recommendation": recommendation, "notifications": notifications}


# -------------------
# TEMPLATES
# -------------------
@app.get("/notifications/templates")
async def list_templates(service: NotificationService = Depends(get_service)):
    return service.get_notification_templates()


@app.put("/notifications/templates/{template_id}")
async def update_template(template_id: str, update: TemplateUpdate,
                          service: NotificationService = Depends(get_service)):
    template = service.store.templates.get(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail=f"Template {template_id} not found")

    changes = update.model_dump(exclude_none=True)
    return service.update_notification_template(replace(template, **changes))


@app.post("/notifications/templates/{template_id}/preview")
async def preview(template_id: str, request: TemplatePreviewRequest = None,
                  service: NotificationService = Depends(get_service)):
    template = service.store.templates.get(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail=f"Template {template_id} not found")
    return preview_template(template, request.variables if request else None)


# -------------------
# HISTORY / PREFERENCES
# -------------------
@app.get("/notifications/history")
async def notification_history(service: NotificationService = Depends(get_service)):
    return service.get_all_notification_history()


@app.post("/notifications/history/{notification_id}/read")
async def mark_read(notification_id: str, service: NotificationService = Depends(get_service)):
    try:
        return service.mark_notification_as_read(notification_id)
    except NotFoundError as e:
        raise _http_error(e)


@app.get("/customers/{customer_id}/notifications")
async def customer_history(customer_id: str, service: NotificationService = Depends(get_service)):
    return service.get_customer_notification_history(customer_id)


@app.get("/customers/{customer_id}/notification-preferences")
async def customer_preferences(customer_id: str, service: NotificationService = Depends(get_service)):
    return service.get_customer_notification_preferences(customer_id)


@app.put("/customers/{customer_id}/notification-preferences")
async def update_customer_preferences(customer_id: str, update: PreferenceUpdate,
                                      service: NotificationService = Depends(get_service)):
    changes = update.model_dump(exclude_none=True)
    return service.update_customer_notification_preferences(customer_id, changes)


# -------------------
# SENDING
# -------------------
@app.post("/notifications/send")
async def send_notification(request: SendNotificationRequest,
                            service: NotificationService = Depends(get_service)):
    try:
        return await service.send_notification(
            request.customer_id, request.customer_name, request.template_id, request.variables
        )
    except NotificationError as e:
        raise _http_error(e)


# -------------------
# PROVIDERS
# -------------------
@app.get("/notifications/providers/email")
async def email_providers(service: NotificationService = Depends(get_service)):
    return service.get_email_provider_configs()


@app.put("/notifications/providers/email")
async def save_email_provider(config: EmailProviderConfigIn, service: NotificationService = Depends(get_service)):
    return service.update_email_provider_config(EmailProviderConfig(**config.model_dump()))


@app.post("/notifications/providers/email/test")
async def test_email_provider(request: EmailProviderTest, service: NotificationService = Depends(get_service)):
    return await service.test_email_provider(EmailProviderConfig(**request.config.model_dump()), request.to)


@app.get("/notifications/providers/sms")
async def sms_providers(service: NotificationService = Depends(get_service)):
    return service.get_sms_provider_configs()


@app.put("/notifications/providers/sms")
async def save_sms_provider(config: SMSProviderConfigIn, service: NotificationService = Depends(get_service)):
    return service.update_sms_provider_config(SMSProviderConfig(**config.model_dump()))


@app.post("/notifications/providers/sms/test")
async def test_sms_provider(request: SMSProviderTest, service: NotificationService = Depends(get_service)):
    return await service.test_sms_provider(SMSProviderConfig(**request.config.model_dump()), request.to)


# -------------------
# INVOICE REMINDERS
# -------------------
@app.get("/settings/invoice-reminders")
async def invoice_reminder_settings():
    return get_store().invoice_settings.get()


@app.put("/settings/invoice-reminders")
async def update_invoice_reminder_settings(update: InvoiceReminderSettingsUpdate):
    changes = {}
    for name, value in update.model_dump(exclude_unset=True).items():
        if name == "schedule":
            value = ReminderSchedule(**value)
        elif name == "late_fees":
            value = LateFeeSettings(**value)
        elif name == "escalation":
            value = EscalationSettings(**value)
        elif name == "templates":
            value = {ReminderTier(tier): tuple(ids) for tier, ids in value.items()}
        changes[name] = value
    return get_store().invoice_settings.update(changes)


@app.post("/invoices/{invoice_id}/reminder")
async def send_invoice_reminder(invoice_id: str, request: InvoiceReminderRequest,
                                service: NotificationService = Depends(get_service)):
    try:
        days = days_until_due(request.due_date)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid due date: {request.due_date}")

    reminder_settings = service.store.invoice_settings.get()
    late_fee = str(service.late_fee_for(request.amount, days))
    due = should_send_invoice_reminder(invoice_id, request.due_date, request.customer_id, reminder_settings)
    if not due and not request.force:
        return {"sent": False, "days_until_due": days, "late_fee": late_fee, "notifications": []}

    notifications = await service.send_invoice_reminder_notification(
        request.customer_id, request.customer_name, request.invoice_number,
        request.amount, request.due_date, days,
    )
    return {
        "sent": bool(notifications),
        "days_until_due": days,
        "late_fee": late_fee,
        "notifications": notifications,
    }


# -------------------
# DELIVERY WEBHOOKS
# -------------------
async def _read_webhook_body(request: Request):
    raw = await request.body()
    if request.headers.get("content-type", "").startswith("application/x-www-form-urlencoded"):
        # Twilio status callbacks are form posts
        try:
            return dict(parse_qsl(raw.decode("utf-8")))
        except UnicodeDecodeError:
            raise WebhookValidationError("Invalid form payload")
    try:
        return json.loads(raw or b"null")
    except ValueError:
        raise WebhookValidationError("Invalid JSON payload")


def _check_mailgun_signature(body) -> None:
    signing_key = settings.MAILGUN_WEBHOOK_SIGNING_KEY
    if not signing_key:
        return
    signature = body.get("signature") if isinstance(body, dict) else None
    signature = signature if isinstance(signature, dict) else {}
    if not verify_mailgun_signature(signing_key, signature.get("timestamp"), signature.get("token"),
                                    signature.get("signature")):
        raise WebhookValidationError("Invalid webhook signature")


@app.post("/api/webhooks/notifications")
async def notification_webhook(request: Request, service: NotificationService = Depends(get_service)):
    """
    Delivery status callbacks. The x-notification-provider header selects
    the payload schema (sendgrid, twilio, mailgun, vonage).
    """
    try:
        provider = request.headers.get(PROVIDER_HEADER)
        if not provider:
            return JSONResponse({"error": "Missing provider header"}, status_code=400)

        body = await _read_webhook_body(request)
        if provider == "mailgun":
            _check_mailgun_signature(body)

        for event in parse_delivery_events(provider, body):
            service.update_delivery_status(event.provider, event.message_id, event.status, event.payload)

        return JSONResponse({"success": True})
    except WebhookValidationError as e:
        logger.warning(f"Rejected notification webhook: {e}")
        return JSONResponse({"error": str(e)}, status_code=400)
    except Exception as e:
        logger.exception("Error processing webhook")
        return JSONResponse({"error": str(e) or "Unknown error"}, status_code=500)

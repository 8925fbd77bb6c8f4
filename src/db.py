# src/db.py
#
# In-memory repositories for appointments, templates, customer preferences,
# notification history, provider configs and invoice reminder settings.
# The core (rescheduler, template engine, dispatch) only sees these through
# the DataStore it is handed.

import logging
import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import timedelta
from typing import Dict, List, Optional, Union

from config import settings
from src import timezone_utils
from src.api.scheduler import Appointment, AppointmentStatus, generate_mock_appointments
from src.notifications.errors import ConfigurationError, NoProviderConfiguredError, NotFoundError
from src.notifications.invoices import InvoiceReminderSettings
from src.notifications.models import (
    Channel,
    CustomerContact,
    DeliveryStatus,
    DeliveryTracking,
    EmailProviderConfig,
    EmailProviderType,
    HistoryStatus,
    NotificationHistory,
    NotificationPreference,
    NotificationTemplate,
    PREFERENCE_FLAGS,
    SMSProviderConfig,
    SMSProviderType,
)
from src.notifications.templates import default_templates

logger = logging.getLogger(__name__)

ProviderConfig = Union[EmailProviderConfig, SMSProviderConfig]


class AppointmentRepository:

    def __init__(self, appointments=None):
        self._appointments: List[Appointment] = list(appointments or [])

    def list(self) -> List[Appointment]:
        return list(self._appointments)

    def get(self, appointment_id: str) -> Appointment:
        for appointment in self._appointments:
            if appointment.id == appointment_id:
                return appointment
        raise NotFoundError(f"Appointment {appointment_id} not found")

    def for_date(self, day: str) -> List[Appointment]:
        return [a for a in self._appointments if a.date == day]

    def for_customer(self, customer_id: str) -> List[Appointment]:
        return [a for a in self._appointments if a.customer_id == customer_id]

    def add(self, appointment: Appointment) -> Appointment:
        if any(a.id == appointment.id for a in self._appointments):
            raise ValueError(f"Appointment {appointment.id} already exists")
        self._appointments.append(appointment)
        return appointment

    def update_status(self, appointment_id: str, status) -> Appointment:
        # cancelling is a status change; appointments are never removed
        appointment = self.get(appointment_id)
        appointment.status = AppointmentStatus(status)
        return appointment

    def reschedule(self, appointment_id: str, new_date: str, new_time: str) -> Appointment:
        appointment = self.get(appointment_id)
        appointment.date = timezone_utils.parse_iso_date(new_date).isoformat()
        appointment.time = new_time
        return appointment


class TemplateRepository:

    def __init__(self, templates=None):
        self._templates: List[NotificationTemplate] = list(templates or [])

    def list(self) -> List[NotificationTemplate]:
        return list(self._templates)

    def get(self, template_id: str) -> Optional[NotificationTemplate]:
        return next((t for t in self._templates if t.id == template_id), None)

    def update(self, template: NotificationTemplate) -> NotificationTemplate:
        for i, existing in enumerate(self._templates):
            if existing.id == template.id:
                self._templates[i] = template
                return template
        raise NotFoundError(f"Template {template.id} not found")


class PreferenceRepository:

    def __init__(self, preferences=None):
        self._preferences: Dict[str, NotificationPreference] = {p.customer_id: p for p in preferences or []}

    def get(self, customer_id: str) -> Optional[NotificationPreference]:
        return self._preferences.get(customer_id)

    def get_or_default(self, customer_id: str) -> NotificationPreference:
        return self._preferences.get(customer_id) or NotificationPreference(customer_id=customer_id)

    def update(self, customer_id: str, changes: dict) -> NotificationPreference:
        unknown = set(changes) - set(PREFERENCE_FLAGS)
        if unknown:
            raise ValueError(f"Unknown preference fields: {', '.join(sorted(unknown))}")
        updated = replace(self.get_or_default(customer_id), **changes)
        self._preferences[customer_id] = updated
        return updated


class ContactRepository:

    def __init__(self, contacts=None):
        self._contacts: Dict[str, CustomerContact] = {c.customer_id: c for c in contacts or []}

    def get(self, customer_id: str) -> Optional[CustomerContact]:
        return self._contacts.get(customer_id)


class NotificationHistoryRepository:
    """Append-only log, most recent first. Records change in place, never move."""

    def __init__(self, records=None):
        self._records: List[NotificationHistory] = list(records or [])

    def list(self) -> List[NotificationHistory]:
        return list(self._records)

    def for_customer(self, customer_id: str) -> List[NotificationHistory]:
        return [r for r in self._records if r.customer_id == customer_id]

    def get(self, notification_id: str) -> NotificationHistory:
        for record in self._records:
            if record.id == notification_id:
                return record
        raise NotFoundError(f"Notification {notification_id} not found")

    def append(self, record: NotificationHistory) -> NotificationHistory:
        self._records.insert(0, record)
        return record

    def find_by_provider_message(self, provider_id: str, message_id: str) -> Optional[NotificationHistory]:
        # failed sends carry no vendor id and must never match
        if not message_id:
            return None
        for record in self._records:
            delivery = record.delivery
            if delivery and delivery.provider_message_id == message_id and delivery.provider_id == provider_id:
                return record
        return None

    def mark_read(self, notification_id: str) -> NotificationHistory:
        record = self.get(notification_id)
        if not record.read_timestamp:
            record.read_timestamp = timezone_utils.utc_now_iso()
        return record


class ProviderConfigRepository:
    """
    Provider configs, one per vendor type. At most one config per channel is
    flagged default: saving a default clears the flag on its siblings.
    """

    def __init__(self, email_configs=None, sms_configs=None):
        self._configs: Dict[Channel, List[ProviderConfig]] = {
            Channel.EMAIL: list(email_configs or []),
            Channel.SMS: list(sms_configs or []),
        }

    def email_configs(self) -> List[EmailProviderConfig]:
        return list(self._configs[Channel.EMAIL])

    def sms_configs(self) -> List[SMSProviderConfig]:
        return list(self._configs[Channel.SMS])

    def save(self, config: ProviderConfig) -> ProviderConfig:
        siblings = self._configs[config.channel]
        if config.is_default:
            for other in siblings:
                if other.type != config.type and other.is_default:
                    other.is_default = False
                    logger.info(f"{other.type.value} is no longer the default {config.channel.value} provider")

        for i, existing in enumerate(siblings):
            if existing.type == config.type:
                siblings[i] = config
                return config
        siblings.append(config)
        return config

    def default_config(self, channel: Channel) -> ProviderConfig:
        channel = Channel(channel)
        candidates = [c for c in self._configs[channel] if c.is_default and c.enabled]
        if not candidates:
            raise NoProviderConfiguredError(f"No default {channel.value} provider configured")
        if len(candidates) > 1:
            names = ", ".join(c.type.value for c in candidates)
            raise ConfigurationError(f"Multiple default {channel.value} providers configured: {names}")
        return candidates[0]


class InvoiceSettingsRepository:

    def __init__(self, invoice_settings: InvoiceReminderSettings = None):
        self._settings = invoice_settings or InvoiceReminderSettings()

    def get(self) -> InvoiceReminderSettings:
        return self._settings

    def update(self, changes: dict) -> InvoiceReminderSettings:
        known = {f.name for f in fields(InvoiceReminderSettings)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown invoice reminder settings: {', '.join(sorted(unknown))}")
        self._settings = replace(self._settings, **changes)
        return self._settings


@dataclass
class DataStore:
    appointments: AppointmentRepository = field(default_factory=AppointmentRepository)
    templates: TemplateRepository = field(default_factory=TemplateRepository)
    preferences: PreferenceRepository = field(default_factory=PreferenceRepository)
    contacts: ContactRepository = field(default_factory=ContactRepository)
    history: NotificationHistoryRepository = field(default_factory=NotificationHistoryRepository)
    providers: ProviderConfigRepository = field(default_factory=ProviderConfigRepository)
    invoice_settings: InvoiceSettingsRepository = field(default_factory=InvoiceSettingsRepository)


# -------------------
# SEED DATA
# -------------------
_CUSTOMERS = [
    ("1", "John Smith", "john.smith@example.com", "(555) 123-4567"),
    ("2", "Sarah Johnson", "sarah.j@example.com", "(555) 234-5678"),
    ("3", "Michael Brown", "michael.b@example.com", "(555) 345-6789"),
    ("4", "Emily Davis", "emily.d@example.com", "(555) 456-7890"),
    ("5", "David Wilson", "david.w@example.com", "(555) 567-8901"),
]

# (customer id, email, sms, weather alerts, reminders, reschedule, marketing)
_PREFERENCES = [
    ("1", True, True, True, True, True, False),
    ("2", True, True, True, True, True, True),
    ("3", True, False, True, True, True, False),
    ("4", True, True, False, True, True, False),
    ("5", False, True, True, True, True, False),
]


def _seed_history() -> List[NotificationHistory]:
    now = timezone_utils.now()

    def ago(days, hours=0):
        return (now - timedelta(days=days, hours=hours)).isoformat()

    def tracking(provider, status):
        return DeliveryTracking(provider_id=provider, status=status, timestamp=ago(0),
                                provider_message_id=f"{provider}_seed_{uuid.uuid4().hex[:8]}")

    return [
        NotificationHistory(
            id="notif-6", customer_id="1", customer_name="John Smith", channel=Channel.EMAIL,
            template_id="template-appointment-reminder-email", subject="Appointment Reminder",
            body="Dear John Smith, this is a reminder that we have scheduled Lawn Mowing at your property "
                 "tomorrow at 9:00 AM.",
            status=HistoryStatus.PENDING, timestamp=ago(0, 2),
            delivery=tracking("sendgrid", DeliveryStatus.PENDING),
        ),
        NotificationHistory(
            id="notif-5", customer_id="5", customer_name="David Wilson", channel=Channel.SMS,
            template_id="template-weather-alert-sms",
            body="LawnPro Alert: Due to high winds, your lawn mowing may need rescheduling. We'll contact you soon.",
            status=HistoryStatus.FAILED, timestamp=ago(1),
            delivery=tracking("twilio", DeliveryStatus.FAILED),
        ),
        NotificationHistory(
            id="notif-3", customer_id="3", customer_name="Michael Brown", channel=Channel.EMAIL,
            template_id="template-weather-alert-email", subject="Weather Alert - Service Rescheduling",
            body="Dear Michael Brown, due to forecasted heavy rain, we may need to reschedule your service. "
                 "We'll contact you with more information.",
            status=HistoryStatus.SENT, timestamp=ago(1, 3),
            delivery=tracking("sendgrid", DeliveryStatus.SENT),
        ),
        NotificationHistory(
            id="notif-2", customer_id="2", customer_name="Sarah Johnson", channel=Channel.SMS,
            template_id="template-appointment-reminder-sms",
            body="Hi Sarah, reminder: lawn service scheduled for tomorrow at 2pm.",
            status=HistoryStatus.SENT, timestamp=ago(2),
            delivery=tracking("twilio", DeliveryStatus.SENT),
        ),
        NotificationHistory(
            id="notif-1", customer_id="1", customer_name="John Smith", channel=Channel.EMAIL,
            template_id="template-invoice-reminder-email", subject="Invoice Reminder: Payment Due",
            body="Dear John Smith, your invoice #INV-001 for $120.00 is due in 3 days.",
            status=HistoryStatus.DELIVERED, timestamp=ago(3),
            delivery=tracking("sendgrid", DeliveryStatus.DELIVERED),
        ),
        NotificationHistory(
            id="notif-4", customer_id="4", customer_name="Emily Davis", channel=Channel.EMAIL,
            template_id="template-invoice-overdue-email", subject="Invoice #INV-002 Overdue",
            body="Dear Emily Davis, your invoice #INV-002 for $85.00 is now overdue. "
                 "Please make payment at your earliest convenience.",
            status=HistoryStatus.DELIVERED, timestamp=ago(8),
            read_timestamp=ago(7, 20),
            delivery=tracking("sendgrid", DeliveryStatus.OPENED),
        ),
    ]


def _seed_provider_configs():
    email = [
        EmailProviderConfig(
            type=EmailProviderType.SENDGRID,
            api_key=settings.SENDGRID_API_KEY,
            from_email=settings.NOTIFY_FROM_EMAIL,
            from_name=settings.NOTIFY_FROM_NAME,
            is_default=True,
            enabled=bool(settings.SENDGRID_API_KEY),
        ),
        EmailProviderConfig(
            type=EmailProviderType.MAILGUN,
            from_email=settings.NOTIFY_FROM_EMAIL,
            from_name=settings.NOTIFY_FROM_NAME,
        ),
    ]
    sms = [
        SMSProviderConfig(
            type=SMSProviderType.TWILIO,
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            from_number=settings.TWILIO_FROM_NUMBER,
            is_default=True,
            enabled=bool(settings.TWILIO_ACCOUNT_SID),
        ),
        SMSProviderConfig(type=SMSProviderType.VONAGE, from_name=settings.BUSINESS_NAME),
    ]
    return email, sms


def create_store(seed: bool = True) -> DataStore:
    """Fresh store; seeded with the demo business when `seed` is True."""
    if not seed:
        return DataStore(templates=TemplateRepository(default_templates()))

    email_configs, sms_configs = _seed_provider_configs()
    return DataStore(
        appointments=AppointmentRepository(generate_mock_appointments()),
        templates=TemplateRepository(default_templates()),
        preferences=PreferenceRepository([NotificationPreference(*row) for row in _PREFERENCES]),
        contacts=ContactRepository([CustomerContact(*row) for row in _CUSTOMERS]),
        history=NotificationHistoryRepository(_seed_history()),
        providers=ProviderConfigRepository(email_configs, sms_configs),
        invoice_settings=InvoiceSettingsRepository(InvoiceReminderSettings()),
    )


_STORE: Optional[DataStore] = None


def init_db(seed: bool = True) -> DataStore:
    """(Re)build the process-wide store."""
    global _STORE
    _STORE = create_store(seed)
    logger.info(f"In-memory store initialized{' with demo data' if seed else ''}")
    return _STORE


def get_store() -> DataStore:
    if _STORE is None:
        return init_db()
    return _STORE

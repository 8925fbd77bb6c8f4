# src/notifications/models.py
#
# Data model for customer notifications: channels, templates, preferences,
# history, provider configuration and delivery tracking

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Channel(str, Enum):
    EMAIL = "email"
    SMS = "sms"


class EmailProviderType(str, Enum):
    SENDGRID = "sendgrid"
    MAILGUN = "mailgun"
    SMTP = "smtp"


class SMSProviderType(str, Enum):
    TWILIO = "twilio"
    VONAGE = "vonage"
    MESSAGEBIRD = "messagebird"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    BOUNCED = "bounced"
    REJECTED = "rejected"
    OPENED = "opened"
    CLICKED = "clicked"


class HistoryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


# canonical delivery status -> status shown on the history log
HISTORY_STATUS_FOR_DELIVERY = {
    DeliveryStatus.PENDING: HistoryStatus.PENDING,
    DeliveryStatus.SENT: HistoryStatus.SENT,
    DeliveryStatus.DELIVERED: HistoryStatus.DELIVERED,
    DeliveryStatus.OPENED: HistoryStatus.DELIVERED,
    DeliveryStatus.CLICKED: HistoryStatus.DELIVERED,
    DeliveryStatus.FAILED: HistoryStatus.FAILED,
    DeliveryStatus.BOUNCED: HistoryStatus.FAILED,
    DeliveryStatus.REJECTED: HistoryStatus.FAILED,
}


# -------------------
# MESSAGES
# -------------------
@dataclass
class Attachment:
    filename: str
    content: bytes
    content_type: str


@dataclass
class EmailMessage:
    to: str
    to_name: str
    subject: str
    text_content: str
    html_content: Optional[str] = None
    attachments: List[Attachment] = field(default_factory=list)


@dataclass
class SMSMessage:
    to: str
    content: str


@dataclass
class SendResult:
    success: bool
    provider_id: str
    timestamp: str
    message_id: Optional[str] = None
    error: Optional[str] = None


# -------------------
# TEMPLATES / PREFERENCES
# -------------------
@dataclass
class NotificationTemplate:
    id: str
    name: str
    channel: Channel
    body: str
    variables: List[str] = field(default_factory=list)
    subject: Optional[str] = None


@dataclass
class NotificationPreference:
    """
    Per-customer opt-in flags. When both email and sms are off the category
    flags are inert but keep whatever values were stored.
    """
    customer_id: str
    email: bool = True
    sms: bool = False
    weather_alerts: bool = True
    appointment_reminders: bool = True
    reschedule_notifications: bool = True
    marketing_messages: bool = False

    def allows(self, channel: Channel) -> bool:
        return self.email if channel == Channel.EMAIL else self.sms


PREFERENCE_FLAGS = (
    "email",
    "sms",
    "weather_alerts",
    "appointment_reminders",
    "reschedule_notifications",
    "marketing_messages",
)


@dataclass
class CustomerContact:
    customer_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    def address_for(self, channel: Channel) -> Optional[str]:
        return self.email if channel == Channel.EMAIL else self.phone


# -------------------
# DELIVERY
# -------------------
@dataclass
class StatusUpdate:
    status: DeliveryStatus
    timestamp: str
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class DeliveryTracking:
    provider_id: str
    status: DeliveryStatus
    timestamp: str
    provider_message_id: Optional[str] = None
    status_updates: List[StatusUpdate] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class NotificationHistory:
    id: str
    customer_id: str
    customer_name: str
    channel: Channel
    template_id: str
    body: str
    status: HistoryStatus
    timestamp: str
    subject: Optional[str] = None
    read_timestamp: Optional[str] = None
    delivery: Optional[DeliveryTracking] = None


# -------------------
# PROVIDER CONFIG
# -------------------
@dataclass
class EmailProviderConfig:
    type: EmailProviderType
    from_email: str
    from_name: str
    is_default: bool = False
    enabled: bool = False
    api_key: Optional[str] = None
    domain: Optional[str] = None  # Mailgun
    host: Optional[str] = None  # SMTP
    port: Optional[int] = None
    secure: bool = False
    username: Optional[str] = None
    password: Optional[str] = None

    channel = Channel.EMAIL


@dataclass
class SMSProviderConfig:
    type: SMSProviderType
    is_default: bool = False
    enabled: bool = False
    account_sid: Optional[str] = None  # Twilio
    auth_token: Optional[str] = None
    from_number: Optional[str] = None
    api_key: Optional[str] = None  # Vonage, MessageBird
    api_secret: Optional[str] = None  # Vonage
    from_name: Optional[str] = None  # Vonage sender / MessageBird originator

    channel = Channel.SMS

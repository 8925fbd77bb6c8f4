# src/notifications/webhooks.py
#
#   Maps vendor delivery callbacks (SendGrid, Twilio, Mailgun, Vonage) onto
#   canonical delivery statuses, and verifies Mailgun webhook signatures

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from src.notifications.errors import WebhookValidationError
from src.notifications.models import DeliveryStatus

logger = logging.getLogger(__name__)

PROVIDER_HEADER = "x-notification-provider"


@dataclass
class DeliveryEvent:
    provider: str
    message_id: str
    status: DeliveryStatus
    payload: Dict[str, Any] = field(default_factory=dict)


# https://docs.sendgrid.com/for-developers/tracking-events/event
SENDGRID_EVENTS = {
    "delivered": DeliveryStatus.DELIVERED,
    "open": DeliveryStatus.OPENED,
    "click": DeliveryStatus.CLICKED,
    "bounce": DeliveryStatus.BOUNCED,
    "dropped": DeliveryStatus.FAILED,
}

# https://www.twilio.com/docs/sms/tutorials/how-to-confirm-delivery
TWILIO_STATUSES = {
    "delivered": DeliveryStatus.DELIVERED,
    "failed": DeliveryStatus.FAILED,
    "undelivered": DeliveryStatus.FAILED,
    "sent": DeliveryStatus.SENT,
}

# https://documentation.mailgun.com/en/latest/user_manual.html#webhooks
MAILGUN_EVENTS = {
    "delivered": DeliveryStatus.DELIVERED,
    "opened": DeliveryStatus.OPENED,
    "clicked": DeliveryStatus.CLICKED,
    "failed": DeliveryStatus.FAILED,
    "bounced": DeliveryStatus.BOUNCED,
}

# https://developer.vonage.com/messaging/sms/guides/delivery-receipts
VONAGE_STATUSES = {
    "delivered": DeliveryStatus.DELIVERED,
    "accepted": DeliveryStatus.SENT,
    "buffered": DeliveryStatus.SENT,
    "expired": DeliveryStatus.FAILED,
    "failed": DeliveryStatus.FAILED,
    "rejected": DeliveryStatus.FAILED,
}


def _require_object(provider: str, body) -> dict:
    if not isinstance(body, dict):
        raise WebhookValidationError(f"Invalid {provider} webhook payload")
    return body


def _parse_sendgrid(body) -> List[DeliveryEvent]:
    # SendGrid batches events; unknown event types are skipped, not rejected
    if not isinstance(body, list):
        raise WebhookValidationError("Invalid SendGrid webhook payload")

    events = []
    for event in body:
        if not isinstance(event, dict):
            continue
        status = SENDGRID_EVENTS.get(event.get("event"))
        if status is None:
            logger.debug(f"Skipping SendGrid event {event.get('event')!r}")
            continue
        message_id = event.get("sg_message_id")
        if not message_id:
            logger.warning("Skipping SendGrid event without sg_message_id")
            continue
        # sg_message_id is "<X-Message-Id>.filter...", the send response only carries the prefix
        events.append(DeliveryEvent("sendgrid", str(message_id).split(".")[0], status, event))
    return events


def _parse_twilio(body) -> List[DeliveryEvent]:
    body = _require_object("Twilio", body)
    status = TWILIO_STATUSES.get(body.get("MessageStatus"))
    if status is None:
        raise WebhookValidationError("Unknown status")
    return [DeliveryEvent("twilio", body.get("MessageSid"), status, body)]


def _parse_mailgun(body) -> List[DeliveryEvent]:
    body = _require_object("Mailgun", body)
    event_data = body.get("event-data")
    if not isinstance(event_data, dict):
        raise WebhookValidationError("Invalid Mailgun webhook payload")

    status = MAILGUN_EVENTS.get(event_data.get("event"))
    if status is None:
        raise WebhookValidationError("Unknown event")

    headers = (event_data.get("message") or {}).get("headers") or {}
    message_id = (headers.get("message-id") or "").strip("<>")
    return [DeliveryEvent("mailgun", message_id or None, status, event_data)]


def _parse_vonage(body) -> List[DeliveryEvent]:
    body = _require_object("Vonage", body)
    status = VONAGE_STATUSES.get(body.get("status"))
    if status is None:
        raise WebhookValidationError("Unknown status")
    return [DeliveryEvent("vonage", body.get("messageId"), status, body)]


PARSERS = {
    "sendgrid": _parse_sendgrid,
    "twilio": _parse_twilio,
    "mailgun": _parse_mailgun,
    "vonage": _parse_vonage,
}


def parse_delivery_events(provider: str, body) -> List[DeliveryEvent]:
    """
    Canonical delivery events for a vendor callback body.

    Raises WebhookValidationError for an unknown provider or a payload whose
    shape or status the vendor mapping does not recognize.
    """
    parser = PARSERS.get(provider)
    if parser is None:
        raise WebhookValidationError("Unknown provider")
    return parser(body)


def verify_mailgun_signature(signing_key: str, timestamp: str, token: str, signature: str) -> bool:
    """
    Verify a Mailgun webhook: HMAC-SHA256 of timestamp + token keyed with the
    webhook signing key, hex encoded.
    """
    if not (timestamp and token and signature):
        return False

    expected = hmac.new(
        key=signing_key.encode("utf-8"),
        msg=f"{timestamp}{token}".encode("utf-8"),
        digestmod=hashlib.sha256,
    ).hexdigest()

    # constant-time comparison
    return hmac.compare_digest(expected, signature)

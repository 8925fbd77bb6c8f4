# testing/test_webhooks.py
"""
Delivery webhook tests: vendor payload mapping and the HTTP endpoint.
"""

import asyncio
import hashlib
import hmac
from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient

from config import settings
from src.db import init_db
from src.notifications import templates as catalog
from src.notifications.errors import WebhookValidationError
from src.notifications.models import (
    Channel,
    DeliveryStatus,
    DeliveryTracking,
    HistoryStatus,
    NotificationHistory,
)
from src.notifications.providers.email import MailgunProvider, SendGridProvider
from src.notifications.service import NotificationService
from src.notifications.webhooks import parse_delivery_events, verify_mailgun_signature
from src.webapp import app
from testing.mock_data import mailgun_event, sendgrid_events, twilio_callback, vonage_receipt

client = TestClient(app)
URL = "/api/webhooks/notifications"
REMINDER_VARS = {
    "customerName": "John Smith",
    "appointmentDate": "Tuesday, June 17, 2025",
    "appointmentTime": "9:00 AM",
    "serviceType": "Lawn Mowing",
}


@pytest.fixture
def store():
    """Fresh seeded store with one sent SMS and one sent email to track"""
    store = init_db()
    for provider, message_id, channel in (("vonage", "m1", Channel.SMS), ("sendgrid", "sg-1", Channel.EMAIL)):
        store.history.append(NotificationHistory(
            id=f"notif-{message_id}", customer_id="1", customer_name="John Smith", channel=channel,
            template_id="template-appointment-reminder-sms", body="Hi", status=HistoryStatus.SENT,
            timestamp="2025-06-10T12:00:00Z",
            delivery=DeliveryTracking(provider_id=provider, status=DeliveryStatus.SENT,
                                      timestamp="2025-06-10T12:00:00Z", provider_message_id=message_id),
        ))
    return store


class TestParseEvents:

    def test_sendgrid_skips_unknown_events(self):
        events = parse_delivery_events("sendgrid", sendgrid_events("sg-1", "processed", "delivered", "open"))
        assert [e.status for e in events] == [DeliveryStatus.DELIVERED, DeliveryStatus.OPENED]
        assert events[0].message_id == "sg-1"

    def test_sendgrid_events_without_message_id_are_skipped(self):
        events = parse_delivery_events("sendgrid", [{"event": "delivered"}] + sendgrid_events("sg-2.filter01", "bounce"))
        assert [(e.message_id, e.status) for e in events] == [("sg-2", DeliveryStatus.BOUNCED)]

    def test_mailgun_message_id_brackets_are_dropped(self):
        [event] = parse_delivery_events("mailgun", mailgun_event("<mg-1@mg.lawnpro.test>"))
        assert event.message_id == "mg-1@mg.lawnpro.test"

    def test_sendgrid_requires_a_list(self):
        with pytest.raises(WebhookValidationError):
            parse_delivery_events("sendgrid", {"event": "delivered"})

    @pytest.mark.parametrize("status,expected", [
        ("delivered", DeliveryStatus.DELIVERED),
        ("undelivered", DeliveryStatus.FAILED),
        ("failed", DeliveryStatus.FAILED),
        ("sent", DeliveryStatus.SENT),
    ])
    def test_twilio(self, status, expected):
        [event] = parse_delivery_events("twilio", twilio_callback("SM1", status))
        assert event.status == expected
        assert event.message_id == "SM1"

    def test_twilio_unknown_status(self):
        with pytest.raises(WebhookValidationError, match="Unknown status"):
            parse_delivery_events("twilio", twilio_callback(status="queued"))

    def test_mailgun(self):
        [event] = parse_delivery_events("mailgun", mailgun_event("mg-1", "bounced"))
        assert event.status == DeliveryStatus.BOUNCED
        assert event.message_id == "mg-1"

    def test_mailgun_requires_event_data(self):
        with pytest.raises(WebhookValidationError, match="Invalid Mailgun webhook payload"):
            parse_delivery_events("mailgun", {"signature": {}})

    def test_mailgun_unknown_event(self):
        with pytest.raises(WebhookValidationError, match="Unknown event"):
            parse_delivery_events("mailgun", mailgun_event(event="complained"))

    @pytest.mark.parametrize("status,expected", [
        ("accepted", DeliveryStatus.SENT),
        ("buffered", DeliveryStatus.SENT),
        ("expired", DeliveryStatus.FAILED),
        ("rejected", DeliveryStatus.FAILED),
    ])
    def test_vonage(self, status, expected):
        [event] = parse_delivery_events("vonage", vonage_receipt("m1", status))
        assert event.status == expected

    def test_unknown_provider(self):
        with pytest.raises(WebhookValidationError, match="Unknown provider"):
            parse_delivery_events("postmark", {})


class TestMailgunSignature:

    def test_valid_signature(self):
        signature = hmac.new(b"key", b"1718000000abc123", hashlib.sha256).hexdigest()
        assert verify_mailgun_signature("key", "1718000000", "abc123", signature)

    def test_tampered_signature(self):
        assert not verify_mailgun_signature("key", "1718000000", "abc123", "0" * 64)

    def test_missing_parts(self):
        assert not verify_mailgun_signature("key", "1718000000", None, "abc")


class TestWebhookEndpoint:

    def test_vonage_delivered(self, store):
        response = client.post(URL, json=vonage_receipt("m1", "delivered"),
                               headers={"x-notification-provider": "vonage"})
        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert store.history.get("notif-m1").status == HistoryStatus.DELIVERED

    def test_missing_header(self, store):
        response = client.post(URL, json=vonage_receipt())
        assert response.status_code == 400
        assert response.json() == {"error": "Missing provider header"}

    def test_unknown_provider(self, store):
        response = client.post(URL, json={}, headers={"x-notification-provider": "postmark"})
        assert response.status_code == 400
        assert response.json() == {"error": "Unknown provider"}

    def test_unknown_status(self, store):
        response = client.post(URL, json=vonage_receipt("m1", "unknown"),
                               headers={"x-notification-provider": "vonage"})
        assert response.status_code == 400
        assert response.json() == {"error": "Unknown status"}

    def test_invalid_json(self, store):
        response = client.post(URL, content=b"{not json", headers={
            "x-notification-provider": "sendgrid",
            "content-type": "application/json",
        })
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid JSON payload"}

    def test_sendgrid_batch_opened(self, store):
        response = client.post(URL, json=sendgrid_events("sg-1", "delivered", "open", "processed"),
                               headers={"x-notification-provider": "sendgrid"})
        assert response.status_code == 200
        record = store.history.get("notif-sg-1")
        assert record.delivery.status == DeliveryStatus.OPENED
        assert record.status == HistoryStatus.DELIVERED
        assert len(record.delivery.status_updates) == 2

    def test_twilio_form_post(self, store):
        response = client.post(URL, data={"MessageSid": "SM-unknown", "MessageStatus": "delivered"},
                               headers={"x-notification-provider": "twilio"})
        # unknown message ids are logged, not rejected
        assert response.status_code == 200

    def test_undecodable_form_body(self, store):
        response = client.post(URL, content=b"MessageSid=\xff\xfe", headers={
            "x-notification-provider": "twilio",
            "content-type": "application/x-www-form-urlencoded",
        })
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid form payload"}

    def test_mailgun_signature_enforced_when_configured(self, store):
        with patch.object(settings, "MAILGUN_WEBHOOK_SIGNING_KEY", "key"):
            response = client.post(URL, json=mailgun_event(), headers={"x-notification-provider": "mailgun"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid webhook signature"}

    def test_mailgun_signed_payload(self, store):
        payload = mailgun_event()
        payload["signature"]["signature"] = hmac.new(b"key", b"1718000000abc123", hashlib.sha256).hexdigest()
        with patch.object(settings, "MAILGUN_WEBHOOK_SIGNING_KEY", "key"):
            response = client.post(URL, json=payload, headers={"x-notification-provider": "mailgun"})
        assert response.status_code == 200

    def test_unexpected_error_is_500(self, store):
        with patch("src.webapp.parse_delivery_events", side_effect=RuntimeError("boom")):
            response = client.post(URL, json=vonage_receipt(), headers={"x-notification-provider": "vonage"})
        assert response.status_code == 500
        assert response.json() == {"error": "boom"}


class TestTrackingRealSends:
    """Ids stored at send time must match what the vendor reports back."""

    def _service(self, store, provider):
        for config in store.providers.email_configs():
            config.enabled = config.is_default
        return NotificationService(store, email_factory=lambda config: provider)

    def _send(self, service):
        return asyncio.run(service.send_notification(
            "1", "John Smith", catalog.APPOINTMENT_REMINDER_EMAIL, REMINDER_VARS,
        ))

    def _provider_answering(self, cls, response, *args):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: response))
        return cls(*args, client=client, retry_delay=0)

    def test_mailgun_delivery_updates_history(self, store):
        provider = self._provider_answering(
            MailgunProvider, httpx.Response(200, json={"id": "<20250617.abc@mg.lawnpro.test>"}),
            "key-1", "mg.lawnpro.test", "hello@lawnpro.test", "LawnPro",
        )
        record = self._send(self._service(store, provider))
        assert record.delivery.provider_message_id == "20250617.abc@mg.lawnpro.test"

        with patch.object(settings, "MAILGUN_WEBHOOK_SIGNING_KEY", None):
            response = client.post(URL, json=mailgun_event("20250617.abc@mg.lawnpro.test", "delivered"),
                                   headers={"x-notification-provider": "mailgun"})
        assert response.status_code == 200
        assert record.status == HistoryStatus.DELIVERED

    def test_sendgrid_delivery_matches_message_id_prefix(self, store):
        provider = self._provider_answering(
            SendGridProvider, httpx.Response(202, headers={"X-Message-Id": "Xy9abc"}),
            "SG.key", "hello@lawnpro.test", "LawnPro",
        )
        record = self._send(self._service(store, provider))

        response = client.post(URL, json=sendgrid_events("Xy9abc.filterdrecv-5645d9c87f-6r2ch-1-5E9F6B6C-1.0", "open"),
                               headers={"x-notification-provider": "sendgrid"})
        assert response.status_code == 200
        assert record.status == HistoryStatus.DELIVERED
        assert record.delivery.status == DeliveryStatus.OPENED

    def test_event_without_message_id_leaves_failed_send_alone(self, store):
        provider = self._provider_answering(
            SendGridProvider, httpx.Response(401, json={"errors": [{"message": "bad key"}]}),
            "SG.key", "hello@lawnpro.test", "LawnPro",
        )
        record = self._send(self._service(store, provider))
        assert record.status == HistoryStatus.FAILED
        assert record.delivery.provider_message_id is None

        response = client.post(URL, json=[{"event": "delivered"}], headers={"x-notification-provider": "sendgrid"})
        assert response.status_code == 200
        assert record.status == HistoryStatus.FAILED
        assert store.history.find_by_provider_message("sendgrid", None) is None

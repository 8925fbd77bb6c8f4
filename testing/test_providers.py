# testing/test_providers.py
"""
Vendor sender tests. HTTP traffic goes to an httpx.MockTransport so each
test can inspect the outgoing request and script the vendor's answer.
"""

import asyncio
import json
import smtplib
from unittest.mock import MagicMock, patch

import httpx

from src.notifications.errors import TransportError
from src.notifications.models import Attachment, EmailMessage, SMSMessage
from src.notifications.providers.email import MailgunProvider, SendGridProvider, SMTPProvider
from src.notifications.providers.sms import MessageBirdProvider, TwilioProvider, VonageProvider


def _client(*responses):
    """AsyncClient that answers with the scripted responses in order and records requests"""
    requests = []
    queue = list(responses)

    def handler(request):
        requests.append(request)
        answer = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(answer, Exception):
            raise answer
        return answer

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


def _email():
    return EmailMessage(to="john.smith@example.com", to_name="John Smith", subject="Hello",
                        text_content="Your lawn looks great.")


def _run(coro):
    return asyncio.run(coro)


class TestSendGrid:

    def test_success_uses_message_id_header(self):
        client, requests = _client(httpx.Response(202, headers={"X-Message-Id": "sg-123"}))
        provider = SendGridProvider("SG.key", "hello@lawnpro.test", "LawnPro", client=client)

        result = _run(provider.send_email(_email()))

        assert result.success
        assert result.provider_id == "sendgrid"
        assert result.message_id == "sg-123"
        assert result.timestamp.endswith("Z")
        request = requests[0]
        assert request.headers["Authorization"] == "Bearer SG.key"
        body = json.loads(request.content)
        assert body["personalizations"][0]["to"][0] == {"email": "john.smith@example.com", "name": "John Smith"}
        assert body["from"]["email"] == "hello@lawnpro.test"

    def test_missing_message_id_falls_back(self):
        client, _ = _client(httpx.Response(202))
        provider = SendGridProvider("SG.key", "hello@lawnpro.test", "LawnPro", client=client)
        result = _run(provider.send_email(_email()))
        assert result.message_id.startswith("sendgrid_")

    def test_attachments_are_base64_encoded(self):
        provider = SendGridProvider("SG.key", "hello@lawnpro.test", "LawnPro")
        message = _email()
        message.attachments = [Attachment("invoice.pdf", b"%PDF", "application/pdf")]
        payload = provider.build_payload(message)
        assert payload["attachments"] == [{"content": "JVBERg==", "filename": "invoice.pdf", "type": "application/pdf"}]

    def test_client_error_is_a_failed_result_without_retry(self):
        client, requests = _client(httpx.Response(401, json={"errors": [{"message": "bad key"}]}))
        provider = SendGridProvider("SG.key", "hello@lawnpro.test", "LawnPro", client=client, retry_delay=0)

        result = _run(provider.send_email(_email()))

        assert not result.success
        assert result.error == "SendGrid API error: bad key"
        assert len(requests) == 1

    def test_server_error_is_retried_once(self):
        client, requests = _client(httpx.Response(503), httpx.Response(202, headers={"X-Message-Id": "sg-9"}))
        provider = SendGridProvider("SG.key", "hello@lawnpro.test", "LawnPro", client=client, retry_delay=0)

        result = _run(provider.send_email(_email()))

        assert result.success
        assert result.message_id == "sg-9"
        assert len(requests) == 2

    def test_network_error_gives_up_after_retry(self):
        client, requests = _client(httpx.ConnectError("refused"))
        provider = SendGridProvider("SG.key", "hello@lawnpro.test", "LawnPro", client=client,
                                    max_retries=1, retry_delay=0)

        result = _run(provider.send_email(_email()))

        assert not result.success
        assert "SendGrid request failed" in result.error
        assert len(requests) == 2


class TestMailgun:

    def test_posts_form_to_domain(self):
        client, requests = _client(httpx.Response(200, json={"id": "<mg-1@mg.lawnpro.test>", "message": "Queued"}))
        provider = MailgunProvider("key-1", "mg.lawnpro.test", "hello@lawnpro.test", "LawnPro", client=client)

        result = _run(provider.send_email(_email()))

        assert result.success
        assert result.message_id == "mg-1@mg.lawnpro.test"
        request = requests[0]
        assert request.url == "https://api.mailgun.net/v3/mg.lawnpro.test/messages"
        assert request.headers["Authorization"].startswith("Basic ")
        assert b"subject=Hello" in request.content


class TestSMTP:

    def _provider(self, secure=False):
        return SMTPProvider("smtp.lawnpro.test", 587, secure, "user", "pass", "hello@lawnpro.test", "LawnPro",
                            retry_delay=0)

    def test_starttls_login_and_send(self):
        server = MagicMock()
        server.__enter__.return_value = server
        server.has_extn.return_value = True
        with patch("src.notifications.providers.email.smtplib.SMTP", return_value=server) as smtp:
            result = _run(self._provider().send_email(_email()))

        assert result.success
        assert result.provider_id == "smtp"
        assert "@lawnpro.test" in result.message_id
        smtp.assert_called_once_with("smtp.lawnpro.test", 587, timeout=10.0)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("user", "pass")
        server.send_message.assert_called_once()

    def test_secure_uses_implicit_tls(self):
        server = MagicMock()
        server.__enter__.return_value = server
        with patch("src.notifications.providers.email.smtplib.SMTP_SSL", return_value=server):
            result = _run(self._provider(secure=True).send_email(_email()))
        assert result.success
        server.starttls.assert_not_called()

    def test_auth_failure_is_a_failed_result(self):
        server = MagicMock()
        server.__enter__.return_value = server
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        with patch("src.notifications.providers.email.smtplib.SMTP", return_value=server):
            result = _run(self._provider().send_email(_email()))
        assert not result.success
        assert "535" in result.error
        assert server.login.call_count == 1


class TestSMS:

    def test_twilio(self):
        client, requests = _client(httpx.Response(201, json={"sid": "SM123", "status": "queued"}))
        provider = TwilioProvider("AC1", "token", "+15550001111", client=client)

        result = _run(provider.send_sms(SMSMessage(to="(555) 123-4567", content="Hi")))

        assert result.success
        assert result.message_id == "SM123"
        assert requests[0].url == "https://api.twilio.com/2010-04-01/Accounts/AC1/Messages.json"
        assert b"From=%2B15550001111" in requests[0].content

    def test_vonage_strips_number_and_checks_status(self):
        answer = {"messages": [{"status": "0", "message-id": "v-1"}]}
        client, requests = _client(httpx.Response(200, json=answer))
        provider = VonageProvider("k", "s", "LawnPro", client=client)

        result = _run(provider.send_sms(SMSMessage(to="(555) 123-4567", content="Hi")))

        assert result.message_id == "v-1"
        assert json.loads(requests[0].content)["to"] == "5551234567"

    def test_vonage_rejection_in_200_body(self):
        answer = {"messages": [{"status": "2", "error-text": "Missing params"}]}
        client, _ = _client(httpx.Response(200, json=answer))
        provider = VonageProvider("k", "s", "LawnPro", client=client)

        result = _run(provider.send_sms(SMSMessage(to="5551234567", content="Hi")))

        assert not result.success
        assert result.error == "Vonage send error: Missing params"

    def test_messagebird(self):
        client, requests = _client(httpx.Response(201, json={"id": "mb-1"}))
        provider = MessageBirdProvider("live_key", "LawnPro", client=client)

        result = _run(provider.send_sms(SMSMessage(to="+1 555 123 4567", content="Hi")))

        assert result.message_id == "mb-1"
        assert requests[0].headers["Authorization"] == "AccessKey live_key"
        assert json.loads(requests[0].content)["recipients"] == ["15551234567"]


def test_transport_error_carries_status():
    error = TransportError("boom", status_code=502, retryable=True)
    assert error.status_code == 502 and error.retryable

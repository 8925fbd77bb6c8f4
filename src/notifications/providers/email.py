# src/notifications/providers/email.py
#
#   Email senders: SendGrid (API key), Mailgun (API key + domain) and a
#   plain SMTP relay (username/password)

import asyncio
import base64
import logging
import smtplib
from email.message import EmailMessage as MIMEMessage
from email.utils import formataddr, make_msgid
from typing import Optional

from src.api.retry import retry_with_backoff
from src.notifications.errors import TransportError
from src.notifications.models import EmailMessage
from src.notifications.providers.base import EmailProvider

logger = logging.getLogger(__name__)


class SendGridProvider(EmailProvider):
    """
    SendGrid v3 mail send.
    Documentation: https://docs.sendgrid.com/api-reference/mail-send/mail-send
    """

    provider_id = "sendgrid"
    display_name = "SendGrid"
    url = "https://api.sendgrid.com/v3/mail/send"

    def __init__(self, api_key: str, from_email: str, from_name: str, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name

    def build_payload(self, message: EmailMessage) -> dict:
        payload = {
            "personalizations": [{
                "to": [{"email": message.to, "name": message.to_name}],
                "subject": message.subject,
            }],
            "from": {"email": self.from_email, "name": self.from_name},
            "content": [
                {"type": "text/plain", "value": message.text_content},
                {"type": "text/html", "value": message.html_content or message.text_content},
            ],
        }
        if message.attachments:
            payload["attachments"] = [
                {
                    "content": base64.b64encode(a.content).decode("ascii"),
                    "filename": a.filename,
                    "type": a.content_type,
                }
                for a in message.attachments
            ]
        return payload

    async def _send_email(self, message: EmailMessage) -> Optional[str]:
        response = await self._request(
            "POST",
            self.url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json=self.build_payload(message),
        )
        # SendGrid answers 202 with an empty body; the id is in a header
        return response.headers.get("X-Message-Id")


class MailgunProvider(EmailProvider):
    """
    Mailgun messages API.
    Documentation: https://documentation.mailgun.com/en/latest/api-sending.html
    """

    provider_id = "mailgun"
    display_name = "Mailgun"

    def __init__(self, api_key: str, domain: str, from_email: str, from_name: str, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.domain = domain
        self.from_email = from_email
        self.from_name = from_name

    @property
    def url(self) -> str:
        return f"https://api.mailgun.net/v3/{self.domain}/messages"

    async def _send_email(self, message: EmailMessage) -> Optional[str]:
        data = {
            "from": formataddr((self.from_name, self.from_email)),
            "to": formataddr((message.to_name, message.to)),
            "subject": message.subject,
            "text": message.text_content,
        }
        if message.html_content:
            data["html"] = message.html_content

        files = [("attachment", (a.filename, a.content, a.content_type)) for a in message.attachments]
        response = await self._request(
            "POST",
            self.url,
            auth=("api", self.api_key),
            data=data,
            files=files or None,
        )
        # the API wraps the Message-Id in angle brackets, webhooks do not
        message_id = response.json().get("id")
        return message_id.strip("<>") if message_id else None


class SMTPProvider(EmailProvider):
    """
    Custom SMTP relay. `secure` selects implicit TLS (port 465 style);
    otherwise STARTTLS is attempted when the server offers it.
    """

    provider_id = "smtp"
    display_name = "SMTP"

    def __init__(self, host: str, port: int, secure: bool, username: str, password: str,
                 from_email: str, from_name: str, **kwargs):
        super().__init__(**kwargs)
        self.host = host
        self.port = int(port)
        self.secure = secure
        self.username = username
        self.password = password
        self.from_email = from_email
        self.from_name = from_name

    def build_message(self, message: EmailMessage) -> MIMEMessage:
        mime = MIMEMessage()
        mime["From"] = formataddr((self.from_name, self.from_email))
        mime["To"] = formataddr((message.to_name, message.to))
        mime["Subject"] = message.subject
        mime["Message-ID"] = make_msgid(domain=self.from_email.rpartition("@")[2] or None)
        mime.set_content(message.text_content)
        if message.html_content:
            mime.add_alternative(message.html_content, subtype="html")
        for a in message.attachments:
            maintype, _, subtype = a.content_type.partition("/")
            mime.add_attachment(a.content, maintype=maintype, subtype=subtype or "octet-stream",
                                filename=a.filename)
        return mime

    def _connect(self) -> smtplib.SMTP:
        if self.secure:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        return smtplib.SMTP(self.host, self.port, timeout=self.timeout)

    def _send_blocking(self, mime: MIMEMessage) -> None:
        try:
            with self._connect() as server:
                if not self.secure:
                    server.ehlo()
                    if server.has_extn("starttls"):
                        server.starttls()
                        server.ehlo()
                server.login(self.username, self.password)
                server.send_message(mime)
        except smtplib.SMTPResponseException as e:
            # 4xx replies are temporary
            raise TransportError(f"SMTP error: {e.smtp_code} {e.smtp_error!r}",
                                 status_code=e.smtp_code, retryable=400 <= e.smtp_code < 500) from e
        except smtplib.SMTPException as e:
            raise TransportError(f"SMTP error: {e}") from e
        except OSError as e:
            raise TransportError(f"SMTP connection failed: {e}", retryable=True) from e

    async def _send_email(self, message: EmailMessage) -> Optional[str]:
        mime = self.build_message(message)
        logger.info(f"Sending email via SMTP {self.host}:{self.port} to {message.to}")
        await retry_with_backoff(
            lambda: asyncio.to_thread(self._send_blocking, mime),
            max_retries=self.max_retries,
            initial_delay=self.retry_delay,
            exceptions=(TransportError,),
            should_retry=lambda e: e.retryable,
            label="smtp send",
        )
        return mime["Message-ID"].strip("<>")

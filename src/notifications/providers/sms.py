# src/notifications/providers/sms.py
#
#   SMS senders: Twilio (account SID + auth token), Vonage (API key +
#   secret) and MessageBird (API key only)

from typing import Optional

from src.notifications.errors import TransportError
from src.notifications.models import SMSMessage
from src.notifications.providers.base import SMSProvider, digits_only


class TwilioProvider(SMSProvider):
    """
    Twilio Programmable Messaging.
    Documentation: https://www.twilio.com/docs/sms/api
    """

    provider_id = "twilio"
    display_name = "Twilio"

    def __init__(self, account_sid: str, auth_token: str, from_number: str, **kwargs):
        super().__init__(**kwargs)
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number

    @property
    def url(self) -> str:
        return f"https://api.twilio.com/2010-04-01/Accounts/{self.account_sid}/Messages.json"

    async def _send_sms(self, message: SMSMessage) -> Optional[str]:
        response = await self._request(
            "POST",
            self.url,
            auth=(self.account_sid, self.auth_token),
            data={"To": message.to, "From": self.from_number, "Body": message.content},
        )
        return response.json().get("sid")


class VonageProvider(SMSProvider):
    """
    Vonage (formerly Nexmo) SMS API.
    Documentation: https://developer.vonage.com/messaging/sms/overview
    """

    provider_id = "vonage"
    display_name = "Vonage"
    url = "https://rest.nexmo.com/sms/json"

    def __init__(self, api_key: str, api_secret: str, from_name: str, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.api_secret = api_secret
        self.from_name = from_name

    async def _send_sms(self, message: SMSMessage) -> Optional[str]:
        response = await self._request(
            "POST",
            self.url,
            json={
                "api_key": self.api_key,
                "api_secret": self.api_secret,
                "from": self.from_name,
                "to": digits_only(message.to),
                "text": message.content,
            },
        )
        # Vonage answers 200 even for rejected messages; status "0" means accepted
        messages = response.json().get("messages") or []
        if messages and messages[0].get("status") != "0":
            raise TransportError(f"Vonage send error: {messages[0].get('error-text', 'unknown error')}")
        return messages[0].get("message-id") if messages else None


class MessageBirdProvider(SMSProvider):
    """
    MessageBird SMS messaging.
    Documentation: https://developers.messagebird.com/api/sms-messaging/
    """

    provider_id = "messagebird"
    display_name = "MessageBird"
    url = "https://rest.messagebird.com/messages"

    def __init__(self, api_key: str, originator: str, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.originator = originator

    async def _send_sms(self, message: SMSMessage) -> Optional[str]:
        response = await self._request(
            "POST",
            self.url,
            headers={"Authorization": f"AccessKey {self.api_key}"},
            json={
                "originator": self.originator,
                "recipients": [digits_only(message.to)],
                "body": message.content,
            },
        )
        return response.json().get("id")

# src/notifications/providers/base.py
#
# Shared contract for email/SMS vendor senders. A sender never raises from
# send_email/send_sms: vendor and network failures come back as a failed
# SendResult.

import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from config.settings import PROVIDER_MAX_RETRIES, PROVIDER_RETRY_DELAY_SECONDS, PROVIDER_TIMEOUT_SECONDS
from src.api.retry import retry_with_backoff
from src.notifications.errors import TransportError
from src.notifications.models import EmailMessage, SendResult, SMSMessage
from src.timezone_utils import utc_now_iso

logger = logging.getLogger(__name__)


def _is_retryable(error: Exception) -> bool:
    return isinstance(error, TransportError) and error.retryable


def error_detail(response: httpx.Response) -> str:
    """Best-effort human message from a vendor error response."""
    try:
        data = response.json()
    except ValueError:
        return response.reason_phrase or f"HTTP {response.status_code}"

    if isinstance(data, dict):
        if data.get("message"):
            return str(data["message"])
        errors = data.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            first = errors[0]
            return str(first.get("message") or first.get("description") or first)
        if data.get("error_text") or data.get("error-text"):
            return str(data.get("error_text") or data.get("error-text"))
    return response.reason_phrase or f"HTTP {response.status_code}"


class BaseProvider:
    """
    Common plumbing: vendor HTTP requests with an explicit timeout and a
    bounded retry on network errors and 5xx answers.
    """

    provider_id = "unknown"
    display_name = "Provider"

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = None,
                 max_retries: int = None, retry_delay: float = None):
        # an injected client is owned by the caller (tests pass a MockTransport client)
        self._client = client
        self.timeout = PROVIDER_TIMEOUT_SECONDS if timeout is None else timeout
        self.max_retries = PROVIDER_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = PROVIDER_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay

    async def _send_once(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            if self._client is not None:
                response = await self._client.request(method, url, timeout=self.timeout, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(f"{self.display_name} request timed out", retryable=True) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{self.display_name} request failed: {e}", retryable=True) from e

        if response.is_success:
            return response
        raise TransportError(
            f"{self.display_name} API error: {error_detail(response)}",
            status_code=response.status_code,
            retryable=response.status_code >= 500,
        )

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Vendor request; raises TransportError once retries are exhausted."""
        return await retry_with_backoff(
            lambda: self._send_once(method, url, **kwargs),
            max_retries=self.max_retries,
            initial_delay=self.retry_delay,
            exceptions=(TransportError,),
            should_retry=_is_retryable,
            label=f"{self.provider_id} send",
        )

    def _fallback_message_id(self) -> str:
        return f"{self.provider_id}_{int(time.time() * 1000)}"

    def _success(self, message_id: Optional[str]) -> SendResult:
        return SendResult(
            success=True,
            provider_id=self.provider_id,
            message_id=message_id or self._fallback_message_id(),
            timestamp=utc_now_iso(),
        )

    def _failure(self, error: str) -> SendResult:
        return SendResult(
            success=False,
            provider_id=self.provider_id,
            error=error,
            timestamp=utc_now_iso(),
        )

    async def _deliver(self, send) -> SendResult:
        try:
            message_id = await send()
        except TransportError as e:
            logger.error(f"{self.display_name} send error: {e}")
            return self._failure(str(e))
        except Exception as e:
            logger.exception(f"Unexpected {self.display_name} send error")
            return self._failure(str(e) or "Unknown error")
        return self._success(message_id)


class EmailProvider(BaseProvider, ABC):

    async def send_email(self, message: EmailMessage) -> SendResult:
        return await self._deliver(lambda: self._send_email(message))

    @abstractmethod
    async def _send_email(self, message: EmailMessage) -> Optional[str]:
        """Perform the vendor call and return the vendor message id (if any)."""


class SMSProvider(BaseProvider, ABC):

    async def send_sms(self, message: SMSMessage) -> SendResult:
        return await self._deliver(lambda: self._send_sms(message))

    @abstractmethod
    async def _send_sms(self, message: SMSMessage) -> Optional[str]:
        """Perform the vendor call and return the vendor message id (if any)."""


def digits_only(number: str) -> str:
    return "".join(ch for ch in number if ch.isdigit())

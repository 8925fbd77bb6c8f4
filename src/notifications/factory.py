# src/notifications/factory.py
#
# Builds email/SMS senders from stored provider configuration.
# Vendors are keyed by enum so every supported type has exactly one builder.

import logging
from typing import Callable, Dict, Optional, Tuple

from src.notifications.errors import ConfigurationError
from src.notifications.models import (
    EmailProviderConfig,
    EmailProviderType,
    SMSProviderConfig,
    SMSProviderType,
)
from src.notifications.providers.base import EmailProvider, SMSProvider
from src.notifications.providers.email import MailgunProvider, SendGridProvider, SMTPProvider
from src.notifications.providers.sms import MessageBirdProvider, TwilioProvider, VonageProvider

logger = logging.getLogger(__name__)


def _require(config, fields: Tuple[str, ...], message: str):
    if any(getattr(config, f, None) in (None, "") for f in fields):
        raise ConfigurationError(message)


def _sendgrid(config: EmailProviderConfig, **kwargs) -> EmailProvider:
    _require(config, ("api_key",), "SendGrid API key is required")
    return SendGridProvider(config.api_key, config.from_email, config.from_name, **kwargs)


def _mailgun(config: EmailProviderConfig, **kwargs) -> EmailProvider:
    _require(config, ("api_key", "domain"), "Mailgun API key and domain are required")
    return MailgunProvider(config.api_key, config.domain, config.from_email, config.from_name, **kwargs)


def _smtp(config: EmailProviderConfig, **kwargs) -> EmailProvider:
    _require(config, ("host", "port", "username", "password"),
             "SMTP host, port, username, and password are required")
    return SMTPProvider(config.host, config.port, bool(config.secure), config.username, config.password,
                        config.from_email, config.from_name, **kwargs)


def _twilio(config: SMSProviderConfig, **kwargs) -> SMSProvider:
    _require(config, ("account_sid", "auth_token", "from_number"),
             "Twilio account SID, auth token, and from number are required")
    return TwilioProvider(config.account_sid, config.auth_token, config.from_number, **kwargs)


def _vonage(config: SMSProviderConfig, **kwargs) -> SMSProvider:
    _require(config, ("api_key", "api_secret", "from_name"),
             "Vonage API key, API secret, and from name are required")
    return VonageProvider(config.api_key, config.api_secret, config.from_name, **kwargs)


def _messagebird(config: SMSProviderConfig, **kwargs) -> SMSProvider:
    _require(config, ("api_key", "from_name"), "MessageBird API key and originator are required")
    return MessageBirdProvider(config.api_key, config.from_name, **kwargs)


EMAIL_BUILDERS: Dict[EmailProviderType, Callable[..., EmailProvider]] = {
    EmailProviderType.SENDGRID: _sendgrid,
    EmailProviderType.MAILGUN: _mailgun,
    EmailProviderType.SMTP: _smtp,
}

SMS_BUILDERS: Dict[SMSProviderType, Callable[..., SMSProvider]] = {
    SMSProviderType.TWILIO: _twilio,
    SMSProviderType.VONAGE: _vonage,
    SMSProviderType.MESSAGEBIRD: _messagebird,
}


def _lookup(builders, enum_type, raw_type, channel):
    try:
        return builders[enum_type(raw_type)]
    except (ValueError, KeyError):
        raise ConfigurationError(f"Unsupported {channel} provider type: {getattr(raw_type, 'value', raw_type)}") from None


def build_email_provider(config: EmailProviderConfig, **kwargs) -> EmailProvider:
    """Construct the sender or raise ConfigurationError (enabled flag is ignored)."""
    return _lookup(EMAIL_BUILDERS, EmailProviderType, config.type, "email")(config, **kwargs)


def build_sms_provider(config: SMSProviderConfig, **kwargs) -> SMSProvider:
    """Construct the sender or raise ConfigurationError (enabled flag is ignored)."""
    return _lookup(SMS_BUILDERS, SMSProviderType, config.type, "SMS")(config, **kwargs)


def create_email_provider(config: EmailProviderConfig, **kwargs) -> Optional[EmailProvider]:
    """
    Sender for an enabled config, or None when the config is disabled or
    invalid. Configuration errors are logged, never raised.
    """
    if not config.enabled:
        return None
    try:
        return build_email_provider(config, **kwargs)
    except ConfigurationError as e:
        logger.error(f"Failed to create email provider ({getattr(config.type, 'value', config.type)}): {e}")
        return None


def create_sms_provider(config: SMSProviderConfig, **kwargs) -> Optional[SMSProvider]:
    """
    Sender for an enabled config, or None when the config is disabled or
    invalid. Configuration errors are logged, never raised.
    """
    if not config.enabled:
        return None
    try:
        return build_sms_provider(config, **kwargs)
    except ConfigurationError as e:
        logger.error(f"Failed to create SMS provider ({getattr(config.type, 'value', config.type)}): {e}")
        return None

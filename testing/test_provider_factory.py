# testing/test_provider_factory.py
"""
Provider factory and provider-config repository tests.
"""

import logging

import pytest

from src.db import ProviderConfigRepository
from src.notifications.errors import ConfigurationError, NoProviderConfiguredError
from src.notifications.factory import (
    build_email_provider,
    build_sms_provider,
    create_email_provider,
    create_sms_provider,
)
from src.notifications.models import (
    Channel,
    EmailProviderConfig,
    EmailProviderType,
    SMSProviderConfig,
    SMSProviderType,
)
from src.notifications.providers.email import MailgunProvider, SendGridProvider, SMTPProvider
from src.notifications.providers.sms import MessageBirdProvider, TwilioProvider, VonageProvider


def _email(type_, **kwargs):
    kwargs.setdefault("enabled", True)
    return EmailProviderConfig(type=type_, from_email="hello@lawnpro.test", from_name="LawnPro", **kwargs)


def _sms(type_, **kwargs):
    kwargs.setdefault("enabled", True)
    return SMSProviderConfig(type=type_, **kwargs)


class TestCreateEmailProvider:

    def test_disabled_config_returns_none(self):
        assert create_email_provider(_email(EmailProviderType.SENDGRID, api_key="k", enabled=False)) is None

    @pytest.mark.parametrize("config,expected", [
        (_email(EmailProviderType.SENDGRID, api_key="k"), SendGridProvider),
        (_email(EmailProviderType.MAILGUN, api_key="k", domain="mg.lawnpro.test"), MailgunProvider),
        (_email(EmailProviderType.SMTP, host="smtp.test", port=587, username="u", password="p"), SMTPProvider),
    ])
    def test_builds_each_vendor(self, config, expected):
        assert isinstance(create_email_provider(config), expected)

    def test_missing_field_returns_none_and_logs(self, caplog):
        with caplog.at_level(logging.ERROR):
            provider = create_email_provider(_email(EmailProviderType.MAILGUN, api_key="k"))
        assert provider is None
        assert "Mailgun API key and domain are required" in caplog.text

    def test_unknown_type_returns_none(self, caplog):
        with caplog.at_level(logging.ERROR):
            assert create_email_provider(_email("carrier-pigeon")) is None
        assert "Unsupported email provider type: carrier-pigeon" in caplog.text

    def test_build_raises_configuration_error(self):
        with pytest.raises(ConfigurationError, match="SendGrid API key is required"):
            build_email_provider(_email(EmailProviderType.SENDGRID))

    def test_build_ignores_enabled_flag(self):
        config = _email(EmailProviderType.SENDGRID, api_key="k", enabled=False)
        assert isinstance(build_email_provider(config), SendGridProvider)


class TestCreateSMSProvider:

    def test_disabled_config_returns_none(self):
        config = _sms(SMSProviderType.TWILIO, account_sid="AC1", auth_token="t", from_number="+1555", enabled=False)
        assert create_sms_provider(config) is None

    @pytest.mark.parametrize("config,expected", [
        (_sms(SMSProviderType.TWILIO, account_sid="AC1", auth_token="t", from_number="+15550001111"), TwilioProvider),
        (_sms(SMSProviderType.VONAGE, api_key="k", api_secret="s", from_name="LawnPro"), VonageProvider),
        (_sms(SMSProviderType.MESSAGEBIRD, api_key="k", from_name="LawnPro"), MessageBirdProvider),
    ])
    def test_builds_each_vendor(self, config, expected):
        assert isinstance(create_sms_provider(config), expected)

    def test_missing_field_returns_none(self):
        assert create_sms_provider(_sms(SMSProviderType.TWILIO, account_sid="AC1", auth_token="t")) is None

    def test_build_raises_for_missing_secret(self):
        with pytest.raises(ConfigurationError, match="Vonage API key, API secret, and from name are required"):
            build_sms_provider(_sms(SMSProviderType.VONAGE, api_key="k", from_name="LawnPro"))


class TestDefaultProvider:

    def _repo(self):
        return ProviderConfigRepository(
            email_configs=[
                _email(EmailProviderType.SENDGRID, api_key="k", is_default=True),
                _email(EmailProviderType.MAILGUN, api_key="k", domain="d"),
            ],
            sms_configs=[_sms(SMSProviderType.TWILIO, is_default=True, enabled=False)],
        )

    def test_single_default(self):
        assert self._repo().default_config(Channel.EMAIL).type == EmailProviderType.SENDGRID

    def test_setting_default_clears_siblings(self):
        repo = self._repo()
        repo.save(_email(EmailProviderType.MAILGUN, api_key="k", domain="d", is_default=True))
        defaults = [c.type for c in repo.email_configs() if c.is_default]
        assert defaults == [EmailProviderType.MAILGUN]
        assert repo.default_config(Channel.EMAIL).type == EmailProviderType.MAILGUN

    def test_save_upserts_by_type(self):
        repo = self._repo()
        repo.save(_sms(SMSProviderType.VONAGE, api_key="k", api_secret="s", from_name="LawnPro"))
        repo.save(_sms(SMSProviderType.VONAGE, api_key="k2", api_secret="s", from_name="LawnPro"))
        vonage = [c for c in repo.sms_configs() if c.type == SMSProviderType.VONAGE]
        assert len(vonage) == 1
        assert vonage[0].api_key == "k2"

    def test_disabled_default_means_no_provider(self):
        with pytest.raises(NoProviderConfiguredError):
            self._repo().default_config(Channel.SMS)

    def test_more_than_one_default_is_an_error(self):
        repo = ProviderConfigRepository(email_configs=[
            _email(EmailProviderType.SENDGRID, api_key="k", is_default=True),
            _email(EmailProviderType.SMTP, is_default=True),
        ])
        with pytest.raises(ConfigurationError, match="Multiple default email providers"):
            repo.default_config(Channel.EMAIL)

# src/notifications/errors.py
#
# Error taxonomy for notification dispatch and delivery webhooks


class NotificationError(Exception):
    """Base class for notification failures."""


class ConfigurationError(NotificationError):
    """A provider config is missing a required credential or names an unknown vendor."""


class NotFoundError(NotificationError):
    """A referenced template, appointment or record does not exist."""


class OptOutError(NotificationError):
    """The customer's preferences disable the requested channel."""

    def __init__(self, customer_id, channel):
        self.customer_id = customer_id
        self.channel = channel
        super().__init__(f"Customer {customer_id} has opted out of {getattr(channel, 'value', channel)} notifications")


class NoProviderConfiguredError(NotificationError):
    """No enabled default provider exists for the channel."""


class MissingTemplateVariablesError(NotificationError):
    """Declared template variables were not supplied before sending."""

    def __init__(self, template_id, missing):
        self.template_id = template_id
        self.missing = list(missing)
        super().__init__(f"Template {template_id} is missing variables: {', '.join(self.missing)}")


class TransportError(NotificationError):
    """Vendor API call failed (non-2xx response or network error)."""

    def __init__(self, message, status_code=None, retryable=False):
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message)


class WebhookValidationError(NotificationError):
    """Webhook request is missing its provider header or has an unrecognized payload."""

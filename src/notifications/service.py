# src/notifications/service.py
#
# Notification dispatch: preference checks, template rendering, provider
# selection, sending and the history log. Higher-level helpers fan a
# message out to email and SMS independently.

import logging
import uuid
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from config import settings
from src import timezone_utils
from src.api.rescheduler import RescheduleOption, format_reschedule_options
from src.notifications import templates as catalog
from src.notifications.errors import (
    MissingTemplateVariablesError,
    NoProviderConfiguredError,
    NotFoundError,
    NotificationError,
    OptOutError,
)
from src.notifications.factory import (
    build_email_provider,
    build_sms_provider,
    create_email_provider,
    create_sms_provider,
)
from src.notifications.invoices import calculate_late_fee, select_invoice_reminder_template
from src.notifications.models import (
    HISTORY_STATUS_FOR_DELIVERY,
    Channel,
    DeliveryStatus,
    DeliveryTracking,
    EmailMessage,
    EmailProviderConfig,
    HistoryStatus,
    NotificationHistory,
    NotificationPreference,
    NotificationTemplate,
    SendResult,
    SMSMessage,
    SMSProviderConfig,
    StatusUpdate,
)
from src.notifications.templates import missing_variables, render_template

logger = logging.getLogger(__name__)


def format_date_for_notification(iso_date) -> str:
    """'2025-06-17' -> 'Tuesday, June 17, 2025'"""
    day = timezone_utils.parse_iso_date(iso_date)
    return f"{day:%A}, {day:%B} {day.day}, {day.year}"


def _format_amount(amount) -> str:
    return f"{float(amount):.2f}"


class NotificationService:
    """
    Sends templated notifications to customers and keeps the history log.

    The store supplies every repository; the two factories turn a stored
    provider config into a sender (tests swap them for fakes).
    """

    def __init__(self, store, email_factory: Callable = create_email_provider,
                 sms_factory: Callable = create_sms_provider, strict_variables: bool = None):
        self.store = store
        self.email_factory = email_factory
        self.sms_factory = sms_factory
        self.strict_variables = settings.STRICT_TEMPLATE_VARIABLES if strict_variables is None else strict_variables

    # -------------------
    # CORE SEND
    # -------------------
    async def send_notification(self, customer_id: str, customer_name: str, template_id: str,
                                variables: Mapping[str, object]) -> NotificationHistory:
        """
        Render `template_id` for the customer and send it through the default
        provider of the template's channel.

        Raises NotFoundError, OptOutError, MissingTemplateVariablesError and
        NoProviderConfiguredError before anything is recorded. Vendor
        failures do not raise: the record comes back with status "failed".
        """
        preferences = self.store.preferences.get_or_default(customer_id)
        template = self.store.templates.get(template_id)
        if template is None:
            raise NotFoundError(f"Template {template_id} not found")

        channel = template.channel
        if not preferences.allows(channel):
            logger.info(f"Customer {customer_id} opted out of {channel.value}; skipping {template_id}")
            raise OptOutError(customer_id, channel)

        if self.strict_variables:
            missing = missing_variables(template, variables)
            if missing:
                raise MissingTemplateVariablesError(template_id, missing)

        rendered = render_template(template, variables)
        provider = self._default_provider(channel)

        record = NotificationHistory(
            id=f"notif-{uuid.uuid4().hex[:12]}",
            customer_id=customer_id,
            customer_name=customer_name,
            channel=channel,
            template_id=template_id,
            subject=rendered.subject,
            body=rendered.body,
            status=HistoryStatus.PENDING,
            timestamp=timezone_utils.utc_now_iso(),
        )

        result = await self._dispatch(provider, channel, customer_id, customer_name, rendered)
        delivery_status = DeliveryStatus.SENT if result.success else DeliveryStatus.FAILED
        record.status = HISTORY_STATUS_FOR_DELIVERY[delivery_status]
        record.delivery = DeliveryTracking(
            provider_id=result.provider_id,
            status=delivery_status,
            timestamp=result.timestamp,
            provider_message_id=result.message_id,
            status_updates=[StatusUpdate(status=delivery_status, timestamp=result.timestamp)],
            error=result.error,
        )

        if result.success:
            logger.info(f"Sent {template_id} to customer {customer_id} via {result.provider_id}")
        else:
            logger.error(f"Failed to send {template_id} to customer {customer_id}: {result.error}")

        return self.store.history.append(record)

    def _default_provider(self, channel: Channel):
        config = self.store.providers.default_config(channel)
        factory = self.email_factory if channel == Channel.EMAIL else self.sms_factory
        provider = factory(config)
        if provider is None:
            raise NoProviderConfiguredError(
                f"Default {channel.value} provider ({config.type.value}) could not be created"
            )
        return provider

    async def _dispatch(self, provider, channel, customer_id, customer_name, rendered) -> SendResult:
        contact = self.store.contacts.get(customer_id)
        address = contact.address_for(channel) if contact else None
        if not address:
            return SendResult(
                success=False,
                provider_id=provider.provider_id,
                timestamp=timezone_utils.utc_now_iso(),
                error=f"No {channel.value} address on file for customer {customer_id}",
            )

        try:
            if channel == Channel.EMAIL:
                return await provider.send_email(EmailMessage(
                    to=address,
                    to_name=customer_name,
                    subject=rendered.subject or "",
                    text_content=rendered.body,
                ))
            return await provider.send_sms(SMSMessage(to=address, content=rendered.body))
        except Exception as e:
            logger.exception(f"Provider {provider.provider_id} raised while sending")
            return SendResult(
                success=False,
                provider_id=provider.provider_id,
                timestamp=timezone_utils.utc_now_iso(),
                error=str(e) or "Unknown error",
            )

    async def _fan_out(self, customer_id: str, customer_name: str, email_template: Optional[str],
                       sms_template: Optional[str], variables: Dict[str, object],
                       required_flags: Iterable[str] = ()) -> List[NotificationHistory]:
        preferences = self.store.preferences.get_or_default(customer_id)
        blocked = [flag for flag in required_flags if not getattr(preferences, flag)]
        if blocked:
            logger.info(f"Customer {customer_id} has {', '.join(blocked)} turned off; nothing sent")
            return []

        results = []
        for channel, template_id in ((Channel.EMAIL, email_template), (Channel.SMS, sms_template)):
            if template_id is None or not preferences.allows(channel):
                continue
            try:
                results.append(await self.send_notification(customer_id, customer_name, template_id, variables))
            except NotificationError as e:
                logger.warning(f"Skipping {channel.value} notification for customer {customer_id}: {e}")
        return results

    # -------------------
    # DISPATCH HELPERS
    # -------------------
    async def send_weather_reschedule_notification(self, appointment_id: str, customer_id: str,
                                                   customer_name: str, original_date: str, original_time: str,
                                                   service: str, weather_issue: str,
                                                   reschedule_options: Iterable[RescheduleOption]):
        logger.info(f"Weather reschedule notice for appointment {appointment_id}")
        variables = {
            "customerName": customer_name,
            "appointmentDate": format_date_for_notification(original_date),
            "appointmentTime": original_time,
            "serviceType": service,
            "weatherCondition": weather_issue.lower(),
            "rescheduleOptions": format_reschedule_options(reschedule_options),
        }
        return await self._fan_out(
            customer_id, customer_name,
            catalog.WEATHER_RESCHEDULE_EMAIL, catalog.WEATHER_RESCHEDULE_SMS, variables,
            required_flags=("weather_alerts", "reschedule_notifications"),
        )

    async def send_reschedule_confirmation_notification(self, customer_id: str, customer_name: str,
                                                        original_date: str, new_date: str, new_time: str,
                                                        service: str):
        variables = {
            "customerName": customer_name,
            "serviceType": service,
            "originalDate": format_date_for_notification(original_date),
            "newDate": format_date_for_notification(new_date),
            "newTime": new_time,
        }
        return await self._fan_out(
            customer_id, customer_name,
            catalog.RESCHEDULE_CONFIRMATION_EMAIL, catalog.RESCHEDULE_CONFIRMATION_SMS, variables,
            required_flags=("reschedule_notifications",),
        )

    async def send_weather_alert_notification(self, customer_id: str, customer_name: str,
                                              appointment_date: str, service: str, weather_condition: str):
        variables = {
            "customerName": customer_name,
            "appointmentDate": format_date_for_notification(appointment_date),
            "serviceType": service,
            "weatherCondition": weather_condition.lower(),
        }
        return await self._fan_out(
            customer_id, customer_name,
            catalog.WEATHER_ALERT_EMAIL, catalog.WEATHER_ALERT_SMS, variables,
            required_flags=("weather_alerts",),
        )

    async def send_appointment_reminder(self, customer_id: str, customer_name: str, appointment_date: str,
                                        appointment_time: str, service: str):
        variables = {
            "customerName": customer_name,
            "appointmentDate": format_date_for_notification(appointment_date),
            "appointmentTime": appointment_time,
            "serviceType": service,
        }
        return await self._fan_out(
            customer_id, customer_name,
            catalog.APPOINTMENT_REMINDER_EMAIL, catalog.APPOINTMENT_REMINDER_SMS, variables,
            required_flags=("appointment_reminders",),
        )

    def late_fee_for(self, amount, days_until_due: int) -> Decimal:
        """Late fee owed under the current settings; zero until the invoice is overdue."""
        if days_until_due >= 0:
            return Decimal("0.00")
        return calculate_late_fee(amount, -days_until_due, self.store.invoice_settings.get().late_fees)

    async def send_invoice_reminder_notification(self, customer_id: str, customer_name: str,
                                                 invoice_number: str, amount, due_date: str,
                                                 days_until_due: int):
        late_fee = self.late_fee_for(amount, days_until_due)
        email_template, sms_template = select_invoice_reminder_template(
            days_until_due, self.store.invoice_settings.get()
        )
        variables = {
            "customerName": customer_name,
            "invoiceNumber": invoice_number,
            "amount": _format_amount(amount),
            "dueDate": format_date_for_notification(due_date),
            "daysOverdue": str(max(0, -days_until_due)),
            "lateFee": _format_amount(late_fee),
            "totalDue": _format_amount(Decimal(str(amount)) + late_fee),
        }
        return await self._fan_out(customer_id, customer_name, email_template, sms_template, variables)

    # -------------------
    # READ / UPDATE
    # -------------------
    def get_customer_notification_preferences(self, customer_id: str) -> NotificationPreference:
        return self.store.preferences.get_or_default(customer_id)

    def update_customer_notification_preferences(self, customer_id: str, changes: dict) -> NotificationPreference:
        updated = self.store.preferences.update(customer_id, changes)
        logger.info(f"Updated notification preferences for customer {customer_id}")
        return updated

    def get_customer_notification_history(self, customer_id: str) -> List[NotificationHistory]:
        return self.store.history.for_customer(customer_id)

    def get_all_notification_history(self) -> List[NotificationHistory]:
        return self.store.history.list()

    def mark_notification_as_read(self, notification_id: str) -> NotificationHistory:
        return self.store.history.mark_read(notification_id)

    def get_notification_templates(self) -> List[NotificationTemplate]:
        return self.store.templates.list()

    def update_notification_template(self, template: NotificationTemplate) -> NotificationTemplate:
        return self.store.templates.update(template)

    def get_email_provider_configs(self) -> List[EmailProviderConfig]:
        return self.store.providers.email_configs()

    def get_sms_provider_configs(self) -> List[SMSProviderConfig]:
        return self.store.providers.sms_configs()

    def update_email_provider_config(self, config: EmailProviderConfig) -> EmailProviderConfig:
        return self.store.providers.save(config)

    def update_sms_provider_config(self, config: SMSProviderConfig) -> SMSProviderConfig:
        return self.store.providers.save(config)

    # -------------------
    # CONNECTION TESTS
    # -------------------
    async def test_email_provider(self, config: EmailProviderConfig, to: str, **provider_kwargs) -> dict:
        """Send a one-off email through `config`; configuration errors are reported, not raised."""
        try:
            provider = build_email_provider(config, **provider_kwargs)
        except NotificationError as e:
            return {"success": False, "message": str(e)}

        result = await provider.send_email(EmailMessage(
            to=to,
            to_name="Test Recipient",
            subject=f"{settings.BUSINESS_NAME} test email",
            text_content=f"This is a test email from {settings.BUSINESS_NAME} sent via {provider.display_name}.",
        ))
        if result.success:
            return {"success": True, "message": f"Test email sent successfully via {provider.display_name}"}
        return {"success": False, "message": f"Failed to send test email: {result.error}"}

    async def test_sms_provider(self, config: SMSProviderConfig, to: str, **provider_kwargs) -> dict:
        try:
            provider = build_sms_provider(config, **provider_kwargs)
        except NotificationError as e:
            return {"success": False, "message": str(e)}

        result = await provider.send_sms(SMSMessage(
            to=to,
            content=f"This is a test message from {settings.BUSINESS_NAME} via {provider.display_name}.",
        ))
        if result.success:
            return {"success": True, "message": f"Test SMS sent successfully via {provider.display_name}"}
        return {"success": False, "message": f"Failed to send test SMS: {result.error}"}

    # -------------------
    # DELIVERY TRACKING
    # -------------------
    def update_delivery_status(self, provider: str, provider_message_id: str, status: DeliveryStatus,
                               metadata: Optional[dict] = None) -> bool:
        """Apply a webhook status to the matching history record. False when no record matches."""
        if not provider_message_id:
            logger.warning(f"Ignoring {provider} delivery event without a message id")
            return False
        logger.info(f"Updating delivery status for {provider} message {provider_message_id} to {status.value}")
        record = self.store.history.find_by_provider_message(provider, provider_message_id)
        if record is None:
            logger.warning(f"No notification found for {provider} message {provider_message_id}")
            return False

        timestamp = timezone_utils.utc_now_iso()
        delivery = record.delivery
        delivery.status_updates.append(StatusUpdate(status=status, timestamp=timestamp, metadata=metadata))
        delivery.status = status
        delivery.timestamp = timestamp
        record.status = HISTORY_STATUS_FOR_DELIVERY[status]
        return True

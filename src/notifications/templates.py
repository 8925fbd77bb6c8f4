# src/notifications/templates.py
#
# Template engine: {{variable}} substitution, placeholder inspection and
# previews, plus the default message catalog

import re
from copy import deepcopy
from dataclasses import dataclass
from typing import List, Mapping, Optional

from config.settings import BUSINESS_NAME
from src.notifications.models import Channel, NotificationTemplate

PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+)\}\}")


@dataclass(frozen=True)
class RenderedMessage:
    body: str
    subject: Optional[str] = None


def _substitute(text: str, variables: Mapping[str, object]) -> str:
    for key, value in variables.items():
        text = text.replace("{{" + key + "}}", str(value))
    return text


def render_template(template: NotificationTemplate, variables: Mapping[str, object]) -> RenderedMessage:
    """
    Replace every {{key}} occurrence in the body (and subject, when present)
    with the value supplied for that key. Keys are matched exactly and
    case-sensitively; placeholders with no supplied value stay as they are.
    """
    subject = _substitute(template.subject, variables) if template.subject is not None else None
    return RenderedMessage(body=_substitute(template.body, variables), subject=subject)


def find_placeholders(text: Optional[str]) -> List[str]:
    """Placeholder names in order of first appearance."""
    seen = []
    for name in PLACEHOLDER_PATTERN.findall(text or ""):
        if name not in seen:
            seen.append(name)
    return seen


def missing_variables(template: NotificationTemplate, variables: Mapping[str, object]) -> List[str]:
    """Declared variables, plus any placeholder actually used, that have no value."""
    wanted = list(template.variables)
    for name in find_placeholders(template.subject) + find_placeholders(template.body):
        if name not in wanted:
            wanted.append(name)
    return [name for name in wanted if name not in variables]


EXAMPLE_VALUES = {
    "customerName": "John Smith",
    "invoiceNumber": "INV-001",
    "amount": "120.00",
    "dueDate": "June 15, 2025",
    "appointmentDate": "Saturday, June 14, 2025",
    "appointmentTime": "9:00 AM",
    "serviceType": "Lawn Mowing",
    "weatherCondition": "heavy rain",
    "rescheduleOptions": "- Tuesday, June 17 at 9:00 AM\n- Wednesday, June 18 at 9:00 AM",
    "originalDate": "Saturday, June 14, 2025",
    "newDate": "Tuesday, June 17, 2025",
    "newTime": "9:00 AM",
    "daysOverdue": "3",
    "lateFee": "6.00",
    "totalDue": "126.00",
}


def preview_template(template: NotificationTemplate, overrides: Mapping[str, object] = None) -> RenderedMessage:
    """Render with example values so admins can see the finished message."""
    variables = {name: EXAMPLE_VALUES.get(name, f"[{name}]") for name in template.variables}
    variables.update(overrides or {})
    return render_template(template, variables)


# -------------------
# DEFAULT CATALOG
# -------------------
INVOICE_BEFORE_DUE_EMAIL = "template-invoice-reminder-email"
INVOICE_DUE_TODAY_EMAIL = "template-invoice-due-today-email"
INVOICE_OVERDUE_3_EMAIL = "template-invoice-overdue-email"
INVOICE_OVERDUE_7_EMAIL = "template-invoice-overdue-7-day-email"
INVOICE_REMINDER_SMS = "template-invoice-reminder-sms"
INVOICE_OVERDUE_SMS = "template-invoice-overdue-sms"
APPOINTMENT_REMINDER_EMAIL = "template-appointment-reminder-email"
APPOINTMENT_REMINDER_SMS = "template-appointment-reminder-sms"
WEATHER_ALERT_EMAIL = "template-weather-alert-email"
WEATHER_ALERT_SMS = "template-weather-alert-sms"
WEATHER_RESCHEDULE_EMAIL = "template-weather-reschedule-email"
WEATHER_RESCHEDULE_SMS = "template-weather-reschedule-sms"
RESCHEDULE_CONFIRMATION_EMAIL = "template-reschedule-confirmation-email"
RESCHEDULE_CONFIRMATION_SMS = "template-reschedule-confirmation-sms"

_INVOICE_VARS = ["customerName", "invoiceNumber", "amount", "dueDate"]
_APPOINTMENT_VARS = ["customerName", "appointmentDate", "appointmentTime", "serviceType"]

DEFAULT_TEMPLATES = [
    NotificationTemplate(
        id=INVOICE_BEFORE_DUE_EMAIL,
        name="Invoice Reminder (Email)",
        channel=Channel.EMAIL,
        subject="Invoice Reminder: Payment Due",
        body="Dear {{customerName}}, your invoice #{{invoiceNumber}} for ${{amount}} is due on {{dueDate}}.",
        variables=_INVOICE_VARS,
    ),
    NotificationTemplate(
        id=INVOICE_DUE_TODAY_EMAIL,
        name="Invoice Due Today (Email)",
        channel=Channel.EMAIL,
        subject="Invoice #{{invoiceNumber}} Due Today",
        body="Dear {{customerName}}, your invoice #{{invoiceNumber}} for ${{amount}} is due today ({{dueDate}}). "
             "Thank you for your prompt payment.",
        variables=_INVOICE_VARS,
    ),
    NotificationTemplate(
        id=INVOICE_OVERDUE_3_EMAIL,
        name="Invoice Overdue (Email)",
        channel=Channel.EMAIL,
        subject="Invoice #{{invoiceNumber}} Overdue",
        body="Dear {{customerName}}, your invoice #{{invoiceNumber}} for ${{amount}} was due on {{dueDate}} "
             "and is now overdue. Please make payment at your earliest convenience.",
        variables=_INVOICE_VARS,
    ),
    NotificationTemplate(
        id=INVOICE_OVERDUE_7_EMAIL,
        name="Invoice Overdue - Final Notice (Email)",
        channel=Channel.EMAIL,
        subject="Final Notice: Invoice #{{invoiceNumber}} Overdue",
        body="Dear {{customerName}}, your invoice #{{invoiceNumber}} for ${{amount}} was due on {{dueDate}} "
             "and is {{daysOverdue}} days overdue. Late fees may apply. Please contact us if you need help "
             "arranging payment.",
        variables=_INVOICE_VARS + ["daysOverdue"],
    ),
    NotificationTemplate(
        id=INVOICE_REMINDER_SMS,
        name="Invoice Reminder (SMS)",
        channel=Channel.SMS,
        body=f"{BUSINESS_NAME}: Invoice #{{{{invoiceNumber}}}} for ${{{{amount}}}} is due {{{{dueDate}}}}.",
        variables=["invoiceNumber", "amount", "dueDate"],
    ),
    NotificationTemplate(
        id=INVOICE_OVERDUE_SMS,
        name="Invoice Overdue (SMS)",
        channel=Channel.SMS,
        body=f"{BUSINESS_NAME}: Invoice #{{{{invoiceNumber}}}} for ${{{{amount}}}} was due {{{{dueDate}}}} "
             "and is overdue. Please pay at your earliest convenience.",
        variables=["invoiceNumber", "amount", "dueDate"],
    ),
    NotificationTemplate(
        id=APPOINTMENT_REMINDER_EMAIL,
        name="Appointment Reminder (Email)",
        channel=Channel.EMAIL,
        subject="Appointment Reminder",
        body="Dear {{customerName}}, this is a reminder that we have scheduled {{serviceType}} at your property "
             "on {{appointmentDate}} at {{appointmentTime}}.",
        variables=_APPOINTMENT_VARS,
    ),
    NotificationTemplate(
        id=APPOINTMENT_REMINDER_SMS,
        name="Appointment Reminder (SMS)",
        channel=Channel.SMS,
        body="Hi {{customerName}}, reminder: {{serviceType}} scheduled for {{appointmentDate}} at {{appointmentTime}}.",
        variables=_APPOINTMENT_VARS,
    ),
    NotificationTemplate(
        id=WEATHER_ALERT_EMAIL,
        name="Weather Alert (Email)",
        channel=Channel.EMAIL,
        subject="Weather Alert - Service Rescheduling",
        body="Dear {{customerName}}, due to forecasted {{weatherCondition}}, we may need to reschedule your "
             "service on {{appointmentDate}}. We'll contact you with more information.",
        variables=["customerName", "appointmentDate", "weatherCondition"],
    ),
    NotificationTemplate(
        id=WEATHER_ALERT_SMS,
        name="Weather Alert (SMS)",
        channel=Channel.SMS,
        body=f"{BUSINESS_NAME} Alert: Due to {{{{weatherCondition}}}}, your {{{{serviceType}}}} on "
             "{{appointmentDate}} may need rescheduling. We'll contact you soon.",
        variables=["customerName", "appointmentDate", "weatherCondition", "serviceType"],
    ),
    NotificationTemplate(
        id=WEATHER_RESCHEDULE_EMAIL,
        name="Weather Reschedule (Email)",
        channel=Channel.EMAIL,
        subject="Weather Update: Your {{serviceType}} on {{appointmentDate}}",
        body="Dear {{customerName}}, due to {{weatherCondition}} forecasted for {{appointmentDate}}, we need to "
             "reschedule your {{serviceType}} appointment at {{appointmentTime}}. Available options:\n"
             "{{rescheduleOptions}}\nPlease reply to confirm the option that works best for you.",
        variables=["customerName", "appointmentDate", "appointmentTime", "serviceType",
                   "weatherCondition", "rescheduleOptions"],
    ),
    NotificationTemplate(
        id=WEATHER_RESCHEDULE_SMS,
        name="Weather Reschedule (SMS)",
        channel=Channel.SMS,
        body=f"{BUSINESS_NAME}: {{{{weatherCondition}}}} expected {{{{appointmentDate}}}}. Your {{{{serviceType}}}} "
             "needs to move. Options:\n{{rescheduleOptions}}\nReply to confirm.",
        variables=["appointmentDate", "serviceType", "weatherCondition", "rescheduleOptions"],
    ),
    NotificationTemplate(
        id=RESCHEDULE_CONFIRMATION_EMAIL,
        name="Reschedule Confirmation (Email)",
        channel=Channel.EMAIL,
        subject="Your {{serviceType}} Has Been Rescheduled",
        body="Dear {{customerName}}, your {{serviceType}} originally scheduled for {{originalDate}} has been "
             "moved to {{newDate}} at {{newTime}}. Thank you for your flexibility.",
        variables=["customerName", "serviceType", "originalDate", "newDate", "newTime"],
    ),
    NotificationTemplate(
        id=RESCHEDULE_CONFIRMATION_SMS,
        name="Reschedule Confirmation (SMS)",
        channel=Channel.SMS,
        body=f"{BUSINESS_NAME}: Your {{{{serviceType}}}} has moved from {{{{originalDate}}}} to {{{{newDate}}}} "
             "at {{newTime}}.",
        variables=["serviceType", "originalDate", "newDate", "newTime"],
    ),
]


def default_templates() -> List[NotificationTemplate]:
    """Fresh copies of the catalog so admin edits never touch the defaults."""
    return deepcopy(DEFAULT_TEMPLATES)

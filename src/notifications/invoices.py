# src/notifications/invoices.py
#
# Invoice reminder rules: which day offsets trigger a reminder, which
# template tier applies, and the late fee owed on an overdue balance

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple

from src import timezone_utils
from src.notifications import templates as catalog


class ReminderTier(str, Enum):
    BEFORE_DUE = "before_due"
    DUE_TODAY = "due_today"
    OVERDUE_3_DAY = "overdue_3_day"
    OVERDUE_7_DAY = "overdue_7_day"


# (email template, sms template or None)
DEFAULT_TIER_TEMPLATES: Dict[ReminderTier, Tuple[str, Optional[str]]] = {
    ReminderTier.BEFORE_DUE: (catalog.INVOICE_BEFORE_DUE_EMAIL, catalog.INVOICE_REMINDER_SMS),
    ReminderTier.DUE_TODAY: (catalog.INVOICE_DUE_TODAY_EMAIL, catalog.INVOICE_REMINDER_SMS),
    ReminderTier.OVERDUE_3_DAY: (catalog.INVOICE_OVERDUE_3_EMAIL, catalog.INVOICE_OVERDUE_SMS),
    ReminderTier.OVERDUE_7_DAY: (catalog.INVOICE_OVERDUE_7_EMAIL, catalog.INVOICE_OVERDUE_SMS),
}


@dataclass
class ReminderSchedule:
    before_due_enabled: bool = True
    before_due_days: List[int] = field(default_factory=lambda: [7, 3, 1])
    on_due_date_enabled: bool = True
    after_due_enabled: bool = True
    after_due_days: List[int] = field(default_factory=lambda: [3, 7, 14])


@dataclass
class LateFeeSettings:
    enabled: bool = True
    grace_period: int = 5  # days
    fee_type: str = "percentage"  # percentage | fixed
    fee_amount: float = 5
    max_fee: Optional[float] = 50
    compounding: bool = False


@dataclass
class EscalationSettings:
    enabled: bool = True
    days_overdue: int = 30
    escalation_type: str = "mail"  # email | sms | call | mail
    template_id: str = catalog.INVOICE_OVERDUE_7_EMAIL


@dataclass
class InvoiceReminderSettings:
    enabled: bool = True
    schedule: ReminderSchedule = field(default_factory=ReminderSchedule)
    templates: Dict[ReminderTier, Tuple[str, Optional[str]]] = field(
        default_factory=lambda: dict(DEFAULT_TIER_TEMPLATES)
    )
    late_fees: LateFeeSettings = field(default_factory=LateFeeSettings)
    escalation: EscalationSettings = field(default_factory=EscalationSettings)
    customer_exceptions: List[str] = field(default_factory=list)


def days_until_due(due_date, today: date = None) -> int:
    """Whole days from today to the due date; negative once overdue."""
    today = today or timezone_utils.today()
    return (timezone_utils.parse_iso_date(due_date) - today).days


def select_reminder_tier(days: int) -> ReminderTier:
    if days > 0:
        return ReminderTier.BEFORE_DUE
    if days == 0:
        return ReminderTier.DUE_TODAY
    if abs(days) <= 3:
        return ReminderTier.OVERDUE_3_DAY
    return ReminderTier.OVERDUE_7_DAY


def select_invoice_reminder_template(days: int, settings: InvoiceReminderSettings = None) -> Tuple[str, Optional[str]]:
    """(email template id, sms template id) for the reminder tier that `days` falls in."""
    tiers = settings.templates if settings else DEFAULT_TIER_TEMPLATES
    tier = select_reminder_tier(days)
    return tiers.get(tier, DEFAULT_TIER_TEMPLATES[tier])


def should_send_invoice_reminder(invoice_id: str, due_date, customer_id: str,
                                 settings: InvoiceReminderSettings, today: date = None) -> bool:
    """
    True when today is one of the configured reminder days for the invoice.
    Reminders are off globally or for customers on the exception list.
    """
    if not settings.enabled or customer_id in settings.customer_exceptions:
        return False

    days = days_until_due(due_date, today)
    schedule = settings.schedule
    if days > 0:
        return schedule.before_due_enabled and days in schedule.before_due_days
    if days == 0:
        return schedule.on_due_date_enabled
    return schedule.after_due_enabled and abs(days) in schedule.after_due_days


def calculate_late_fee(amount, days_overdue: int, settings: LateFeeSettings) -> Decimal:
    """
    Fee owed on an overdue balance. Nothing is charged inside the grace
    period. Compounding fees are re-applied every 30 days past the grace
    period on the growing balance. The total never exceeds max_fee.
    """
    if not settings.enabled or days_overdue <= settings.grace_period:
        return Decimal("0.00")

    balance = Decimal(str(amount))
    periods = 1
    if settings.compounding:
        periods += (days_overdue - settings.grace_period - 1) // 30

    fee = Decimal("0")
    for _ in range(periods):
        if settings.fee_type == "fixed":
            charge = Decimal(str(settings.fee_amount))
        else:
            charge = (balance + fee) * Decimal(str(settings.fee_amount)) / Decimal("100")
        fee += charge

    if settings.max_fee is not None:
        fee = min(fee, Decimal(str(settings.max_fee)))
    return fee.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

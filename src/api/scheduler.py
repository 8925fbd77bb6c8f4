# scheduler.py
#
# Appointment model for scheduled lawn-care visits:
# - Appointment record and lifecycle statuses
# - Pure queries used by the rescheduler (upcoming, per-day counts)
# - Mock schedule seeded relative to today

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, List, Optional

from src import timezone_utils


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    IN_PROGRESS = "in-progress"


@dataclass
class Appointment:
    id: str
    customer_id: str
    customer_name: str
    date: str  # YYYY-MM-DD
    time: str  # "9:00 AM"
    duration: int  # minutes
    service: str
    status: AppointmentStatus
    address: str
    notes: Optional[str] = None


def is_upcoming(appointment: Appointment, today: date = None) -> bool:
    """
    Return True for appointments that can still be moved: status exactly
    "scheduled" and dated today or later.
    """
    today = today or timezone_utils.today()
    if appointment.status != AppointmentStatus.SCHEDULED:
        return False
    return date.fromisoformat(appointment.date) >= today


def upcoming_appointments(appointments: Iterable[Appointment], today: date = None) -> List[Appointment]:
    today = today or timezone_utils.today()
    return [a for a in appointments if is_upcoming(a, today)]


def count_on_date(appointments: Iterable[Appointment], day: str) -> int:
    """Number of appointments already booked on `day`."""
    return sum(1 for a in appointments if a.date == day)


# (id, customer id, name, day offset, time, duration, service, street)
_MOCK_SCHEDULE = [
    ("apt-001", "1", "John Smith", 1, "9:00 AM", 60, "Lawn Mowing", "123 Oak Street"),
    ("apt-002", "2", "Sarah Johnson", 1, "11:30 AM", 90, "Lawn Mowing + Edging", "456 Maple Avenue"),
    ("apt-003", "3", "Michael Brown", 2, "10:00 AM", 120, "Full Service", "789 Pine Road"),
    ("apt-004", "4", "Emily Davis", 2, "1:00 PM", 60, "Lawn Mowing", "321 Cedar Lane"),
    ("apt-005", "5", "David Wilson", 3, "9:00 AM", 90, "Lawn Mowing + Hedge Trimming", "654 Birch Boulevard"),
    ("apt-006", "1", "John Smith", 15, "9:00 AM", 60, "Lawn Mowing", "123 Oak Street"),
    ("apt-007", "2", "Sarah Johnson", 15, "11:30 AM", 90, "Lawn Mowing + Edging", "456 Maple Avenue"),
]


def generate_mock_appointments(start: date = None) -> List[Appointment]:
    """Demo schedule laid out around the mock forecast's rainy days."""
    start = start or timezone_utils.today()
    return [
        Appointment(
            id=apt_id,
            customer_id=customer_id,
            customer_name=name,
            date=(start + timedelta(days=offset)).isoformat(),
            time=time,
            duration=duration,
            service=service,
            status=AppointmentStatus.SCHEDULED,
            address=f"{street}, Anytown, ST 12345",
        )
        for apt_id, customer_id, name, offset, time, duration, service, street in _MOCK_SCHEDULE
    ]

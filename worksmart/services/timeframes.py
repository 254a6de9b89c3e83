# worksmart/services/timeframes.py
from enum import Enum
from typing import List, Optional

from .due_dates import DateLike, as_calendar_date

# Upper bound (inclusive) of the alerting horizon, in days from today
NOTIFICATION_HORIZON_DAYS = 14


class TimeWindow(str, Enum):
    today = "today"
    tomorrow = "tomorrow"
    this_week = "thisWeek"
    next_week = "nextWeek"
    this_month = "thisMonth"
    late = "late"
    all = "all"


def days_until(due_date: DateLike, today: DateLike) -> int:
    """Whole calendar days from today to the due date; negative when overdue."""
    return (as_calendar_date(due_date) - as_calendar_date(today)).days


def in_window(due_date: Optional[DateLike], today: DateLike, window: TimeWindow) -> bool:
    """Whether a due date falls in the named window. A missing date is never due."""
    window = TimeWindow(window)
    if due_date is None:
        return False
    if window is TimeWindow.all:
        return True

    due = as_calendar_date(due_date)
    today = as_calendar_date(today)
    diff = days_until(due, today)

    if window is TimeWindow.today:
        return diff == 0
    if window is TimeWindow.tomorrow:
        return diff == 1
    if window is TimeWindow.this_week:
        return 0 <= diff <= 7
    if window is TimeWindow.next_week:
        return 7 < diff <= 14
    if window is TimeWindow.this_month:
        # Calendar month match only; already-late dates in the month count too
        return due.month == today.month and due.year == today.year
    if window is TimeWindow.late:
        return diff < 0
    raise ValueError(f"Unhandled window {window!r}")


def windows_for(due_date: Optional[DateLike], today: DateLike) -> List[TimeWindow]:
    """Every named window the date falls in, excluding the catch-all."""
    return [w for w in TimeWindow if w is not TimeWindow.all and in_window(due_date, today, w)]


def is_notifiable(due_date: Optional[DateLike], today: DateLike) -> bool:
    """Due within [0, NOTIFICATION_HORIZON_DAYS]; overdue dates are excluded."""
    if due_date is None:
        return False
    return 0 <= days_until(due_date, today) <= NOTIFICATION_HORIZON_DAYS


def classify_window(client, window: TimeWindow, today: DateLike) -> bool:
    """Active clients only, keyed on the pharmacy due date."""
    if not client.is_active:
        return False
    return in_window(client.next_pharmacy_due_date, today, window)

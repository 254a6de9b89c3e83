# worksmart/services/due_dates.py
"""
Due-date calculator.

Every recurring clinical action is expected a fixed number of calendar days
after it was last observed. All arithmetic is done on calendar dates; a
datetime is reduced to its date first, so daylight-saving shifts can never
move a due date by one day.
"""
from datetime import date, datetime, timedelta
from typing import Any, Mapping, NamedTuple, Optional, Union

PHARMACY_PICKUP_INTERVAL_DAYS = 90
VIRAL_LOAD_INTERVAL_DAYS = 180

DateLike = Union[date, datetime]


def as_calendar_date(value: Optional[DateLike]) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


def next_due_date(last_event_date: Optional[DateLike], interval_days: int) -> Optional[date]:
    """Return ``last_event_date + interval_days`` or None when nothing was observed."""
    last = as_calendar_date(last_event_date)
    if last is None:
        return None
    return last + timedelta(days=interval_days)


def resolve_due_date(last_event_date: Optional[DateLike], override: Optional[DateLike], interval_days: int) -> Optional[date]:
    """An explicit due date always wins; otherwise derive it from the event."""
    if override is not None:
        return as_calendar_date(override)
    return next_due_date(last_event_date, interval_days)


class DueDates(NamedTuple):
    next_pharmacy_due_date: Optional[date]
    next_vl_due_date: Optional[date]


def compute_due_dates(
    last_drug_pickup: Optional[DateLike],
    last_vl_collection: Optional[DateLike],
    pharmacy_override: Optional[DateLike] = None,
    vl_override: Optional[DateLike] = None,
) -> DueDates:
    return DueDates(
        next_pharmacy_due_date=resolve_due_date(last_drug_pickup, pharmacy_override, PHARMACY_PICKUP_INTERVAL_DAYS),
        next_vl_due_date=resolve_due_date(last_vl_collection, vl_override, VIRAL_LOAD_INTERVAL_DAYS),
    )


# (event field, due field, interval)
_EVENT_RULES = (
    ("last_drug_pickup", "next_pharmacy_due_date", PHARMACY_PICKUP_INTERVAL_DAYS),
    ("last_vl_collection", "next_vl_due_date", VIRAL_LOAD_INTERVAL_DAYS),
)


def apply_event_changes(changes: dict, current: Optional[Mapping[str, Any]] = None) -> dict:
    """
    Fill in derived due dates for a partial update.

    ``changes`` holds only the fields the caller set; ``current`` holds the
    stored event dates. When an event date is among the changes its due date
    is recomputed, unless the same update also carries the due date
    explicitly. A due date cleared to None without an event change is
    re-derived from the stored event date. Returns a new dict.
    """
    current = current or {}
    updated = dict(changes)
    for event_field, due_field, interval in _EVENT_RULES:
        if event_field in changes:
            updated[due_field] = resolve_due_date(changes[event_field], changes.get(due_field), interval)
        elif due_field in changes and changes[due_field] is None:
            updated[due_field] = next_due_date(current.get(event_field), interval)
    return updated

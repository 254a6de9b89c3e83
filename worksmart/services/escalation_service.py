# worksmart/services/escalation_service.py
from datetime import datetime
from typing import Optional

import structlog

from ..errors import ValidationError
from ..schemas import ClientRecord, EscalationResponse, TrackingEntry
from .due_dates import DateLike, as_calendar_date

logger = structlog.get_logger(__name__)

DAYS_PER_STEP = 7
MAX_ESCALATION_STEP = 4


def days_since_pickup(last_drug_pickup: Optional[DateLike], today: DateLike) -> Optional[int]:
    last = as_calendar_date(last_drug_pickup)
    if last is None:
        return None
    return (as_calendar_date(today) - last).days


def escalation_step(last_drug_pickup: Optional[DateLike], today: DateLike) -> Optional[int]:
    """
    Outreach tier from days since the last pickup:
    <=7 -> 0, 8-14 -> 1, 15-21 -> 2, 22-28 -> 3, >28 -> 4.
    None when no pickup was ever recorded.
    """
    days = days_since_pickup(last_drug_pickup, today)
    if days is None:
        return None
    if days <= DAYS_PER_STEP:
        return 0
    # 8..14 -> 1, 15..21 -> 2, 22..28 -> 3
    return min((days - 1) // DAYS_PER_STEP, MAX_ESCALATION_STEP)


def escalation_summary(client: ClientRecord, today: DateLike) -> EscalationResponse:
    step = escalation_step(client.last_drug_pickup, today)
    return EscalationResponse(
        client_id=client.id,
        last_drug_pickup=client.last_drug_pickup,
        days_since_pickup=days_since_pickup(client.last_drug_pickup, today),
        step=step,
        tracking_day=None if step is None else step * DAYS_PER_STEP,
    )


def build_tracking_entry(client: ClientRecord, intervention: str, finding: str, tracker: Optional[str], now: datetime) -> TrackingEntry:
    if not intervention or not intervention.strip():
        raise ValidationError("Tracking intervention is required", field="intervention")
    if not finding or not finding.strip():
        raise ValidationError("Tracking finding is required", field="finding")
    return TrackingEntry(
        client_id=client.id,
        intervention=intervention,
        finding=finding,
        recorded_at=now,
        tracker=tracker,
    )


def record_outreach(client: ClientRecord, intervention: str, finding: str, tracker: Optional[str], now: datetime) -> ClientRecord:
    """Append one outreach record; earlier entries are carried over untouched. Status is not touched."""
    entry = build_tracking_entry(client, intervention, finding, tracker, now)
    logger.info("client_outreach_recorded", client_id=client.id, tracker=tracker, history_length=len(client.tracking_history) + 1)
    return client.model_copy(update={"tracking_history": client.tracking_history + (entry,)})

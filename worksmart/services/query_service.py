# worksmart/services/query_service.py
"""Read-side views over a facility's client snapshot. Nothing here touches storage or the clock."""
from collections import Counter
from typing import Iterable, List, Optional, Union

from ..errors import ValidationError
from ..models import ClientStatus
from ..schemas import ClientRecord, DashboardStatsResponse, StatusCountsResponse
from .due_dates import DateLike
from .timeframes import TimeWindow, classify_window, is_notifiable


def parse_window(value: Union[str, TimeWindow]) -> TimeWindow:
    try:
        return TimeWindow(value)
    except ValueError:
        allowed = ", ".join(w.value for w in TimeWindow)
        raise ValidationError(f"Unknown window '{value}'. Expected one of: {allowed}", field="window")


def due_in_window(clients: Iterable[ClientRecord], window: Union[str, TimeWindow], today: DateLike) -> List[ClientRecord]:
    window = parse_window(window)
    return [c for c in clients if classify_window(c, window, today)]


def search_clients(clients: Iterable[ClientRecord], text: Optional[str]) -> List[ClientRecord]:
    """Case-insensitive substring match on name, ART number or address."""
    clients = list(clients)
    # Surrounding spaces are part of the query; only a blank query matches everything
    query = (text or "").lower()
    if not query.strip():
        return clients

    def matches(client: ClientRecord) -> bool:
        return any(
            query in (value or "").lower()
            for value in (client.name, client.art_number, client.address)
        )

    return [c for c in clients if matches(c)]


def _notification_sort_key(client: ClientRecord):
    # Records without an id sort last among equal due dates
    return (client.next_pharmacy_due_date, client.id is None, client.id or 0)


def notifications(clients: Iterable[ClientRecord], today: DateLike) -> List[ClientRecord]:
    """Active clients due for pickup within the alerting horizon, soonest first."""
    due = [
        c for c in clients
        if c.is_active and is_notifiable(c.next_pharmacy_due_date, today)
    ]
    return sorted(due, key=_notification_sort_key)


def status_counts(clients: Iterable[ClientRecord]) -> StatusCountsResponse:
    clients = list(clients)
    counts = Counter((c.status or ClientStatus.active).value for c in clients)
    active = sum(1 for c in clients if c.is_active)
    return StatusCountsResponse(
        counts=dict(counts),
        active=active,
        inactive=len(clients) - active,
        total=len(clients),
    )


def dashboard_stats(clients: Iterable[ClientRecord], today: DateLike) -> DashboardStatsResponse:
    clients = list(clients)
    active = sum(1 for c in clients if c.is_active)
    ages = [c.age for c in clients if c.age is not None]
    return DashboardStatsResponse(
        total_clients=len(clients),
        active_clients=active,
        inactive_clients=len(clients) - active,
        average_age=round(sum(ages) / len(ages), 1) if ages else None,
        late_pharmacy_pickups=len(due_in_window(clients, TimeWindow.late, today)),
        notifications=len(notifications(clients, today)),
    )

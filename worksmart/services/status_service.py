# worksmart/services/status_service.py
"""
Treatment-status transitions.

Any status may follow any other unless terminal statuses are enforced, in
which case a client recorded as Dead or Transferred Out stays there. A
transition always rewrites status, details and timestamp together; the
activity flag is derived from the status and never stored separately.
"""
from datetime import datetime
from typing import Optional, Union

import structlog

from ..errors import ValidationError
from ..models import ClientStatus
from ..schemas import ClientRecord

logger = structlog.get_logger(__name__)

DETAIL_REQUIRED_STATUSES = frozenset({ClientStatus.dead, ClientStatus.transfer_out})
TERMINAL_STATUSES = frozenset({ClientStatus.dead, ClientStatus.transfer_out})


def parse_status(value: Union[str, ClientStatus, None]) -> ClientStatus:
    if isinstance(value, ClientStatus):
        return value
    try:
        return ClientStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ClientStatus)
        raise ValidationError(f"Unknown status '{value}'. Expected one of: {allowed}", field="status")


def allowed_transitions(current: ClientStatus, enforce_terminal: bool = False) -> frozenset:
    if enforce_terminal and current in TERMINAL_STATUSES:
        return frozenset()
    return frozenset(ClientStatus)


def apply_status(
    client: ClientRecord,
    new_status: Union[str, ClientStatus],
    details: Optional[str],
    now: datetime,
    enforce_terminal: bool = False,
) -> ClientRecord:
    """Return a copy of ``client`` with the transition applied, or raise ValidationError."""
    status = parse_status(new_status)
    details = details or ""

    if status in DETAIL_REQUIRED_STATUSES and not details.strip():
        raise ValidationError(f"Details are required when setting status to '{status.value}'", field="details")

    if status not in allowed_transitions(client.status, enforce_terminal):
        raise ValidationError(
            f"Client status '{client.status.value}' is terminal and cannot change to '{status.value}'",
            field="status",
        )

    logger.info(
        "client_status_transition",
        client_id=client.id,
        from_status=client.status.value,
        to_status=status.value,
    )
    return client.model_copy(update={
        "status": status,
        "status_details": details,
        "status_date": now,
    })

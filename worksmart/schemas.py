# worksmart/schemas.py
from datetime import datetime, date, timezone
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field, computed_field, field_validator

from .models import ClientStatus


def _ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything stored is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# --- Base Schemas ---
class BaseSchema(BaseModel):
    class Config:
        from_attributes = True


class Coordinates(BaseSchema):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


# --- Facility Schemas ---
class FacilityBase(BaseSchema):
    name: str = Field(..., min_length=1, max_length=200)


class FacilityCreate(FacilityBase):
    pass


class FacilityUpdate(FacilityBase):
    pass


class FacilityResponse(FacilityBase):
    id: int
    created_at: Optional[datetime] = None

    normalize_timestamps = field_validator("created_at")(_ensure_utc)


# --- Outreach Schemas ---
class TrackingEntryCreate(BaseSchema):
    intervention: str
    finding: str


class TrackingEntry(BaseSchema):
    """One outreach attempt as the engine sees it. Immutable once built."""
    id: Optional[int] = None
    client_id: Optional[int] = None
    intervention: str
    finding: str
    recorded_at: datetime
    tracker: Optional[str] = None

    class Config:
        from_attributes = True
        frozen = True

    normalize_timestamps = field_validator("recorded_at")(_ensure_utc)


# --- Client Schemas ---
class ClientFields(BaseSchema):
    art_number: Optional[str] = Field(None, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    age: Optional[int] = Field(None, ge=0, le=150)
    address: Optional[str] = None
    contact: Optional[str] = Field(None, max_length=100)
    last_drug_pickup: Optional[date] = None
    last_vl_collection: Optional[date] = None
    coordinates: Optional[Coordinates] = None


class ClientCreate(ClientFields):
    # Explicit overrides; when absent the due dates are derived from the events
    next_pharmacy_due_date: Optional[date] = None
    next_vl_due_date: Optional[date] = None


class ClientUpdate(BaseSchema):
    art_number: Optional[str] = Field(None, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    age: Optional[int] = Field(None, ge=0, le=150)
    address: Optional[str] = None
    contact: Optional[str] = Field(None, max_length=100)
    last_drug_pickup: Optional[date] = None
    last_vl_collection: Optional[date] = None
    next_pharmacy_due_date: Optional[date] = None
    next_vl_due_date: Optional[date] = None
    coordinates: Optional[Coordinates] = None


class ClientRecord(ClientFields):
    """
    Snapshot of a client. The engine never mutates one: every operation
    returns a fresh copy built with ``model_copy``.
    """
    id: Optional[int] = None
    facility_id: Optional[int] = None
    next_pharmacy_due_date: Optional[date] = None
    next_vl_due_date: Optional[date] = None
    status: ClientStatus = ClientStatus.active
    status_details: Optional[str] = None
    status_date: Optional[datetime] = None
    tracking_history: Tuple[TrackingEntry, ...] = ()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        frozen = True

    normalize_timestamps = field_validator("status_date", "created_at", "updated_at")(_ensure_utc)

    @field_validator("status", mode="before")
    @classmethod
    def default_missing_status(cls, v):
        return ClientStatus.active if v is None else v

    @computed_field
    @property
    def is_active(self) -> bool:
        return self.status == ClientStatus.active


class StatusUpdate(BaseSchema):
    # Plain string so an unknown value surfaces as a transition error, not a schema error
    status: str
    details: Optional[str] = ""


# --- Import Schemas ---
class ImportRequest(BaseSchema):
    rows: List[Dict[str, Any]]


class ImportWarningResponse(BaseSchema):
    row_number: Optional[int] = None
    missing_fields: List[str] = []
    message: str


class ImportReport(BaseSchema):
    imported: int
    rejected: int
    client_ids: List[int] = []
    warnings: List[ImportWarningResponse] = []


# --- Report Schemas ---
class DashboardStatsResponse(BaseSchema):
    total_clients: int
    active_clients: int
    inactive_clients: int
    average_age: Optional[float] = None
    late_pharmacy_pickups: int
    notifications: int


class StatusCountsResponse(BaseSchema):
    counts: Dict[str, int]
    active: int
    inactive: int
    total: int


class EscalationResponse(BaseSchema):
    client_id: Optional[int] = None
    last_drug_pickup: Optional[date] = None
    days_since_pickup: Optional[int] = None
    step: Optional[int] = None
    tracking_day: Optional[int] = None

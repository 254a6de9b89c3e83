# worksmart/crud.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.exc import SQLAlchemyError
import structlog

from . import models, schemas
from .errors import NotFoundError, StorageError, ValidationError
from .services import escalation_service, status_service
from .services.due_dates import apply_event_changes, compute_due_dates

logger = structlog.get_logger(__name__)


def _storage_failure(db: Session, operation: str, exc: Exception) -> StorageError:
    db.rollback()
    if isinstance(exc, StaleDataError):
        logger.warning("storage_conflict", operation=operation, error=str(exc))
        return StorageError(f"{operation}: the record was changed by another user, reload and try again")
    logger.error("storage_failure", operation=operation, error=str(exc))
    return StorageError(f"{operation}: database error")


def to_record(db_client: models.Client) -> schemas.ClientRecord:
    return schemas.ClientRecord.model_validate(db_client)


def _coordinate_columns(coordinates) -> dict:
    if coordinates is None:
        return {"latitude": None, "longitude": None}
    if isinstance(coordinates, dict):
        return {"latitude": coordinates["latitude"], "longitude": coordinates["longitude"]}
    return {"latitude": coordinates.latitude, "longitude": coordinates.longitude}


# ==================== FACILITY CRUD OPERATIONS ====================

def get_facility(db: Session, facility_id: int) -> models.Facility:
    try:
        facility = db.query(models.Facility).filter(models.Facility.id == facility_id).first()
    except SQLAlchemyError as e:
        raise _storage_failure(db, "get_facility", e)
    if facility is None:
        raise NotFoundError("Facility", facility_id)
    return facility


def get_facilities(db: Session, skip: int = 0, limit: int = 100) -> List[models.Facility]:
    try:
        return db.query(models.Facility).order_by(models.Facility.name, models.Facility.id).offset(skip).limit(limit).all()
    except SQLAlchemyError as e:
        raise _storage_failure(db, "get_facilities", e)


def create_facility(db: Session, facility: schemas.FacilityCreate) -> models.Facility:
    db_facility = models.Facility(name=facility.name.strip())
    try:
        db.add(db_facility)
        db.commit()
        db.refresh(db_facility)
    except SQLAlchemyError as e:
        raise _storage_failure(db, "create_facility", e)
    logger.info("facility_created", facility_id=db_facility.id, name=db_facility.name)
    return db_facility


def update_facility(db: Session, facility_id: int, facility_update: schemas.FacilityUpdate) -> models.Facility:
    db_facility = get_facility(db, facility_id)
    db_facility.name = facility_update.name.strip()
    try:
        db.commit()
        db.refresh(db_facility)
    except SQLAlchemyError as e:
        raise _storage_failure(db, "update_facility", e)
    return db_facility


def delete_facility(db: Session, facility_id: int) -> None:
    """Deletes the facility together with all of its clients and their outreach history."""
    db_facility = get_facility(db, facility_id)
    try:
        db.delete(db_facility)
        db.commit()
    except SQLAlchemyError as e:
        raise _storage_failure(db, "delete_facility", e)
    logger.info("facility_deleted", facility_id=facility_id)


# ==================== CLIENT CRUD OPERATIONS ====================

def get_client_row(db: Session, facility_id: int, client_id: int) -> models.Client:
    try:
        db_client = db.query(models.Client).filter(
            models.Client.id == client_id,
            models.Client.facility_id == facility_id,
        ).first()
    except SQLAlchemyError as e:
        raise _storage_failure(db, "get_client", e)
    if db_client is None:
        raise NotFoundError("Client", client_id)
    return db_client


def get_client(db: Session, facility_id: int, client_id: int) -> schemas.ClientRecord:
    return to_record(get_client_row(db, facility_id, client_id))


def list_client_records(db: Session, facility_id: int, active_only: bool = False) -> List[schemas.ClientRecord]:
    """Snapshot of a facility's client collection, in creation order."""
    get_facility(db, facility_id)
    try:
        query = db.query(models.Client).filter(models.Client.facility_id == facility_id)
        if active_only:
            query = query.filter(models.Client.is_active)
        return [to_record(c) for c in query.order_by(models.Client.id).all()]
    except SQLAlchemyError as e:
        raise _storage_failure(db, "list_clients", e)


def _new_client_row(facility_id: int, client: schemas.ClientCreate) -> models.Client:
    due = compute_due_dates(
        client.last_drug_pickup,
        client.last_vl_collection,
        pharmacy_override=client.next_pharmacy_due_date,
        vl_override=client.next_vl_due_date,
    )
    return models.Client(
        facility_id=facility_id,
        art_number=client.art_number,
        name=client.name,
        age=client.age,
        address=client.address,
        contact=client.contact,
        last_drug_pickup=client.last_drug_pickup,
        last_vl_collection=client.last_vl_collection,
        next_pharmacy_due_date=due.next_pharmacy_due_date,
        next_vl_due_date=due.next_vl_due_date,
        status=models.ClientStatus.active,
        **_coordinate_columns(client.coordinates),
    )


def create_client(db: Session, facility_id: int, client: schemas.ClientCreate) -> schemas.ClientRecord:
    get_facility(db, facility_id)
    db_client = _new_client_row(facility_id, client)
    try:
        db.add(db_client)
        db.commit()
        db.refresh(db_client)
    except SQLAlchemyError as e:
        raise _storage_failure(db, "create_client", e)
    logger.info("client_created", facility_id=facility_id, client_id=db_client.id)
    return to_record(db_client)


def update_client(db: Session, facility_id: int, client_id: int, client_update: schemas.ClientUpdate) -> schemas.ClientRecord:
    """
    Field edits. Changing an event date recomputes its due date unless one is
    supplied alongside; clearing a due date falls back to the derived one.
    """
    db_client = get_client_row(db, facility_id, client_id)
    stored_events = {
        "last_drug_pickup": db_client.last_drug_pickup,
        "last_vl_collection": db_client.last_vl_collection,
    }
    changes = apply_event_changes(client_update.model_dump(exclude_unset=True), stored_events)
    if "name" in changes and not changes["name"]:
        raise ValidationError("Client name cannot be empty", field="name")

    for key, value in changes.items():
        if key == "coordinates":
            for column, column_value in _coordinate_columns(value).items():
                setattr(db_client, column, column_value)
        else:
            setattr(db_client, key, value)

    try:
        db.commit()
        db.refresh(db_client)
    except SQLAlchemyError as e:
        raise _storage_failure(db, "update_client", e)
    return to_record(db_client)


def delete_client(db: Session, facility_id: int, client_id: int) -> None:
    db_client = get_client_row(db, facility_id, client_id)
    try:
        db.delete(db_client)
        db.commit()
    except SQLAlchemyError as e:
        raise _storage_failure(db, "delete_client", e)
    logger.info("client_deleted", facility_id=facility_id, client_id=client_id)


def transition_client_status(
    db: Session,
    facility_id: int,
    client_id: int,
    new_status: str,
    details: Optional[str],
    now: datetime,
    enforce_terminal: bool = False,
) -> schemas.ClientRecord:
    """
    Apply a status transition as one versioned UPDATE of status, details and
    date. A rejected transition or a lost race leaves the stored row as it was.
    """
    db_client = get_client_row(db, facility_id, client_id)
    updated = status_service.apply_status(to_record(db_client), new_status, details, now, enforce_terminal)

    db_client.status = updated.status
    db_client.status_details = updated.status_details
    db_client.status_date = updated.status_date
    try:
        db.commit()
        db.refresh(db_client)
    except SQLAlchemyError as e:
        raise _storage_failure(db, "transition_status", e)
    return to_record(db_client)


def append_tracking_entry(
    db: Session,
    facility_id: int,
    client_id: int,
    intervention: str,
    finding: str,
    tracker: Optional[str],
    now: datetime,
) -> schemas.ClientRecord:
    """Insert one outreach row. Existing rows are never rewritten, so concurrent appends cannot clobber each other."""
    db_client = get_client_row(db, facility_id, client_id)
    updated = escalation_service.record_outreach(to_record(db_client), intervention, finding, tracker, now)
    entry = updated.tracking_history[-1]

    try:
        db.add(models.TrackingEntry(
            client_id=db_client.id,
            intervention=entry.intervention,
            finding=entry.finding,
            recorded_at=entry.recorded_at,
            tracker=entry.tracker,
        ))
        db.commit()
        db.refresh(db_client)
    except SQLAlchemyError as e:
        raise _storage_failure(db, "append_tracking_entry", e)
    return to_record(db_client)


def list_tracking_entries(db: Session, facility_id: int, client_id: int, skip: int = 0, limit: int = 100) -> List[models.TrackingEntry]:
    get_client_row(db, facility_id, client_id)
    try:
        return db.query(models.TrackingEntry).filter(
            models.TrackingEntry.client_id == client_id
        ).order_by(models.TrackingEntry.id).offset(skip).limit(limit).all()
    except SQLAlchemyError as e:
        raise _storage_failure(db, "list_tracking_entries", e)


def bulk_import_clients(db: Session, facility_id: int, clients: List[schemas.ClientCreate]) -> List[int]:
    """Insert reconciled rows as new clients; each gets its own id, none depends on another."""
    get_facility(db, facility_id)
    rows = [_new_client_row(facility_id, c) for c in clients]
    try:
        db.add_all(rows)
        db.commit()
    except SQLAlchemyError as e:
        raise _storage_failure(db, "bulk_import_clients", e)
    ids = [row.id for row in rows]
    logger.info("clients_imported", facility_id=facility_id, count=len(ids))
    return ids

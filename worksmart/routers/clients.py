# worksmart/routers/clients.py
from fastapi import APIRouter, Depends, File, Response, UploadFile, status
from sqlalchemy.orm import Session
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .. import crud, schemas, security
from ..clock import Clock, get_clock
from ..config import Settings, get_settings
from ..database import get_db
from ..errors import ValidationError
from ..permissions import Action
from ..services import escalation_service, import_service, query_service

router = APIRouter(
    prefix="/facilities/{facility_id}/clients",
    tags=["Clients"],
    dependencies=[Depends(security.get_current_staff)],
    responses={404: {"description": "Not found"}},
)


def _import_rows(db: Session, facility_id: int, rows: Iterable[Mapping[str, Any]], settings: Settings, start: int) -> schemas.ImportReport:
    # Fail on an unknown facility before doing any row work
    crud.get_facility(db, facility_id)
    plan = import_service.reconcile_rows(
        rows,
        strict=settings.strict_import,
        date_formats=settings.import_date_formats,
        start=start,
    )
    client_ids = crud.bulk_import_clients(db, facility_id, plan.clients) if plan.clients else []
    return schemas.ImportReport(
        imported=len(client_ids),
        rejected=plan.rejected,
        client_ids=client_ids,
        warnings=[
            schemas.ImportWarningResponse(row_number=w.row_number, missing_fields=w.missing_fields, message=w.message)
            for w in plan.warnings
        ],
    )


@router.post("", response_model=schemas.ClientRecord, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(security.require_permission(Action.create_client))])
def create_new_client(facility_id: int, client: schemas.ClientCreate, db: Session = Depends(get_db)):
    """
    Register a client. Due dates not given explicitly are derived from the
    last pickup and viral-load dates. New clients always start Active.
    """
    return crud.create_client(db, facility_id, client)


@router.get("", response_model=List[schemas.ClientRecord])
def read_clients(facility_id: int, search: Optional[str] = None, db: Session = Depends(get_db)):
    """All clients of the facility, optionally filtered by name, ART number or address."""
    return query_service.search_clients(crud.list_client_records(db, facility_id), search)


@router.post("/import", response_model=schemas.ImportReport,
             dependencies=[Depends(security.require_permission(Action.import_clients))])
def import_clients(
    facility_id: int,
    payload: schemas.ImportRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return _import_rows(db, facility_id, payload.rows, settings, start=1)


@router.post("/import/csv", response_model=schemas.ImportReport,
             dependencies=[Depends(security.require_permission(Action.import_clients))])
def import_clients_csv(
    facility_id: int,
    upload_file: UploadFile = File(...),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    try:
        rows: List[Dict[str, Any]] = import_service.read_csv_rows(upload_file.file.read())
    except UnicodeDecodeError:
        raise ValidationError("CSV file must be UTF-8 encoded", field="upload_file")
    # Row 1 is the header line
    return _import_rows(db, facility_id, rows, settings, start=2)


@router.get("/{client_id}", response_model=schemas.ClientRecord)
def read_client(facility_id: int, client_id: int, db: Session = Depends(get_db)):
    return crud.get_client(db, facility_id, client_id)


@router.put("/{client_id}", response_model=schemas.ClientRecord,
            dependencies=[Depends(security.require_permission(Action.edit_client))])
def update_client_details(facility_id: int, client_id: int, payload: schemas.ClientUpdate, db: Session = Depends(get_db)):
    return crud.update_client(db, facility_id, client_id, payload)


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT,
               dependencies=[Depends(security.require_permission(Action.delete_client))])
def delete_client(facility_id: int, client_id: int, db: Session = Depends(get_db)):
    crud.delete_client(db, facility_id, client_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{client_id}/status", response_model=schemas.ClientRecord,
             dependencies=[Depends(security.require_permission(Action.update_status))])
def update_client_status(
    facility_id: int,
    client_id: int,
    payload: schemas.StatusUpdate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
):
    return crud.transition_client_status(
        db, facility_id, client_id,
        new_status=payload.status,
        details=payload.details,
        now=clock.now(),
        enforce_terminal=settings.enforce_terminal_statuses,
    )


@router.post("/{client_id}/tracking", response_model=schemas.ClientRecord, status_code=status.HTTP_201_CREATED)
def record_client_outreach(
    facility_id: int,
    client_id: int,
    payload: schemas.TrackingEntryCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    staff: security.StaffContext = Depends(security.require_permission(Action.record_outreach)),
):
    """Append an outreach attempt. The acting staff member is recorded as the tracker."""
    return crud.append_tracking_entry(
        db, facility_id, client_id,
        intervention=payload.intervention,
        finding=payload.finding,
        tracker=staff.identity,
        now=clock.now(),
    )


@router.get("/{client_id}/tracking", response_model=List[schemas.TrackingEntry])
def read_client_tracking(facility_id: int, client_id: int, skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    return crud.list_tracking_entries(db, facility_id, client_id, skip=skip, limit=limit)


@router.get("/{client_id}/escalation", response_model=schemas.EscalationResponse)
def read_client_escalation(facility_id: int, client_id: int, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """Current outreach tier, derived from days since the last drug pickup."""
    return escalation_service.escalation_summary(crud.get_client(db, facility_id, client_id), clock.today())

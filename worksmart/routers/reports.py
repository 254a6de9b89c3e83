# worksmart/routers/reports.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from .. import crud, schemas, security
from ..clock import Clock, get_clock
from ..database import get_db
from ..permissions import Action
from ..services import query_service
from ..services.timeframes import TimeWindow

router = APIRouter(
    prefix="/facilities/{facility_id}",
    tags=["Reports"],
    dependencies=[Depends(security.require_permission(Action.view_reports))],
    responses={404: {"description": "Not found"}},
)


@router.get("/reports/due", response_model=List[schemas.ClientRecord])
def pharmacy_due_report(
    facility_id: int,
    window: TimeWindow = Query(TimeWindow.today),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Active clients whose next pharmacy pickup falls in the requested window."""
    return query_service.due_in_window(crud.list_client_records(db, facility_id, active_only=True), window, clock.today())


@router.get("/notifications", response_model=List[schemas.ClientRecord])
def read_notifications(facility_id: int, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    return query_service.notifications(crud.list_client_records(db, facility_id, active_only=True), clock.today())


@router.get("/dashboard", response_model=schemas.DashboardStatsResponse)
def read_dashboard(facility_id: int, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    return query_service.dashboard_stats(crud.list_client_records(db, facility_id), clock.today())


@router.get("/reports/tx-curr", response_model=schemas.StatusCountsResponse)
def tx_curr_report(facility_id: int, db: Session = Depends(get_db)):
    """Current-on-treatment tally: clients per status plus active/inactive totals."""
    return query_service.status_counts(crud.list_client_records(db, facility_id))

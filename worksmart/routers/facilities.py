# worksmart/routers/facilities.py
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from typing import List

from .. import crud, schemas, security
from ..database import get_db
from ..permissions import Action

router = APIRouter(
    prefix="/facilities",
    tags=["Facilities"],
    dependencies=[Depends(security.get_current_staff)],
    responses={404: {"description": "Not found"}},
)


@router.post("", response_model=schemas.FacilityResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(security.require_permission(Action.manage_facilities))])
def create_facility(facility: schemas.FacilityCreate, db: Session = Depends(get_db)):
    return crud.create_facility(db, facility)


@router.get("", response_model=List[schemas.FacilityResponse])
def read_facilities(skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    return crud.get_facilities(db, skip=skip, limit=limit)


@router.get("/{facility_id}", response_model=schemas.FacilityResponse)
def read_facility(facility_id: int, db: Session = Depends(get_db)):
    return crud.get_facility(db, facility_id)


@router.put("/{facility_id}", response_model=schemas.FacilityResponse,
            dependencies=[Depends(security.require_permission(Action.manage_facilities))])
def rename_facility(facility_id: int, facility: schemas.FacilityUpdate, db: Session = Depends(get_db)):
    return crud.update_facility(db, facility_id, facility)


@router.delete("/{facility_id}", status_code=status.HTTP_204_NO_CONTENT,
               dependencies=[Depends(security.require_permission(Action.manage_facilities))])
def delete_facility(facility_id: int, db: Session = Depends(get_db)):
    """
    Remove a facility. Every client registered there, and their outreach
    history, goes with it.
    """
    crud.delete_facility(db, facility_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

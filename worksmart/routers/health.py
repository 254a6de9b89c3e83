# worksmart/routers/health.py
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..clock import Clock, get_clock
from ..config import Settings, get_settings
from ..database import get_db
from ..errors import StorageError

router = APIRouter(
    prefix="/health",
    tags=["Health Checks"],
    responses={404: {"description": "Not found"}},
)


@router.get("")
def health_check(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
):
    """Liveness plus a round trip to the database."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        raise StorageError(f"database unreachable: {e.__class__.__name__}")
    return {
        "status": "ok",
        "service": settings.app_name,
        "version": settings.app_version,
        "time": clock.now().isoformat(),
        "today": clock.today().isoformat(),
    }

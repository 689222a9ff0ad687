from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional, Union

from leaveflow.database.session import get_db
from leaveflow.core.dependencies import get_current_user, get_current_hr
from leaveflow.schemas.holiday import HolidayCreate, HolidayOut
from leaveflow.services import holiday_service

router = APIRouter(prefix="/leave/holidays", tags=["Leave Holidays"])


# ─── LIST ──────────────────────────────────────────────────────────────────────
@router.get("", response_model=list[HolidayOut])
def list_holidays(
    location: Optional[str] = Query(default=None),
    year: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return holiday_service.get_all_holidays(db, location=location, year=year)


# ─── UPSERT ────────────────────────────────────────────────────────────────────
@router.post("", response_model=list[HolidayOut])
def upsert_holidays(
    data: Union[HolidayCreate, list[HolidayCreate]],
    db: Session = Depends(get_db),
    current_user=Depends(get_current_hr),
):
    items = data if isinstance(data, list) else [data]
    return holiday_service.upsert_holidays(db, items)


# ─── DELETE ────────────────────────────────────────────────────────────────────
@router.delete("/{holiday_id}", status_code=204)
def delete_holiday(
    holiday_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_hr),
):
    holiday_service.delete_holiday(db, holiday_id)

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from leaveflow.core.dependencies import get_current_hr
from leaveflow.database.session import get_db
from leaveflow.models.user import User
from leaveflow.schemas.leave import DataQualityItem, PayrollFeedItem
from leaveflow.services import leave_report_service

router = APIRouter(prefix="/leave", tags=["Leave Reports"])


@router.get("/payroll-feed", response_model=list[PayrollFeedItem])
def payroll_feed(
    from_date: Optional[date] = Query(default=None, alias="from"),
    to_date: Optional[date] = Query(default=None, alias="to"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_hr)
):
    return leave_report_service.payroll_feed(db, from_date, to_date)


@router.get("/data-quality", response_model=list[DataQualityItem])
def data_quality(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_hr)
):
    return leave_report_service.data_quality_report(db)

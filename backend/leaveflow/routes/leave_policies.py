from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from leaveflow.core.dependencies import get_current_hr, get_current_user, is_hr
from leaveflow.core.validation import forbidden, not_found
from leaveflow.database.session import get_db
from leaveflow.models.user import User
from leaveflow.schemas.user import UserBrief
from leaveflow.schemas.leave import (
    LeavePolicyOut,
    LeavePolicyUpsert,
    LeaveTypeCreate,
    LeaveTypeEligibilityOut,
    LeaveTypeOut,
    PolicySimulationOut,
)
from leaveflow.services import policy_service
from leaveflow.services.eligibility_service import simulate_leave_types

router = APIRouter(prefix="/leave", tags=["Leave Policies"])


# -------- POLICIES --------
@router.get("/policies", response_model=list[LeavePolicyOut])
def list_policies(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return policy_service.list_policies(db)


@router.post("/policies", response_model=LeavePolicyOut)
def upsert_policy(
    payload: LeavePolicyUpsert,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_hr)
):
    return policy_service.upsert_policy(db, payload)


# -------- LEAVE TYPES --------
@router.get("/types", response_model=list[LeaveTypeEligibilityOut])
def list_leave_types(
    start_date: Optional[date] = Query(default=None),
    days: int = Query(default=1, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return simulate_leave_types(db, current_user, start_date=start_date, days_count=days)


@router.post("/types", response_model=LeaveTypeOut, status_code=201)
def create_leave_type(
    payload: LeaveTypeCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_hr)
):
    return policy_service.create_leave_type(db, payload)


# -------- SIMULATION --------
@router.get("/policy-simulation", response_model=PolicySimulationOut)
def policy_simulation(
    start_date: Optional[date] = Query(default=None),
    days: int = Query(default=1, ge=1),
    user_id: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    employee = current_user
    if user_id is not None and user_id != current_user.id:
        if not is_hr(current_user):
            raise forbidden("Only HR can simulate leave policies for another employee")
        employee = db.query(User).filter(User.id == user_id).first()
        if not employee:
            raise not_found("Employee not found")

    start_date = start_date or date.today()
    return {
        "employee": UserBrief.model_validate(employee),
        "start_date": start_date,
        "days_count": days,
        "data": simulate_leave_types(db, employee, start_date=start_date, days_count=days),
    }

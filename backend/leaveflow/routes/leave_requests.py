from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from leaveflow.core.dependencies import get_current_user, is_hr
from leaveflow.core.validation import forbidden
from leaveflow.database.session import get_db
from leaveflow.models.user import User
from leaveflow.schemas.leave import (
    LeaveBalanceOut,
    LeaveRequestCreate,
    LeaveRequestDetail,
    LeaveRequestListOut,
    LeaveRequestUpdate,
)
from leaveflow.services import leave_balance_service, leave_request_service

router = APIRouter(prefix="/leave", tags=["Leave Requests"])


def _balance_owner(user_id: Optional[int], current_user: User) -> int:
    if user_id is None or user_id == current_user.id:
        return current_user.id
    if not is_hr(current_user):
        raise forbidden("You can only view your own leave balances")
    return user_id


# ======================================
# LIST (own, relieving, supervising; HR sees all)
# ======================================
@router.get("/requests", response_model=LeaveRequestListOut)
def list_requests(
    status: Optional[str] = Query(default=None),
    user_id: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    requests = leave_request_service.list_leave_requests(db, current_user, status=status, user_id=user_id)
    balances = leave_balance_service.list_balances(db, _balance_owner(user_id, current_user))
    return {
        "requests": [leave_request_service.to_detail(item) for item in requests],
        "balances": [LeaveBalanceOut.model_validate(item) for item in balances],
    }


# ======================================
# SUBMIT
# ======================================
@router.post("/requests", response_model=LeaveRequestDetail, status_code=201)
def create_request(
    payload: LeaveRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    leave_request = leave_request_service.create_leave_request(db, current_user, payload)
    return leave_request_service.to_detail(leave_request)


# ======================================
# AMEND (requester, before the reliever acts)
# ======================================
@router.put("/requests", response_model=LeaveRequestDetail)
def update_request(
    payload: LeaveRequestUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    leave_request = leave_request_service.update_leave_request(db, current_user, payload)
    return leave_request_service.to_detail(leave_request)


# ======================================
# DELETE (requester, before the reliever acts)
# ======================================
@router.delete("/requests")
def delete_request(
    id: int = Query(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    leave_request_service.delete_leave_request(db, current_user, id)
    return {"message": "Leave request deleted successfully"}


# ======================================
# BALANCES
# ======================================
@router.get("/balances", response_model=list[LeaveBalanceOut])
def list_balances(
    user_id: Optional[int] = Query(default=None),
    year: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return leave_balance_service.list_balances(db, _balance_owner(user_id, current_user), year=year)

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from leaveflow.core.dependencies import get_current_hr, get_current_user
from leaveflow.database.session import get_db
from leaveflow.models.user import User
from leaveflow.schemas.leave import (
    ApprovalSlaPolicyOut,
    ApprovalSlaPolicyUpsert,
    LeaveDecisionRequest,
    LeaveQueueItem,
    LeaveRequestDetail,
)
from leaveflow.services import leave_approval_service
from leaveflow.services.leave_request_service import to_detail

router = APIRouter(prefix="/leave", tags=["Leave Approvals"])


@router.post("/approve", response_model=LeaveRequestDetail)
def decide_request(
    payload: LeaveDecisionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    leave_request = leave_approval_service.decide(db, current_user, payload)
    return to_detail(leave_request)


@router.get("/queue", response_model=list[LeaveQueueItem])
def approval_queue(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return leave_approval_service.get_queue(db, current_user)


# -------- SLA --------
@router.get("/sla", response_model=list[ApprovalSlaPolicyOut])
def list_sla_policies(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return leave_approval_service.list_sla_policies(db)


@router.post("/sla", response_model=ApprovalSlaPolicyOut)
def upsert_sla_policy(
    payload: ApprovalSlaPolicyUpsert,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_hr)
):
    return leave_approval_service.upsert_sla_policy(db, payload)


@router.post("/sla/reminders")
def send_sla_reminders(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_hr)
):
    return leave_approval_service.send_sla_reminders(db, current_user)

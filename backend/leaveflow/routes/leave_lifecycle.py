from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from leaveflow.core.dependencies import get_current_user
from leaveflow.database.session import get_db
from leaveflow.models.user import User
from leaveflow.schemas.leave import LeaveLifecycleAction, LeaveRequestDetail
from leaveflow.services.leave_lifecycle_service import apply_lifecycle_action
from leaveflow.services.leave_request_service import to_detail

router = APIRouter(prefix="/leave", tags=["Leave Lifecycle"])


@router.post("/lifecycle", response_model=LeaveRequestDetail)
def lifecycle_action(
    payload: LeaveLifecycleAction,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    leave_request = apply_lifecycle_action(db, current_user, payload)
    return to_detail(leave_request)

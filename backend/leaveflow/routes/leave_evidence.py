from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from leaveflow.core.dependencies import get_current_hr, get_current_user
from leaveflow.database.session import get_db
from leaveflow.models.user import User
from leaveflow.schemas.leave import LeaveEvidenceCreate, LeaveEvidenceOut, LeaveEvidenceResult, LeaveEvidenceVerify
from leaveflow.services import leave_evidence_service

router = APIRouter(prefix="/leave/evidence", tags=["Leave Evidence"])


@router.post("", response_model=LeaveEvidenceResult, status_code=201)
def upload_evidence(
    payload: LeaveEvidenceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    evidence, promoted = leave_evidence_service.upload_evidence(db, current_user, payload)
    return {
        "evidence": LeaveEvidenceOut.model_validate(evidence),
        "request_status": evidence.leave_request.status,
        "promoted": promoted,
    }


@router.post("/verify", response_model=LeaveEvidenceResult)
def verify_evidence(
    payload: LeaveEvidenceVerify,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_hr)
):
    evidence, promoted = leave_evidence_service.verify_evidence(db, current_user, payload)
    return {
        "evidence": LeaveEvidenceOut.model_validate(evidence),
        "request_status": evidence.leave_request.status,
        "promoted": promoted,
    }

import logging

from sqlalchemy.orm import Session

from leaveflow.core.dependencies import is_hr
from leaveflow.core.validation import bad_request, forbidden, not_found
from leaveflow.models.leave import ACTIVE_STATUSES, LeaveEvidence, LeaveRequest, LeaveStatus
from leaveflow.models.user import User
from leaveflow.schemas.leave import LeaveEvidenceCreate, LeaveEvidenceVerify
from leaveflow.services.leave_request_service import evidence_status, get_leave_request_or_404, notify_approvers
from leaveflow.services.notification_service import hr_user_ids, notify_users
from leaveflow.utils.dates import utcnow

logger = logging.getLogger(__name__)


def promote_if_complete(db: Session, leave_request: LeaveRequest) -> bool:
    """Move a request out of pending_evidence once every required document is verified."""
    if leave_request.status != LeaveStatus.PENDING_EVIDENCE:
        return False

    db.refresh(leave_request)
    _required, missing = evidence_status(leave_request)
    if missing:
        return False

    leave_request.status = LeaveStatus.PENDING
    leave_request.stage_updated_at = utcnow()
    db.commit()
    db.refresh(leave_request)

    logger.info("Leave request %s promoted to pending after evidence verification", leave_request.id)
    notify_approvers(db, leave_request, leave_request.employee, leave_request.leave_type.name)
    return True


def demote_if_incomplete(db: Session, leave_request: LeaveRequest) -> bool:
    """Send a pending request back to pending_evidence when a required document lost its verification."""
    if leave_request.status != LeaveStatus.PENDING:
        return False

    db.refresh(leave_request)
    _required, missing = evidence_status(leave_request)
    if not missing:
        return False

    leave_request.status = LeaveStatus.PENDING_EVIDENCE
    leave_request.stage_updated_at = utcnow()
    db.commit()
    db.refresh(leave_request)

    logger.info("Leave request %s back to pending_evidence; missing %s", leave_request.id, ", ".join(missing))
    return True


def upload_evidence(db: Session, actor: User, data: LeaveEvidenceCreate) -> tuple[LeaveEvidence, bool]:
    leave_request = get_leave_request_or_404(db, data.leave_request_id)

    if leave_request.user_id != actor.id and not is_hr(actor):
        raise forbidden("You can only attach evidence to your own leave requests")
    if leave_request.status not in ACTIVE_STATUSES:
        raise bad_request("Evidence can only be added to pending leave requests")

    evidence = LeaveEvidence(
        leave_request_id=leave_request.id,
        document_type=data.document_type,
        file_url=data.file_url,
        notes=data.notes,
        status="pending",
        uploaded_by=actor.id,
    )
    db.add(evidence)
    db.commit()
    db.refresh(evidence)

    logger.info("Evidence %s (%s) uploaded for leave request %s", evidence.id, evidence.document_type, leave_request.id)

    notify_users(
        db,
        user_ids=[uid for uid in hr_user_ids(db) if uid != actor.id],
        title="Leave evidence awaiting verification",
        message=f"A {evidence.document_type} document was attached to leave request #{leave_request.id}.",
        actor_id=actor.id,
        entity_id=leave_request.id,
        event_type="evidence_uploaded",
    )

    promoted = promote_if_complete(db, leave_request)
    return evidence, promoted


def verify_evidence(db: Session, actor: User, data: LeaveEvidenceVerify) -> tuple[LeaveEvidence, bool]:
    evidence = db.query(LeaveEvidence).filter(LeaveEvidence.id == data.evidence_id).first()
    if not evidence:
        raise not_found("Evidence not found")

    leave_request = evidence.leave_request
    if leave_request.status not in ACTIVE_STATUSES:
        raise bad_request("Evidence can only be reviewed while the leave request is pending")

    evidence.status = data.status
    evidence.verified_by = actor.id
    evidence.verified_at = utcnow()
    if data.notes:
        evidence.notes = data.notes
    db.commit()
    db.refresh(evidence)

    logger.info("Evidence %s marked %s by user %s", evidence.id, evidence.status, actor.id)

    if evidence.status == "rejected":
        notify_users(
            db,
            user_ids=[leave_request.user_id],
            title="Leave evidence rejected",
            message=(
                f"Your {evidence.document_type} document for leave request #{leave_request.id} "
                f"was rejected. {data.notes or 'Please upload a valid document.'}"
            ),
            actor_id=actor.id,
            entity_id=leave_request.id,
            event_type="evidence_rejected",
        )
        demote_if_incomplete(db, leave_request)

    promoted = promote_if_complete(db, leave_request)
    return evidence, promoted

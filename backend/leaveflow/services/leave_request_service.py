"""
Leave request submission, amendment, removal and listing.

Create and amend share one validation pipeline; every step gates the next
and nothing is written or sent until all of them pass.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from leaveflow.core.dependencies import is_hr
from leaveflow.core.validation import bad_request, forbidden, not_found, require_non_empty_text, require_positive_days
from leaveflow.models.leave import (
    ACTIVE_REQUEST_INDEX,
    ACTIVE_STATUSES,
    ApprovalStage,
    LeaveRequest,
    LeaveStatus,
    LeaveType,
)
from leaveflow.models.user import User
from leaveflow.schemas.leave import LeaveRequestCreate, LeaveRequestDetail, LeaveRequestUpdate
from leaveflow.services import leave_balance_service, leave_date_service
from leaveflow.services.eligibility_service import (
    MISSING_EVIDENCE,
    EligibilityResult,
    evaluate_leave_eligibility,
)
from leaveflow.services.notification_service import notify_users
from leaveflow.services.policy_service import ResolvedPolicy, get_leave_policy, get_leave_type_or_404
from leaveflow.services.profile_service import get_supervisor_for_user, resolve_profile_by_identifier
from leaveflow.utils.dates import utcnow

logger = logging.getLogger(__name__)

DUPLICATE_ACTIVE_MESSAGE = (
    "You already have a pending leave request. Please wait for it to be processed "
    "or cancel it before submitting a new one."
)


@dataclass
class ValidatedLeave:
    leave_type: LeaveType
    policy: ResolvedPolicy
    eligibility: EligibilityResult
    start_date: date
    end_date: date
    resume_date: date
    days_count: int
    reliever: User
    supervisor: User

    @property
    def status(self) -> str:
        if self.eligibility.status == MISSING_EVIDENCE:
            return LeaveStatus.PENDING_EVIDENCE
        return LeaveStatus.PENDING


# ─── HELPERS ──────────────────────────────────────────────────────────────────

def resolve_days_count(start_date: date, days_count: Optional[int], end_date: Optional[date]) -> int:
    if days_count is not None:
        return require_positive_days(days_count)
    if end_date is None:
        raise bad_request("Either days_count or end_date is required")
    if end_date < start_date:
        raise bad_request("End date must be after start date")
    return require_positive_days((end_date - start_date).days + 1)


def verified_documents(leave_request: LeaveRequest) -> list[str]:
    return [item.document_type for item in leave_request.evidence if item.status == "verified"]


def evidence_status(leave_request: LeaveRequest) -> tuple[list[str], list[str]]:
    """(required, missing) document types for a request."""
    required = list(leave_request.required_documents or [])
    verified = set(verified_documents(leave_request))
    return required, [doc for doc in required if doc not in verified]


def to_detail(leave_request: LeaveRequest) -> LeaveRequestDetail:
    required, missing = evidence_status(leave_request)
    detail = LeaveRequestDetail.model_validate(leave_request)
    detail.required_documents = required
    detail.missing_documents = missing
    detail.evidence_complete = not missing
    return detail


def get_leave_request_or_404(db: Session, request_id: int, lock: bool = False) -> LeaveRequest:
    q = db.query(LeaveRequest).filter(LeaveRequest.id == request_id)
    if lock:
        q = q.with_for_update()
    leave_request = q.first()
    if not leave_request:
        raise not_found("Leave request not found")
    return leave_request


def _assert_distinct_parties(requester: User, reliever: User, supervisor: User) -> None:
    if reliever.id == requester.id:
        raise bad_request("You cannot select yourself as reliever")
    if supervisor.id == requester.id:
        raise bad_request("You cannot be your own supervisor for a leave request")
    if reliever.id == supervisor.id:
        raise bad_request("Reliever and supervisor must be different people")
    if (reliever.department or "") != (requester.department or ""):
        raise bad_request("Reliever must belong to your department")


def _assert_no_other_active_request(db: Session, requester_id: int, exclude_request_id: Optional[int]) -> None:
    q = db.query(LeaveRequest.id).filter(
        LeaveRequest.user_id == requester_id,
        LeaveRequest.status.in_(ACTIVE_STATUSES),
    )
    if exclude_request_id is not None:
        q = q.filter(LeaveRequest.id != exclude_request_id)
    if q.first():
        logger.info("Duplicate active leave request rejected for user %s", requester_id)
        raise bad_request(DUPLICATE_ACTIVE_MESSAGE)


def validate_leave(
    db: Session,
    *,
    requester: User,
    leave_type_id: int,
    start_date: date,
    days_count: int,
    reliever_identifier: Optional[str] = None,
    current_reliever: Optional[User] = None,
    verified: Iterable[str] = (),
    exclude_request_id: Optional[int] = None,
) -> ValidatedLeave:
    leave_type = get_leave_type_or_404(db, leave_type_id)
    policy = get_leave_policy(db, leave_type.id, leave_type)

    eligibility = evaluate_leave_eligibility(
        db,
        policy=policy,
        requester=requester,
        leave_type=leave_type,
        start_date=start_date,
        days_count=days_count,
        verified_documents=verified,
    )
    if not eligibility.is_eligible:
        logger.info("Leave request not eligible for user %s: %s", requester.id, eligibility.reason)
        raise bad_request(eligibility.reason)

    dates = leave_date_service.compute_leave_dates(
        start_date,
        days_count,
        policy.accrual_mode,
        leave_date_service.holiday_lookup_for(db, requester.work_location),
    )

    if reliever_identifier:
        reliever = resolve_profile_by_identifier(db, reliever_identifier, "Reliever")
    elif current_reliever is not None and current_reliever.is_active:
        reliever = current_reliever
    else:
        raise bad_request("Reliever is required")

    supervisor = get_supervisor_for_user(db, requester)
    _assert_distinct_parties(requester, reliever, supervisor)

    _assert_no_other_active_request(db, requester.id, exclude_request_id)

    leave_date_service.assert_no_overlap(db, requester.id, start_date, dates.end_date, exclude_request_id)
    leave_date_service.assert_not_relieving_others(db, requester.id, start_date, dates.end_date, exclude_request_id)
    leave_date_service.assert_reliever_availability(db, reliever.id, start_date, dates.end_date, exclude_request_id)

    leave_balance_service.assert_sufficient_balance(
        db, requester.id, leave_type.id, start_date.year, days_count, policy
    )

    return ValidatedLeave(
        leave_type=leave_type,
        policy=policy,
        eligibility=eligibility,
        start_date=start_date,
        end_date=dates.end_date,
        resume_date=dates.resume_date,
        days_count=days_count,
        reliever=reliever,
        supervisor=supervisor,
    )


def _violates_one_active_index(exc: IntegrityError) -> bool:
    # PostgreSQL names the index; SQLite only names the indexed column
    message = str(exc.orig)
    return ACTIVE_REQUEST_INDEX in message or "leave_requests.user_id" in message


def _commit_request(db: Session, leave_request: LeaveRequest) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if not _violates_one_active_index(exc):
            raise
        logger.info("Active leave request index rejected write for user %s", leave_request.user_id)
        raise bad_request(DUPLICATE_ACTIVE_MESSAGE)
    db.refresh(leave_request)


def notify_approvers(db: Session, leave_request: LeaveRequest, requester: User, leave_type_name: str) -> None:
    period = f"{leave_request.start_date} to {leave_request.end_date}"
    notify_users(
        db,
        user_ids=[leave_request.reliever_id, leave_request.supervisor_id],
        title="Leave request needs your review",
        message=(
            f"{requester.name} requested {leave_request.days_count} day(s) of {leave_type_name} "
            f"({period}). Reliever approval is the first step."
        ),
        actor_id=requester.id,
        entity_id=leave_request.id,
    )


# ─── CREATE ───────────────────────────────────────────────────────────────────

def create_leave_request(
    db: Session,
    requester: User,
    data: LeaveRequestCreate,
    request_kind: str = "standard",
    original_request_id: Optional[int] = None,
) -> LeaveRequest:
    reason = require_non_empty_text(data.reason, "Reason")
    handover_note = require_non_empty_text(data.handover_note, "Handover note")
    reliever_identifier = require_non_empty_text(data.reliever_identifier, "Reliever")
    days_count = resolve_days_count(data.start_date, data.days_count, data.end_date)

    validated = validate_leave(
        db,
        requester=requester,
        leave_type_id=data.leave_type_id,
        start_date=data.start_date,
        days_count=days_count,
        reliever_identifier=reliever_identifier,
    )

    now = utcnow()
    leave_request = LeaveRequest(
        user_id=requester.id,
        leave_type_id=validated.leave_type.id,
        start_date=validated.start_date,
        end_date=validated.end_date,
        resume_date=validated.resume_date,
        days_count=validated.days_count,
        reason=reason,
        status=validated.status,
        approval_stage=ApprovalStage.RELIEVER,
        stage_updated_at=now,
        reliever_id=validated.reliever.id,
        supervisor_id=validated.supervisor.id,
        handover_note=handover_note,
        handover_checklist_url=data.handover_checklist_url,
        requested_days_mode=validated.policy.accrual_mode,
        request_kind=request_kind,
        original_request_id=original_request_id,
        required_documents=list(validated.eligibility.required_documents),
    )
    db.add(leave_request)
    _commit_request(db, leave_request)

    logger.info(
        "Leave request %s created for user %s with status %s",
        leave_request.id, requester.id, leave_request.status,
    )

    if leave_request.status == LeaveStatus.PENDING:
        notify_approvers(db, leave_request, requester, validated.leave_type.name)

    return leave_request


# ─── AMEND / DELETE ───────────────────────────────────────────────────────────

def _get_editable_request(db: Session, requester: User, request_id: int, action: str) -> LeaveRequest:
    leave_request = get_leave_request_or_404(db, request_id)
    if leave_request.user_id != requester.id:
        raise forbidden(f"You can only {action} your own leave requests")
    if leave_request.status not in ACTIVE_STATUSES or leave_request.approval_stage != ApprovalStage.RELIEVER:
        raise bad_request("Leave requests can only be changed before the reliever has acted on them")
    return leave_request


def update_leave_request(db: Session, requester: User, data: LeaveRequestUpdate) -> LeaveRequest:
    leave_request = _get_editable_request(db, requester, data.id, "edit")
    provided = data.model_dump(exclude_unset=True)

    start_date = data.start_date or leave_request.start_date
    if data.days_count is not None or data.end_date is not None:
        days_count = resolve_days_count(start_date, data.days_count, data.end_date)
    elif "days_count" in provided:
        raise bad_request("Number of days must be greater than zero")
    else:
        days_count = leave_request.days_count

    reason = require_non_empty_text(provided.get("reason", leave_request.reason), "Reason")
    handover_note = require_non_empty_text(provided.get("handover_note", leave_request.handover_note), "Handover note")

    if "reliever_identifier" in provided and not data.reliever_identifier:
        raise bad_request("Reliever is required")

    validated = validate_leave(
        db,
        requester=requester,
        leave_type_id=data.leave_type_id or leave_request.leave_type_id,
        start_date=start_date,
        days_count=days_count,
        reliever_identifier=data.reliever_identifier,
        current_reliever=leave_request.reliever,
        verified=verified_documents(leave_request),
        exclude_request_id=leave_request.id,
    )

    previous_status = leave_request.status
    previous_reliever_id = leave_request.reliever_id

    leave_request.leave_type_id = validated.leave_type.id
    leave_request.start_date = validated.start_date
    leave_request.end_date = validated.end_date
    leave_request.resume_date = validated.resume_date
    leave_request.days_count = validated.days_count
    leave_request.reason = reason
    leave_request.handover_note = handover_note
    if "handover_checklist_url" in provided:
        leave_request.handover_checklist_url = data.handover_checklist_url
    leave_request.reliever_id = validated.reliever.id
    leave_request.supervisor_id = validated.supervisor.id
    leave_request.requested_days_mode = validated.policy.accrual_mode
    leave_request.required_documents = list(validated.eligibility.required_documents)
    leave_request.status = validated.status
    _commit_request(db, leave_request)

    logger.info("Leave request %s amended by user %s", leave_request.id, requester.id)

    reliever_changed = previous_reliever_id != leave_request.reliever_id
    evidence_cleared = previous_status == LeaveStatus.PENDING_EVIDENCE
    if leave_request.status == LeaveStatus.PENDING and (reliever_changed or evidence_cleared):
        notify_approvers(db, leave_request, requester, validated.leave_type.name)

    return leave_request


def delete_leave_request(db: Session, requester: User, request_id: int) -> None:
    leave_request = _get_editable_request(db, requester, request_id, "delete")
    db.delete(leave_request)
    db.commit()
    logger.info("Leave request %s deleted by user %s", request_id, requester.id)


# ─── LIST ─────────────────────────────────────────────────────────────────────

def list_leave_requests(
    db: Session,
    current_user: User,
    status: Optional[str] = None,
    user_id: Optional[int] = None,
) -> list[LeaveRequest]:
    if user_id is not None and user_id != current_user.id and not is_hr(current_user):
        raise forbidden("You can only view your own leave requests")

    q = db.query(LeaveRequest).options(
        joinedload(LeaveRequest.employee),
        joinedload(LeaveRequest.reliever),
        joinedload(LeaveRequest.supervisor),
        joinedload(LeaveRequest.leave_type),
    )

    if user_id is not None:
        q = q.filter(LeaveRequest.user_id == user_id)
    elif not is_hr(current_user):
        q = q.filter(
            or_(
                LeaveRequest.user_id == current_user.id,
                LeaveRequest.reliever_id == current_user.id,
                LeaveRequest.supervisor_id == current_user.id,
            )
        )

    if status:
        q = q.filter(LeaveRequest.status == status)

    return q.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc()).all()

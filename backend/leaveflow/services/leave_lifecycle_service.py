"""
Post-submission actions: withdraw, cancel, extend and early return.
"""
import logging
from datetime import date

from sqlalchemy.orm import Session

from leaveflow.core.dependencies import is_hr
from leaveflow.core.validation import bad_request, forbidden
from leaveflow.models.leave import ACTIVE_STATUSES, ApprovalStage, LeaveRequest, LeaveStatus
from leaveflow.models.user import User
from leaveflow.schemas.leave import LeaveLifecycleAction, LeaveRequestCreate
from leaveflow.services import leave_balance_service, leave_date_service
from leaveflow.services.leave_request_service import create_leave_request, get_leave_request_or_404
from leaveflow.services.notification_service import notify_users
from leaveflow.utils.dates import add_days, utcnow

logger = logging.getLogger(__name__)


def _mark_cancelled(leave_request: LeaveRequest) -> None:
    leave_request.status = LeaveStatus.CANCELLED
    leave_request.approval_stage = ApprovalStage.CANCELLED
    leave_request.stage_updated_at = utcnow()


def withdraw(db: Session, actor: User, leave_request: LeaveRequest, data: LeaveLifecycleAction) -> LeaveRequest:
    if leave_request.user_id != actor.id:
        raise forbidden("Only the requester can withdraw a leave request")
    if leave_request.status not in ACTIVE_STATUSES:
        raise bad_request("Only pending leave requests can be withdrawn")

    was_visible = leave_request.status == LeaveStatus.PENDING
    _mark_cancelled(leave_request)
    leave_request.hr_comment = data.reason
    db.commit()
    db.refresh(leave_request)
    logger.info("Leave request %s withdrawn by user %s", leave_request.id, actor.id)

    if was_visible:
        notify_users(
            db,
            user_ids=[leave_request.reliever_id, leave_request.supervisor_id],
            title="Leave request withdrawn",
            message=f"{actor.name} withdrew the leave request for {leave_request.start_date} to {leave_request.end_date}.",
            actor_id=actor.id,
            entity_id=leave_request.id,
            event_type="leave_withdrawn",
        )
    return leave_request


def cancel(db: Session, actor: User, leave_request: LeaveRequest, data: LeaveLifecycleAction) -> LeaveRequest:
    acting_as_hr = is_hr(actor)
    if leave_request.user_id != actor.id and not acting_as_hr:
        raise forbidden("Only the requester or HR can cancel approved leave")
    if leave_request.status != LeaveStatus.APPROVED:
        raise bad_request("Only approved leave can be cancelled")
    if not acting_as_hr and date.today() >= leave_request.start_date:
        raise bad_request("You can only cancel leave before it starts")

    leave_balance_service.restore_balance(
        db,
        leave_request.user_id,
        leave_request.leave_type_id,
        leave_request.start_date.year,
        leave_request.days_count,
    )
    _mark_cancelled(leave_request)
    leave_request.hr_comment = data.reason or leave_request.hr_comment
    db.commit()
    db.refresh(leave_request)
    logger.info("Approved leave request %s cancelled by user %s", leave_request.id, actor.id)

    recipients = [leave_request.user_id, leave_request.reliever_id, leave_request.supervisor_id]
    notify_users(
        db,
        user_ids=[uid for uid in recipients if uid != actor.id],
        title="Approved leave cancelled",
        message=f"Leave for {leave_request.start_date} to {leave_request.end_date} was cancelled.",
        actor_id=actor.id,
        entity_id=leave_request.id,
        event_type="leave_cancelled",
    )
    return leave_request


def extend(db: Session, actor: User, leave_request: LeaveRequest, data: LeaveLifecycleAction) -> LeaveRequest:
    if leave_request.user_id != actor.id:
        raise forbidden("Only the requester can request an extension")
    if leave_request.status != LeaveStatus.APPROVED:
        raise bad_request("Only approved leave can be extended")
    if not leave_request.reliever_id:
        raise bad_request("The original leave request has no reliever to carry over")

    payload = LeaveRequestCreate(
        leave_type_id=leave_request.leave_type_id,
        start_date=add_days(leave_request.end_date, 1),
        days_count=data.extension_days,
        reason=data.reason or f"Extension of leave request #{leave_request.id}",
        reliever_identifier=str(leave_request.reliever_id),
        handover_note=leave_request.handover_note,
        handover_checklist_url=leave_request.handover_checklist_url,
    )
    extension = create_leave_request(
        db,
        actor,
        payload,
        request_kind="extension",
        original_request_id=leave_request.id,
    )
    logger.info("Extension %s requested for leave request %s", extension.id, leave_request.id)
    return extension


def early_return(db: Session, actor: User, leave_request: LeaveRequest, data: LeaveLifecycleAction) -> LeaveRequest:
    if not is_hr(actor):
        raise forbidden("Only HR can process early return")
    if leave_request.status != LeaveStatus.APPROVED:
        raise bad_request("Early return applies to approved leave only")

    last_day = data.early_return_date
    if last_day < leave_request.start_date or last_day > leave_request.end_date:
        raise bad_request("early_return_date must be within leave period")

    mode = leave_request.requested_days_mode
    employee = leave_request.employee
    lookup = leave_date_service.holiday_lookup_for(db, employee.work_location if employee else None)

    new_days = leave_date_service.count_leave_days(leave_request.start_date, last_day, mode, lookup)
    unused = leave_request.days_count - new_days

    leave_request.end_date = last_day
    leave_request.resume_date = leave_date_service.next_working_day(last_day, mode, lookup)
    leave_request.days_count = new_days
    leave_request.hr_comment = data.reason or "Early return processed by HR"

    if unused > 0:
        leave_balance_service.restore_balance(
            db, leave_request.user_id, leave_request.leave_type_id, leave_request.start_date.year, unused
        )

    db.commit()
    db.refresh(leave_request)
    logger.info("Early return on leave request %s: %s day(s) restored", leave_request.id, max(unused, 0))

    notify_users(
        db,
        user_ids=[leave_request.user_id],
        title="Leave shortened for early return",
        message=f"Your leave now ends on {last_day}; you are expected back on {leave_request.resume_date}.",
        actor_id=actor.id,
        entity_id=leave_request.id,
        event_type="leave_early_return",
    )
    return leave_request


ACTIONS = {
    "withdraw": withdraw,
    "cancel": cancel,
    "extend": extend,
    "early_return": early_return,
}


def apply_lifecycle_action(db: Session, actor: User, data: LeaveLifecycleAction) -> LeaveRequest:
    leave_request = get_leave_request_or_404(db, data.leave_request_id, lock=data.action != "extend")
    return ACTIONS[data.action](db, actor, leave_request, data)

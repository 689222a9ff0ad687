import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from leaveflow.core.dependencies import is_hr
from leaveflow.core.validation import bad_request, forbidden
from leaveflow.models.leave import (
    APPROVAL_FLOW,
    APPROVAL_LEVELS,
    ApprovalSlaPolicy,
    ApprovalStage,
    LeaveApproval,
    LeaveRequest,
    LeaveStatus,
)
from leaveflow.models.user import User
from leaveflow.schemas.leave import ApprovalSlaPolicyUpsert, LeaveDecisionRequest, LeaveQueueItem
from leaveflow.services import leave_balance_service
from leaveflow.services.leave_request_service import evidence_status, get_leave_request_or_404, to_detail
from leaveflow.services.notification_service import hr_user_ids, notify_users
from leaveflow.services.policy_service import get_leave_policy
from leaveflow.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)

DECISION_STATUS = {
    "approve": "approved",
    "reject": "rejected",
    "return": LeaveStatus.RETURNED,
}


@dataclass(frozen=True)
class SlaRule:
    due_hours: int = 24
    reminder_hours_before: int = 4
    escalate_to_role: Optional[str] = None


@dataclass(frozen=True)
class SlaState:
    due_at: datetime
    due_status: str  # on_track | due_soon | overdue
    hours_remaining: float


# ─── HELPERS ──────────────────────────────────────────────────────────────────

def stage_approver_ids(db: Session, leave_request: LeaveRequest) -> list[int]:
    if leave_request.approval_stage == ApprovalStage.RELIEVER:
        return [leave_request.reliever_id] if leave_request.reliever_id else []
    if leave_request.approval_stage == ApprovalStage.SUPERVISOR:
        return [leave_request.supervisor_id] if leave_request.supervisor_id else []
    if leave_request.approval_stage == ApprovalStage.HR:
        return [uid for uid in hr_user_ids(db) if uid != leave_request.user_id]
    return []


def _assert_can_decide(actor: User, leave_request: LeaveRequest) -> None:
    if actor.id == leave_request.user_id:
        raise forbidden("You cannot decide on your own leave request")
    if is_hr(actor):
        return

    stage = leave_request.approval_stage
    if stage == ApprovalStage.RELIEVER and actor.id == leave_request.reliever_id:
        return
    if stage == ApprovalStage.SUPERVISOR and actor.id == leave_request.supervisor_id:
        return
    raise forbidden("You are not the approver for this stage of the leave request")


def _next_stage(stage: str) -> Optional[str]:
    position = APPROVAL_FLOW.index(stage)
    if position + 1 < len(APPROVAL_FLOW):
        return APPROVAL_FLOW[position + 1]
    return None


def _finalize_approval(db: Session, leave_request: LeaveRequest, actor: User, data: LeaveDecisionRequest) -> None:
    policy = get_leave_policy(db, leave_request.leave_type_id)

    _required, missing = evidence_status(leave_request)
    if missing:
        if not data.override_evidence:
            raise bad_request(f"Required evidence is incomplete: {', '.join(missing)}")
        if not policy.override_allowed:
            raise bad_request("This leave policy does not allow approval without the required evidence")
        if not data.comments:
            raise bad_request("Comments are required when overriding missing evidence")
        logger.info("Evidence override on leave request %s by user %s", leave_request.id, actor.id)

    leave_balance_service.debit_balance(
        db,
        leave_request.user_id,
        leave_request.leave_type_id,
        leave_request.start_date.year,
        leave_request.days_count,
        policy,
    )

    leave_request.status = LeaveStatus.APPROVED
    leave_request.approval_stage = ApprovalStage.COMPLETED
    leave_request.approved_by = actor.id
    leave_request.approved_at = utcnow()
    leave_request.hr_comment = data.comments


# ─── DECISIONS ────────────────────────────────────────────────────────────────

def decide(db: Session, actor: User, data: LeaveDecisionRequest) -> LeaveRequest:
    leave_request = get_leave_request_or_404(db, data.leave_request_id, lock=True)

    if leave_request.status == LeaveStatus.PENDING_EVIDENCE:
        raise bad_request("Required evidence must be verified before this leave request can be reviewed")
    if leave_request.status != LeaveStatus.PENDING or leave_request.approval_stage not in APPROVAL_FLOW:
        raise bad_request("This leave request has already been processed")

    _assert_can_decide(actor, leave_request)

    if data.action in ("reject", "return") and not data.comments:
        raise bad_request(f"Comments are required to {data.action} a leave request")

    stage = leave_request.approval_stage
    now = utcnow()
    next_stage = None

    if data.action == "approve":
        next_stage = _next_stage(stage)
        if next_stage is None:
            _finalize_approval(db, leave_request, actor, data)
        else:
            leave_request.approval_stage = next_stage
            leave_request.stage_updated_at = now
    elif data.action == "reject":
        leave_request.status = LeaveStatus.REJECTED
        leave_request.approval_stage = ApprovalStage.REJECTED
        leave_request.rejected_reason = data.comments
    else:
        leave_request.status = LeaveStatus.RETURNED
        leave_request.approval_stage = ApprovalStage.RETURNED
        leave_request.hr_comment = data.comments

    if leave_request.approval_stage not in APPROVAL_FLOW:
        leave_request.stage_updated_at = now

    db.add(LeaveApproval(
        leave_request_id=leave_request.id,
        approver_id=actor.id,
        approval_level=APPROVAL_LEVELS[stage],
        status=DECISION_STATUS[data.action],
        comments=data.comments,
        approved_at=now,
    ))
    db.commit()
    db.refresh(leave_request)

    logger.info(
        "Leave request %s: %s at %s by user %s",
        leave_request.id, data.action, stage, actor.id,
    )

    requester_name = leave_request.employee.name if leave_request.employee else "An employee"
    period = f"{leave_request.start_date} to {leave_request.end_date}"
    if next_stage is not None:
        notify_users(
            db,
            user_ids=stage_approver_ids(db, leave_request),
            title="Leave request needs your review",
            message=f"{requester_name}'s leave request ({period}) is awaiting your approval.",
            actor_id=actor.id,
            entity_id=leave_request.id,
        )
    else:
        outcome = {
            LeaveStatus.APPROVED: "approved",
            LeaveStatus.REJECTED: "rejected",
            LeaveStatus.RETURNED: "returned for correction",
        }[leave_request.status]
        message = f"Your leave request ({period}) was {outcome}."
        if data.comments:
            message = f"{message} Comments: {data.comments}"
        notify_users(
            db,
            user_ids=[leave_request.user_id],
            title=f"Leave request {outcome}",
            message=message,
            actor_id=actor.id,
            entity_id=leave_request.id,
            event_type="approval_decision",
        )

    return leave_request


# ─── SLA ──────────────────────────────────────────────────────────────────────

def load_sla_rules(db: Session) -> dict[str, SlaRule]:
    rules = {stage: SlaRule() for stage in APPROVAL_FLOW}
    for row in db.query(ApprovalSlaPolicy).filter(ApprovalSlaPolicy.is_active == True).all():  # noqa: E712
        rules[row.stage] = SlaRule(
            due_hours=row.due_hours,
            reminder_hours_before=row.reminder_hours_before,
            escalate_to_role=row.escalate_to_role,
        )
    return rules


def compute_sla(stage_started_at: datetime, rule: SlaRule, now: Optional[datetime] = None) -> SlaState:
    now = now or utcnow()
    due_at = as_utc(stage_started_at) + timedelta(hours=rule.due_hours)
    hours_remaining = (due_at - now).total_seconds() / 3600

    if hours_remaining < 0:
        due_status = "overdue"
    elif hours_remaining <= rule.reminder_hours_before:
        due_status = "due_soon"
    else:
        due_status = "on_track"
    return SlaState(due_at=due_at, due_status=due_status, hours_remaining=round(hours_remaining, 2))


def list_sla_policies(db: Session) -> list[ApprovalSlaPolicy]:
    return db.query(ApprovalSlaPolicy).order_by(ApprovalSlaPolicy.stage.asc()).all()


def upsert_sla_policy(db: Session, data: ApprovalSlaPolicyUpsert) -> ApprovalSlaPolicy:
    row = db.query(ApprovalSlaPolicy).filter(ApprovalSlaPolicy.stage == data.stage).first()
    if row is None:
        row = ApprovalSlaPolicy(stage=data.stage)
        db.add(row)

    for field_name, value in data.model_dump().items():
        setattr(row, field_name, value)

    db.commit()
    db.refresh(row)
    return row


def _pending_in_flow(db: Session):
    return db.query(LeaveRequest).filter(
        LeaveRequest.status == LeaveStatus.PENDING,
        LeaveRequest.approval_stage.in_(APPROVAL_FLOW),
    )


def get_queue(db: Session, actor: User) -> list[LeaveQueueItem]:
    assigned = [
        and_(LeaveRequest.approval_stage == ApprovalStage.RELIEVER, LeaveRequest.reliever_id == actor.id),
        and_(LeaveRequest.approval_stage == ApprovalStage.SUPERVISOR, LeaveRequest.supervisor_id == actor.id),
    ]
    if is_hr(actor):
        assigned.append(
            and_(LeaveRequest.approval_stage == ApprovalStage.HR, LeaveRequest.user_id != actor.id)
        )

    requests = _pending_in_flow(db).filter(or_(*assigned)).order_by(
        LeaveRequest.stage_updated_at.asc(), LeaveRequest.id.asc()
    ).all()

    rules = load_sla_rules(db)
    now = utcnow()
    items = []
    for leave_request in requests:
        sla = compute_sla(leave_request.stage_updated_at, rules[leave_request.approval_stage], now)
        items.append(LeaveQueueItem(
            **to_detail(leave_request).model_dump(),
            due_at=sla.due_at,
            due_status=sla.due_status,
            hours_remaining=sla.hours_remaining,
        ))
    return items


def send_sla_reminders(db: Session, actor: User) -> dict:
    """Remind approvers of requests that are due soon and escalate overdue ones."""
    rules = load_sla_rules(db)
    now = utcnow()
    reminded = 0
    escalated = 0

    for leave_request in _pending_in_flow(db).all():
        rule = rules[leave_request.approval_stage]
        sla = compute_sla(leave_request.stage_updated_at, rule, now)
        requester_name = leave_request.employee.name if leave_request.employee else "An employee"

        if sla.due_status == "due_soon":
            reminded += notify_users(
                db,
                user_ids=stage_approver_ids(db, leave_request),
                title="Leave approval reminder",
                message=(
                    f"{requester_name}'s leave request is due for a decision by "
                    f"{sla.due_at:%Y-%m-%d %H:%M} UTC."
                ),
                actor_id=actor.id,
                entity_id=leave_request.id,
                event_type="approval_reminder",
            )
        elif sla.due_status == "overdue":
            targets = hr_user_ids(db, role=rule.escalate_to_role) if rule.escalate_to_role else hr_user_ids(db)
            escalated += notify_users(
                db,
                user_ids=[uid for uid in targets if uid != leave_request.user_id],
                title="Leave approval overdue",
                message=(
                    f"{requester_name}'s leave request has been waiting at {leave_request.approval_stage} "
                    f"since {as_utc(leave_request.stage_updated_at):%Y-%m-%d %H:%M} UTC."
                ),
                actor_id=actor.id,
                entity_id=leave_request.id,
                event_type="approval_escalation",
            )

    logger.info("SLA sweep by user %s: %s reminders, %s escalations", actor.id, reminded, escalated)
    return {"reminded": reminded, "escalated": escalated}

"""
Leave eligibility rules.

Hard predicates run in a fixed order and the first failure ends the
evaluation. Document rules never reject; they only add documents the
requester has to supply before the request can enter approval.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from leaveflow.models.leave import EmployeeLifeEvent, LeaveType
from leaveflow.models.user import User
from leaveflow.schemas.leave import LeaveTypeEligibilityOut
from leaveflow.services.leave_balance_service import get_remaining_balance
from leaveflow.services.policy_service import ResolvedPolicy, get_leave_policy, list_leave_types
from leaveflow.utils.dates import add_days, diff_months

ELIGIBLE = "eligible"
NOT_ELIGIBLE = "not_eligible"
MISSING_EVIDENCE = "missing_evidence"

DEFAULT_EVENT_WINDOW_DAYS = 365


@dataclass
class EligibilityResult:
    status: str
    reason: Optional[str] = None
    required_documents: list[str] = field(default_factory=list)
    missing_documents: list[str] = field(default_factory=list)

    @property
    def is_eligible(self) -> bool:
        return self.status != NOT_ELIGIBLE


@dataclass
class EligibilityContext:
    policy: ResolvedPolicy
    requester: User
    leave_type: LeaveType
    start_date: date
    days_count: int
    today: date
    has_life_event: Callable[[Sequence[str], int], bool]

    @property
    def event_window_days(self) -> int:
        try:
            window = int(self.policy.condition("event_window_days", DEFAULT_EVENT_WINDOW_DAYS))
        except (TypeError, ValueError):
            return DEFAULT_EVENT_WINDOW_DAYS
        return window if window > 0 else DEFAULT_EVENT_WINDOW_DAYS


def _positive_int(value) -> int:
    try:
        number = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return max(number, 0)


def _as_list(value) -> list:
    return list(value) if isinstance(value, (list, tuple)) else []


# ─── HARD PREDICATES ──────────────────────────────────────────────────────────
# Each returns None when satisfied, or the reason shown to the requester.

def check_gender(ctx: EligibilityContext) -> Optional[str]:
    gender = (ctx.requester.gender or "unspecified").strip().lower()
    if ctx.policy.eligibility == "female_only" and gender != "female":
        return "This leave type is only available to female employees."
    if ctx.policy.eligibility == "male_only" and gender != "male":
        return "This leave type is only available to male employees."
    return None


def check_tenure(ctx: EligibilityContext) -> Optional[str]:
    required = ctx.policy.min_tenure_months
    if required <= 0:
        return None
    if not ctx.requester.employment_date:
        return "Employment date is required to validate tenure policy."
    if diff_months(ctx.requester.employment_date, ctx.start_date) < required:
        return f"This leave type requires at least {required} months tenure."
    return None


def check_notice(ctx: EligibilityContext) -> Optional[str]:
    notice_days = ctx.policy.notice_days
    if notice_days > 0 and ctx.start_date < add_days(ctx.today, notice_days):
        return f"This leave type requires at least {notice_days} days notice."
    return None


def check_employment_type(ctx: EligibilityContext) -> Optional[str]:
    allowed = _as_list(ctx.policy.condition("allowed_employment_types"))
    if allowed and ctx.requester.employment_type not in allowed:
        return "Your employment type is not eligible for this leave type."
    return None


def check_marital_status(ctx: EligibilityContext) -> Optional[str]:
    allowed = _as_list(ctx.policy.condition("requires_marital_status_in"))
    if allowed and ctx.requester.marital_status not in allowed:
        return "Marital status requirement is not satisfied for this leave type."
    return None


def check_has_children(ctx: EligibilityContext) -> Optional[str]:
    if ctx.policy.condition("requires_has_children") is True and not ctx.requester.has_children:
        return "This leave type requires employees with children."
    return None


def check_pregnancy_status(ctx: EligibilityContext) -> Optional[str]:
    if ctx.policy.condition("requires_pregnancy_status") is True and not ctx.requester.pregnancy_status:
        return "This leave type requires a confirmed pregnancy status on your profile."
    return None


def check_max_days_per_request(ctx: EligibilityContext) -> Optional[str]:
    max_days = _positive_int(ctx.policy.frequency_rule("max_days_per_request"))
    if max_days and ctx.days_count > max_days:
        return f"This leave type allows at most {max_days} days per request."
    return None


HARD_PREDICATES: tuple[tuple[str, Callable[[EligibilityContext], Optional[str]]], ...] = (
    ("gender", check_gender),
    ("tenure", check_tenure),
    ("notice", check_notice),
    ("employment_type", check_employment_type),
    ("marital_status", check_marital_status),
    ("has_children", check_has_children),
    ("pregnancy_status", check_pregnancy_status),
    ("max_days_per_request", check_max_days_per_request),
)


# ─── DOCUMENT RULES ───────────────────────────────────────────────────────────
# Each returns the documents it adds to the required set.

def pregnancy_event_documents(ctx: EligibilityContext) -> list[str]:
    if ctx.policy.condition("requires_pregnancy_event") is not True:
        return []
    if ctx.requester.pregnancy_status:
        return []
    if ctx.has_life_event(("pregnancy", "childbirth"), ctx.event_window_days):
        return []
    return ["medical_confirmation"]


def childbirth_or_adoption_documents(ctx: EligibilityContext) -> list[str]:
    if ctx.policy.condition("requires_childbirth_or_adoption_event") is not True:
        return []
    if ctx.has_life_event(("childbirth", "adoption"), ctx.event_window_days):
        return []
    return ["birth_or_adoption_proof"]


def bereavement_documents(ctx: EligibilityContext) -> list[str]:
    if ctx.policy.condition("requires_bereavement_event") is not True:
        return []
    if ctx.has_life_event(("bereavement",), ctx.event_window_days):
        return []
    return ["bereavement_declaration"]


def study_purpose_documents(ctx: EligibilityContext) -> list[str]:
    if ctx.policy.condition("requires_study_purpose") is True:
        return ["admission_or_exam_letter"]
    return []


def medical_certificate_documents(ctx: EligibilityContext) -> list[str]:
    threshold = _positive_int(ctx.policy.frequency_rule("medical_certificate_after_days"))
    if threshold and ctx.days_count > threshold:
        return ["medical_certificate"]
    return []


DOCUMENT_RULES: tuple[Callable[[EligibilityContext], list[str]], ...] = (
    pregnancy_event_documents,
    childbirth_or_adoption_documents,
    bereavement_documents,
    study_purpose_documents,
    medical_certificate_documents,
)


def life_event_lookup(db: Session, employee_id: int, today: date) -> Callable[[Sequence[str], int], bool]:
    def has_life_event(event_types: Sequence[str], window_days: int) -> bool:
        earliest = add_days(today, -window_days)
        return db.query(EmployeeLifeEvent.id).filter(
            EmployeeLifeEvent.employee_id == employee_id,
            EmployeeLifeEvent.event_type.in_(list(event_types)),
            EmployeeLifeEvent.event_date >= earliest,
        ).first() is not None

    return has_life_event


def evaluate_leave_eligibility(
    db: Session,
    *,
    policy: ResolvedPolicy,
    requester: User,
    leave_type: LeaveType,
    start_date: date,
    days_count: int,
    verified_documents: Iterable[str] = (),
    today: Optional[date] = None,
) -> EligibilityResult:
    today = today or date.today()
    ctx = EligibilityContext(
        policy=policy,
        requester=requester,
        leave_type=leave_type,
        start_date=start_date,
        days_count=days_count,
        today=today,
        has_life_event=life_event_lookup(db, requester.id, today),
    )

    required = list(policy.required_documents)

    for _name, predicate in HARD_PREDICATES:
        reason = predicate(ctx)
        if reason:
            return EligibilityResult(
                status=NOT_ELIGIBLE,
                reason=reason,
                required_documents=required,
            )

    for rule in DOCUMENT_RULES:
        for document in rule(ctx):
            if document not in required:
                required.append(document)

    verified = set(verified_documents)
    missing = [doc for doc in required if doc not in verified]
    if missing:
        leave_name = leave_type.name or leave_type.code or "this leave type"
        return EligibilityResult(
            status=MISSING_EVIDENCE,
            reason=f"Additional evidence is required before {leave_name} can proceed for approval.",
            required_documents=required,
            missing_documents=missing,
        )

    return EligibilityResult(status=ELIGIBLE, required_documents=required)


def simulate_leave_types(
    db: Session,
    requester: User,
    start_date: Optional[date] = None,
    days_count: int = 1,
) -> list[LeaveTypeEligibilityOut]:
    """Evaluate every leave type for one employee as if they applied now."""
    start_date = start_date or date.today()
    results = []
    for leave_type in list_leave_types(db):
        policy = get_leave_policy(db, leave_type.id, leave_type)
        evaluation = evaluate_leave_eligibility(
            db,
            policy=policy,
            requester=requester,
            leave_type=leave_type,
            start_date=start_date,
            days_count=days_count,
        )
        results.append(LeaveTypeEligibilityOut(
            id=leave_type.id,
            name=leave_type.name,
            code=leave_type.code,
            description=leave_type.description,
            max_days=leave_type.max_days,
            requires_approval=policy.requires_approval,
            accrual_mode=policy.accrual_mode,
            eligibility_status=evaluation.status,
            eligibility_reason=evaluation.reason,
            required_documents=evaluation.required_documents,
            missing_documents=evaluation.missing_documents,
            remaining_days=get_remaining_balance(db, requester.id, leave_type.id, start_date.year, policy),
        ))
    return results

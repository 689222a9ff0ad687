from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.orm import Session, joinedload

from leaveflow.core.validation import bad_request, not_found
from leaveflow.models.leave import AccrualMode, LeavePolicy, LeaveType
from leaveflow.schemas.leave import LeavePolicyUpsert, LeaveTypeCreate

logger = logging.getLogger(__name__)


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


@dataclass(frozen=True)
class ResolvedPolicy:
    """The policy the workflow applies; never None, see ``default_for``."""

    leave_type_id: int
    annual_days: int = 0
    eligibility: str = "all"
    min_tenure_months: int = 0
    notice_days: int = 0
    accrual_mode: str = AccrualMode.CALENDAR_DAYS
    eligibility_conditions: dict = field(default_factory=dict)
    required_documents: tuple[str, ...] = ()
    frequency_rules: dict = field(default_factory=dict)
    override_allowed: bool = True
    requires_approval: bool = True
    is_default: bool = False

    @classmethod
    def from_row(cls, row: LeavePolicy) -> "ResolvedPolicy":
        accrual_mode = row.accrual_mode
        if accrual_mode not in (AccrualMode.CALENDAR_DAYS, AccrualMode.BUSINESS_DAYS):
            accrual_mode = AccrualMode.CALENDAR_DAYS
        return cls(
            leave_type_id=row.leave_type_id,
            annual_days=row.annual_days or 0,
            eligibility=(row.eligibility or "all").lower(),
            min_tenure_months=row.min_tenure_months or 0,
            notice_days=row.notice_days or 0,
            accrual_mode=accrual_mode,
            eligibility_conditions=dict(row.eligibility_conditions or {}),
            required_documents=tuple(dict.fromkeys(_string_list(row.required_documents))),
            frequency_rules=dict(row.frequency_rules or {}),
            override_allowed=True if row.override_allowed is None else bool(row.override_allowed),
            requires_approval=True if row.requires_approval is None else bool(row.requires_approval),
        )

    @classmethod
    def default_for(cls, leave_type: LeaveType) -> "ResolvedPolicy":
        """No configured policy means no restrictions."""
        return cls(
            leave_type_id=leave_type.id,
            annual_days=leave_type.max_days or 0,
            requires_approval=bool(leave_type.requires_approval),
            is_default=True,
        )

    def condition(self, key: str, default: Any = None) -> Any:
        return self.eligibility_conditions.get(key, default)

    def frequency_rule(self, key: str, default: Any = None) -> Any:
        return self.frequency_rules.get(key, default)


def get_leave_type_or_404(db: Session, leave_type_id: int) -> LeaveType:
    leave_type = db.query(LeaveType).filter(LeaveType.id == leave_type_id).first()
    if not leave_type:
        raise not_found("Leave type not found")
    return leave_type


def get_leave_policy(db: Session, leave_type_id: int, leave_type: Optional[LeaveType] = None) -> ResolvedPolicy:
    row = db.query(LeavePolicy).filter(LeavePolicy.leave_type_id == leave_type_id).first()
    if row and row.is_active:
        return ResolvedPolicy.from_row(row)

    if leave_type is None:
        leave_type = get_leave_type_or_404(db, leave_type_id)
    return ResolvedPolicy.default_for(leave_type)


# ─── POLICY / TYPE ADMINISTRATION ─────────────────────────────────────────────

def list_policies(db: Session) -> list[LeavePolicy]:
    return (
        db.query(LeavePolicy)
        .options(joinedload(LeavePolicy.leave_type))
        .order_by(LeavePolicy.created_at.desc(), LeavePolicy.id.desc())
        .all()
    )


def upsert_policy(db: Session, data: LeavePolicyUpsert) -> LeavePolicy:
    get_leave_type_or_404(db, data.leave_type_id)

    policy = db.query(LeavePolicy).filter(LeavePolicy.leave_type_id == data.leave_type_id).first()
    if policy is None:
        policy = LeavePolicy(leave_type_id=data.leave_type_id)
        db.add(policy)

    for field_name, value in data.model_dump().items():
        setattr(policy, field_name, value)

    db.commit()
    db.refresh(policy)
    logger.info("Leave policy saved for leave type %s", data.leave_type_id)
    return policy


def list_leave_types(db: Session) -> list[LeaveType]:
    return db.query(LeaveType).order_by(LeaveType.name.asc()).all()


def create_leave_type(db: Session, data: LeaveTypeCreate) -> LeaveType:
    code = data.code.upper()
    if db.query(LeaveType.id).filter(LeaveType.code == code).first():
        raise bad_request(f"Leave type code {code} already exists")

    leave_type = LeaveType(
        name=data.name,
        code=code,
        description=data.description,
        max_days=data.max_days,
        requires_approval=data.requires_approval,
    )
    db.add(leave_type)
    db.commit()
    db.refresh(leave_type)
    return leave_type

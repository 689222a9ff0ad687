from sqlalchemy import (
    Column, Integer, String, Date, DateTime, ForeignKey, Text, Boolean, JSON,
    Index, UniqueConstraint, text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from datetime import datetime, timezone
from leaveflow.database.base import Base


class LeaveStatus:
    PENDING = "pending"
    PENDING_EVIDENCE = "pending_evidence"
    APPROVED = "approved"
    REJECTED = "rejected"
    RETURNED = "returned_for_correction"
    CANCELLED = "cancelled"


class ApprovalStage:
    RELIEVER = "reliever_pending"
    SUPERVISOR = "supervisor_pending"
    HR = "hr_pending"
    COMPLETED = "completed"
    REJECTED = "rejected"
    RETURNED = "returned"
    CANCELLED = "cancelled"


class AccrualMode:
    CALENDAR_DAYS = "calendar_days"
    BUSINESS_DAYS = "business_days"


# Statuses that still wait on a decision; at most one per requester.
ACTIVE_STATUSES = (LeaveStatus.PENDING, LeaveStatus.PENDING_EVIDENCE)

# Statuses whose date range blocks other leave for the same person.
BLOCKING_STATUSES = ACTIVE_STATUSES + (LeaveStatus.APPROVED,)

APPROVAL_FLOW = (ApprovalStage.RELIEVER, ApprovalStage.SUPERVISOR, ApprovalStage.HR)

APPROVAL_LEVELS = {
    ApprovalStage.RELIEVER: 1,
    ApprovalStage.SUPERVISOR: 2,
    ApprovalStage.HR: 3,
}

_ACTIVE_SQL = "status IN ('pending', 'pending_evidence')"
ACTIVE_REQUEST_INDEX = "uq_leave_requests_one_active"


def _utcnow():
    return datetime.now(timezone.utc)


class LeaveType(Base):
    __tablename__ = "leave_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(30), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    max_days = Column(Integer, nullable=False, default=0)
    requires_approval = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    policy = relationship("LeavePolicy", back_populates="leave_type", uselist=False)


class LeavePolicy(Base):
    __tablename__ = "leave_policies"

    id = Column(Integer, primary_key=True, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), unique=True, nullable=False)

    annual_days = Column(Integer, nullable=False, default=0)
    eligibility = Column(String(20), nullable=False, default="all")  # all | female_only | male_only
    min_tenure_months = Column(Integer, nullable=False, default=0)
    notice_days = Column(Integer, nullable=False, default=0)
    accrual_mode = Column(String(20), nullable=False, default=AccrualMode.CALENDAR_DAYS)
    is_active = Column(Boolean, nullable=False, default=True)

    eligibility_conditions = Column(JSON, nullable=False, default=dict)
    required_documents = Column(JSON, nullable=False, default=list)
    frequency_rules = Column(JSON, nullable=False, default=dict)
    override_allowed = Column(Boolean, nullable=False, default=True)
    requires_approval = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    leave_type = relationship("LeaveType", back_populates="policy")


class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("user_id", "leave_type_id", "year", name="uq_leave_balances_user_type_year"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False)
    year = Column(Integer, nullable=False)

    allocated_days = Column(Integer, nullable=False, default=0)
    carried_over_days = Column(Integer, nullable=False, default=0)
    used_days = Column(Integer, nullable=False, default=0)

    leave_type = relationship("LeaveType")

    @property
    def balance_days(self) -> int:
        return max((self.allocated_days or 0) + (self.carried_over_days or 0) - (self.used_days or 0), 0)


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        # One active request per requester, enforced by the store itself.
        Index(
            ACTIVE_REQUEST_INDEX,
            "user_id",
            unique=True,
            postgresql_where=text(_ACTIVE_SQL),
            sqlite_where=text(_ACTIVE_SQL),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    resume_date = Column(Date, nullable=False)
    days_count = Column(Integer, nullable=False)

    reason = Column(Text, nullable=False)

    status = Column(String(30), nullable=False, default=LeaveStatus.PENDING, index=True)
    approval_stage = Column(String(30), nullable=False, default=ApprovalStage.RELIEVER)
    stage_updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    reliever_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    supervisor_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    handover_note = Column(Text, nullable=False)
    handover_checklist_url = Column(String(500), nullable=True)

    requested_days_mode = Column(String(20), nullable=False, default=AccrualMode.CALENDAR_DAYS)
    request_kind = Column(String(20), nullable=False, default="standard")  # standard | extension
    original_request_id = Column(Integer, ForeignKey("leave_requests.id"), nullable=True)

    # Documents the evaluator asked for when the request was last validated
    required_documents = Column(JSON, nullable=False, default=list)

    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_reason = Column(Text, nullable=True)
    hr_comment = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    # relationships
    employee = relationship("User", foreign_keys=[user_id])
    reliever = relationship("User", foreign_keys=[reliever_id])
    supervisor = relationship("User", foreign_keys=[supervisor_id])
    leave_type = relationship("LeaveType")
    evidence = relationship(
        "LeaveEvidence",
        back_populates="leave_request",
        cascade="all, delete-orphan",
        order_by="LeaveEvidence.id",
    )
    approvals = relationship(
        "LeaveApproval",
        back_populates="leave_request",
        cascade="all, delete-orphan",
        order_by="LeaveApproval.id",
    )


class LeaveEvidence(Base):
    __tablename__ = "leave_evidence"

    id = Column(Integer, primary_key=True, index=True)
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id"), nullable=False, index=True)
    document_type = Column(String(60), nullable=False)
    file_url = Column(String(500), nullable=False)
    status = Column(String(20), nullable=False, default="pending")  # pending | verified | rejected
    notes = Column(Text, nullable=True)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    verified_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    leave_request = relationship("LeaveRequest", back_populates="evidence")


class LeaveApproval(Base):
    __tablename__ = "leave_approvals"

    id = Column(Integer, primary_key=True, index=True)
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id"), nullable=False, index=True)
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    approval_level = Column(Integer, nullable=False)
    status = Column(String(30), nullable=False)  # approved | rejected | returned_for_correction
    comments = Column(Text, nullable=True)
    approved_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    leave_request = relationship("LeaveRequest", back_populates="approvals")
    approver = relationship("User")


class EmployeeLifeEvent(Base):
    __tablename__ = "employee_life_events"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    event_type = Column(String(30), nullable=False)  # pregnancy | childbirth | adoption | bereavement
    event_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)


class ApprovalSlaPolicy(Base):
    __tablename__ = "approval_sla_policies"

    id = Column(Integer, primary_key=True, index=True)
    stage = Column(String(30), unique=True, nullable=False)
    due_hours = Column(Integer, nullable=False, default=24)
    reminder_hours_before = Column(Integer, nullable=False, default=4)
    escalate_to_role = Column(String(20), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

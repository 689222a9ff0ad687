from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import date, datetime
from typing import Optional, Literal
from leaveflow.schemas.user import UserBrief


def _strip_optional(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


# -------- LEAVE TYPES / POLICIES --------
class LeaveTypeCreate(BaseModel):
    name: str
    code: str
    description: Optional[str] = None
    max_days: int = Field(default=0, ge=0)
    requires_approval: bool = True

    @field_validator("name", "code")
    @classmethod
    def validate_non_empty(cls, value: str):
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("This field is required")
        return cleaned


class LeaveTypeOut(BaseModel):
    id: int
    name: str
    code: str
    description: Optional[str] = None
    max_days: int
    requires_approval: bool = True

    class Config:
        from_attributes = True


class LeavePolicyUpsert(BaseModel):
    leave_type_id: int
    annual_days: int = Field(default=0, ge=0)
    eligibility: Literal["all", "female_only", "male_only"] = "all"
    min_tenure_months: int = Field(default=0, ge=0)
    notice_days: int = Field(default=0, ge=0)
    accrual_mode: Literal["calendar_days", "business_days"] = "calendar_days"
    is_active: bool = True
    eligibility_conditions: dict = Field(default_factory=dict)
    required_documents: list[str] = Field(default_factory=list)
    frequency_rules: dict = Field(default_factory=dict)
    override_allowed: bool = True
    requires_approval: bool = True

    @field_validator("required_documents")
    @classmethod
    def normalize_documents(cls, value: list[str]):
        cleaned = [doc.strip() for doc in value if isinstance(doc, str) and doc.strip()]
        return list(dict.fromkeys(cleaned))


class LeavePolicyOut(LeavePolicyUpsert):
    id: int
    leave_type: Optional[LeaveTypeOut] = None

    class Config:
        from_attributes = True


# -------- REQUESTS --------
class LeaveRequestCreate(BaseModel):
    leave_type_id: int
    start_date: date
    days_count: Optional[int] = None
    end_date: Optional[date] = None
    reason: str
    reliever_identifier: str
    handover_note: str
    handover_checklist_url: Optional[str] = None

    @field_validator("reason", "reliever_identifier", "handover_note")
    @classmethod
    def validate_required_text(cls, value: str):
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("This field is required")
        return cleaned

    @field_validator("handover_checklist_url", mode="before")
    @classmethod
    def normalize_url(cls, value):
        return _strip_optional(value)


class LeaveRequestUpdate(BaseModel):
    id: int
    leave_type_id: Optional[int] = None
    start_date: Optional[date] = None
    days_count: Optional[int] = None
    end_date: Optional[date] = None
    reason: Optional[str] = None
    reliever_identifier: Optional[str] = None
    handover_note: Optional[str] = None
    handover_checklist_url: Optional[str] = None

    @field_validator("reason", "reliever_identifier", "handover_note", "handover_checklist_url", mode="before")
    @classmethod
    def normalize_optional_strings(cls, value):
        return _strip_optional(value)


class LeaveEvidenceOut(BaseModel):
    id: int
    leave_request_id: int
    document_type: str
    file_url: str
    status: str
    notes: Optional[str] = None
    uploaded_by: int
    verified_by: Optional[int] = None
    verified_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LeaveApprovalOut(BaseModel):
    id: int
    approver_id: int
    approval_level: int
    status: str
    comments: Optional[str] = None
    approved_at: datetime
    approver: Optional[UserBrief] = None

    class Config:
        from_attributes = True


class LeaveRequestOut(BaseModel):
    id: int
    user_id: int
    leave_type_id: int
    start_date: date
    end_date: date
    resume_date: date
    days_count: int
    reason: str
    status: str
    approval_stage: str
    reliever_id: Optional[int] = None
    supervisor_id: Optional[int] = None
    handover_note: str
    handover_checklist_url: Optional[str] = None
    requested_days_mode: str
    request_kind: str
    original_request_id: Optional[int] = None
    required_documents: list[str] = Field(default_factory=list)
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejected_reason: Optional[str] = None
    hr_comment: Optional[str] = None
    created_at: datetime
    employee: Optional[UserBrief] = None
    reliever: Optional[UserBrief] = None
    supervisor: Optional[UserBrief] = None
    leave_type: Optional[LeaveTypeOut] = None

    class Config:
        from_attributes = True


class LeaveRequestDetail(LeaveRequestOut):
    evidence_complete: bool = True
    missing_documents: list[str] = Field(default_factory=list)
    approvals: list[LeaveApprovalOut] = Field(default_factory=list)
    evidence: list[LeaveEvidenceOut] = Field(default_factory=list)


class LeaveBalanceOut(BaseModel):
    id: int
    user_id: int
    leave_type_id: int
    year: int
    allocated_days: int
    carried_over_days: int
    used_days: int
    balance_days: int
    leave_type: Optional[LeaveTypeOut] = None

    class Config:
        from_attributes = True


# -------- APPROVALS --------
class LeaveDecisionRequest(BaseModel):
    leave_request_id: int
    action: Literal["approve", "reject", "return"]
    comments: Optional[str] = None
    override_evidence: bool = False

    @field_validator("comments", mode="before")
    @classmethod
    def normalize_comments(cls, value):
        return _strip_optional(value)


class ApprovalSlaPolicyUpsert(BaseModel):
    stage: Literal["reliever_pending", "supervisor_pending", "hr_pending"]
    due_hours: int = Field(default=24, gt=0)
    reminder_hours_before: int = Field(default=4, ge=0)
    escalate_to_role: Optional[str] = None
    is_active: bool = True


class ApprovalSlaPolicyOut(ApprovalSlaPolicyUpsert):
    id: int

    class Config:
        from_attributes = True


# -------- EVIDENCE --------
class LeaveEvidenceCreate(BaseModel):
    leave_request_id: int
    document_type: str
    file_url: str
    notes: Optional[str] = None

    @field_validator("document_type", "file_url")
    @classmethod
    def validate_required_text(cls, value: str):
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("This field is required")
        return cleaned


class LeaveEvidenceVerify(BaseModel):
    evidence_id: int
    status: Literal["verified", "rejected"]
    notes: Optional[str] = None


# -------- LIFECYCLE --------
class LeaveLifecycleAction(BaseModel):
    leave_request_id: int
    action: Literal["withdraw", "cancel", "extend", "early_return"]
    reason: Optional[str] = None
    extension_days: Optional[int] = None
    early_return_date: Optional[date] = None

    @field_validator("reason", mode="before")
    @classmethod
    def normalize_reason(cls, value):
        return _strip_optional(value)

    @model_validator(mode="after")
    def validate_action_fields(self):
        if self.action == "extend" and (self.extension_days is None or self.extension_days <= 0):
            raise ValueError("Valid extension_days is required")
        if self.action == "early_return" and self.early_return_date is None:
            raise ValueError("early_return_date is required")
        return self


# -------- READ MODELS --------
class LeaveRequestListOut(BaseModel):
    requests: list[LeaveRequestDetail]
    balances: list[LeaveBalanceOut]


class LeaveQueueItem(LeaveRequestDetail):
    due_at: datetime
    due_status: Literal["on_track", "due_soon", "overdue"]
    hours_remaining: float


class LeaveTypeEligibilityOut(LeaveTypeOut):
    accrual_mode: str
    eligibility_status: Literal["eligible", "missing_evidence", "not_eligible"]
    eligibility_reason: Optional[str] = None
    required_documents: list[str] = Field(default_factory=list)
    missing_documents: list[str] = Field(default_factory=list)
    remaining_days: int = 0


class PolicySimulationOut(BaseModel):
    employee: UserBrief
    start_date: date
    days_count: int
    data: list[LeaveTypeEligibilityOut]


class LeaveEvidenceResult(BaseModel):
    evidence: LeaveEvidenceOut
    request_status: str
    promoted: bool = False


# -------- HR REPORTS --------
class PayrollFeedItem(BaseModel):
    id: int
    user_id: int
    leave_type_id: int
    start_date: date
    end_date: date
    resume_date: date
    days_count: int
    status: str
    approval_stage: str
    approved_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    employee: Optional[UserBrief] = None
    leave_type: Optional[LeaveTypeOut] = None

    class Config:
        from_attributes = True


class DataQualityItem(BaseModel):
    id: int
    employee_id: Optional[str] = None
    name: str
    email: str
    gender: Optional[str] = None
    employment_date: Optional[date] = None
    employment_type: Optional[str] = None
    work_location: Optional[str] = None
    missing_fields: list[str]

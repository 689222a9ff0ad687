"""
HR read-only reports: the payroll leave feed and profile data quality.
"""
import logging
from datetime import date
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from leaveflow.core.validation import bad_request
from leaveflow.models.leave import LeaveRequest, LeaveStatus
from leaveflow.models.user import User

logger = logging.getLogger(__name__)

PAYROLL_STATUSES = (LeaveStatus.APPROVED, LeaveStatus.CANCELLED)

# Profile fields the eligibility rules and holiday calendar read
ELIGIBILITY_PROFILE_FIELDS = ("gender", "employment_date", "employment_type", "work_location")


def payroll_feed(db: Session, from_date: Optional[date] = None, to_date: Optional[date] = None) -> list[LeaveRequest]:
    """Approved and cancelled leave, newest change first, for payroll reconciliation."""
    if from_date and to_date and to_date < from_date:
        raise bad_request("'to' must be on or after 'from'")

    q = db.query(LeaveRequest).options(
        joinedload(LeaveRequest.employee),
        joinedload(LeaveRequest.leave_type),
    ).filter(LeaveRequest.status.in_(PAYROLL_STATUSES))
    if from_date:
        q = q.filter(LeaveRequest.start_date >= from_date)
    if to_date:
        q = q.filter(LeaveRequest.end_date <= to_date)

    rows = q.order_by(LeaveRequest.updated_at.desc(), LeaveRequest.id.desc()).all()
    logger.info("Payroll feed built: %s rows (from=%s, to=%s)", len(rows), from_date, to_date)
    return rows


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def data_quality_report(db: Session) -> list[dict]:
    missing_any = or_(
        User.gender.is_(None),
        User.gender == "",
        User.employment_date.is_(None),
        User.employment_type.is_(None),
        User.employment_type == "",
        User.work_location.is_(None),
        User.work_location == "",
    )
    users = db.query(User).filter(User.is_active == True, missing_any).order_by(User.name.asc()).all()  # noqa: E712

    return [
        {
            "id": user.id,
            "employee_id": user.employee_id,
            "name": user.name,
            "email": user.email,
            "gender": user.gender,
            "employment_date": user.employment_date,
            "employment_type": user.employment_type,
            "work_location": user.work_location,
            "missing_fields": [name for name in ELIGIBILITY_PROFILE_FIELDS if _is_blank(getattr(user, name))],
        }
        for user in users
    ]

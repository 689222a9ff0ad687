import logging
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from leaveflow.core.validation import bad_request
from leaveflow.models.leave import LeaveBalance
from leaveflow.services.policy_service import ResolvedPolicy

logger = logging.getLogger(__name__)


def _get_balance_row(db: Session, user_id: int, leave_type_id: int, year: int, lock: bool = False):
    q = db.query(LeaveBalance).filter(
        LeaveBalance.user_id == user_id,
        LeaveBalance.leave_type_id == leave_type_id,
        LeaveBalance.year == year,
    )
    if lock:
        q = q.with_for_update()
    return q.first()


def get_remaining_balance(db: Session, user_id: int, leave_type_id: int, year: int, policy: ResolvedPolicy) -> int:
    """Days left for the year; an employee without a ledger row has the full entitlement."""
    row = _get_balance_row(db, user_id, leave_type_id, year)
    if row is None:
        return max(policy.annual_days, 0)
    return row.balance_days


def assert_sufficient_balance(
    db: Session,
    user_id: int,
    leave_type_id: int,
    year: int,
    days_count: int,
    policy: ResolvedPolicy,
) -> int:
    remaining = get_remaining_balance(db, user_id, leave_type_id, year, policy)
    if days_count > remaining:
        logger.info("Insufficient balance for user %s: requested %s, remaining %s", user_id, days_count, remaining)
        raise bad_request(f"Insufficient leave balance. You have {remaining} days remaining.")
    return remaining


def debit_balance(
    db: Session,
    user_id: int,
    leave_type_id: int,
    year: int,
    days_count: int,
    policy: ResolvedPolicy,
) -> LeaveBalance:
    """
    Consume ``days_count`` from the ledger row, locking it for the rest of
    the transaction. The caller commits.
    """
    row = _get_balance_row(db, user_id, leave_type_id, year, lock=True)
    if row is None:
        row = LeaveBalance(
            user_id=user_id,
            leave_type_id=leave_type_id,
            year=year,
            allocated_days=max(policy.annual_days, 0),
            carried_over_days=0,
            used_days=0,
        )
        db.add(row)
        db.flush()

    if days_count > row.balance_days:
        raise bad_request(f"Insufficient leave balance. You have {row.balance_days} days remaining.")

    row.used_days = (row.used_days or 0) + days_count
    return row


def restore_balance(db: Session, user_id: int, leave_type_id: int, year: int, days_count: int) -> Optional[LeaveBalance]:
    if days_count <= 0:
        return None

    row = _get_balance_row(db, user_id, leave_type_id, year, lock=True)
    if row is None:
        return None

    row.used_days = max((row.used_days or 0) - days_count, 0)
    return row


def list_balances(db: Session, user_id: int, year: Optional[int] = None) -> list[LeaveBalance]:
    q = db.query(LeaveBalance).options(joinedload(LeaveBalance.leave_type)).filter(LeaveBalance.user_id == user_id)
    if year:
        q = q.filter(LeaveBalance.year == year)
    return q.order_by(LeaveBalance.year.desc(), LeaveBalance.leave_type_id.asc()).all()

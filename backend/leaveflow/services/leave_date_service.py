"""
Leave date arithmetic and conflict checks.

``holiday_lookup`` is any callable ``(start, end) -> set[date]`` returning the
non-working dates in that window; ``holiday_lookup_for`` builds the default
one from the holiday calendar table.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from sqlalchemy.orm import Session

from leaveflow.core.validation import bad_request, require_positive_days
from leaveflow.models.leave import AccrualMode, BLOCKING_STATUSES, LeaveRequest
from leaveflow.services import holiday_service
from leaveflow.utils.dates import add_days, is_weekend, iter_days

logger = logging.getLogger(__name__)

HolidayLookup = Callable[[date, date], set]

MIN_SEARCH_WINDOW_DAYS = 120


@dataclass(frozen=True)
class LeaveDates:
    end_date: date
    resume_date: date


def no_holidays(start: date, end: date) -> set:
    return set()


def holiday_lookup_for(db: Session, location: Optional[str]) -> HolidayLookup:
    def lookup(start: date, end: date) -> set:
        return holiday_service.get_holiday_set(db, location, start, end)

    return lookup


def _search_window(days_count: int) -> int:
    return max(MIN_SEARCH_WINDOW_DAYS, days_count * 4)


def is_business_day(value: date, holidays: set) -> bool:
    return not is_weekend(value) and value not in holidays


def next_working_day(after: date, accrual_mode: str, holiday_lookup: Optional[HolidayLookup] = None) -> date:
    """First day after ``after`` on which the employee is expected back."""
    candidate = add_days(after, 1)
    if accrual_mode != AccrualMode.BUSINESS_DAYS:
        return candidate

    lookup = holiday_lookup or no_holidays
    holidays = lookup(candidate, add_days(candidate, MIN_SEARCH_WINDOW_DAYS))
    while not is_business_day(candidate, holidays):
        candidate = add_days(candidate, 1)
    return candidate


def compute_leave_dates(
    start_date: date,
    days_count: int,
    accrual_mode: str,
    holiday_lookup: Optional[HolidayLookup] = None,
) -> LeaveDates:
    require_positive_days(days_count)

    if accrual_mode != AccrualMode.BUSINESS_DAYS:
        end_date = add_days(start_date, days_count - 1)
        return LeaveDates(end_date=end_date, resume_date=add_days(end_date, 1))

    lookup = holiday_lookup or no_holidays
    window_end = add_days(start_date, _search_window(days_count))
    holidays = lookup(start_date, window_end)

    counted = 0
    end_date = None
    for day in iter_days(start_date, window_end):
        if is_business_day(day, holidays):
            counted += 1
            end_date = day
            if counted == days_count:
                break

    if end_date is None or counted < days_count:
        raise bad_request("Unable to fit the requested business days into the leave calendar")

    return LeaveDates(
        end_date=end_date,
        resume_date=next_working_day(end_date, accrual_mode, lookup),
    )


def count_leave_days(
    start_date: date,
    end_date: date,
    accrual_mode: str,
    holiday_lookup: Optional[HolidayLookup] = None,
) -> int:
    if end_date < start_date:
        return 0
    if accrual_mode != AccrualMode.BUSINESS_DAYS:
        return (end_date - start_date).days + 1

    holidays = (holiday_lookup or no_holidays)(start_date, end_date)
    return sum(1 for day in iter_days(start_date, end_date) if is_business_day(day, holidays))


# ─── CONFLICT CHECKS ──────────────────────────────────────────────────────────

def _overlapping(db: Session, start_date: date, end_date: date, exclude_request_id: Optional[int]):
    q = db.query(LeaveRequest).filter(
        LeaveRequest.status.in_(BLOCKING_STATUSES),
        LeaveRequest.start_date <= end_date,
        LeaveRequest.end_date >= start_date,
    )
    if exclude_request_id is not None:
        q = q.filter(LeaveRequest.id != exclude_request_id)
    return q


def assert_no_overlap(
    db: Session,
    requester_id: int,
    start_date: date,
    end_date: date,
    exclude_request_id: Optional[int] = None,
) -> None:
    conflict = _overlapping(db, start_date, end_date, exclude_request_id).filter(
        LeaveRequest.user_id == requester_id,
    ).first()
    if conflict:
        logger.info("Leave overlap for user %s with request %s", requester_id, conflict.id)
        raise bad_request("You already have an overlapping leave request for this date range")


def assert_not_relieving_others(
    db: Session,
    requester_id: int,
    start_date: date,
    end_date: date,
    exclude_request_id: Optional[int] = None,
) -> None:
    conflict = _overlapping(db, start_date, end_date, exclude_request_id).filter(
        LeaveRequest.reliever_id == requester_id,
    ).first()
    if conflict:
        logger.info("User %s is reliever on overlapping request %s", requester_id, conflict.id)
        raise bad_request("You are the designated reliever for another leave request in this date range")


def assert_reliever_availability(
    db: Session,
    reliever_id: int,
    start_date: date,
    end_date: date,
    exclude_request_id: Optional[int] = None,
) -> None:
    conflict = _overlapping(db, start_date, end_date, exclude_request_id).filter(
        LeaveRequest.user_id == reliever_id,
    ).first()
    if conflict:
        logger.info("Reliever %s is on leave during request %s", reliever_id, conflict.id)
        raise bad_request("Selected reliever is unavailable in the requested date range")

import logging
from datetime import date
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from leaveflow.config import settings
from leaveflow.core.validation import not_found
from leaveflow.models.holiday import Holiday
from leaveflow.schemas.holiday import HolidayCreate

logger = logging.getLogger(__name__)

GLOBAL_LOCATION = "global"


# ─── HELPERS ──────────────────────────────────────────────────────────────────

def normalize_location(location: Optional[str]) -> str:
    cleaned = (location or "").strip().lower()
    return cleaned or settings.DEFAULT_HOLIDAY_LOCATION


def _project_onto_year(value: date, year: int) -> Optional[date]:
    try:
        return value.replace(year=year)
    except ValueError:
        # 29 February in a non-leap year
        return None


def _location_filter(location: str):
    locations = {location, GLOBAL_LOCATION}
    return or_(*[Holiday.location == loc for loc in sorted(locations)])


# ─── CALENDAR LOOKUP ──────────────────────────────────────────────────────────

def _dates_in_window(row: Holiday, start: date, end: date) -> list[date]:
    if not row.repeat_yearly:
        return [row.date] if start <= row.date <= end else []
    dates = []
    for year in range(start.year, end.year + 1):
        projected = _project_onto_year(row.date, year)
        if projected and start <= projected <= end:
            dates.append(projected)
    return dates


def get_holiday_set(db: Session, location: Optional[str], start: date, end: date) -> set[date]:
    """
    Non-working dates between ``start`` and ``end`` (inclusive) for a location.

    Rows for the location and "global" rows both apply, and on the same date
    the location's row wins. Rows that repeat yearly are projected onto every
    year of the window. A row flagged as a business day marks its date as
    worked, so a location can keep working through a global holiday.
    """
    if end < start:
        return set()

    location = normalize_location(location)
    rows = db.query(Holiday).filter(
        _location_filter(location),
        or_(
            Holiday.repeat_yearly == True,  # noqa: E712
            Holiday.date.between(start, end),
        ),
    ).all()

    # global rows first so location rows overwrite them
    rows.sort(key=lambda row: row.location != GLOBAL_LOCATION)
    worked: dict[date, bool] = {}
    for row in rows:
        for day in _dates_in_window(row, start, end):
            worked[day] = bool(row.is_business_day)
    return {day for day, is_worked in worked.items() if not is_worked}


# ─── CRUD ─────────────────────────────────────────────────────────────────────

def get_all_holidays(db: Session, location: Optional[str] = None, year: Optional[int] = None) -> list[Holiday]:
    q = db.query(Holiday)
    if location:
        q = q.filter(_location_filter(normalize_location(location)))
    if year:
        q = q.filter(Holiday.date.between(date(year, 1, 1), date(year, 12, 31)))
    return q.order_by(Holiday.date.asc(), Holiday.location.asc()).all()


def upsert_holidays(db: Session, items: list[HolidayCreate]) -> list[Holiday]:
    saved = []
    for data in items:
        location = normalize_location(data.location)
        holiday = db.query(Holiday).filter(
            Holiday.date == data.date,
            Holiday.location == location,
        ).first()
        if holiday is None:
            holiday = Holiday(date=data.date, location=location)
            db.add(holiday)

        holiday.name = data.name
        holiday.is_business_day = data.is_business_day
        holiday.repeat_yearly = data.repeat_yearly
        # later items in the same batch may target this row
        db.flush()
        saved.append(holiday)

    db.commit()
    for holiday in saved:
        db.refresh(holiday)

    logger.info("Saved %s holiday calendar rows", len(saved))
    return saved


def delete_holiday(db: Session, holiday_id: int) -> None:
    holiday = db.query(Holiday).filter(Holiday.id == holiday_id).first()
    if not holiday:
        raise not_found("Holiday not found")

    db.delete(holiday)
    db.commit()

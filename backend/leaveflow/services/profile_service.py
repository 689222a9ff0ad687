from sqlalchemy import func
from sqlalchemy.orm import Session

from leaveflow.core.validation import bad_request, not_found
from leaveflow.models.user import User


def _single_match(matches: list[User], identifier: str, label: str):
    if len(matches) > 1:
        raise bad_request(f"{label} identifier '{identifier}' matches more than one employee")
    return matches[0] if matches else None


def resolve_profile_by_identifier(db: Session, identifier: str, label: str = "Reliever") -> User:
    """
    Resolve an employee by id, employee id, email or full name, in that order.
    Only active employees can be picked.
    """
    value = (identifier or "").strip()
    if not value:
        raise bad_request(f"{label} is required")

    active = db.query(User).filter(User.is_active == True)  # noqa: E712

    if value.isdigit():
        user = active.filter(User.id == int(value)).first()
        if user:
            return user

    user = active.filter(User.employee_id == value).first()
    if user:
        return user

    lowered = value.lower()
    user = _single_match(active.filter(func.lower(User.email) == lowered).limit(2).all(), value, label)
    if user:
        return user

    user = _single_match(active.filter(func.lower(User.name) == lowered).limit(2).all(), value, label)
    if user:
        return user

    raise not_found(f"{label} not found")


def get_supervisor_for_user(db: Session, user: User) -> User:
    """The active lead of the employee's department."""
    if not user.department:
        raise bad_request("Your profile has no department; a supervisor cannot be assigned")

    supervisor = db.query(User).filter(
        User.department == user.department,
        User.is_department_lead == True,  # noqa: E712
        User.is_active == True,  # noqa: E712
        User.id != user.id,
    ).order_by(User.id.asc()).first()

    if not supervisor:
        raise bad_request("No department lead configured for your department")
    return supervisor

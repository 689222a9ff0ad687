"""
Bootstrap an empty database with an admin account and the standard leave
types and policies. Safe to run more than once.

    python -m leaveflow.scripts.seed
"""
import logging
import os

from sqlalchemy.orm import Session

from leaveflow.core.security import hash_password
from leaveflow.database.base import Base
from leaveflow.database.session import SessionLocal, engine
from leaveflow.models.leave import LeavePolicy, LeaveType
from leaveflow.models.user import User
from leaveflow.models.holiday import Holiday  # noqa: F401
from leaveflow.models.notification import Notification  # noqa: F401
from leaveflow.models.user_session import UserSession  # noqa: F401

logger = logging.getLogger(__name__)

DEFAULT_LEAVE_TYPES = [
    {
        "type": {"name": "Annual", "code": "ANNUAL", "max_days": 20},
        "policy": {"annual_days": 20, "notice_days": 7, "accrual_mode": "business_days"},
    },
    {
        "type": {"name": "Sick", "code": "SICK", "max_days": 10},
        "policy": {"annual_days": 10, "frequency_rules": {"medical_certificate_after_days": 2}},
    },
    {
        "type": {"name": "Maternity", "code": "MATERNITY", "max_days": 90},
        "policy": {
            "annual_days": 90,
            "eligibility": "female_only",
            "min_tenure_months": 6,
            "eligibility_conditions": {"requires_pregnancy_status": True},
            "required_documents": ["medical_confirmation"],
        },
    },
    {
        "type": {"name": "Paternity", "code": "PATERNITY", "max_days": 10},
        "policy": {
            "annual_days": 10,
            "eligibility": "male_only",
            "eligibility_conditions": {"requires_childbirth_or_adoption_event": True},
        },
    },
    {
        "type": {"name": "Compassionate", "code": "COMPASSIONATE", "max_days": 5},
        "policy": {"annual_days": 5, "eligibility_conditions": {"requires_bereavement_event": True}},
    },
    {
        "type": {"name": "Study", "code": "STUDY", "max_days": 10},
        "policy": {
            "annual_days": 10,
            "min_tenure_months": 12,
            "eligibility_conditions": {
                "allowed_employment_types": ["permanent"],
                "requires_study_purpose": True,
            },
        },
    },
]


def create_admin(db: Session, email: str, password: str) -> bool:
    if db.query(User.id).filter(User.role == "admin").first():
        logger.info("Admin already exists")
        return False

    db.add(User(
        name="System Admin",
        employee_id="ADMIN001",
        email=email,
        password_hash=hash_password(password),
        role="admin",
    ))
    db.commit()
    logger.info("Admin created: %s", email)
    return True


def seed_leave_types(db: Session) -> int:
    created = 0
    for entry in DEFAULT_LEAVE_TYPES:
        code = entry["type"]["code"]
        if db.query(LeaveType.id).filter(LeaveType.code == code).first():
            continue

        leave_type = LeaveType(**entry["type"])
        db.add(leave_type)
        db.flush()
        db.add(LeavePolicy(leave_type_id=leave_type.id, **entry["policy"]))
        created += 1

    db.commit()
    logger.info("Seeded %s leave types", created)
    return created


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        create_admin(
            session,
            email=os.getenv("ADMIN_EMAIL", "admin@company.com"),
            password=os.getenv("ADMIN_PASSWORD", "Admin@123"),
        )
        seed_leave_types(session)
    finally:
        session.close()

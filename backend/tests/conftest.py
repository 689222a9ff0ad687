from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from leaveflow.core.security import create_access_token, hash_password
from leaveflow.database.base import Base
from leaveflow.database.session import get_db
from leaveflow.main import app
from leaveflow.models.leave import LeaveBalance, LeavePolicy, LeaveRequest, LeaveType
from leaveflow.models.user import User
from leaveflow.routes.auth import create_user_session
from leaveflow.utils.dates import add_days

PASSWORD = "Secret@123"
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture()
def db():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def client(db):
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    client_instance = TestClient(app)
    try:
        yield client_instance
    finally:
        client_instance.close()
        app.dependency_overrides.clear()


def make_user(db, name: str, role: str = "employee", department: str = "Engineering", **fields) -> User:
    slug = name.lower().replace(" ", ".")
    user = User(
        name=name,
        employee_id=fields.pop("employee_id", slug.replace(".", "").upper()),
        email=fields.pop("email", f"{slug}@example.com"),
        password_hash=PASSWORD_HASH,
        role=role,
        department=department,
        is_active=fields.pop("is_active", True),
        **fields,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(db, user: User) -> dict[str, str]:
    session = create_user_session(user.id, db, datetime.now(timezone.utc))
    token = create_access_token({"sub": str(user.id), "role": user.role, "sid": session.session_id})
    return {"Authorization": f"Bearer {token}"}


def make_leave_type(db, name: str = "Annual", code: str = "ANNUAL", max_days: int = 20, policy: dict | None = None) -> LeaveType:
    leave_type = LeaveType(name=name, code=code, max_days=max_days)
    db.add(leave_type)
    db.flush()
    if policy is not None:
        db.add(LeavePolicy(leave_type_id=leave_type.id, **policy))
    db.commit()
    db.refresh(leave_type)
    return leave_type


def set_balance(db, user: User, leave_type: LeaveType, year: int, allocated: int, used: int = 0) -> LeaveBalance:
    balance = LeaveBalance(
        user_id=user.id,
        leave_type_id=leave_type.id,
        year=year,
        allocated_days=allocated,
        carried_over_days=0,
        used_days=used,
    )
    db.add(balance)
    db.commit()
    db.refresh(balance)
    return balance


@pytest.fixture()
def staff(db):
    return {
        "requester": make_user(db, "Ada Obi", gender="female", employment_type="permanent"),
        "reliever": make_user(db, "Bola Ade"),
        "lead": make_user(db, "Chidi Eze", is_department_lead=True),
        "colleague": make_user(db, "Dayo Bello"),
        "outsider": make_user(db, "Efe Ojo", department="Finance"),
        "hr": make_user(db, "Funmi Hr", role="hr", department="People"),
    }


@pytest.fixture()
def annual(db, staff):
    leave_type = make_leave_type(db, policy={"annual_days": 20, "accrual_mode": "calendar_days"})
    set_balance(db, staff["requester"], leave_type, 2025, allocated=10)
    return leave_type


def leave_payload(leave_type: LeaveType, reliever: User, **overrides) -> dict:
    payload = {
        "leave_type_id": leave_type.id,
        "start_date": "2025-03-10",
        "days_count": 5,
        "reason": "Family trip",
        "reliever_identifier": reliever.email,
        "handover_note": "Tickets triaged; on-call rota updated",
    }
    payload.update(overrides)
    return payload


def insert_request(db, user: User, leave_type: LeaveType, start, end, status: str = "approved", **fields):
    leave_request = LeaveRequest(
        user_id=user.id,
        leave_type_id=leave_type.id,
        start_date=start,
        end_date=end,
        resume_date=fields.pop("resume_date", add_days(end, 1)),
        days_count=fields.pop("days_count", (end - start).days + 1),
        reason=fields.pop("reason", "Existing leave"),
        status=status,
        approval_stage=fields.pop("approval_stage", "completed" if status == "approved" else "reliever_pending"),
        handover_note=fields.pop("handover_note", "Handover done"),
        **fields,
    )
    db.add(leave_request)
    db.commit()
    db.refresh(leave_request)
    return leave_request

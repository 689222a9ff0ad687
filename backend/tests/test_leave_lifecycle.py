from datetime import date, timedelta

import pytest

from conftest import auth_headers, insert_request, leave_payload, make_leave_type, set_balance

from leaveflow.models.leave import LeaveBalance, LeaveRequest
from leaveflow.models.notification import Notification


@pytest.fixture()
def casual(db, staff):
    return make_leave_type(db, "Casual", "CASUAL", 20)


def _action(client, db, actor, request_id, action, **extra):
    return client.post(
        "/leave/lifecycle",
        json={"leave_request_id": request_id, "action": action, **extra},
        headers=auth_headers(db, actor),
    )


def _approved_upcoming(db, staff, leave_type, days_ahead=30, days=5):
    start = date.today() + timedelta(days=days_ahead)
    end = start + timedelta(days=days - 1)
    set_balance(db, staff["requester"], leave_type, start.year, allocated=20, used=days)
    return insert_request(
        db, staff["requester"], leave_type, start, end,
        reliever_id=staff["reliever"].id, supervisor_id=staff["lead"].id,
    )


def _balance(db, leave_request):
    return db.query(LeaveBalance).filter(
        LeaveBalance.user_id == leave_request.user_id,
        LeaveBalance.leave_type_id == leave_request.leave_type_id,
        LeaveBalance.year == leave_request.start_date.year,
    ).one()


# ─── WITHDRAW ─────────────────────────────────────────────────────────────────

def test_withdraw_pending_request(client, db, staff, annual):
    created = client.post(
        "/leave/requests",
        json=leave_payload(annual, staff["reliever"]),
        headers=auth_headers(db, staff["requester"]),
    ).json()
    db.query(Notification).delete()
    db.commit()

    not_owner = _action(client, db, staff["reliever"], created["id"], "withdraw")
    assert not_owner.status_code == 403
    assert not_owner.json() == {"error": "Only the requester can withdraw a leave request"}

    response = _action(client, db, staff["requester"], created["id"], "withdraw", reason="Plans changed")

    assert response.status_code == 200, response.text
    assert response.json()["status"] == "cancelled"
    assert response.json()["approval_stage"] == "cancelled"
    titles = {(row.user_id, row.title) for row in db.query(Notification).all()}
    assert titles == {
        (staff["reliever"].id, "Leave request withdrawn"),
        (staff["lead"].id, "Leave request withdrawn"),
    }

    again = _action(client, db, staff["requester"], created["id"], "withdraw")
    assert again.status_code == 400
    assert again.json() == {"error": "Only pending leave requests can be withdrawn"}

    resubmitted = client.post(
        "/leave/requests",
        json=leave_payload(annual, staff["reliever"]),
        headers=auth_headers(db, staff["requester"]),
    )
    assert resubmitted.status_code == 201


# ─── CANCEL ───────────────────────────────────────────────────────────────────

def test_cancel_before_start_restores_balance(client, db, staff, casual):
    leave_request = _approved_upcoming(db, staff, casual)

    response = _action(client, db, staff["requester"], leave_request.id, "cancel")

    assert response.status_code == 200, response.text
    assert response.json()["status"] == "cancelled"
    assert _balance(db, leave_request).used_days == 0
    notified = {row.user_id for row in db.query(Notification).all()}
    assert notified == {staff["reliever"].id, staff["lead"].id}


def test_cancel_after_start_is_hr_only(client, db, staff, casual):
    start = date.today() - timedelta(days=1)
    set_balance(db, staff["requester"], casual, start.year, allocated=20, used=3)
    leave_request = insert_request(db, staff["requester"], casual, start, start + timedelta(days=2))

    employee = _action(client, db, staff["requester"], leave_request.id, "cancel")
    assert employee.status_code == 400
    assert employee.json() == {"error": "You can only cancel leave before it starts"}

    outsider = _action(client, db, staff["colleague"], leave_request.id, "cancel")
    assert outsider.status_code == 403

    hr = _action(client, db, staff["hr"], leave_request.id, "cancel", reason="Recalled to office")
    assert hr.status_code == 200, hr.text
    assert hr.json()["hr_comment"] == "Recalled to office"


def test_cancel_requires_approved_leave(client, db, staff, annual):
    pending = insert_request(db, staff["requester"], annual, date(2025, 3, 10), date(2025, 3, 11), status="pending")

    response = _action(client, db, staff["requester"], pending.id, "cancel")

    assert response.status_code == 400
    assert response.json() == {"error": "Only approved leave can be cancelled"}


# ─── EXTEND ───────────────────────────────────────────────────────────────────

def test_extend_creates_linked_request(client, db, staff, casual):
    original = _approved_upcoming(db, staff, casual)

    response = _action(client, db, staff["requester"], original.id, "extend", extension_days=2)

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["request_kind"] == "extension"
    assert body["original_request_id"] == original.id
    assert body["status"] == "pending"
    assert body["start_date"] == (original.end_date + timedelta(days=1)).isoformat()
    assert body["days_count"] == 2
    assert body["reliever_id"] == staff["reliever"].id
    assert body["supervisor_id"] == staff["lead"].id
    assert db.query(LeaveRequest).count() == 2


def test_extend_runs_full_validation(client, db, staff, casual):
    original = _approved_upcoming(db, staff, casual)
    insert_request(
        db, staff["reliever"], casual,
        original.end_date + timedelta(days=1), original.end_date + timedelta(days=3),
    )

    response = _action(client, db, staff["requester"], original.id, "extend", extension_days=2)

    assert response.status_code == 400
    assert response.json() == {"error": "Selected reliever is unavailable in the requested date range"}


def test_extend_rules(client, db, staff, casual):
    original = _approved_upcoming(db, staff, casual)

    by_hr = _action(client, db, staff["hr"], original.id, "extend", extension_days=1)
    assert by_hr.status_code == 403
    assert by_hr.json() == {"error": "Only the requester can request an extension"}

    missing_days = _action(client, db, staff["requester"], original.id, "extend")
    assert missing_days.status_code == 400

    original.status = "rejected"
    db.commit()
    not_approved = _action(client, db, staff["requester"], original.id, "extend", extension_days=1)
    assert not_approved.json() == {"error": "Only approved leave can be extended"}


# ─── EARLY RETURN ─────────────────────────────────────────────────────────────

def test_early_return_shortens_leave_and_restores_days(client, db, staff, annual):
    balance = db.query(LeaveBalance).filter(LeaveBalance.user_id == staff["requester"].id).one()
    balance.used_days = 5
    db.commit()
    leave_request = insert_request(db, staff["requester"], annual, date(2025, 3, 10), date(2025, 3, 14))

    response = _action(client, db, staff["hr"], leave_request.id, "early_return", early_return_date="2025-03-12")

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["end_date"] == "2025-03-12"
    assert body["resume_date"] == "2025-03-13"
    assert body["days_count"] == 3
    db.refresh(balance)
    assert balance.used_days == 3
    notice = db.query(Notification).filter(Notification.user_id == staff["requester"].id).one()
    assert notice.title == "Leave shortened for early return"


def test_early_return_on_business_day_leave_skips_weekend(client, db, staff):
    leave_type = make_leave_type(db, "Study", "STUDY", 20, policy={"annual_days": 20, "accrual_mode": "business_days"})
    leave_request = insert_request(
        db, staff["requester"], leave_type, date(2025, 3, 10), date(2025, 3, 21),
        days_count=10, requested_days_mode="business_days",
    )

    response = _action(client, db, staff["hr"], leave_request.id, "early_return", early_return_date="2025-03-14")

    assert response.status_code == 200, response.text
    assert response.json()["days_count"] == 5
    assert response.json()["resume_date"] == "2025-03-17"


def test_early_return_rules(client, db, staff, annual):
    leave_request = insert_request(db, staff["requester"], annual, date(2025, 3, 10), date(2025, 3, 14))

    employee = _action(client, db, staff["requester"], leave_request.id, "early_return", early_return_date="2025-03-12")
    assert employee.status_code == 403
    assert employee.json() == {"error": "Only HR can process early return"}

    outside = _action(client, db, staff["hr"], leave_request.id, "early_return", early_return_date="2025-03-20")
    assert outside.status_code == 400
    assert outside.json() == {"error": "early_return_date must be within leave period"}

    unknown = _action(client, db, staff["hr"], 9999, "withdraw")
    assert unknown.status_code == 404

from datetime import date

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError

from conftest import auth_headers, insert_request, leave_payload, make_leave_type, set_balance

from leaveflow.models.leave import LeaveRequest, LeaveStatus
from leaveflow.models.notification import Notification
from leaveflow.services.leave_request_service import _assert_distinct_parties, _commit_request

DUPLICATE = (
    "You already have a pending leave request. Please wait for it to be processed "
    "or cancel it before submitting a new one."
)


def _notified(db):
    return {row.user_id for row in db.query(Notification).all()}


# ─── CREATE ───────────────────────────────────────────────────────────────────

def test_create_annual_leave(client, db, staff, annual):
    response = client.post(
        "/leave/requests",
        json=leave_payload(annual, staff["reliever"]),
        headers=auth_headers(db, staff["requester"]),
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["end_date"] == "2025-03-14"
    assert body["resume_date"] == "2025-03-15"
    assert body["days_count"] == 5
    assert body["status"] == "pending"
    assert body["approval_stage"] == "reliever_pending"
    assert body["reliever_id"] == staff["reliever"].id
    assert body["supervisor_id"] == staff["lead"].id
    assert body["evidence_complete"] is True
    assert _notified(db) == {staff["reliever"].id, staff["lead"].id}


def test_second_active_request_is_rejected(client, db, staff, annual):
    headers = auth_headers(db, staff["requester"])
    first = client.post("/leave/requests", json=leave_payload(annual, staff["reliever"]), headers=headers)
    assert first.status_code == 201, first.text

    second = client.post(
        "/leave/requests",
        json=leave_payload(annual, staff["reliever"], start_date="2025-03-12", days_count=1),
        headers=headers,
    )

    assert second.status_code == 400
    assert second.json() == {"error": DUPLICATE}
    assert db.query(LeaveRequest).count() == 1


def test_maternity_without_pregnancy_status_is_not_eligible(client, db, staff):
    maternity = make_leave_type(db, "Maternity", "MATERNITY", 90, policy={
        "annual_days": 90,
        "eligibility_conditions": {"requires_pregnancy_status": True},
    })

    response = client.post(
        "/leave/requests",
        json=leave_payload(maternity, staff["reliever"]),
        headers=auth_headers(db, staff["requester"]),
    )

    assert response.status_code == 400
    assert response.json() == {"error": "This leave type requires a confirmed pregnancy status on your profile."}
    assert db.query(LeaveRequest).count() == 0
    assert _notified(db) == set()


def test_end_date_derives_day_count(client, db, staff, annual):
    payload = leave_payload(annual, staff["reliever"], end_date="2025-03-12")
    payload.pop("days_count")

    response = client.post("/leave/requests", json=payload, headers=auth_headers(db, staff["requester"]))

    assert response.status_code == 201, response.text
    assert response.json()["days_count"] == 3
    assert response.json()["end_date"] == "2025-03-12"


def test_business_day_policy_skips_weekend(client, db, staff):
    leave_type = make_leave_type(db, "Casual", "CASUAL", 10, policy={"annual_days": 10, "accrual_mode": "business_days"})

    response = client.post(
        "/leave/requests",
        json=leave_payload(leave_type, staff["reliever"], start_date="2025-03-13", days_count=3),
        headers=auth_headers(db, staff["requester"]),
    )

    assert response.status_code == 201, response.text
    assert response.json()["end_date"] == "2025-03-17"
    assert response.json()["resume_date"] == "2025-03-18"
    assert response.json()["requested_days_mode"] == "business_days"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"days_count": 0}, "Number of days must be greater than zero"),
        ({"days_count": None}, "Either days_count or end_date is required"),
        ({"days_count": None, "end_date": "2025-03-01"}, "End date must be after start date"),
        ({"reason": "   "}, "reason: Value error, This field is required"),
    ],
)
def test_invalid_input_is_rejected(client, db, staff, annual, overrides, message):
    response = client.post(
        "/leave/requests",
        json=leave_payload(annual, staff["reliever"], **overrides),
        headers=auth_headers(db, staff["requester"]),
    )
    assert response.status_code == 400
    assert response.json()["error"] == message


def test_missing_field_and_bad_date(client, db, staff, annual):
    headers = auth_headers(db, staff["requester"])

    payload = leave_payload(annual, staff["reliever"])
    payload.pop("handover_note")
    missing = client.post("/leave/requests", json=payload, headers=headers)
    assert missing.status_code == 400
    assert missing.json()["error"] == "handover_note is required"

    bad_date = client.post(
        "/leave/requests", json=leave_payload(annual, staff["reliever"], start_date="2025-13-45"), headers=headers
    )
    assert bad_date.status_code == 400
    assert bad_date.json()["error"] == "start_date must be a valid date (YYYY-MM-DD)"


def test_unauthenticated_request(client, annual, staff):
    response = client.post("/leave/requests", json=leave_payload(annual, staff["reliever"]))
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_unknown_leave_type_and_reliever(client, db, staff, annual):
    headers = auth_headers(db, staff["requester"])

    no_type = client.post(
        "/leave/requests", json=leave_payload(annual, staff["reliever"], leave_type_id=999), headers=headers
    )
    assert no_type.status_code == 404
    assert no_type.json() == {"error": "Leave type not found"}

    no_reliever = client.post(
        "/leave/requests",
        json=leave_payload(annual, staff["reliever"], reliever_identifier="nobody@example.com"),
        headers=headers,
    )
    assert no_reliever.status_code == 404
    assert no_reliever.json() == {"error": "Reliever not found"}


@pytest.mark.parametrize(
    "reliever_key, message",
    [
        ("requester", "You cannot select yourself as reliever"),
        ("lead", "Reliever and supervisor must be different people"),
        ("outsider", "Reliever must belong to your department"),
    ],
)
def test_party_rules(client, db, staff, annual, reliever_key, message):
    response = client.post(
        "/leave/requests",
        json=leave_payload(annual, staff[reliever_key]),
        headers=auth_headers(db, staff["requester"]),
    )
    assert response.status_code == 400
    assert response.json() == {"error": message}
    assert db.query(LeaveRequest).count() == 0


def test_requester_cannot_be_their_own_supervisor(staff):
    with pytest.raises(HTTPException) as exc_info:
        _assert_distinct_parties(staff["requester"], staff["reliever"], staff["requester"])

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "You cannot be your own supervisor for a leave request"


def test_reliever_resolves_by_employee_id_and_name(client, db, staff, annual):
    headers = auth_headers(db, staff["requester"])

    by_name = client.post(
        "/leave/requests",
        json=leave_payload(annual, staff["reliever"], reliever_identifier="bola ade"),
        headers=headers,
    )
    assert by_name.status_code == 201, by_name.text
    assert by_name.json()["reliever_id"] == staff["reliever"].id

    client.delete(f"/leave/requests?id={by_name.json()['id']}", headers=headers)

    by_code = client.post(
        "/leave/requests",
        json=leave_payload(annual, staff["reliever"], reliever_identifier=staff["reliever"].employee_id),
        headers=headers,
    )
    assert by_code.status_code == 201, by_code.text


def test_missing_department_lead(client, db, staff, annual):
    staff["lead"].is_department_lead = False
    db.commit()

    response = client.post(
        "/leave/requests",
        json=leave_payload(annual, staff["reliever"]),
        headers=auth_headers(db, staff["requester"]),
    )
    assert response.status_code == 400
    assert response.json() == {"error": "No department lead configured for your department"}


def test_overlap_with_approved_leave(client, db, staff, annual):
    insert_request(db, staff["requester"], annual, date(2025, 3, 12), date(2025, 3, 14))
    headers = auth_headers(db, staff["requester"])

    overlapping = client.post("/leave/requests", json=leave_payload(annual, staff["reliever"]), headers=headers)
    assert overlapping.status_code == 400
    assert overlapping.json() == {"error": "You already have an overlapping leave request for this date range"}

    clear = client.post(
        "/leave/requests",
        json=leave_payload(annual, staff["reliever"], start_date="2025-03-17", days_count=2),
        headers=headers,
    )
    assert clear.status_code == 201, clear.text


def test_rejected_leave_does_not_block(client, db, staff, annual):
    insert_request(db, staff["requester"], annual, date(2025, 3, 10), date(2025, 3, 14), status="rejected")

    response = client.post(
        "/leave/requests",
        json=leave_payload(annual, staff["reliever"]),
        headers=auth_headers(db, staff["requester"]),
    )
    assert response.status_code == 201, response.text


def test_reliever_on_leave_is_unavailable(client, db, staff, annual):
    insert_request(db, staff["reliever"], annual, date(2025, 3, 14), date(2025, 3, 20))

    response = client.post(
        "/leave/requests",
        json=leave_payload(annual, staff["reliever"]),
        headers=auth_headers(db, staff["requester"]),
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Selected reliever is unavailable in the requested date range"}


def test_requester_covering_a_colleague_cannot_leave(client, db, staff, annual):
    insert_request(
        db, staff["colleague"], annual, date(2025, 3, 11), date(2025, 3, 12),
        reliever_id=staff["requester"].id, supervisor_id=staff["lead"].id,
    )

    response = client.post(
        "/leave/requests",
        json=leave_payload(annual, staff["reliever"]),
        headers=auth_headers(db, staff["requester"]),
    )
    assert response.status_code == 400
    assert response.json() == {
        "error": "You are the designated reliever for another leave request in this date range"
    }


def test_insufficient_balance_quotes_remaining(client, db, staff, annual):
    response = client.post(
        "/leave/requests",
        json=leave_payload(annual, staff["reliever"], days_count=11),
        headers=auth_headers(db, staff["requester"]),
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Insufficient leave balance. You have 10 days remaining."}


def test_balance_counts_carry_over_and_usage(client, db, staff):
    leave_type = make_leave_type(db, "Casual", "CASUAL", 10)
    balance = set_balance(db, staff["requester"], leave_type, 2025, allocated=5, used=4)
    balance.carried_over_days = 2
    db.commit()

    response = client.post(
        "/leave/requests",
        json=leave_payload(leave_type, staff["reliever"], days_count=4),
        headers=auth_headers(db, staff["requester"]),
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Insufficient leave balance. You have 3 days remaining."}


def test_required_documents_hold_request_without_notifying(client, db, staff):
    sick = make_leave_type(db, "Sick", "SICK", 10, policy={"annual_days": 10, "required_documents": ["doctor_note"]})

    response = client.post(
        "/leave/requests",
        json=leave_payload(sick, staff["reliever"], days_count=2),
        headers=auth_headers(db, staff["requester"]),
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["status"] == "pending_evidence"
    assert body["required_documents"] == ["doctor_note"]
    assert body["missing_documents"] == ["doctor_note"]
    assert body["evidence_complete"] is False
    assert _notified(db) == set()


def test_storage_allows_one_active_request_per_user(db, staff, annual):
    insert_request(db, staff["requester"], annual, date(2025, 3, 10), date(2025, 3, 11), status="pending")

    with pytest.raises(IntegrityError):
        insert_request(db, staff["requester"], annual, date(2025, 4, 10), date(2025, 4, 11), status="pending_evidence")
    db.rollback()

    insert_request(db, staff["requester"], annual, date(2025, 5, 10), date(2025, 5, 11), status="approved")


def _unsaved_request(db, user, leave_type, start, end, **fields):
    leave_request = LeaveRequest(
        user_id=user.id,
        leave_type_id=leave_type.id,
        start_date=start,
        end_date=end,
        resume_date=end,
        days_count=(end - start).days + 1,
        reason=fields.pop("reason", "Family trip"),
        status=LeaveStatus.PENDING,
        handover_note="Handover done",
        **fields,
    )
    db.add(leave_request)
    return leave_request


def test_commit_maps_active_index_conflict_to_duplicate_error(db, staff, annual):
    insert_request(db, staff["requester"], annual, date(2025, 3, 10), date(2025, 3, 11), status="pending")
    second = _unsaved_request(db, staff["requester"], annual, date(2025, 4, 7), date(2025, 4, 8))

    with pytest.raises(HTTPException) as exc_info:
        _commit_request(db, second)

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == DUPLICATE
    assert db.query(LeaveRequest).count() == 1


def test_commit_reraises_other_integrity_errors(db, staff, annual):
    broken = _unsaved_request(db, staff["requester"], annual, date(2025, 4, 7), date(2025, 4, 8), reason=None)

    with pytest.raises(IntegrityError):
        _commit_request(db, broken)

    assert db.query(LeaveRequest).count() == 0


def test_unexpected_constraint_failure_is_a_server_error(client, db, staff, annual, monkeypatch):
    headers = auth_headers(db, staff["requester"])
    real_commit = db.commit

    def commit_with_foreign_key_failure():
        if any(isinstance(obj, LeaveRequest) for obj in db.new):
            raise IntegrityError("INSERT INTO leave_requests", {}, Exception("FOREIGN KEY constraint failed"))
        return real_commit()

    monkeypatch.setattr(db, "commit", commit_with_foreign_key_failure)

    response = client.post("/leave/requests", json=leave_payload(annual, staff["reliever"]), headers=headers)

    assert response.status_code == 500
    assert response.json() == {"error": "A database error occurred"}


# ─── AMEND ────────────────────────────────────────────────────────────────────

def _create(client, db, staff, leave_type, **overrides):
    response = client.post(
        "/leave/requests",
        json=leave_payload(leave_type, staff["reliever"], **overrides),
        headers=auth_headers(db, staff["requester"]),
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_amend_recomputes_dates(client, db, staff, annual):
    created = _create(client, db, staff, annual)

    response = client.put(
        "/leave/requests",
        json={"id": created["id"], "start_date": "2025-03-11", "days_count": 3, "reason": "Shorter trip"},
        headers=auth_headers(db, staff["requester"]),
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["end_date"] == "2025-03-13"
    assert body["resume_date"] == "2025-03-14"
    assert body["reason"] == "Shorter trip"
    assert body["reliever_id"] == staff["reliever"].id


def test_amend_is_owner_only(client, db, staff, annual):
    created = _create(client, db, staff, annual)

    response = client.put(
        "/leave/requests",
        json={"id": created["id"], "days_count": 2},
        headers=auth_headers(db, staff["colleague"]),
    )
    assert response.status_code == 403
    assert response.json() == {"error": "You can only edit your own leave requests"}


def test_amend_blocked_once_reliever_has_acted(client, db, staff, annual):
    created = _create(client, db, staff, annual)
    leave_request = db.get(LeaveRequest, created["id"])
    leave_request.approval_stage = "supervisor_pending"
    db.commit()

    response = client.put(
        "/leave/requests",
        json={"id": created["id"], "days_count": 2},
        headers=auth_headers(db, staff["requester"]),
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Leave requests can only be changed before the reliever has acted on them"}


def test_amend_reruns_balance_and_overlap_checks(client, db, staff, annual):
    created = _create(client, db, staff, annual)
    insert_request(db, staff["requester"], annual, date(2025, 4, 1), date(2025, 4, 2))
    headers = auth_headers(db, staff["requester"])

    too_long = client.put("/leave/requests", json={"id": created["id"], "days_count": 11}, headers=headers)
    assert too_long.status_code == 400
    assert too_long.json() == {"error": "Insufficient leave balance. You have 10 days remaining."}

    overlapping = client.put(
        "/leave/requests", json={"id": created["id"], "start_date": "2025-03-31"}, headers=headers
    )
    assert overlapping.status_code == 400
    assert overlapping.json() == {"error": "You already have an overlapping leave request for this date range"}


def test_amend_with_new_reliever_notifies(client, db, staff, annual):
    created = _create(client, db, staff, annual)
    db.query(Notification).delete()
    db.commit()

    response = client.put(
        "/leave/requests",
        json={"id": created["id"], "reliever_identifier": staff["colleague"].email},
        headers=auth_headers(db, staff["requester"]),
    )

    assert response.status_code == 200, response.text
    assert response.json()["reliever_id"] == staff["colleague"].id
    assert _notified(db) == {staff["colleague"].id, staff["lead"].id}


# ─── DELETE ───────────────────────────────────────────────────────────────────

def test_delete_pending_request(client, db, staff, annual):
    created = _create(client, db, staff, annual)

    response = client.delete(f"/leave/requests?id={created['id']}", headers=auth_headers(db, staff["requester"]))

    assert response.status_code == 200, response.text
    assert db.query(LeaveRequest).count() == 0


def test_delete_gates(client, db, staff, annual):
    created = _create(client, db, staff, annual)

    other = client.delete(f"/leave/requests?id={created['id']}", headers=auth_headers(db, staff["colleague"]))
    assert other.status_code == 403

    missing = client.delete("/leave/requests?id=999", headers=auth_headers(db, staff["requester"]))
    assert missing.status_code == 404
    assert missing.json() == {"error": "Leave request not found"}

    approved = insert_request(db, staff["requester"], annual, date(2025, 6, 2), date(2025, 6, 3))
    locked = client.delete(f"/leave/requests?id={approved.id}", headers=auth_headers(db, staff["requester"]))
    assert locked.status_code == 400


# ─── LIST ─────────────────────────────────────────────────────────────────────

def test_list_scopes_by_participant(client, db, staff, annual):
    created = _create(client, db, staff, annual)

    own = client.get("/leave/requests", headers=auth_headers(db, staff["requester"])).json()
    assert [row["id"] for row in own["requests"]] == [created["id"]]
    assert own["balances"][0]["balance_days"] == 10
    assert own["requests"][0]["missing_documents"] == []

    relieving = client.get("/leave/requests", headers=auth_headers(db, staff["reliever"])).json()
    assert [row["id"] for row in relieving["requests"]] == [created["id"]]

    outsider = client.get("/leave/requests", headers=auth_headers(db, staff["outsider"])).json()
    assert outsider["requests"] == []

    hr = client.get(
        f"/leave/requests?user_id={staff['requester'].id}&status=pending", headers=auth_headers(db, staff["hr"])
    ).json()
    assert [row["id"] for row in hr["requests"]] == [created["id"]]


def test_list_other_users_requests_needs_hr(client, db, staff, annual):
    response = client.get(
        f"/leave/requests?user_id={staff['requester'].id}", headers=auth_headers(db, staff["outsider"])
    )
    assert response.status_code == 403
    assert response.json() == {"error": "You can only view your own leave requests"}

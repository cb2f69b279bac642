"""
End-to-end tests through the HTTP API
"""
from datetime import timedelta
from decimal import Decimal

import pytest

from app.utils.datetime_utils import business_today


@pytest.fixture
def week():
    """Monday to Friday of a week at least eight days out, so the 3-day notice band passes"""
    today = business_today()
    monday = today + timedelta(days=14 - today.weekday())
    return [monday + timedelta(days=i) for i in range(5)]


@pytest.fixture
def setup(policies, set_balance, test_employee, manager_employee, hr_employee):
    set_balance(test_employee, casual=5, sick=3)


def _apply(client, headers, start, end, leave_type="casual", **extra):
    body = {
        "leave_type": leave_type,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        **extra,
    }
    return client.post("/api/v1/leaves/apply", json=body, headers=headers)


def test_requires_token(client):
    response = client.get("/api/v1/leaves/my")
    assert response.status_code in (401, 403)


def test_invalid_token(client):
    response = client.get("/api/v1/leaves/my", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


def test_apply_and_list(client, setup, test_employee, auth_headers, week):
    headers = auth_headers(test_employee)

    response = _apply(client, headers, week[0], week[2], reason="trip")

    assert response.status_code == 201
    data = response.json()
    assert data["current_status"] == "pending"
    assert Decimal(data["no_of_days"]) == Decimal("3")
    assert [d["day_status"] for d in data["days"]] == ["pending"] * 3
    assert data["created_at"].endswith("+05:30")

    listing = client.get("/api/v1/leaves/my", headers=headers).json()
    assert listing["total"] == 1
    assert listing["items"][0]["id"] == data["id"]

    filtered = client.get("/api/v1/leaves/my?status=approved", headers=headers).json()
    assert filtered["total"] == 0


def test_apply_errors_carry_code_and_context(client, setup, test_employee, auth_headers, week):
    headers = auth_headers(test_employee)
    _apply(client, headers, week[0], week[1])

    response = _apply(client, headers, week[1], week[2])

    assert response.status_code == 409
    body = response.json()
    assert body["error"] is True
    assert body["error_code"] == "DATE_CONFLICT"
    assert body["context"]["date"] == week[1].isoformat()
    assert body["context"]["existing_status"] == "pending"


def test_insufficient_balance_response(client, setup, set_balance, test_employee, auth_headers, week):
    set_balance(test_employee, casual=2)

    response = _apply(client, auth_headers(test_employee), week[0], week[2])

    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "INSUFFICIENT_BALANCE"
    assert Decimal(str(body["context"]["requested"])) == Decimal("3")


def test_end_before_start_is_validation_error(client, setup, test_employee, auth_headers, week):
    response = _apply(client, auth_headers(test_employee), week[2], week[0])
    assert response.status_code == 422


def test_decide_and_cancel_flow(client, setup, test_employee, manager_employee, auth_headers, week):
    employee_headers = auth_headers(test_employee)
    manager_headers = auth_headers(manager_employee)
    leave = _apply(client, employee_headers, week[0], week[2]).json()

    pending = client.get("/api/v1/leaves/pending", headers=manager_headers).json()
    assert [r["id"] for r in pending["items"]] == [leave["id"]]

    day_ids = [d["id"] for d in leave["days"]]
    response = client.post(
        f"/api/v1/leaves/{leave['id']}/decide",
        json={"action": "approve", "day_ids": day_ids[:2], "comment": "ok"},
        headers=manager_headers,
    )
    assert response.status_code == 200
    decided = response.json()
    assert decided["current_status"] == "partially_approved"
    assert decided["last_updated_by_role"] == "manager"
    assert [d["day_status"] for d in decided["days"]] == ["approved", "approved", "rejected"]

    balance = client.get("/api/v1/balances/me", headers=employee_headers).json()
    assert Decimal(balance["balances"]["casual"]["balance"]) == Decimal("3")

    # Decided requests can no longer be edited
    response = client.put(f"/api/v1/leaves/{leave['id']}", json={"reason": "x"}, headers=employee_headers)
    assert response.status_code == 409
    assert response.json()["error_code"] == "REQUEST_LOCKED"

    response = client.post(f"/api/v1/leaves/{leave['id']}/cancel", json={"remarks": "no longer needed"},
                           headers=employee_headers)
    assert response.status_code == 200
    assert response.json()["current_status"] == "cancelled"

    balance = client.get("/api/v1/balances/me", headers=employee_headers).json()
    assert Decimal(balance["balances"]["casual"]["balance"]) == Decimal("5")


def test_decide_rejects_cancel_action(client, setup, test_employee, manager_employee, auth_headers, week):
    leave = _apply(client, auth_headers(test_employee), week[0], week[0]).json()

    response = client.post(
        f"/api/v1/leaves/{leave['id']}/decide",
        json={"action": "cancel"},
        headers=auth_headers(manager_employee),
    )
    assert response.status_code == 422


def test_manager_cannot_override_hr(client, setup, test_employee, manager_employee, hr_employee, auth_headers, week):
    leave = _apply(client, auth_headers(test_employee), week[0], week[1]).json()
    client.post(
        f"/api/v1/leaves/{leave['id']}/decide",
        json={"action": "approve", "day_ids": [leave["days"][0]["id"]]},
        headers=auth_headers(hr_employee),
    )

    response = client.post(
        f"/api/v1/leaves/{leave['id']}/decide",
        json={"action": "reject"},
        headers=auth_headers(manager_employee),
    )

    assert response.status_code == 403
    assert response.json()["error_code"] == "INSUFFICIENT_AUTHORITY"


def test_edit_and_delete(client, setup, test_employee, auth_headers, week):
    headers = auth_headers(test_employee)
    leave = _apply(client, headers, week[0], week[2]).json()

    response = client.put(f"/api/v1/leaves/{leave['id']}", json={"end_date": week[0].isoformat()}, headers=headers)
    assert response.status_code == 200
    assert Decimal(response.json()["no_of_days"]) == Decimal("1")

    assert client.delete(f"/api/v1/leaves/{leave['id']}", headers=headers).status_code == 204
    assert client.get(f"/api/v1/leaves/{leave['id']}", headers=headers).status_code == 404


def test_get_leave_visibility(client, setup, make_employee, test_employee, auth_headers, week):
    leave = _apply(client, auth_headers(test_employee), week[0], week[0]).json()
    stranger = make_employee("EMP002")

    assert client.get(f"/api/v1/leaves/{leave['id']}", headers=auth_headers(test_employee)).status_code == 200
    assert client.get(f"/api/v1/leaves/{leave['id']}", headers=auth_headers(stranger)).status_code == 403


def test_balances(client, setup, test_employee, manager_employee, hr_employee, auth_headers):
    me = client.get("/api/v1/balances/me", headers=auth_headers(test_employee))
    assert me.status_code == 200
    lines = me.json()["balances"]
    assert set(lines) == {"casual", "sick", "lop"}
    assert Decimal(lines["lop"]["available"]) == Decimal("10")

    other = client.get(f"/api/v1/balances/{test_employee.id}", headers=auth_headers(hr_employee))
    assert other.status_code == 200
    assert Decimal(other.json()["balances"]["sick"]["balance"]) == Decimal("3")

    assert client.get(f"/api/v1/balances/{test_employee.id}", headers=auth_headers(manager_employee)).status_code == 403
    assert client.get("/api/v1/balances/9999", headers=auth_headers(hr_employee)).status_code == 404


def test_accrual_run(client, setup, test_employee, hr_employee, auth_headers):
    response = client.post("/api/v1/accrual/run?period=2026-03", headers=auth_headers(hr_employee))

    assert response.status_code == 200
    assert response.json()["trigger"] == "monthly"
    assert response.json()["credited_count"] >= 1

    again = client.post("/api/v1/accrual/run?period=2026-03", headers=auth_headers(hr_employee)).json()
    assert again["credited_count"] == 0


def test_accrual_run_bad_period(client, setup, hr_employee, auth_headers):
    response = client.post("/api/v1/accrual/run?period=2026-3", headers=auth_headers(hr_employee))
    assert response.status_code == 400


def test_accrual_run_forbidden_for_employees(client, setup, test_employee, auth_headers):
    response = client.post("/api/v1/accrual/run?period=2026-03", headers=auth_headers(test_employee))
    assert response.status_code == 403


def test_super_admin_passes_role_guards(client, setup, super_admin, auth_headers):
    response = client.post("/api/v1/accrual/run?period=2026-03", headers=auth_headers(super_admin))
    assert response.status_code == 200


def test_policies(client, setup, test_employee, hr_employee, auth_headers):
    listing = client.get("/api/v1/policies?role=intern&leave_type=casual", headers=auth_headers(test_employee))
    assert listing.status_code == 200
    assert Decimal(listing.json()[0]["annual_credit"]) == Decimal("6")

    body = {
        "role": "employee",
        "leave_type": "casual",
        "annual_credit": "18",
        "annual_max": "0",
        "carry_forward_limit": "8",
        "effective_from": "2027-01-01",
    }
    assert client.post("/api/v1/policies", json=body, headers=auth_headers(test_employee)).status_code == 403
    created = client.post("/api/v1/policies", json=body, headers=auth_headers(hr_employee))
    assert created.status_code == 201
    assert client.post("/api/v1/policies", json=body, headers=auth_headers(hr_employee)).status_code == 409


def test_leave_rules_are_read_only(client, setup, test_employee, hr_employee, auth_headers):
    rules = client.get("/api/v1/leave-rules", headers=auth_headers(test_employee)).json()
    assert [r["prior_information_days"] for r in rules] == [3, 7, 30]
    assert rules[-1]["leave_required_max"] is None

    headers = auth_headers(hr_employee)
    body = {"leave_required_min": "1", "leave_required_max": "2", "prior_information_days": 1}
    assert client.post("/api/v1/leave-rules", json=body, headers=headers).status_code == 405
    response = client.put(f"/api/v1/leave-rules/{rules[0]['id']}", json={"prior_information_days": 2}, headers=headers)
    assert response.status_code in (404, 405)


def test_convert_lop_to_casual(client, setup, test_employee, hr_employee, super_admin, auth_headers, week):
    leave = _apply(client, auth_headers(test_employee), week[0], week[1], leave_type="lop").json()
    url = f"/api/v1/leaves/{leave['id']}/convert-to-casual"
    body = {"proof_ref": "uploads/medical.pdf"}

    assert client.post(url, json=body, headers=auth_headers(hr_employee)).status_code == 403
    assert client.post(url, json={"proof_ref": ""}, headers=auth_headers(super_admin)).status_code == 422

    response = client.post(url, json=body, headers=auth_headers(super_admin))
    assert response.status_code == 200
    assert response.json()["leave_type"] == "casual"

    again = client.post(url, json=body, headers=auth_headers(super_admin))
    assert again.status_code == 400
    assert again.json()["error_code"] == "INVALID_RANGE"


def test_module_access(client, setup, test_employee, hr_employee, auth_headers):
    headers = auth_headers(hr_employee)
    url = "/api/v1/access/modules/reports"

    response = client.post(f"{url}/toggle", json={"employee_id": test_employee.id, "action": "add"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["changed"] is True

    again = client.post(f"{url}/toggle", json={"employee_id": test_employee.id, "action": "add"}, headers=headers)
    assert again.json()["changed"] is False

    members = client.get(url, headers=auth_headers(test_employee)).json()
    assert members == {"module_id": "reports", "employee_ids": [test_employee.id]}

    missing = client.post(f"{url}/toggle", json={"employee_id": 9999, "action": "add"}, headers=headers)
    assert missing.status_code == 404

    invalid = client.post(f"{url}/toggle", json={"employee_id": test_employee.id, "action": "grant"}, headers=headers)
    assert invalid.status_code == 422

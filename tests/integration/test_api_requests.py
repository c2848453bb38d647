"""
HTTP-level tests through the FastAPI app with an httpx ASGI client.

Covers auth, the request workflow endpoints, the error envelope, visibility
scoping, notification inbox, dashboards and a few master-data endpoints.
"""

import pytest
from httpx import AsyncClient

from procure_api.routes.system_parameters import DEFAULT_PARAMETERS
from procure_api.services import request_service

PASSWORD = "Secret123!"

REQUESTS = "/api/v1/requests"

PAYLOAD = {
    "description": "Laptops for the new analysts",
    "justification": "Team growth",
    "items": [
        {"item_name": "Laptop", "quantity": 2, "unit_value": "50.00"},
        {"item_name": "Docking station", "quantity": 1, "unit_value": "100.00"},
    ],
}


async def _create(client: AsyncClient, headers: dict) -> dict:
    resp = await client.post(REQUESTS, json=PAYLOAD, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _submitted(client: AsyncClient, headers: dict) -> dict:
    created = await _create(client, headers)
    resp = await client.post(f"{REQUESTS}/{created['id']}/submit", headers=headers)
    assert resp.status_code == 200, resp.text
    return created


# ---------------------------------------------------------------------------
# System / auth
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health_check(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["checks"]["db"] == "ok"


@pytest.mark.asyncio
async def test_missing_token_is_rejected(client):
    resp = await client.get(REQUESTS)
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "AUTH_TOKEN_INVALID"


@pytest.mark.asyncio
async def test_garbage_token_is_rejected(client):
    resp = await client.get(REQUESTS, headers={"Authorization": "Bearer not.a.jwt"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_login_flow(client, org):
    resp = await client.post(
        "/api/v1/auth/login", json={"email": "ana.souza@acme.com", "password": PASSWORD}
    )
    assert resp.status_code == 200, resp.text
    token = resp.json()["access_token"]

    me = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["id"] == str(org.requester.id)
    assert me.json()["department_id"] == str(org.purchasing.id)


@pytest.mark.asyncio
async def test_login_with_wrong_password(client, org):
    resp = await client.post(
        "/api/v1/auth/login", json={"email": "ana.souza@acme.com", "password": "nope"}
    )
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "AUTH_INVALID_CREDENTIALS"


@pytest.mark.asyncio
async def test_signup_creates_plain_user_who_can_log_in(client, org):
    body = {
        "name": "Helena Costa",
        "email": "Helena.Costa@acme.com",
        "password": "Welcome123",
        "department_id": str(org.finance.id),
    }
    resp = await client.post("/api/v1/auth/signup", json=body)
    assert resp.status_code == 201, resp.text
    user = resp.json()
    assert user["role"] == "USER"
    assert user["email"] == "helena.costa@acme.com"
    assert user["department_id"] == str(org.finance.id)

    resp = await client.post(
        "/api/v1/auth/login", json={"email": "helena.costa@acme.com", "password": "Welcome123"}
    )
    assert resp.status_code == 200

    resp = await client.post("/api/v1/auth/signup", json=body)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_signup_requires_known_department(client, org):
    body = {
        "name": "Igor Alves",
        "email": "igor.alves@acme.com",
        "password": "Welcome123",
        "department_id": "00000000-0000-0000-0000-000000000000",
    }
    resp = await client.post("/api/v1/auth/signup", json=body)
    assert resp.status_code == 422
    assert resp.json()["error"]["details"]["field"] == "department_id"

    resp = await client.post("/api/v1/auth/signup", json={**body, "department_id": "nope"})
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_full_purchase_request_cycle(client, org, auth_headers):
    requester = auth_headers(org.requester)
    manager = auth_headers(org.manager)
    approver = auth_headers(org.approver)

    # 1. Requester drafts
    created = await _create(client, requester)
    request_id = created["id"]
    assert created["node"] == "DRAFT"
    assert created["total_value"] == 200.0
    assert created["available_actions"] == ["submit", "edit", "delete"]
    assert [h["action"] for h in created["history"]] == ["Criada"]

    # 2. Submit; the department manager is notified
    resp = await client.post(f"{REQUESTS}/{request_id}/submit", headers=requester)
    assert resp.json()["node"] == "AWAITING_MANAGER"

    inbox = (await client.get("/api/v1/notifications", headers=manager)).json()
    assert inbox["unread_count"] == 1
    assert inbox["data"][0]["type"] == "REQUEST_CREATED"
    assert inbox["data"][0]["request_id"] == request_id

    # 3. Manager authorizes
    detail = (await client.get(f"{REQUESTS}/{request_id}", headers=manager)).json()
    assert detail["available_actions"] == ["manager-approve", "manager-reject", "manager-return"]
    resp = await client.post(f"{REQUESTS}/{request_id}/manager-approve", headers=manager)
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "PENDING_APPROVAL"

    pending = (await client.get("/api/v1/dashboard/approver/pending", headers=approver)).json()
    assert [r["id"] for r in pending] == [request_id]

    # 4. Final approval
    resp = await client.post(
        f"{REQUESTS}/{request_id}/approve", json={"comments": "ok"}, headers=approver
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["node"] == "APPROVED"

    detail = (await client.get(f"{REQUESTS}/{request_id}", headers=requester)).json()
    assert detail["status"] == "APPROVED"
    assert detail["approver_status"] == "APPROVE"
    assert detail["approved_by"] == org.approver.name
    assert len(detail["history"]) == 4
    assert detail["available_actions"] == []

    inbox = (await client.get("/api/v1/notifications", headers=requester)).json()
    assert sorted(n["type"] for n in inbox["data"]) == ["REQUEST_APPROVED", "STATUS_CHANGED"]

    approved = (await client.get(f"{REQUESTS}/approved", headers=requester)).json()
    assert approved["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_reopen_via_api(client, org, auth_headers):
    requester = auth_headers(org.requester)
    approver = auth_headers(org.approver)
    created = await _submitted(client, requester)
    request_id = created["id"]

    await client.post(f"{REQUESTS}/{request_id}/manager-approve", headers=auth_headers(org.manager))
    await client.post(f"{REQUESTS}/{request_id}/approve", headers=approver)

    resp = await client.post(
        f"{REQUESTS}/{request_id}/reopen",
        json={"reopen_reason": "re-evaluate pricing"},
        headers=approver,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["node"] == "REOPENED"

    history = (await client.get(f"{REQUESTS}/{request_id}/history", headers=requester)).json()
    assert len(history) == 5
    assert "REOPENED" in {h["action"] for h in history}

    manager_inbox = (
        await client.get("/api/v1/notifications", headers=auth_headers(org.manager))
    ).json()
    assert any("re-evaluate pricing" in n["message"] for n in manager_inbox["data"])


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_manager_of_other_department_gets_403(client, org, auth_headers):
    created = await _submitted(client, auth_headers(org.requester))
    resp = await client.post(
        f"{REQUESTS}/{created['id']}/manager-approve", headers=auth_headers(org.other_manager)
    )
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "NOT_AUTHORIZED"


@pytest.mark.asyncio
async def test_approve_before_manager_is_409(client, org, auth_headers):
    created = await _submitted(client, auth_headers(org.requester))
    resp = await client.post(
        f"{REQUESTS}/{created['id']}/approve", headers=auth_headers(org.approver)
    )
    assert resp.status_code == 409
    error = resp.json()["error"]
    assert error["code"] == "INVALID_STATE"
    assert error["details"]["current_state"]["status"] == "PENDING_MANAGER_APPROVAL"


@pytest.mark.asyncio
async def test_reject_without_reason_is_422(client, org, auth_headers):
    created = await _submitted(client, auth_headers(org.requester))
    resp = await client.post(
        f"{REQUESTS}/{created['id']}/manager-reject", json={}, headers=auth_headers(org.manager)
    )
    assert resp.status_code == 422
    error = resp.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"]["field"] == "reason"


@pytest.mark.asyncio
async def test_invalid_item_quantity_is_422(client, org, auth_headers):
    payload = {"description": "x", "items": [{"item_name": "Pen", "quantity": 0, "unit_value": "1"}]}
    resp = await client.post(REQUESTS, json=payload, headers=auth_headers(org.requester))
    assert resp.status_code == 422
    error = resp.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"][0]["loc"][-1] == "quantity"


@pytest.mark.asyncio
async def test_empty_request_is_422(client, org, auth_headers):
    resp = await client.post(
        REQUESTS, json={"description": "Nothing yet"}, headers=auth_headers(org.requester)
    )
    assert resp.status_code == 422
    assert resp.json()["error"]["details"]["field"] == "items"


@pytest.mark.asyncio
async def test_unknown_request_is_404(client, org, auth_headers):
    resp = await client.get(
        f"{REQUESTS}/00000000-0000-0000-0000-000000000000", headers=auth_headers(org.requester)
    )
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_request_number_clash_is_409_envelope(client, org, auth_headers, monkeypatch):
    headers = auth_headers(org.requester)
    taken = (await _create(client, headers))["request_number"]

    async def _always_taken(session, now=None):
        return taken

    monkeypatch.setattr(request_service, "generate_request_number", _always_taken)
    resp = await client.post(REQUESTS, json=PAYLOAD, headers=headers)

    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "CONFLICT"
    listed = (await client.get(REQUESTS, headers=headers)).json()
    assert listed["pagination"]["total"] == 1


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_scoped_to_caller(client, org, auth_headers):
    created = await _create(client, auth_headers(org.requester))

    own = (await client.get(REQUESTS, headers=auth_headers(org.requester))).json()
    assert [r["id"] for r in own["data"]] == [created["id"]]
    assert own["data"][0]["item_count"] == 2
    assert own["data"][0]["department_name"] == "Purchasing"

    other = (await client.get(REQUESTS, headers=auth_headers(org.other_requester))).json()
    assert other["pagination"]["total"] == 0

    dept_manager = (await client.get(REQUESTS, headers=auth_headers(org.manager))).json()
    assert dept_manager["pagination"]["total"] == 1

    foreign_manager = (await client.get(REQUESTS, headers=auth_headers(org.other_manager))).json()
    assert foreign_manager["pagination"]["total"] == 0

    resp = await client.get(f"{REQUESTS}/{created['id']}", headers=auth_headers(org.other_requester))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_list_rejects_unknown_status(client, org, auth_headers):
    resp = await client.get(
        REQUESTS, params={"status": "ARCHIVED"}, headers=auth_headers(org.approver)
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_delete_via_api(client, org, auth_headers):
    requester = auth_headers(org.requester)
    created = await _create(client, requester)

    resp = await client.delete(f"{REQUESTS}/{created['id']}", headers=requester)
    assert resp.status_code == 200
    assert created["request_number"] in resp.json()["message"]

    resp = await client.get(f"{REQUESTS}/{created['id']}", headers=requester)
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_mark_notifications_read(client, org, auth_headers):
    await _submitted(client, auth_headers(org.requester))
    manager = auth_headers(org.manager)

    inbox = (await client.get("/api/v1/notifications", headers=manager)).json()
    notification_id = inbox["data"][0]["id"]

    resp = await client.post(f"/api/v1/notifications/{notification_id}/read", headers=manager)
    assert resp.status_code == 200
    assert resp.json()["is_read"] is True

    unread = (
        await client.get("/api/v1/notifications", params={"unread_only": True}, headers=manager)
    ).json()
    assert unread["data"] == []
    assert unread["unread_count"] == 0

    resp = await client.post("/api/v1/notifications/mark-all-as-read", headers=manager)
    assert resp.json()["updated"] == 0


@pytest.mark.asyncio
async def test_cannot_read_someone_elses_notification(client, org, auth_headers):
    await _submitted(client, auth_headers(org.requester))
    inbox = (await client.get("/api/v1/notifications", headers=auth_headers(org.manager))).json()

    resp = await client.post(
        f"/api/v1/notifications/{inbox['data'][0]['id']}/read",
        headers=auth_headers(org.requester),
    )
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Dashboards
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_manager_dashboard(client, org, auth_headers):
    await _submitted(client, auth_headers(org.requester))
    manager = auth_headers(org.manager)

    pending = (await client.get("/api/v1/dashboard/manager/pending", headers=manager)).json()
    assert len(pending) == 1

    resp = await client.get("/api/v1/dashboard/manager/summary", headers=auth_headers(org.requester))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_approver_sees_all_requests_with_stage_filters(client, org, auth_headers):
    draft = await _create(client, auth_headers(org.requester))
    waiting_manager = await _submitted(client, auth_headers(org.requester))
    waiting_final = await _submitted(client, auth_headers(org.other_requester))
    await client.post(
        f"{REQUESTS}/{waiting_final['id']}/manager-approve",
        headers=auth_headers(org.other_manager),
    )
    approver = auth_headers(org.approver)
    url = "/api/v1/dashboard/approver/all"

    everything = (await client.get(url, headers=approver)).json()
    assert {r["id"] for r in everything} == {
        draft["id"], waiting_manager["id"], waiting_final["id"]
    }

    manager_stage = (await client.get(url, params={"status": "pending_manager"}, headers=approver)).json()
    assert [r["id"] for r in manager_stage] == [waiting_manager["id"]]

    final_stage = (await client.get(url, params={"status": "pending_final"}, headers=approver)).json()
    assert [r["id"] for r in final_stage] == [waiting_final["id"]]

    open_ones = (await client.get(url, params={"status": "open"}, headers=approver)).json()
    assert [r["id"] for r in open_ones] == [draft["id"]]

    finance = (
        await client.get(url, params={"department_id": str(org.finance.id)}, headers=approver)
    ).json()
    assert [r["id"] for r in finance] == [waiting_final["id"]]

    resp = await client.get(url, params={"status": "bogus"}, headers=approver)
    assert resp.status_code == 422

    resp = await client.get(url, headers=auth_headers(org.manager))
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_department_admin_only_and_unique(client, org, auth_headers):
    admin = auth_headers(org.admin)
    body = {"code": "it", "name": "Information Technology", "parent_id": str(org.finance.id)}

    resp = await client.post("/api/v1/departments", json=body, headers=admin)
    assert resp.status_code == 201, resp.text
    assert resp.json()["code"] == "IT"

    resp = await client.post("/api/v1/departments", json=body, headers=admin)
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "CONFLICT"

    resp = await client.post(
        "/api/v1/departments",
        json={"code": "OPS", "name": "Operations"},
        headers=auth_headers(org.manager),
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_department_in_use_cannot_be_deleted(client, org, auth_headers):
    resp = await client.delete(
        f"/api/v1/departments/{org.purchasing.id}", headers=auth_headers(org.admin)
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_seed_system_parameters_is_idempotent(client, org, auth_headers):
    admin = auth_headers(org.admin)

    first = (await client.post("/api/v1/system-parameters/seed", headers=admin)).json()
    assert first == {"created": len(DEFAULT_PARAMETERS), "skipped": 0}

    second = (await client.post("/api/v1/system-parameters/seed", headers=admin)).json()
    assert second == {"created": 0, "skipped": len(DEFAULT_PARAMETERS)}

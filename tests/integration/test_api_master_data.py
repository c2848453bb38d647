"""
HTTP tests for master data: coded tables, item catalog, exclusions,
department types and user management.
"""

import pytest


async def _coded(client, path: str, headers: dict, code: str, name: str) -> dict:
    resp = await client.post(path, json={"code": code, "name": name}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_catalog_item_lifecycle(client, org, auth_headers):
    admin = auth_headers(org.admin)
    category = await _coded(client, "/api/v1/item-categories", admin, "it", "IT equipment")
    item_type = await _coded(client, "/api/v1/item-types", admin, "hw", "Hardware")
    assert category["code"] == "IT"

    resp = await client.post(
        "/api/v1/items",
        json={
            "code": "lap-14",
            "name": "Laptop 14 inch",
            "category_id": category["id"],
            "type_id": item_type["id"],
        },
        headers=admin,
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["code"] == "LAP-14"

    requester = auth_headers(org.requester)
    found = (await client.get("/api/v1/items/search", params={"q": "lapt"}, headers=requester)).json()
    assert [i["name"] for i in found["items"]] == ["Laptop 14 inch"]
    assert found["exclusions"] == []

    too_short = (await client.get("/api/v1/items/search", params={"q": "lap"}, headers=requester)).json()
    assert too_short == {"items": [], "exclusions": []}

    resp = await client.delete(f"/api/v1/item-categories/{category['id']}", headers=admin)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_item_requires_active_category(client, org, auth_headers):
    admin = auth_headers(org.admin)
    item_type = await _coded(client, "/api/v1/item-types", admin, "sw", "Software")
    category = await _coded(client, "/api/v1/item-categories", admin, "lic", "Licenses")
    await client.put(
        f"/api/v1/item-categories/{category['id']}", json={"is_active": False}, headers=admin
    )

    resp = await client.post(
        "/api/v1/items",
        json={
            "code": "IDE",
            "name": "IDE seat",
            "category_id": category["id"],
            "type_id": item_type["id"],
        },
        headers=admin,
    )
    assert resp.status_code == 422
    assert resp.json()["error"]["details"]["field"] == "category_id"


@pytest.mark.asyncio
async def test_coded_entries_are_admin_write_only(client, org, auth_headers):
    resp = await client.post(
        "/api/v1/contract-types",
        json={"code": "SLA", "name": "Service level agreement"},
        headers=auth_headers(org.approver),
    )
    assert resp.status_code == 403

    listed = await client.get("/api/v1/contract-types", headers=auth_headers(org.requester))
    assert listed.status_code == 200
    assert listed.json() == []


@pytest.mark.asyncio
async def test_duplicate_code_conflicts(client, org, auth_headers):
    admin = auth_headers(org.admin)
    await _coded(client, "/api/v1/acquisition-types", admin, "new", "New purchase")
    resp = await client.post(
        "/api/v1/acquisition-types", json={"code": "NEW", "name": "Again"}, headers=admin
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_user_management(client, org, auth_headers):
    admin = auth_headers(org.admin)
    body = {
        "name": "Gabriela Reis",
        "email": "gabriela.reis@acme.com",
        "password": "Welcome123",
        "role": "MANAGER",
        "department_id": str(org.finance.id),
    }

    resp = await client.post("/api/v1/users", json=body, headers=admin)
    assert resp.status_code == 201, resp.text
    created = resp.json()
    assert created["role"] == "MANAGER"
    assert created["department_id"] == str(org.finance.id)

    resp = await client.post("/api/v1/users", json=body, headers=admin)
    assert resp.status_code == 409

    resp = await client.delete(f"/api/v1/users/{created['id']}", headers=admin)
    assert resp.status_code == 200
    user = (await client.get(f"/api/v1/users/{created['id']}", headers=admin)).json()
    assert user["is_active"] is False


@pytest.mark.asyncio
async def test_admin_cannot_deactivate_self(client, org, auth_headers):
    resp = await client.delete(f"/api/v1/users/{org.admin.id}", headers=auth_headers(org.admin))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_users_are_admin_only(client, org, auth_headers):
    resp = await client.get("/api/v1/users", headers=auth_headers(org.manager))
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Item exclusions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_exclusion_lifecycle_and_search(client, org, auth_headers):
    admin = auth_headers(org.admin)
    body = {
        "code": "furn-01",
        "name": "Executive furniture",
        "justification": "Covered by the facilities framework contract",
    }
    resp = await client.post("/api/v1/item-exclusions", json=body, headers=admin)
    assert resp.status_code == 201, resp.text
    exclusion = resp.json()
    assert exclusion["code"] == "FURN-01"

    resp = await client.post("/api/v1/item-exclusions", json=body, headers=admin)
    assert resp.status_code == 409

    requester = auth_headers(org.requester)
    found = (
        await client.get("/api/v1/items/search", params={"q": "furniture"}, headers=requester)
    ).json()
    assert found["items"] == []
    assert [e["code"] for e in found["exclusions"]] == ["FURN-01"]
    assert "framework" in found["exclusions"][0]["justification"]

    listed = (
        await client.get("/api/v1/item-exclusions", params={"search": "framework"}, headers=requester)
    ).json()
    assert listed["pagination"]["total"] == 1

    resp = await client.put(
        f"/api/v1/item-exclusions/{exclusion['id']}", json={"is_active": False}, headers=admin
    )
    assert resp.status_code == 200
    found = (
        await client.get("/api/v1/items/search", params={"q": "furniture"}, headers=requester)
    ).json()
    assert found["exclusions"] == []

    resp = await client.delete(f"/api/v1/item-exclusions/{exclusion['id']}", headers=admin)
    assert resp.status_code == 200
    resp = await client.get(f"/api/v1/item-exclusions/{exclusion['id']}", headers=admin)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_exclusion_writes_are_admin_only(client, org, auth_headers):
    resp = await client.post(
        "/api/v1/item-exclusions",
        json={"code": "X", "name": "Anything", "justification": "No"},
        headers=auth_headers(org.manager),
    )
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Department types
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_department_type_assignment_and_deactivation(client, org, auth_headers):
    admin = auth_headers(org.admin)
    resp = await client.post(
        "/api/v1/department-types", json={"code": "dir", "name": "Directorate"}, headers=admin
    )
    assert resp.status_code == 201, resp.text
    dept_type = resp.json()
    assert dept_type["code"] == "DIR"
    assert dept_type["department_count"] == 0

    resp = await client.put(
        f"/api/v1/departments/{org.finance.id}", json={"type_id": dept_type["id"]}, headers=admin
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["type_name"] == "Directorate"

    listed = (await client.get("/api/v1/department-types", headers=auth_headers(org.requester))).json()
    assert [(t["code"], t["department_count"]) for t in listed] == [("DIR", 1)]

    resp = await client.delete(f"/api/v1/department-types/{dept_type['id']}", headers=admin)
    assert resp.status_code == 409

    await client.put(f"/api/v1/departments/{org.finance.id}", json={"type_id": None}, headers=admin)
    resp = await client.delete(f"/api/v1/department-types/{dept_type['id']}", headers=admin)
    assert resp.status_code == 200

    active = (await client.get("/api/v1/department-types", headers=admin)).json()
    assert active == []
    everything = (
        await client.get("/api/v1/department-types", params={"include_inactive": True}, headers=admin)
    ).json()
    assert everything[0]["is_active"] is False


@pytest.mark.asyncio
async def test_department_type_name_must_be_unique(client, org, auth_headers):
    admin = auth_headers(org.admin)
    await client.post(
        "/api/v1/department-types", json={"code": "UNT", "name": "Unit"}, headers=admin
    )
    resp = await client.post(
        "/api/v1/department-types", json={"code": "UN2", "name": "Unit"}, headers=admin
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["details"]["field"] == "name"


@pytest.mark.asyncio
async def test_department_rejects_inactive_type(client, org, auth_headers):
    admin = auth_headers(org.admin)
    dept_type = (
        await client.post(
            "/api/v1/department-types",
            json={"code": "OLD", "name": "Legacy office", "is_active": False},
            headers=admin,
        )
    ).json()
    resp = await client.post(
        "/api/v1/departments",
        json={"code": "LEG", "name": "Legal", "type_id": dept_type["id"]},
        headers=admin,
    )
    assert resp.status_code == 422
    assert resp.json()["error"]["details"]["field"] == "type_id"

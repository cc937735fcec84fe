from cafm.enums import ReportPriority, ReportStatus, WorkOrderPriority, WorkOrderStatus, CompanyStatus

from tests.conftest import PASSWORD, auth_headers, make_company, make_school


# ============ Health ============

def test_root_and_liveness(client):
    assert client.get("/").status_code == 200
    assert client.get("/api/health/live").json() == {"status": "UP"}


def test_readiness_checks_database(client):
    response = client.get("/api/health/ready")
    assert response.status_code == 200
    assert response.json()["database"]["status"] == "UP"
    assert "X-Process-Time-Ms" in response.headers


# ============ Authentication ============

def test_login_and_me(client, admin):
    response = client.post("/api/auth/login", json={"email": admin.email, "password": PASSWORD})
    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == admin.email

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["id"] == str(admin.id)


def test_login_failure_uses_error_body(client, admin):
    response = client.post("/api/auth/login", json={"email": admin.email, "password": "wrong"})
    assert response.status_code == 401
    body = response.json()
    assert body["error"] == "AUTHENTICATION_FAILED"
    assert body["code"] == "AUTH_001"
    assert body["path"] == "/api/auth/login"
    assert "attempts remaining" in body["detail"]


def test_refresh_and_logout(client, admin):
    tokens = client.post("/api/auth/login", json={"email": admin.email, "password": PASSWORD}).json()
    refreshed = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200
    rotated = refreshed.json()["refresh_token"]
    assert rotated != tokens["refresh_token"]

    reused = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert reused.status_code == 401
    assert reused.json()["error"] == "TOKEN_EXPIRED"

    assert client.post("/api/auth/logout", json={"refresh_token": rotated}).json()["revoked"]
    response = client.post("/api/auth/refresh", json={"refresh_token": rotated})
    assert response.status_code == 401
    assert response.json()["error"] == "TOKEN_EXPIRED"


def test_requests_without_valid_token_are_rejected(client, admin):
    assert client.get("/api/auth/me").status_code in (401, 403)
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_invalid_body_is_unprocessable(client):
    response = client.post("/api/auth/login", json={"email": "not-an-email", "password": "x"})
    assert response.status_code == 422


# ============ Roles & tenancy ============

def test_role_checks(client, admin, technician, super_admin, company):
    assert client.get("/api/users", headers=auth_headers(technician)).status_code == 403
    assert client.get("/api/users", headers=auth_headers(admin)).status_code == 200
    assert client.get("/api/companies", headers=auth_headers(admin)).status_code == 403
    assert client.get("/api/companies", headers=auth_headers(super_admin)).status_code == 200


def test_admin_sees_only_own_company(client, db, admin, company):
    other = make_company(db, "Other Co", subdomain="other-co")
    db.commit()
    assert client.get(f"/api/companies/{company.id}", headers=auth_headers(admin)).status_code == 200
    assert client.get(f"/api/companies/{other.id}", headers=auth_headers(admin)).status_code == 403
    assert client.get("/api/companies/current", headers=auth_headers(admin)).json()["id"] == str(company.id)


def test_super_admin_creates_company(client, super_admin):
    response = client.post("/api/companies", json={"name": "Eastern Province Schools", "subdomain": "eastern"},
                           headers=auth_headers(super_admin))
    assert response.status_code == 201
    assert response.json()["status"] == CompanyStatus.TRIAL.value

    duplicate = client.post("/api/companies", json={"name": "Copy", "subdomain": "eastern"},
                            headers=auth_headers(super_admin))
    assert duplicate.status_code == 409


def test_super_admin_switches_tenant_with_header(client, db, super_admin, company, school):
    other = make_company(db, "Madinah Schools", subdomain="madinah")
    make_school(db, other, code="MED-1", name="Madinah School")
    db.commit()

    headers = auth_headers(super_admin)
    own = client.get("/api/schools", headers={**headers, "X-Tenant-ID": str(company.id)}).json()
    assert [s["code"] for s in own["items"]] == ["SCH-001"]
    switched = client.get("/api/schools", headers={**headers, "X-Tenant-ID": str(other.id)}).json()
    assert [s["code"] for s in switched["items"]] == ["MED-1"]


def test_tenant_header_is_ignored_for_regular_users(client, db, admin, school):
    other = make_company(db, "Qatif Schools", subdomain="qatif")
    db.commit()
    response = client.get("/api/schools", headers={**auth_headers(admin), "X-Tenant-ID": str(other.id)})
    assert [s["code"] for s in response.json()["items"]] == ["SCH-001"]


def test_suspended_company_is_locked_out(client, db, admin, company):
    company.status = CompanyStatus.SUSPENDED
    db.commit()
    response = client.get("/api/schools", headers=auth_headers(admin))
    assert response.status_code == 403
    assert response.json()["error"] == "TENANT_NOT_FOUND"


# ============ Users ============

def test_create_user_over_http(client, admin):
    headers = auth_headers(admin)
    response = client.post("/api/users", json={"email": "new.sup@riyadh-schools.sa", "user_type": "SUPERVISOR"},
                           headers=headers)
    assert response.status_code == 201, response.text
    assert response.json()["temporary_password"]

    duplicate = client.post("/api/users", json={"email": "new.sup@riyadh-schools.sa"}, headers=headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "DUPLICATE_EMAIL"


def test_user_list_is_paginated(client, admin, supervisor, technician):
    body = client.get("/api/users?page=1&size=2", headers=auth_headers(admin)).json()
    assert set(body) >= {"items", "total", "page", "size", "pages"}
    assert body["total"] == 3
    assert body["pages"] == 2
    assert len(body["items"]) == 2


# ============ Report to work order ============

def test_report_to_work_order_flow(client, admin, supervisor, technician, assigned_school):
    sup, adm, tech = auth_headers(supervisor), auth_headers(admin), auth_headers(technician)

    created = client.post("/api/reports", headers=sup, json={
        "school_id": str(assigned_school.id), "title": "AC not cooling", "priority": ReportPriority.URGENT.value,
    })
    assert created.status_code == 201, created.text
    report_id = created.json()["id"]

    assert client.post(f"/api/reports/{report_id}/submit", headers=sup).json()["status"] == ReportStatus.SUBMITTED.value
    assert client.post(f"/api/reports/{report_id}/review", headers=sup, json={"approved": True}).status_code == 403
    reviewed = client.post(f"/api/reports/{report_id}/review", headers=adm, json={"approved": True})
    assert reviewed.json()["status"] == ReportStatus.APPROVED.value

    work_order = client.post(f"/api/work-orders/from-report/{report_id}", headers=sup,
                             json={"assigned_to_id": str(technician.id)})
    assert work_order.status_code == 201, work_order.text
    assert work_order.json()["priority"] == WorkOrderPriority.HIGH.value
    assert work_order.json()["status"] == WorkOrderStatus.ASSIGNED.value
    work_order_id = work_order.json()["id"]

    mine = client.get("/api/work-orders/my", headers=tech).json()
    assert [w["id"] for w in mine["items"]] == [work_order_id]
    assert client.get("/api/reports", headers=tech).json()["total"] == 0

    assert client.post(f"/api/work-orders/{work_order_id}/start", headers=tech).status_code == 200
    completed = client.post(f"/api/work-orders/{work_order_id}/complete", headers=tech, json={"notes": "Recharged"})
    assert completed.json()["status"] == WorkOrderStatus.COMPLETED.value
    assert client.post(f"/api/work-orders/{work_order_id}/verify", headers=tech).status_code == 403
    assert client.post(f"/api/work-orders/{work_order_id}/verify", headers=sup).status_code == 200

    report = client.get(f"/api/reports/{report_id}", headers=adm).json()
    assert report["status"] == ReportStatus.COMPLETED.value

    stats = client.get("/api/work-orders/statistics", headers=adm).json()
    assert stats["total_work_orders"] == 1


def test_invalid_transition_is_a_conflict(client, admin, supervisor, school):
    created = client.post("/api/reports", headers=auth_headers(supervisor), json={
        "school_id": str(school.id), "title": "Broken door",
    }).json()
    response = client.post(f"/api/reports/{created['id']}/complete", headers=auth_headers(admin), json={})
    assert response.status_code == 409
    assert response.json()["error"] == "INVALID_OPERATION_STATE"


def test_unknown_report_is_not_found(client, admin):
    response = client.get("/api/reports/00000000-0000-0000-0000-0000000000aa", headers=auth_headers(admin))
    assert response.status_code == 404
    assert response.json()["error"] == "RESOURCE_NOT_FOUND"


def test_export_reports(client, admin):
    response = client.get("/api/reports/export", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert "attachment; filename=reports_" in response.headers["content-disposition"]


def test_work_order_task_checklist_over_http(client, supervisor, technician):
    sup, tech = auth_headers(supervisor), auth_headers(technician)
    work_order = client.post("/api/work-orders", headers=sup, json={
        "title": "Replace classroom lights", "assigned_to_id": str(technician.id),
    }).json()

    assert client.post(f"/api/work-orders/{work_order['id']}/tasks", headers=tech,
                       json={"title": "Order tubes"}).status_code == 403
    for title in ("Order tubes", "Fit tubes"):
        added = client.post(f"/api/work-orders/{work_order['id']}/tasks", headers=sup, json={"title": title})
        assert added.status_code == 201, added.text
    tasks = client.get(f"/api/work-orders/{work_order['id']}/tasks", headers=tech).json()
    assert [t["task_number"] for t in tasks] == [1, 2]

    ticked = client.patch(f"/api/work-orders/tasks/{tasks[0]['id']}", headers=tech, json={"is_completed": True})
    assert ticked.status_code == 200, ticked.text
    assert ticked.json()["is_completed"]
    refreshed = client.get(f"/api/work-orders/{work_order['id']}", headers=sup).json()
    assert refreshed["completion_percentage"] == 50
    assert [t["is_completed"] for t in refreshed["tasks"]] == [True, False]


def test_asset_maintenance_history_over_http(client, admin):
    headers = auth_headers(admin)
    asset = client.post("/api/assets", headers=headers, json={"name": "Water heater", "asset_code": "WH-1"}).json()

    recorded = client.post(f"/api/assets/{asset['id']}/maintenance", headers=headers, json={
        "maintenance_date": "2026-09-01", "maintenance_type": "CORRECTIVE", "labor_cost": 120,
        "condition": "GOOD", "description": "Replaced thermostat",
    })
    assert recorded.status_code == 201, recorded.text
    assert recorded.json()["maintenance"]["total_cost"] == 120.0
    assert recorded.json()["asset"]["total_maintenance_cost"] == 120.0

    history = client.get(f"/api/assets/{asset['id']}/maintenance", headers=headers).json()
    assert [h["maintenance_type"] for h in history] == ["CORRECTIVE"]
    assert history[0]["description"] == "Replaced thermostat"


# ============ Attendance & notifications ============

def test_attendance_over_http(client, supervisor, admin, assigned_school):
    headers = auth_headers(supervisor)
    checked_in = client.post("/api/attendance/check-in", headers=headers, json={
        "school_id": str(assigned_school.id), "latitude": 24.7136, "longitude": 46.6753,
    })
    assert checked_in.status_code == 200, checked_in.text
    assert client.get("/api/attendance/status", headers=headers).json()["is_checked_in"]
    assert client.post("/api/attendance/check-in", headers=auth_headers(admin), json={
        "school_id": str(assigned_school.id), "latitude": 24.7136, "longitude": 46.6753,
    }).status_code == 403

    checked_out = client.post("/api/attendance/check-out", headers=headers, json={})
    assert checked_out.json()["duration"] == "0h 00m"


def test_notification_inbox(client, admin, technician):
    sent = client.post("/api/notifications/send", headers=auth_headers(admin), json={
        "user_ids": [str(technician.id)], "title": "Safety drill", "body": "Tomorrow at 9",
    })
    assert sent.status_code == 201, sent.text
    assert sent.json()["sent"] == 1

    headers = auth_headers(technician)
    assert client.get("/api/notifications/unread-count", headers=headers).json() == {"unread": 1}
    assert client.put("/api/notifications/read-all", headers=headers).json() == {"updated": 1}
    assert client.get("/api/notifications/unread-count", headers=headers).json() == {"unread": 0}

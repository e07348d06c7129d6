"""Tests for the employee registry API."""
from conftest import OTHER_ORG_NAME, add_employee, login, org_id

from app.ssm.db import session_scope
from app.ssm.models import AuditEvent
from app.ssm.modules.employees.models import Employee

VALID_CNP = "1900101221239"


def _create(client, token, **fields):
    payload = {"first_name": "Ion", "last_name": "Popescu", **fields}
    return client.post("/api/v1/employees", json=payload, headers={"X-CSRF-Token": token})


def test_employees_require_auth(client):
    assert client.get("/api/v1/employees").status_code == 401


def test_employee_create_and_detail(app, client):
    token = login(client)
    r = _create(client, token, cnp=VALID_CNP, job_title="Electrician", department="Montaj", hire_date="2024-05-02")
    assert r.status_code == 201
    emp = r.get_json()
    assert emp["cnp"] == VALID_CNP
    assert emp["full_name"] == "Ion Popescu"
    assert emp["hire_date"] == "2024-05-02"

    r = client.get(f"/api/v1/employees/{emp['id']}")
    assert r.status_code == 200
    assert r.json["job_title"] == "Electrician"

    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "employee.create").one()
        assert ev.organization_id == org_id(app)
        assert VALID_CNP not in (ev.metadata_json or "")


def test_employee_create_validation(client):
    token = login(client)
    r = _create(client, token, first_name="", cnp="1900101221234", email="not-an-email")
    assert r.status_code == 400
    assert r.json["error"] == "validation_failed"
    assert len(r.json["errors"]) == 3

    r = _create(client, token, hire_date="2024-13-40")
    assert r.status_code == 400


def test_padded_cnp_is_trimmed_before_validation(client):
    token = login(client)
    r = _create(client, token, cnp=f"  {VALID_CNP} ")
    assert r.status_code == 201
    assert r.json["cnp"] == VALID_CNP


def test_duplicate_cnp_rejected_within_organization(client):
    token = login(client)
    assert _create(client, token, cnp=VALID_CNP).status_code == 201
    r = _create(client, token, first_name="Maria", cnp=VALID_CNP)
    assert r.status_code == 400


def test_same_cnp_allowed_in_other_organization(app, client):
    add_employee(app, org_id(app, OTHER_ORG_NAME), cnp=VALID_CNP)
    token = login(client)
    assert _create(client, token, cnp=VALID_CNP).status_code == 201


def test_employee_list_masks_cnp_and_filters(client):
    token = login(client)
    _create(client, token, cnp=VALID_CNP, department="Montaj")
    _create(client, token, first_name="Ana", last_name="Ionescu", department="Birou")
    _create(client, token, first_name="Dan", last_name="Vasile", department="Montaj", is_active=False)

    r = client.get("/api/v1/employees")
    assert r.status_code == 200
    body = r.get_json()
    assert body["total"] == 3
    assert [e["last_name"] for e in body["items"]] == ["Ionescu", "Popescu", "Vasile"]
    popescu = body["items"][1]
    assert popescu["cnp"] == "1*********239"

    assert client.get("/api/v1/employees?department=Montaj").json["total"] == 2
    assert client.get("/api/v1/employees?active=false").json["total"] == 1
    assert client.get("/api/v1/employees?q=ion").json["total"] == 2

    r = client.get("/api/v1/employees?per_page=2&page=2")
    assert r.json["pages"] == 2
    assert len(r.json["items"]) == 1


def test_employee_update_records_changes(app, client):
    token = login(client)
    emp_id = _create(client, token, job_title="Sudor").get_json()["id"]

    r = client.patch(
        f"/api/v1/employees/{emp_id}",
        json={"job_title": "Sudor autorizat", "phone": "0722000000", "reason": "Promovare"},
        headers={"X-CSRF-Token": token},
    )
    assert r.status_code == 200
    assert r.json["job_title"] == "Sudor autorizat"

    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "employee.update").one()
        assert ev.reason == "Promovare"
        assert "Sudor autorizat" in ev.metadata_json

    r = client.patch(f"/api/v1/employees/{emp_id}", json={"cnp": "123"}, headers={"X-CSRF-Token": token})
    assert r.status_code == 400


def test_employee_soft_delete(app, client):
    token = login(client)
    emp_id = _create(client, token).get_json()["id"]

    r = client.delete(f"/api/v1/employees/{emp_id}", headers={"X-CSRF-Token": token})
    assert r.status_code == 200
    assert client.get(f"/api/v1/employees/{emp_id}").status_code == 404
    assert client.get("/api/v1/employees").json["total"] == 0

    with session_scope(app) as s:
        emp = s.get(Employee, emp_id)
        assert emp.is_deleted is True
        assert emp.deleted_at is not None


def test_foreign_tenant_employee_is_not_found(app, client):
    foreign_id = add_employee(app, org_id(app, OTHER_ORG_NAME), first_name="Străin")
    token = login(client)
    assert client.get(f"/api/v1/employees/{foreign_id}").status_code == 404
    r = client.patch(f"/api/v1/employees/{foreign_id}", json={"job_title": "x"}, headers={"X-CSRF-Token": token})
    assert r.status_code == 404
    assert client.delete(f"/api/v1/employees/{foreign_id}", headers={"X-CSRF-Token": token}).status_code == 404


def test_consultant_can_edit_but_not_delete(app, client):
    emp_id = add_employee(app, org_id(app), cnp=VALID_CNP)
    token = login(client, "consultant@example.com")

    r = client.get(f"/api/v1/employees/{emp_id}")
    assert r.status_code == 200
    assert r.json["cnp"] == VALID_CNP

    r = client.delete(f"/api/v1/employees/{emp_id}", headers={"X-CSRF-Token": token})
    assert r.status_code == 403
    assert r.json["missing_permission"] == "employees.delete"

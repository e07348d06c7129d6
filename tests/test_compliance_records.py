"""Tests for medical exams, safety equipment and trainings."""
from datetime import date, timedelta

from conftest import OTHER_ORG_NAME, add_employee, grant, login, org_id

from app.ssm.db import session_scope
from app.ssm.modules.compliance.models import MedicalExam


def _enable_all(app, oid):
    for key in ("medicina-muncii", "psi", "instruire"):
        grant(app, oid, key)


def test_records_locked_without_modules(app, client):
    login(client)
    for path in ("/api/medical", "/api/equipment", "/api/trainings"):
        r = client.get(path)
        assert r.status_code == 403
        assert r.json["error"] == "module_locked"


def test_medical_exam_lifecycle(app, client):
    oid = org_id(app)
    _enable_all(app, oid)
    emp_id = add_employee(app, oid)
    token = login(client)

    r = client.post(
        "/api/medical",
        json={
            "employee_id": emp_id,
            "exam_type": "periodic",
            "exam_date": "2026-01-10",
            "expiry_date": "2027-01-10",
            "result": "apt_conditionat",
            "restrictions": "Fără lucru la înălțime",
        },
        headers={"X-CSRF-Token": token},
    )
    assert r.status_code == 201
    exam = r.get_json()
    assert exam["employee_name"] == "Ion Popescu"
    assert exam["result"] == "apt_conditionat"

    items = client.get(f"/api/medical?employee_id={emp_id}").json["items"]
    assert [i["id"] for i in items] == [exam["id"]]

    r = client.delete(f"/api/medical/{exam['id']}", headers={"X-CSRF-Token": token})
    assert r.status_code == 200
    assert client.get("/api/medical").json["items"] == []
    with session_scope(app) as s:
        assert s.get(MedicalExam, exam["id"]).is_deleted is True


def test_medical_exam_validation(app, client):
    oid = org_id(app)
    _enable_all(app, oid)
    emp_id = add_employee(app, oid)
    token = login(client)

    r = client.post(
        "/api/medical",
        json={"employee_id": emp_id, "exam_date": "2026-02-01", "expiry_date": "2025-02-01", "result": "maybe"},
        headers={"X-CSRF-Token": token},
    )
    assert r.status_code == 400
    assert len(r.json["errors"]) == 2

    r = client.post("/api/medical", json={}, headers={"X-CSRF-Token": token})
    assert r.status_code == 400
    assert len(r.json["errors"]) == 3


def test_records_cannot_reference_foreign_employee(app, client):
    oid = org_id(app)
    _enable_all(app, oid)
    foreign_emp = add_employee(app, org_id(app, OTHER_ORG_NAME))
    token = login(client)

    r = client.post(
        "/api/medical",
        json={"employee_id": foreign_emp, "exam_date": "2026-01-10", "expiry_date": "2027-01-10"},
        headers={"X-CSRF-Token": token},
    )
    assert r.status_code == 404

    r = client.post(
        "/api/trainings",
        json={
            "employee_id": foreign_emp,
            "training_type": "periodic",
            "title": "Instruire periodică",
            "completed_date": "2026-01-10",
            "expiry_date": "2026-07-10",
        },
        headers={"X-CSRF-Token": token},
    )
    assert r.status_code == 404


def test_equipment_create_and_expiring_filter(app, client):
    _enable_all(app, org_id(app))
    token = login(client)
    today = date.today()

    for name, days in (("Stingător P6", 10), ("Hidrant interior", 200)):
        r = client.post(
            "/api/equipment",
            json={
                "equipment_type": "stingator" if "Sting" in name else "hidrant",
                "name": name,
                "location": "Hala 1",
                "last_inspection_date": (today - timedelta(days=355)).isoformat(),
                "next_inspection_date": (today + timedelta(days=days)).isoformat(),
            },
            headers={"X-CSRF-Token": token},
        )
        assert r.status_code == 201

    assert len(client.get("/api/equipment").json["items"]) == 2
    soon = client.get("/api/equipment?expiring_within=30").json["items"]
    assert [e["name"] for e in soon] == ["Stingător P6"]
    assert len(client.get("/api/equipment?type=hidrant").json["items"]) == 1

    r = client.post(
        "/api/equipment",
        json={"equipment_type": "racheta", "name": "", "next_inspection_date": "x"},
        headers={"X-CSRF-Token": token},
    )
    assert r.status_code == 400
    assert len(r.json["errors"]) == 3


def test_training_create_and_delete(app, client):
    oid = org_id(app)
    _enable_all(app, oid)
    emp_id = add_employee(app, oid, first_name="Maria", last_name="Dinu")
    token = login(client)

    r = client.post(
        "/api/trainings",
        json={
            "employee_id": emp_id,
            "training_type": "la_locul_de_munca",
            "title": "Instruire la locul de muncă",
            "completed_date": "2026-01-05",
            "expiry_date": "2026-07-05",
            "trainer_name": "Gheorghe Stan",
            "duration_hours": "8",
        },
        headers={"X-CSRF-Token": token},
    )
    assert r.status_code == 201
    tr = r.get_json()
    assert tr["duration_hours"] == 8
    assert tr["employee_name"] == "Maria Dinu"

    r = client.post(
        "/api/trainings",
        json={"employee_id": emp_id, "training_type": "psi", "title": "PSI", "completed_date": "2026-01-05",
              "expiry_date": "2026-07-05", "duration_hours": "-2"},
        headers={"X-CSRF-Token": token},
    )
    assert r.status_code == 400

    assert client.delete(f"/api/trainings/{tr['id']}", headers={"X-CSRF-Token": token}).status_code == 200
    assert client.delete(f"/api/trainings/{tr['id']}", headers={"X-CSRF-Token": token}).status_code == 404


def test_consultant_reads_trainings_but_cannot_delete(app, client):
    oid = org_id(app)
    _enable_all(app, oid)
    token = login(client, "consultant@example.com")
    assert client.get("/api/trainings").status_code == 200
    r = client.delete("/api/trainings/1", headers={"X-CSRF-Token": token})
    assert r.status_code == 403

from __future__ import annotations

from datetime import date, timedelta

from flask import Blueprint, g, jsonify, request

from app.ssm.db import db_session
from app.ssm.messages import error_response
from app.ssm.models import User
from app.ssm.modules.compliance.models import MedicalExam, SafetyEquipment, Training
from app.ssm.modules.compliance.service import (
    create_equipment,
    create_medical_exam,
    create_training,
    equipment_to_dict,
    medical_to_dict,
    soft_delete_record,
    training_to_dict,
    validate_equipment_payload,
    validate_medical_payload,
    validate_training_payload,
)
from app.ssm.modules.employees.models import Employee
from app.ssm.modules.entitlements.gate import require_module
from app.ssm.rbac import require_permission
from app.ssm.utils import request_payload

bp = Blueprint("compliance", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _expiring_within() -> int | None:
    raw = (request.args.get("expiring_within") or "").strip()
    if not raw:
        return None
    try:
        return max(0, int(raw))
    except ValueError:
        return None


def _owned_employee(s, payload: dict, organization_id: int) -> Employee | None:
    try:
        emp = s.get(Employee, int(payload.get("employee_id")))
    except (TypeError, ValueError):
        return None
    if not emp or emp.is_deleted or emp.organization_id != organization_id:
        return None
    return emp


def _owned(s, model, record_id: int, organization_id: int):
    row = s.get(model, record_id)
    if not row or row.is_deleted or row.organization_id != organization_id:
        return None
    return row


# ---------- Medical ----------
@bp.get("/medical")
@require_permission("medical.view")
@require_module("medicina-muncii")
def medical_list():
    s = db_session()
    u = _current_user()
    q = (
        s.query(MedicalExam)
        .filter(MedicalExam.organization_id == u.organization_id)
        .filter(MedicalExam.is_deleted.is_(False))
    )
    employee_id = request.args.get("employee_id", type=int)
    if employee_id:
        q = q.filter(MedicalExam.employee_id == employee_id)
    days = _expiring_within()
    if days is not None:
        q = q.filter(MedicalExam.expiry_date <= date.today() + timedelta(days=days))
    rows = q.order_by(MedicalExam.expiry_date.asc(), MedicalExam.id.asc()).all()
    return jsonify({"items": [medical_to_dict(r) for r in rows]})


@bp.post("/medical")
@require_permission("medical.create")
@require_module("medicina-muncii")
def medical_create():
    s = db_session()
    u = _current_user()
    payload = request_payload(request)
    errors = validate_medical_payload(payload)
    if errors:
        return error_response("validation_failed", 400, errors=errors)
    if not _owned_employee(s, payload, u.organization_id):
        return error_response("not_found", 404)
    exam = create_medical_exam(s, u.organization_id, payload, u)
    s.commit()
    return jsonify(medical_to_dict(exam)), 201


@bp.delete("/medical/<int:record_id>")
@require_permission("medical.delete")
@require_module("medicina-muncii")
def medical_delete(record_id: int):
    s = db_session()
    u = _current_user()
    exam = _owned(s, MedicalExam, record_id, u.organization_id)
    if not exam:
        return error_response("not_found", 404)
    soft_delete_record(s, exam, u, action="medical_exam.delete")
    s.commit()
    return jsonify({"ok": True, "id": record_id})


# ---------- Safety equipment ----------
@bp.get("/equipment")
@require_permission("equipment.view")
@require_module("psi")
def equipment_list():
    s = db_session()
    u = _current_user()
    q = (
        s.query(SafetyEquipment)
        .filter(SafetyEquipment.organization_id == u.organization_id)
        .filter(SafetyEquipment.is_deleted.is_(False))
    )
    equipment_type = (request.args.get("type") or "").strip()
    if equipment_type:
        q = q.filter(SafetyEquipment.equipment_type == equipment_type)
    days = _expiring_within()
    if days is not None:
        q = q.filter(SafetyEquipment.next_inspection_date <= date.today() + timedelta(days=days))
    rows = q.order_by(SafetyEquipment.next_inspection_date.asc(), SafetyEquipment.id.asc()).all()
    return jsonify({"items": [equipment_to_dict(r) for r in rows]})


@bp.post("/equipment")
@require_permission("equipment.create")
@require_module("psi")
def equipment_create():
    s = db_session()
    u = _current_user()
    payload = request_payload(request)
    errors = validate_equipment_payload(payload)
    if errors:
        return error_response("validation_failed", 400, errors=errors)
    eq = create_equipment(s, u.organization_id, payload, u)
    s.commit()
    return jsonify(equipment_to_dict(eq)), 201


@bp.delete("/equipment/<int:record_id>")
@require_permission("equipment.delete")
@require_module("psi")
def equipment_delete(record_id: int):
    s = db_session()
    u = _current_user()
    eq = _owned(s, SafetyEquipment, record_id, u.organization_id)
    if not eq:
        return error_response("not_found", 404)
    soft_delete_record(s, eq, u, action="equipment.delete")
    s.commit()
    return jsonify({"ok": True, "id": record_id})


# ---------- Trainings ----------
@bp.get("/trainings")
@require_permission("trainings.view")
@require_module("instruire")
def trainings_list():
    s = db_session()
    u = _current_user()
    q = (
        s.query(Training)
        .filter(Training.organization_id == u.organization_id)
        .filter(Training.is_deleted.is_(False))
    )
    employee_id = request.args.get("employee_id", type=int)
    if employee_id:
        q = q.filter(Training.employee_id == employee_id)
    days = _expiring_within()
    if days is not None:
        q = q.filter(Training.expiry_date <= date.today() + timedelta(days=days))
    rows = q.order_by(Training.expiry_date.asc(), Training.id.asc()).all()
    return jsonify({"items": [training_to_dict(r) for r in rows]})


@bp.post("/trainings")
@require_permission("trainings.create")
@require_module("instruire")
def trainings_create():
    s = db_session()
    u = _current_user()
    payload = request_payload(request)
    errors = validate_training_payload(payload)
    if errors:
        return error_response("validation_failed", 400, errors=errors)
    if not _owned_employee(s, payload, u.organization_id):
        return error_response("not_found", 404)
    tr = create_training(s, u.organization_id, payload, u)
    s.commit()
    return jsonify(training_to_dict(tr)), 201


@bp.delete("/trainings/<int:record_id>")
@require_permission("trainings.delete")
@require_module("instruire")
def trainings_delete(record_id: int):
    s = db_session()
    u = _current_user()
    tr = _owned(s, Training, record_id, u.organization_id)
    if not tr:
        return error_response("not_found", 404)
    soft_delete_record(s, tr, u, action="training.delete")
    s.commit()
    return jsonify({"ok": True, "id": record_id})

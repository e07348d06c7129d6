from __future__ import annotations

from flask import Blueprint, g, jsonify, request
from sqlalchemy import func, or_

from app.ssm.db import db_session
from app.ssm.messages import error_response
from app.ssm.models import User
from app.ssm.modules.employees.models import Employee
from app.ssm.modules.employees.service import (
    create_employee,
    employee_to_dict,
    soft_delete_employee,
    update_employee,
    validate_employee_payload,
)
from app.ssm.rbac import require_permission, user_has_permission
from app.ssm.utils import page_args, request_payload

bp = Blueprint("employees", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_owned(s, employee_id: int, organization_id: int) -> Employee | None:
    emp = s.get(Employee, employee_id)
    # Foreign-tenant rows answer 404, same as missing ones.
    if not emp or emp.is_deleted or emp.organization_id != organization_id:
        return None
    return emp


# ---------- List ----------
@bp.get("/employees")
@require_permission("employees.view")
def employees_list():
    s = db_session()
    u = _current_user()
    page, per_page = page_args(request)
    search = (request.args.get("q") or "").strip()
    department = (request.args.get("department") or "").strip()
    active = (request.args.get("active") or "").strip().lower()

    q = (
        s.query(Employee)
        .filter(Employee.organization_id == u.organization_id)
        .filter(Employee.is_deleted.is_(False))
    )
    if search:
        like = f"%{search}%"
        q = q.filter(
            or_(
                Employee.first_name.ilike(like),
                Employee.last_name.ilike(like),
                Employee.job_title.ilike(like),
                Employee.cnp.like(f"{search}%"),
            )
        )
    if department:
        q = q.filter(Employee.department == department)
    if active in ("1", "true"):
        q = q.filter(Employee.is_active.is_(True))
    elif active in ("0", "false"):
        q = q.filter(Employee.is_active.is_(False))

    total = q.with_entities(func.count(Employee.id)).scalar() or 0
    rows = (
        q.order_by(Employee.last_name.asc(), Employee.first_name.asc(), Employee.id.asc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return jsonify(
        {
            "items": [employee_to_dict(e) for e in rows],
            "page": page,
            "per_page": per_page,
            "total": total,
            "pages": (total + per_page - 1) // per_page,
        }
    )


# ---------- Create ----------
@bp.post("/employees")
@require_permission("employees.create")
def employees_create():
    s = db_session()
    u = _current_user()
    payload = request_payload(request)

    errors = validate_employee_payload(payload)
    if errors:
        return error_response("validation_failed", 400, errors=errors)
    try:
        emp = create_employee(s, u.organization_id, payload, u)
    except ValueError as e:
        s.rollback()
        return error_response("validation_failed", 400, errors=[str(e)])
    s.commit()
    return jsonify(employee_to_dict(emp, reveal_cnp=True)), 201


# ---------- Detail ----------
@bp.get("/employees/<int:employee_id>")
@require_permission("employees.view")
def employee_detail(employee_id: int):
    s = db_session()
    u = _current_user()
    emp = _get_owned(s, employee_id, u.organization_id)
    if not emp:
        return error_response("not_found", 404)
    return jsonify(employee_to_dict(emp, reveal_cnp=user_has_permission(u, "employees.edit")))


# ---------- Update ----------
@bp.patch("/employees/<int:employee_id>")
@require_permission("employees.edit")
def employee_update(employee_id: int):
    s = db_session()
    u = _current_user()
    emp = _get_owned(s, employee_id, u.organization_id)
    if not emp:
        return error_response("not_found", 404)

    payload = request_payload(request)
    errors = validate_employee_payload(payload, partial=True)
    if errors:
        return error_response("validation_failed", 400, errors=errors)
    try:
        update_employee(s, emp, payload, u, reason=(payload.get("reason") or None))
    except ValueError as e:
        s.rollback()
        return error_response("validation_failed", 400, errors=[str(e)])
    s.commit()
    return jsonify(employee_to_dict(emp, reveal_cnp=True))


# ---------- Delete ----------
@bp.delete("/employees/<int:employee_id>")
@require_permission("employees.delete")
def employee_delete(employee_id: int):
    s = db_session()
    u = _current_user()
    emp = _get_owned(s, employee_id, u.organization_id)
    if not emp:
        return error_response("not_found", 404)
    soft_delete_employee(s, emp, u, reason=(request.args.get("reason") or None))
    s.commit()
    return jsonify({"ok": True, "id": employee_id})

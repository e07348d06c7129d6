from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.ssm.audit import record_event
from app.ssm.messages import t
from app.ssm.modules.employees.cnp import mask_cnp, validate_cnp
from app.ssm.utils import clean_str, iso, parse_date

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.ssm.models import User
    from app.ssm.modules.employees.models import Employee


EDITABLE_FIELDS = (
    "first_name",
    "last_name",
    "cnp",
    "job_title",
    "cor_code",
    "department",
    "hire_date",
    "email",
    "phone",
    "notes",
    "is_active",
)


def validate_employee_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate employee create/update payload. Returns list of localized errors."""
    errors: list[str] = []
    for field in ("first_name", "last_name"):
        if (not partial or field in payload) and not clean_str(payload.get(field)):
            errors.append(t("field_required", field=field))

    cnp = clean_str(payload.get("cnp"))
    if cnp:
        result = validate_cnp(cnp)
        if not result.is_valid:
            errors.append(t(result.error or "validation_failed"))

    if clean_str(payload.get("hire_date")):
        try:
            parse_date(payload.get("hire_date"))
        except ValueError:
            errors.append(t("field_invalid", field="hire_date"))

    email = clean_str(payload.get("email"))
    if email and ("@" not in email or " " in email):
        errors.append(t("field_invalid", field="email"))
    return errors


def _jsonable(value: Any) -> Any:
    return iso(value) if hasattr(value, "isoformat") else value


def _find_by_cnp(s: "Session", organization_id: int, cnp: str) -> "Employee | None":
    from app.ssm.modules.employees.models import Employee

    return (
        s.query(Employee)
        .filter(Employee.organization_id == organization_id)
        .filter(Employee.cnp == cnp)
        .filter(Employee.is_deleted.is_(False))
        .first()
    )


def _coerce(field: str, value: Any) -> Any:
    if field == "hire_date":
        return parse_date(value)
    if field == "is_active":
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if field == "email":
        v = clean_str(value)
        return v.lower() if v else None
    return clean_str(value)


def create_employee(s: "Session", organization_id: int, payload: dict, user: "User") -> "Employee":
    from app.ssm.modules.employees.models import Employee

    cnp = clean_str(payload.get("cnp"))
    if cnp and _find_by_cnp(s, organization_id, cnp):
        raise ValueError(t("cnp_duplicate"))

    now = datetime.utcnow()
    emp = Employee(
        organization_id=organization_id,
        first_name=clean_str(payload.get("first_name")) or "",
        last_name=clean_str(payload.get("last_name")) or "",
        cnp=cnp,
        job_title=clean_str(payload.get("job_title")),
        cor_code=clean_str(payload.get("cor_code")),
        department=clean_str(payload.get("department")),
        hire_date=parse_date(payload.get("hire_date")),
        email=_coerce("email", payload.get("email")),
        phone=clean_str(payload.get("phone")),
        notes=clean_str(payload.get("notes")),
        is_active=True if payload.get("is_active") is None else _coerce("is_active", payload.get("is_active")),
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
        updated_by_user_id=user.id,
    )
    s.add(emp)
    s.flush()

    record_event(
        s,
        actor=user,
        action="employee.create",
        entity_type="Employee",
        entity_id=str(emp.id),
        metadata={"name": emp.full_name, "cnp": mask_cnp(emp.cnp) if emp.cnp else None},
    )
    return emp


def update_employee(s: "Session", emp: "Employee", payload: dict, user: "User", reason: str | None = None) -> "Employee":
    changes: dict[str, dict[str, Any]] = {}

    new_cnp = clean_str(payload.get("cnp")) if "cnp" in payload else emp.cnp
    if new_cnp and new_cnp != emp.cnp:
        other = _find_by_cnp(s, emp.organization_id, new_cnp)
        if other is not None and other.id != emp.id:
            raise ValueError(t("cnp_duplicate"))

    for field in EDITABLE_FIELDS:
        if field not in payload:
            continue
        new_value = _coerce(field, payload.get(field))
        if field in ("first_name", "last_name") and not new_value:
            continue
        old_value = getattr(emp, field)
        if new_value != old_value:
            if field == "cnp":
                changes[field] = {"old": mask_cnp(old_value) if old_value else None, "new": mask_cnp(new_value) if new_value else None}
            else:
                changes[field] = {"old": _jsonable(old_value), "new": _jsonable(new_value)}
            setattr(emp, field, new_value)

    if changes:
        emp.updated_at = datetime.utcnow()
        emp.updated_by_user_id = user.id
        record_event(
            s,
            actor=user,
            action="employee.update",
            entity_type="Employee",
            entity_id=str(emp.id),
            reason=reason,
            metadata={"changes": changes},
        )
    return emp


def soft_delete_employee(s: "Session", emp: "Employee", user: "User", reason: str | None = None) -> None:
    now = datetime.utcnow()
    emp.is_deleted = True
    emp.is_active = False
    emp.deleted_at = now
    emp.updated_at = now
    emp.updated_by_user_id = user.id
    record_event(
        s,
        actor=user,
        action="employee.delete",
        entity_type="Employee",
        entity_id=str(emp.id),
        reason=reason,
        metadata={"name": emp.full_name},
    )


def employee_to_dict(emp: "Employee", *, reveal_cnp: bool = False) -> dict[str, Any]:
    return {
        "id": emp.id,
        "organization_id": emp.organization_id,
        "first_name": emp.first_name,
        "last_name": emp.last_name,
        "full_name": emp.full_name,
        "cnp": (emp.cnp if reveal_cnp else mask_cnp(emp.cnp)) if emp.cnp else None,
        "job_title": emp.job_title,
        "cor_code": emp.cor_code,
        "department": emp.department,
        "hire_date": iso(emp.hire_date),
        "email": emp.email,
        "phone": emp.phone,
        "notes": emp.notes,
        "is_active": emp.is_active,
        "created_at": iso(emp.created_at),
        "updated_at": iso(emp.updated_at),
    }

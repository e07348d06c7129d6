from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from app.ssm.audit import record_event
from app.ssm.messages import t
from app.ssm.utils import clean_str, iso, parse_date, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.ssm.models import User
    from app.ssm.modules.compliance.models import MedicalExam, SafetyEquipment, Training


EXAM_TYPES = ("angajare", "periodic", "reluare", "la_cerere")
EXAM_RESULTS = ("apt", "apt_conditionat", "inapt_temporar", "inapt")
EQUIPMENT_TYPES = ("stingator", "hidrant", "trusa_prim_ajutor", "detector_fum", "iluminat_siguranta", "altul")
TRAINING_TYPES = ("introductiv_general", "la_locul_de_munca", "periodic", "suplimentar", "psi", "prim_ajutor")


def _required_date(payload: dict, field: str, errors: list[str]) -> date | None:
    raw = clean_str(payload.get(field))
    if not raw:
        errors.append(t("field_required", field=field))
        return None
    try:
        return parse_date(raw)
    except ValueError:
        errors.append(t("field_invalid", field=field))
        return None


def _optional_date(payload: dict, field: str, errors: list[str]) -> date | None:
    try:
        return parse_date(payload.get(field))
    except ValueError:
        errors.append(t("field_invalid", field=field))
        return None


def _choice(payload: dict, field: str, allowed: tuple[str, ...], errors: list[str], *, default: str | None = None) -> None:
    value = clean_str(payload.get(field)) or default
    if value is None:
        errors.append(t("field_required", field=field))
    elif value not in allowed:
        errors.append(t("field_invalid", field=field))


def _employee_id(payload: dict, errors: list[str]) -> None:
    try:
        if parse_int(payload.get("employee_id")) is None:
            errors.append(t("field_required", field="employee_id"))
    except ValueError:
        errors.append(t("field_invalid", field="employee_id"))


# ---------- Medical exams ----------
def validate_medical_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    _employee_id(payload, errors)
    _choice(payload, "exam_type", EXAM_TYPES, errors, default="periodic")
    _choice(payload, "result", EXAM_RESULTS, errors, default="apt")
    exam_date = _required_date(payload, "exam_date", errors)
    expiry_date = _required_date(payload, "expiry_date", errors)
    if exam_date and expiry_date and expiry_date < exam_date:
        errors.append(t("field_invalid", field="expiry_date"))
    return errors


def create_medical_exam(s: "Session", organization_id: int, payload: dict, user: "User") -> "MedicalExam":
    from app.ssm.modules.compliance.models import MedicalExam

    now = datetime.utcnow()
    exam = MedicalExam(
        organization_id=organization_id,
        employee_id=int(payload["employee_id"]),
        exam_type=clean_str(payload.get("exam_type")) or "periodic",
        exam_date=parse_date(payload.get("exam_date")),
        expiry_date=parse_date(payload.get("expiry_date")),
        result=clean_str(payload.get("result")) or "apt",
        doctor_name=clean_str(payload.get("doctor_name")),
        clinic_name=clean_str(payload.get("clinic_name")),
        restrictions=clean_str(payload.get("restrictions")),
        notes=clean_str(payload.get("notes")),
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
    )
    s.add(exam)
    s.flush()
    record_event(
        s,
        actor=user,
        action="medical_exam.create",
        entity_type="MedicalExam",
        entity_id=str(exam.id),
        metadata={"employee_id": exam.employee_id, "expiry_date": exam.expiry_date.isoformat(), "result": exam.result},
    )
    return exam


def medical_to_dict(exam: "MedicalExam") -> dict[str, Any]:
    return {
        "id": exam.id,
        "employee_id": exam.employee_id,
        "employee_name": exam.employee.full_name if exam.employee else None,
        "exam_type": exam.exam_type,
        "exam_date": iso(exam.exam_date),
        "expiry_date": iso(exam.expiry_date),
        "result": exam.result,
        "doctor_name": exam.doctor_name,
        "clinic_name": exam.clinic_name,
        "restrictions": exam.restrictions,
        "notes": exam.notes,
    }


# ---------- Safety equipment ----------
def validate_equipment_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    _choice(payload, "equipment_type", EQUIPMENT_TYPES, errors)
    if not clean_str(payload.get("name")):
        errors.append(t("field_required", field="name"))
    last = _optional_date(payload, "last_inspection_date", errors)
    nxt = _required_date(payload, "next_inspection_date", errors)
    if last and nxt and nxt < last:
        errors.append(t("field_invalid", field="next_inspection_date"))
    return errors


def create_equipment(s: "Session", organization_id: int, payload: dict, user: "User") -> "SafetyEquipment":
    from app.ssm.modules.compliance.models import SafetyEquipment

    now = datetime.utcnow()
    eq = SafetyEquipment(
        organization_id=organization_id,
        equipment_type=clean_str(payload.get("equipment_type")) or "altul",
        name=clean_str(payload.get("name")) or "",
        serial_number=clean_str(payload.get("serial_number")),
        location=clean_str(payload.get("location")),
        last_inspection_date=parse_date(payload.get("last_inspection_date")),
        next_inspection_date=parse_date(payload.get("next_inspection_date")),
        notes=clean_str(payload.get("notes")),
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
    )
    s.add(eq)
    s.flush()
    record_event(
        s,
        actor=user,
        action="equipment.create",
        entity_type="SafetyEquipment",
        entity_id=str(eq.id),
        metadata={"name": eq.name, "type": eq.equipment_type, "next_inspection_date": eq.next_inspection_date.isoformat()},
    )
    return eq


def equipment_to_dict(eq: "SafetyEquipment") -> dict[str, Any]:
    return {
        "id": eq.id,
        "equipment_type": eq.equipment_type,
        "name": eq.name,
        "serial_number": eq.serial_number,
        "location": eq.location,
        "last_inspection_date": iso(eq.last_inspection_date),
        "next_inspection_date": iso(eq.next_inspection_date),
        "notes": eq.notes,
    }


# ---------- Trainings ----------
def validate_training_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    _employee_id(payload, errors)
    _choice(payload, "training_type", TRAINING_TYPES, errors)
    if not clean_str(payload.get("title")):
        errors.append(t("field_required", field="title"))
    done = _required_date(payload, "completed_date", errors)
    expiry = _required_date(payload, "expiry_date", errors)
    if done and expiry and expiry < done:
        errors.append(t("field_invalid", field="expiry_date"))
    try:
        hours = parse_int(payload.get("duration_hours"))
        if hours is not None and hours < 0:
            errors.append(t("field_invalid", field="duration_hours"))
    except ValueError:
        errors.append(t("field_invalid", field="duration_hours"))
    return errors


def create_training(s: "Session", organization_id: int, payload: dict, user: "User") -> "Training":
    from app.ssm.modules.compliance.models import Training

    now = datetime.utcnow()
    tr = Training(
        organization_id=organization_id,
        employee_id=int(payload["employee_id"]),
        training_type=clean_str(payload.get("training_type")) or "periodic",
        title=clean_str(payload.get("title")) or "",
        completed_date=parse_date(payload.get("completed_date")),
        expiry_date=parse_date(payload.get("expiry_date")),
        trainer_name=clean_str(payload.get("trainer_name")),
        duration_hours=parse_int(payload.get("duration_hours")),
        notes=clean_str(payload.get("notes")),
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
    )
    s.add(tr)
    s.flush()
    record_event(
        s,
        actor=user,
        action="training.create",
        entity_type="Training",
        entity_id=str(tr.id),
        metadata={"employee_id": tr.employee_id, "title": tr.title, "expiry_date": tr.expiry_date.isoformat()},
    )
    return tr


def training_to_dict(tr: "Training") -> dict[str, Any]:
    return {
        "id": tr.id,
        "employee_id": tr.employee_id,
        "employee_name": tr.employee.full_name if tr.employee else None,
        "training_type": tr.training_type,
        "title": tr.title,
        "completed_date": iso(tr.completed_date),
        "expiry_date": iso(tr.expiry_date),
        "trainer_name": tr.trainer_name,
        "duration_hours": tr.duration_hours,
        "notes": tr.notes,
    }


def soft_delete_record(s: "Session", record: Any, user: "User", *, action: str) -> None:
    now = datetime.utcnow()
    record.is_deleted = True
    record.deleted_at = now
    record.updated_at = now
    record_event(
        s,
        actor=user,
        action=action,
        entity_type=type(record).__name__,
        entity_id=str(record.id),
    )

"""
Daily expiry scan.

For every organization, three threshold queries (medical exams, safety equipment
inspections, trainings) select items due within the warning window, overdue
ones included. Each item gets a severity, a deduplicated Alert row, and a place
in the notification digest when it is new or sits on a 30/7/0-day milestone.
Lapsed module trials are reconciled to `expired` in the same run.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from app.ssm.models import Organization
from app.ssm.modules.alerts.models import Alert
from app.ssm.modules.compliance.models import MedicalExam, SafetyEquipment, Training
from app.ssm.modules.employees.models import Employee
from app.ssm.modules.entitlements.service import expire_trials

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.ssm.modules.alerts.notifications import DeliveryResult, Notifier

logger = logging.getLogger(__name__)

DEFAULT_WARNING_DAYS = 30
MILESTONE_DAYS = frozenset({30, 7, 0})
SEVERITY_ORDER = ("critical", "high", "medium")


def classify_severity(days_left: int) -> str | None:
    """<=7 critical (overdue included), <=14 high, <=30 medium, otherwise no alert."""
    if days_left <= 7:
        return "critical"
    if days_left <= 14:
        return "high"
    if days_left <= 30:
        return "medium"
    return None


@dataclass(frozen=True)
class DigestItem:
    alert_type: str
    entity_type: str
    entity_id: int
    title: str
    due_date: date
    days_left: int
    severity: str
    is_new: bool


@dataclass(frozen=True)
class OrganizationScanResult:
    organization_id: int
    items: tuple[DigestItem, ...]
    digest: tuple[DigestItem, ...]
    alerts_created: int
    severity_counts: dict[str, int]
    overall_severity: str | None
    deliveries: tuple["DeliveryResult", ...] = ()

    def to_dict(self) -> dict:
        return {
            "organization_id": self.organization_id,
            "items": len(self.items),
            "digest_items": len(self.digest),
            "alerts_created": self.alerts_created,
            "severity_counts": dict(self.severity_counts),
            "overall_severity": self.overall_severity,
            "deliveries": [{"channel": d.channel, "status": d.status} for d in self.deliveries],
        }


@dataclass
class ScanSummary:
    started_at: datetime
    organizations_scanned: int = 0
    organizations_failed: int = 0
    alerts_created: int = 0
    notifications_sent: int = 0
    trials_expired: int = 0
    results: list[OrganizationScanResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "organizations_scanned": self.organizations_scanned,
            "organizations_failed": self.organizations_failed,
            "alerts_created": self.alerts_created,
            "notifications_sent": self.notifications_sent,
            "trials_expired": self.trials_expired,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class _Candidate:
    alert_type: str
    entity_type: str
    entity_id: int
    title: str
    due_date: date


def _candidates(s: "Session", organization_id: int, horizon: date) -> list[_Candidate]:
    out: list[_Candidate] = []

    exams = (
        s.query(MedicalExam, Employee)
        .join(Employee, Employee.id == MedicalExam.employee_id)
        .filter(MedicalExam.organization_id == organization_id)
        .filter(MedicalExam.is_deleted.is_(False))
        .filter(Employee.is_deleted.is_(False))
        .filter(MedicalExam.expiry_date <= horizon)
        .all()
    )
    for exam, emp in exams:
        out.append(_Candidate("medical_expiry", "MedicalExam", exam.id, f"Examen medical - {emp.full_name}", exam.expiry_date))

    equipment = (
        s.query(SafetyEquipment)
        .filter(SafetyEquipment.organization_id == organization_id)
        .filter(SafetyEquipment.is_deleted.is_(False))
        .filter(SafetyEquipment.next_inspection_date <= horizon)
        .all()
    )
    for eq in equipment:
        label = f"{eq.name} ({eq.location})" if eq.location else eq.name
        out.append(_Candidate("equipment_inspection", "SafetyEquipment", eq.id, f"Verificare - {label}", eq.next_inspection_date))

    trainings = (
        s.query(Training, Employee)
        .join(Employee, Employee.id == Training.employee_id)
        .filter(Training.organization_id == organization_id)
        .filter(Training.is_deleted.is_(False))
        .filter(Employee.is_deleted.is_(False))
        .filter(Training.expiry_date <= horizon)
        .all()
    )
    for tr, emp in trainings:
        out.append(_Candidate("training_expiry", "Training", tr.id, f"{tr.title} - {emp.full_name}", tr.expiry_date))

    out.sort(key=lambda c: (c.due_date, c.alert_type, c.entity_id))
    return out


def _has_open_alert(s: "Session", organization_id: int, c: _Candidate) -> bool:
    return (
        s.query(Alert.id)
        .filter(Alert.organization_id == organization_id)
        .filter(Alert.alert_type == c.alert_type)
        .filter(Alert.entity_id == c.entity_id)
        .filter(Alert.due_date == c.due_date)
        .filter(Alert.is_resolved.is_(False))
        .first()
        is not None
    )


def scan_organization(
    s: "Session",
    org: Organization,
    *,
    today: date,
    warning_days: int = DEFAULT_WARNING_DAYS,
    notifier: "Notifier | None" = None,
    now: datetime | None = None,
) -> OrganizationScanResult:
    now = now or datetime.utcnow()
    horizon = today + timedelta(days=warning_days)
    items: list[DigestItem] = []
    created = 0

    for c in _candidates(s, org.id, horizon):
        days_left = (c.due_date - today).days
        severity = classify_severity(days_left)
        if severity is None:
            continue
        is_new = not _has_open_alert(s, org.id, c)
        if is_new:
            s.add(
                Alert(
                    organization_id=org.id,
                    alert_type=c.alert_type,
                    entity_type=c.entity_type,
                    entity_id=c.entity_id,
                    title=c.title,
                    due_date=c.due_date,
                    days_left=days_left,
                    severity=severity,
                    created_at=now,
                )
            )
            created += 1
        items.append(DigestItem(c.alert_type, c.entity_type, c.entity_id, c.title, c.due_date, days_left, severity, is_new))

    counts = {sev: 0 for sev in SEVERITY_ORDER}
    for it in items:
        counts[it.severity] += 1
    overall = next((sev for sev in SEVERITY_ORDER if counts[sev]), None)

    digest = [it for it in items if it.is_new or it.days_left in MILESTONE_DAYS]
    deliveries: list["DeliveryResult"] = []
    if digest and notifier is not None:
        deliveries = notifier.dispatch_digest(s, org, digest, now=now)

    if items:
        logger.info(
            "Expiry scan org=%s items=%s new=%s digest=%s overall=%s",
            org.id,
            len(items),
            created,
            len(digest),
            overall,
        )
    return OrganizationScanResult(
        organization_id=org.id,
        items=tuple(items),
        digest=tuple(digest),
        alerts_created=created,
        severity_counts=counts,
        overall_severity=overall,
        deliveries=tuple(deliveries),
    )


def run_expiry_scan(
    s: "Session",
    *,
    notifier: "Notifier | None" = None,
    today: date | None = None,
    now: datetime | None = None,
    warning_days: int = DEFAULT_WARNING_DAYS,
) -> ScanSummary:
    """
    Scan every organization. Commits after trial reconciliation and after each organization,
    so one failing tenant does not undo the others.
    """
    now = now or datetime.utcnow()
    today = today or now.date()
    summary = ScanSummary(started_at=now)

    summary.trials_expired = len(expire_trials(s, now=now))
    s.commit()

    org_ids = [oid for (oid,) in s.query(Organization.id).order_by(Organization.id.asc()).all()]
    for org_id in org_ids:
        try:
            org = s.get(Organization, org_id)
            if org is None:
                continue
            result = scan_organization(s, org, today=today, warning_days=warning_days, notifier=notifier, now=now)
            s.commit()
        except Exception:
            s.rollback()
            summary.organizations_failed += 1
            logger.exception("Expiry scan failed for organization %s", org_id)
            continue
        summary.organizations_scanned += 1
        summary.alerts_created += result.alerts_created
        summary.notifications_sent += sum(1 for d in result.deliveries if d.status == "sent")
        summary.results.append(result)

    logger.info(
        "Expiry scan done: orgs=%s failed=%s alerts=%s notifications=%s trials_expired=%s",
        summary.organizations_scanned,
        summary.organizations_failed,
        summary.alerts_created,
        summary.notifications_sent,
        summary.trials_expired,
    )
    return summary

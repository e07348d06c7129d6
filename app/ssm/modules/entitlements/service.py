from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from app.ssm.audit import record_event
from app.ssm.messages import t
from app.ssm.modules.entitlements.catalog import (
    BASE_MODULE_KEYS,
    PAID_MODULE_KEYS,
    display_name,
    get_module,
    missing_dependencies,
    modules_for_plan,
)
from app.ssm.modules.entitlements.models import OrganizationModule
from app.ssm.modules.entitlements.resolver import ModuleAccess, resolve_access

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.ssm.models import User

logger = logging.getLogger(__name__)


class EntitlementError(ValueError):
    """Domain rejection carrying a message-catalog key, rendered as 400 by the API."""

    def __init__(self, key: str, **params: Any):
        self.key = key
        self.params = params
        super().__init__(t(key, **params))


def list_module_rows(s: "Session", organization_id: int) -> list[OrganizationModule]:
    return (
        s.query(OrganizationModule)
        .filter(OrganizationModule.organization_id == organization_id)
        .order_by(OrganizationModule.module_key.asc())
        .all()
    )


def _get_row(s: "Session", organization_id: int, module_key: str) -> OrganizationModule | None:
    return (
        s.query(OrganizationModule)
        .filter(OrganizationModule.organization_id == organization_id)
        .filter(OrganizationModule.module_key == module_key)
        .one_or_none()
    )


def get_access(s: "Session", organization_id: int, module_key: str, now: datetime | None = None) -> ModuleAccess:
    if module_key in BASE_MODULE_KEYS:
        return resolve_access(module_key, [], now=now)
    row = _get_row(s, organization_id, module_key)
    return resolve_access(module_key, [row] if row else [], now=now)


def accessible_module_keys(s: "Session", organization_id: int, now: datetime | None = None) -> set[str]:
    rows = list_module_rows(s, organization_id)
    keys = set(BASE_MODULE_KEYS)
    for row in rows:
        if resolve_access(row.module_key, rows, now=now).has_access:
            keys.add(row.module_key)
    return keys


def start_trial(
    s: "Session",
    organization_id: int,
    module_key: str,
    *,
    user: "User | None",
    trial_days: int = 14,
    now: datetime | None = None,
) -> OrganizationModule:
    """
    Start a trial for a paid module. One trial per module per organization, ever:
    rejected when the module is active or a trial was already started for it.
    """
    now = now or datetime.utcnow()
    module = get_module(module_key)
    if module is None:
        raise EntitlementError("module_unknown", module=module_key)
    name = display_name(module_key)
    if module.is_base:
        raise EntitlementError("module_is_base", module=name)

    row = _get_row(s, organization_id, module_key)
    if row is not None:
        if row.status == "active":
            raise EntitlementError("module_already_active", module=name)
        if row.trial_started_at is not None:
            raise EntitlementError("trial_already_used", module=name)

    missing = missing_dependencies(module_key, accessible_module_keys(s, organization_id, now=now))
    if missing:
        raise EntitlementError(
            "module_missing_dependencies",
            module=name,
            missing=", ".join(display_name(k) for k in missing),
        )

    if row is None:
        row = OrganizationModule(organization_id=organization_id, module_key=module_key, created_at=now)
        s.add(row)
    row.status = "trial"
    row.trial_started_at = now
    row.trial_expires_at = now + timedelta(days=trial_days)
    row.canceled_at = None
    row.updated_at = now
    s.flush()

    record_event(
        s,
        actor=user,
        action="module.trial_start",
        entity_type="OrganizationModule",
        entity_id=str(row.id),
        organization_id=organization_id,
        metadata={"module_key": module_key, "trial_expires_at": row.trial_expires_at.isoformat()},
    )
    return row


def activate_module(
    s: "Session",
    organization_id: int,
    module_key: str,
    *,
    now: datetime | None = None,
) -> OrganizationModule | None:
    """Mark a paid module active, creating its row when needed. Base modules are a no-op (None)."""
    if module_key in BASE_MODULE_KEYS or module_key not in PAID_MODULE_KEYS:
        return None
    now = now or datetime.utcnow()
    row = _get_row(s, organization_id, module_key)
    if row is None:
        row = OrganizationModule(
            organization_id=organization_id,
            module_key=module_key,
            status="active",
            activated_at=now,
            created_at=now,
        )
        s.add(row)
        s.flush()
    elif row.status != "active":
        row.activated_at = now
    row.status = "active"
    row.canceled_at = None
    row.updated_at = now
    return row


def cancel_module(
    s: "Session",
    organization_id: int,
    module_key: str,
    *,
    user: "User | None" = None,
    now: datetime | None = None,
) -> OrganizationModule:
    now = now or datetime.utcnow()
    if get_module(module_key) is None:
        raise EntitlementError("module_unknown", module=module_key)
    row = _get_row(s, organization_id, module_key)
    if row is None or row.status in ("canceled", "expired"):
        raise EntitlementError("module_not_cancelable", module=display_name(module_key))
    old_status = row.status
    row.status = "canceled"
    row.canceled_at = now
    row.updated_at = now
    record_event(
        s,
        actor=user,
        action="module.cancel",
        entity_type="OrganizationModule",
        entity_id=str(row.id),
        organization_id=organization_id,
        metadata={"module_key": module_key, "old_status": old_status},
    )
    return row


def apply_plan(s: "Session", organization_id: int, plan_id: str | None, *, now: datetime | None = None) -> dict[str, str]:
    """
    Recompute module rows for a plan: plan modules become active, other paid rows become canceled.
    Returns {module_key: new_status} for rows that changed.
    """
    now = now or datetime.utcnow()
    wanted = modules_for_plan(plan_id)
    changes: dict[str, str] = {}

    for key in sorted(wanted):
        row = _get_row(s, organization_id, key)
        if row is None or row.status != "active":
            activate_module(s, organization_id, key, now=now)
            changes[key] = "active"

    for row in list_module_rows(s, organization_id):
        if row.module_key in wanted or row.module_key not in PAID_MODULE_KEYS:
            continue
        if row.status not in ("canceled", "expired"):
            row.status = "canceled"
            row.canceled_at = now
            row.updated_at = now
            changes[row.module_key] = "canceled"

    s.flush()
    if changes:
        logger.info("Applied plan %s to organization %s: %s", plan_id, organization_id, changes)
    return changes


def set_paid_modules_status(s: "Session", organization_id: int, status: str, *, now: datetime | None = None) -> int:
    """Move every existing paid module row to `status`. Returns the number of rows changed."""
    now = now or datetime.utcnow()
    changed = 0
    for row in list_module_rows(s, organization_id):
        if row.module_key not in PAID_MODULE_KEYS or row.status == status:
            continue
        # A lapsed trial stays expired; billing state does not revive it.
        if row.status == "expired":
            continue
        row.status = status
        row.updated_at = now
        if status == "canceled":
            row.canceled_at = now
        changed += 1
    return changed


def expire_trials(s: "Session", *, now: datetime | None = None) -> list[OrganizationModule]:
    """Reconcile trial rows whose expiry has passed to `expired`."""
    now = now or datetime.utcnow()
    rows = (
        s.query(OrganizationModule)
        .filter(OrganizationModule.status == "trial")
        .filter(OrganizationModule.trial_expires_at.isnot(None))
        .filter(OrganizationModule.trial_expires_at <= now)
        .all()
    )
    for row in rows:
        row.status = "expired"
        row.updated_at = now
    if rows:
        logger.info("Expired %s lapsed trial(s)", len(rows))
    return rows

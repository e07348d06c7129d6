from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify

from app.ssm.db import db_session
from app.ssm.messages import current_locale, error_response
from app.ssm.models import User
from app.ssm.modules.entitlements.catalog import get_module, sorted_modules
from app.ssm.modules.entitlements.resolver import resolve_access
from app.ssm.modules.entitlements.service import (
    EntitlementError,
    cancel_module,
    get_access,
    list_module_rows,
    start_trial,
)
from app.ssm.rbac import require_permission

bp = Blueprint("entitlements", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _row_payload(row) -> dict | None:
    if row is None:
        return None
    return {
        "status": row.status,
        "trial_started_at": row.trial_started_at.isoformat() if row.trial_started_at else None,
        "trial_expires_at": row.trial_expires_at.isoformat() if row.trial_expires_at else None,
        "activated_at": row.activated_at.isoformat() if row.activated_at else None,
        "canceled_at": row.canceled_at.isoformat() if row.canceled_at else None,
    }


@bp.get("/modules")
@require_permission("modules.view")
def modules_list():
    s = db_session()
    u = _current_user()
    locale = current_locale()
    rows = list_module_rows(s, u.organization_id)
    by_key = {r.module_key: r for r in rows}

    items = []
    for m in sorted_modules():
        access = resolve_access(m.key, rows)
        items.append(
            {
                "key": m.key,
                "name": m.names.get(locale) or m.names["ro"],
                "category": m.category,
                "sort_order": m.sort_order,
                "is_base": m.is_base,
                "depends_on": list(m.depends_on),
                "access": access.to_dict(),
                "row": _row_payload(by_key.get(m.key)),
            }
        )
    return jsonify({"items": items})


@bp.get("/modules/<module_key>/access")
@require_permission("modules.view")
def module_access(module_key: str):
    if get_module(module_key) is None:
        return error_response("module_unknown", 404, params={"module": module_key})
    u = _current_user()
    access = get_access(db_session(), u.organization_id, module_key)
    return jsonify(access.to_dict())


@bp.post("/modules/<module_key>/trial")
@require_permission("modules.manage")
def module_trial_start(module_key: str):
    s = db_session()
    u = _current_user()
    try:
        row = start_trial(
            s,
            u.organization_id,
            module_key,
            user=u,
            trial_days=int(current_app.config.get("TRIAL_DAYS") or 14),
        )
    except EntitlementError as e:
        s.rollback()
        status = 404 if e.key == "module_unknown" else 400
        return error_response(e.key, status, params=e.params)
    s.commit()
    access = resolve_access(module_key, [row])
    return jsonify({"access": access.to_dict(), "row": _row_payload(row)}), 201


@bp.post("/modules/<module_key>/cancel")
@require_permission("modules.manage")
def module_cancel(module_key: str):
    s = db_session()
    u = _current_user()
    try:
        row = cancel_module(s, u.organization_id, module_key, user=u)
    except EntitlementError as e:
        s.rollback()
        status = 404 if e.key == "module_unknown" else 400
        return error_response(e.key, status, params=e.params)
    s.commit()
    return jsonify({"access": resolve_access(module_key, [row]).to_dict(), "row": _row_payload(row)})

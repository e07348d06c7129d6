from __future__ import annotations

import hmac
from datetime import datetime

from flask import Blueprint, current_app, g, jsonify, request

from app.ssm.audit import record_event
from app.ssm.db import db_session
from app.ssm.messages import error_response
from app.ssm.models import User
from app.ssm.modules.alerts.models import SEVERITIES, Alert
from app.ssm.modules.alerts.notifications import notifier_from_config
from app.ssm.modules.alerts.scanner import run_expiry_scan
from app.ssm.modules.entitlements.gate import require_module
from app.ssm.rbac import require_permission
from app.ssm.utils import iso, page_args

bp = Blueprint("alerts", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def alert_to_dict(a: Alert) -> dict:
    return {
        "id": a.id,
        "alert_type": a.alert_type,
        "entity_type": a.entity_type,
        "entity_id": a.entity_id,
        "title": a.title,
        "due_date": iso(a.due_date),
        "days_left": a.days_left,
        "severity": a.severity,
        "is_resolved": a.is_resolved,
        "resolved_at": iso(a.resolved_at),
        "created_at": iso(a.created_at),
    }


@bp.get("/alerts")
@require_permission("alerts.view")
@require_module("alerte")
def alerts_list():
    s = db_session()
    u = _current_user()
    page, per_page = page_args(request)

    q = s.query(Alert).filter(Alert.organization_id == u.organization_id)
    resolved = (request.args.get("resolved") or "").strip().lower()
    if resolved in ("1", "true"):
        q = q.filter(Alert.is_resolved.is_(True))
    elif resolved != "all":
        q = q.filter(Alert.is_resolved.is_(False))
    severity = (request.args.get("severity") or "").strip().lower()
    if severity in SEVERITIES:
        q = q.filter(Alert.severity == severity)

    total = q.count()
    rows = q.order_by(Alert.due_date.asc(), Alert.id.asc()).offset((page - 1) * per_page).limit(per_page).all()
    return jsonify({"items": [alert_to_dict(a) for a in rows], "page": page, "per_page": per_page, "total": total})


@bp.post("/alerts/<int:alert_id>/resolve")
@require_permission("alerts.resolve")
@require_module("alerte")
def alert_resolve(alert_id: int):
    s = db_session()
    u = _current_user()
    alert = s.get(Alert, alert_id)
    if not alert or alert.organization_id != u.organization_id:
        return error_response("not_found", 404)
    if not alert.is_resolved:
        alert.is_resolved = True
        alert.resolved_at = datetime.utcnow()
        alert.resolved_by_user_id = u.id
        record_event(
            s,
            actor=u,
            action="alert.resolve",
            entity_type="Alert",
            entity_id=str(alert.id),
            metadata={"alert_type": alert.alert_type, "entity_id": alert.entity_id},
        )
        s.commit()
    return jsonify(alert_to_dict(alert))


@bp.route("/cron/check-expiries", methods=["GET", "POST"])
def cron_check_expiries():
    secret = (current_app.config.get("CRON_SECRET") or "").strip()
    if not secret:
        current_app.logger.error("Cron check-expiries called but CRON_SECRET is not configured")
        return error_response("cron_not_configured", 503)
    provided = request.headers.get("Authorization") or ""
    if not hmac.compare_digest(provided.encode("utf-8"), f"Bearer {secret}".encode("utf-8")):
        current_app.logger.warning("Cron check-expiries: invalid token (request_id=%s)", getattr(g, "request_id", None))
        return error_response("cron_unauthorized", 401)

    summary = run_expiry_scan(
        db_session(),
        notifier=notifier_from_config(current_app.config),
        warning_days=int(current_app.config.get("ALERT_WARNING_DAYS") or 30),
    )
    return jsonify({"ok": True, **summary.to_dict()})

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.ssm.audit import safe_record_event
from app.ssm.db import db_session
from app.ssm.messages import error_response
from app.ssm.models import Organization, User
from app.ssm.modules.alerts.notifications import EmailSender, send_subscription_email
from app.ssm.modules.billing.models import Subscription
from app.ssm.modules.billing.service import HandledEvent, handle_event, log_failed_event
from app.ssm.modules.billing.stripe_client import WebhookSignatureError, verifier_from_config
from app.ssm.rbac import require_permission
from app.ssm.utils import iso

bp = Blueprint("billing", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _after_commit(s, result: HandledEvent) -> None:
    """Audit + notification email for subscription changes. Failures here never fail the webhook."""
    if not result.changes_subscription or result.organization_id is None:
        return
    safe_record_event(
        s,
        actor=None,
        action="subscription.update",
        entity_type="Subscription",
        entity_id=str(result.organization_id),
        organization_id=result.organization_id,
        reason=result.event_type,
        metadata={
            "event_id": result.event_id,
            "plan_id": result.plan_id,
            "status": result.subscription_status,
            "module_changes": result.module_changes,
        },
    )
    try:
        org = s.get(Organization, result.organization_id)
        if org is not None:
            sender = EmailSender(
                api_key=current_app.config.get("RESEND_API_KEY") or "",
                email_from=current_app.config.get("EMAIL_FROM") or "",
            )
            send_subscription_email(s, sender, org, plan_id=result.plan_id, status=result.subscription_status or "")
            s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception("Subscription email failed (org=%s)", result.organization_id)


@bp.post("/stripe/webhook")
def stripe_webhook():
    payload = request.get_data()
    signature = request.headers.get("Stripe-Signature") or ""
    if not signature:
        return error_response("webhook_signature_missing", 400)

    verifier = verifier_from_config(current_app.config)
    if not verifier.webhook_secret:
        current_app.logger.error("Stripe webhook called but STRIPE_WEBHOOK_SECRET is not configured")
        return error_response("webhook_not_configured", 400)
    try:
        event = verifier.construct_event(payload, signature)
    except WebhookSignatureError as e:
        current_app.logger.warning("Stripe webhook rejected: %s", e)
        return error_response("webhook_signature_invalid", 400)

    s = db_session()
    try:
        result = handle_event(s, event)
        s.commit()
    except Exception as e:
        s.rollback()
        current_app.logger.exception(
            "Stripe webhook processing failed (type=%s id=%s)", event.get("type"), event.get("id")
        )
        try:
            log_failed_event(s, event, str(e))
            s.commit()
        except Exception:
            s.rollback()
            current_app.logger.exception("Could not record failed webhook event %s", event.get("id"))
        return jsonify({"received": True, "error": str(e)}), 200

    _after_commit(s, result)
    return jsonify({"received": True, "handled": result.handled, "type": result.event_type}), 200


@bp.get("/billing/subscription")
@require_permission("billing.view")
def billing_subscription():
    s = db_session()
    u = _current_user()
    sub = s.query(Subscription).filter(Subscription.organization_id == u.organization_id).one_or_none()
    if sub is None:
        return jsonify({"subscription": None})
    return jsonify(
        {
            "subscription": {
                "plan_id": sub.plan_id,
                "status": sub.status,
                "current_period_start": iso(sub.current_period_start),
                "current_period_end": iso(sub.current_period_end),
                "grace_period_ends_at": iso(sub.grace_period_ends_at),
                "canceled_at": iso(sub.canceled_at),
            }
        }
    )

"""Tests for the Stripe webhook: signature handling, event dispatch and module recomputation."""
import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta

import pytest
from conftest import grant, login, org_id

from app.ssm.db import session_scope
from app.ssm.models import AuditEvent
from app.ssm.modules.alerts.models import NotificationLog
from app.ssm.modules.billing.models import Subscription, WebhookEventLog
from app.ssm.modules.billing.service import extract_plan, map_subscription_status
from app.ssm.modules.entitlements.models import OrganizationModule

SECRET = "whsec_test_secret"


@pytest.fixture()
def webhook_client(app):
    app.config["STRIPE_WEBHOOK_SECRET"] = SECRET
    return app.test_client()


def _signed(event: dict, secret: str = SECRET) -> tuple[bytes, str]:
    body = json.dumps(event)
    ts = int(time.time())
    sig = hmac.new(secret.encode("utf-8"), f"{ts}.{body}".encode("utf-8"), hashlib.sha256).hexdigest()
    return body.encode("utf-8"), f"t={ts},v1={sig}"


def _post(client, event: dict, secret: str = SECRET):
    body, header = _signed(event, secret)
    return client.post(
        "/api/stripe/webhook",
        data=body,
        headers={"Stripe-Signature": header, "Content-Type": "application/json"},
    )


def _checkout(oid: int, plan_id: str = "starter") -> dict:
    return {
        "id": "evt_checkout_1",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_1",
                "customer": "cus_123",
                "subscription": "sub_123",
                "amount_total": 49000,
                "metadata": {"organization_id": str(oid), "plan_id": plan_id},
            }
        },
    }


def _module_statuses(app, oid: int) -> dict[str, str]:
    with session_scope(app) as s:
        return {r.module_key: r.status for r in s.query(OrganizationModule).filter_by(organization_id=oid)}


# ---------- Pure helpers ----------
def test_extract_plan_prefers_metadata_then_amount():
    assert extract_plan({"metadata": {"plan_id": "Enterprise"}}) == "enterprise"
    assert extract_plan({"items": {"data": [{"price": {"unit_amount": 199000}}]}}) == "enterprise"
    assert extract_plan({"items": {"data": [{"price": {"unit_amount": 79000}}]}}) == "professional"
    assert extract_plan({"items": {"data": [{"plan": {"amount": 29000}}]}}) == "starter"
    assert extract_plan({"amount_total": 80000}) == "professional"
    assert extract_plan({"metadata": {}}) is None


def test_map_subscription_status():
    assert map_subscription_status("trialing") == "trial"
    assert map_subscription_status("active") == "active"
    assert map_subscription_status("past_due") == "past_due"
    assert map_subscription_status("unpaid") == "past_due"
    assert map_subscription_status("canceled") == "canceled"
    assert map_subscription_status(None) == "active"


# ---------- Signature handling ----------
def test_missing_signature_rejected(webhook_client):
    r = webhook_client.post("/api/stripe/webhook", data=b"{}", headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.json["error"] == "webhook_signature_missing"


def test_bad_signature_rejected(app, webhook_client):
    r = _post(webhook_client, _checkout(org_id(app)), secret="whsec_wrong")
    assert r.status_code == 400
    assert r.json["error"] == "webhook_signature_invalid"
    with session_scope(app) as s:
        assert s.query(Subscription).count() == 0


def test_unconfigured_secret_rejected(app, client):
    app.config["STRIPE_WEBHOOK_SECRET"] = ""
    r = _post(client, _checkout(org_id(app)))
    assert r.status_code == 400
    assert r.json["error"] == "webhook_not_configured"


# ---------- Dispatch ----------
def test_unknown_event_acknowledged_without_writes(app, webhook_client):
    r = _post(webhook_client, {"id": "evt_x", "type": "customer.created", "data": {"object": {}}})
    assert r.status_code == 200
    assert r.json["handled"] is False
    with session_scope(app) as s:
        assert s.query(WebhookEventLog).count() == 0
        assert s.query(Subscription).count() == 0
        assert s.query(OrganizationModule).count() == 0


def test_checkout_completed_applies_plan(app, webhook_client):
    oid = org_id(app)
    r = _post(webhook_client, _checkout(oid, "starter"))
    assert r.status_code == 200
    assert r.json["handled"] is True

    assert _module_statuses(app, oid) == {
        "alerte": "active",
        "psi": "active",
        "medicina-muncii": "active",
        "instruire": "active",
    }
    with session_scope(app) as s:
        sub = s.query(Subscription).filter_by(organization_id=oid).one()
        assert (sub.plan_id, sub.status, sub.stripe_customer_id, sub.stripe_subscription_id) == (
            "starter",
            "active",
            "cus_123",
            "sub_123",
        )
        log = s.query(WebhookEventLog).one()
        assert (log.event_id, log.status, log.organization_id) == ("evt_checkout_1", "success", oid)
        assert s.query(AuditEvent).filter(AuditEvent.action == "subscription.update").count() == 1
        mail = s.query(NotificationLog).filter_by(kind="subscription").one()
        assert mail.status == "skipped"

    login(webhook_client)
    r = webhook_client.get("/api/medical")
    assert r.status_code == 200
    assert "X-Module-Trial-Days-Remaining" not in r.headers

    r = webhook_client.get("/api/billing/subscription")
    assert r.json["subscription"]["plan_id"] == "starter"


def test_subscription_update_resolves_org_by_subscription_id(app, webhook_client):
    oid = org_id(app)
    _post(webhook_client, _checkout(oid, "professional"))

    event = {
        "id": "evt_sub_upd",
        "type": "customer.subscription.updated",
        "data": {
            "object": {
                "id": "sub_123",
                "customer": "cus_123",
                "status": "active",
                "items": {"data": [{"price": {"unit_amount": 29000}}]},
                "current_period_start": 1767225600,
                "current_period_end": 1769904000,
            }
        },
    }
    r = _post(webhook_client, event)
    assert r.status_code == 200
    statuses = _module_statuses(app, oid)
    assert statuses["psi"] == "active"
    assert statuses["echipamente"] == "canceled"
    assert statuses["reports"] == "canceled"
    with session_scope(app) as s:
        sub = s.query(Subscription).filter_by(organization_id=oid).one()
        assert sub.plan_id == "starter"
        assert sub.current_period_end == datetime(2026, 2, 1)


def test_past_due_locks_paid_modules(app, webhook_client):
    oid = org_id(app)
    _post(webhook_client, _checkout(oid, "starter"))
    event = {
        "id": "evt_sub_pd",
        "type": "customer.subscription.updated",
        "data": {"object": {"id": "sub_123", "customer": "cus_123", "status": "past_due"}},
    }
    assert _post(webhook_client, event).status_code == 200
    assert set(_module_statuses(app, oid).values()) == {"past_due"}

    login(webhook_client)
    r = webhook_client.get("/api/medical")
    assert r.status_code == 403
    assert r.json["upsell"]["status"] == "past_due"


def test_payment_failed_sets_grace_period(app, webhook_client):
    oid = org_id(app)
    _post(webhook_client, _checkout(oid, "starter"))
    before = datetime.utcnow()
    event = {
        "id": "evt_inv_failed",
        "type": "invoice.payment_failed",
        "data": {"object": {"id": "in_1", "customer": "cus_123", "subscription": "sub_123"}},
    }
    assert _post(webhook_client, event).status_code == 200
    with session_scope(app) as s:
        sub = s.query(Subscription).filter_by(organization_id=oid).one()
        assert sub.status == "past_due"
        assert sub.grace_period_ends_at >= before + timedelta(days=3)
    assert _module_statuses(app, oid)["psi"] == "past_due"


def test_subscription_deleted_cancels_but_keeps_expired_trials(app, webhook_client):
    oid = org_id(app)
    grant(app, oid, "gdpr", status="expired")
    _post(webhook_client, _checkout(oid, "starter"))
    event = {
        "id": "evt_sub_del",
        "type": "customer.subscription.deleted",
        "data": {"object": {"id": "sub_123", "customer": "cus_123", "status": "canceled"}},
    }
    assert _post(webhook_client, event).status_code == 200
    statuses = _module_statuses(app, oid)
    assert statuses["gdpr"] == "expired"
    assert statuses["psi"] == "canceled"
    with session_scope(app) as s:
        sub = s.query(Subscription).filter_by(organization_id=oid).one()
        assert sub.status == "canceled"
        assert sub.plan_id is None
        assert sub.canceled_at is not None


def test_processing_error_acknowledged_and_logged(app, webhook_client):
    event = {
        "id": "evt_orphan",
        "type": "customer.subscription.updated",
        "data": {"object": {"id": "sub_unknown", "customer": "cus_unknown", "status": "active"}},
    }
    r = _post(webhook_client, event)
    assert r.status_code == 200
    assert r.json["received"] is True
    assert "error" in r.json
    with session_scope(app) as s:
        log = s.query(WebhookEventLog).one()
        assert log.status == "failed"
        assert log.event_id == "evt_orphan"
        assert s.query(Subscription).count() == 0


def test_payment_succeeded_is_log_only(app, webhook_client):
    event = {"id": "evt_paid", "type": "invoice.payment_succeeded", "data": {"object": {"amount_paid": 29000}}}
    r = _post(webhook_client, event)
    assert r.status_code == 200
    assert r.json["handled"] is True
    with session_scope(app) as s:
        assert s.query(OrganizationModule).count() == 0
        assert s.query(WebhookEventLog).one().status == "success"

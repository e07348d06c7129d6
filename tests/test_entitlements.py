"""Tests for module entitlements: access resolution, the module gate and trial management."""
from datetime import datetime, timedelta
from types import SimpleNamespace

from conftest import OTHER_ORG_NAME, grant, login, org_id

from app.ssm.db import session_scope
from app.ssm.models import AuditEvent
from app.ssm.modules.entitlements.catalog import (
    BASE_MODULE_KEYS,
    MODULE_CATALOG,
    missing_dependencies,
    modules_for_plan,
)
from app.ssm.modules.entitlements.models import OrganizationModule
from app.ssm.modules.entitlements.resolver import (
    AccessState,
    gate_decision,
    resolve_access,
    trial_days_remaining,
)
from app.ssm.modules.entitlements.service import apply_plan, expire_trials

NOW = datetime(2026, 3, 1, 12, 0, 0)


def _row(key, status, expires=None):
    return SimpleNamespace(module_key=key, status=status, trial_expires_at=expires)


# ---------- Catalog ----------
def test_catalog_base_modules_and_plans():
    assert BASE_MODULE_KEYS == {"ssm-core", "legislatie", "documente"}
    assert modules_for_plan("starter") == {"alerte", "psi", "medicina-muncii", "instruire"}
    assert modules_for_plan("professional") > modules_for_plan("starter")
    assert modules_for_plan("enterprise") == {k for k, m in MODULE_CATALOG.items() if not m.is_base}
    assert modules_for_plan(None) == frozenset()
    assert modules_for_plan("gold") == frozenset()


def test_missing_dependencies_ignores_base_modules():
    assert missing_dependencies("nis2", set()) == ["gdpr"]
    assert missing_dependencies("nis2", {"gdpr"}) == []
    assert missing_dependencies("reports", set()) == []


# ---------- Resolver ----------
def test_base_module_always_granted_without_rows():
    for key in BASE_MODULE_KEYS:
        access = resolve_access(key, [], now=NOW)
        assert access.has_access is True
        assert access.state is AccessState.GRANTED


def test_paid_module_without_row_denied():
    access = resolve_access("psi", [], now=NOW)
    assert access.has_access is False
    assert access.status is None
    assert gate_decision(access) == "upsell"


def test_active_module_granted():
    access = resolve_access("psi", [_row("psi", "active")], now=NOW)
    assert access.has_access is True
    assert access.is_trial is False
    assert gate_decision(access) == "render"


def test_trial_days_remaining_rounds_up():
    exact = resolve_access("psi", [_row("psi", "trial", NOW + timedelta(days=14))], now=NOW)
    assert exact.is_trial is True
    assert exact.trial_days_remaining == 14
    assert gate_decision(exact) == "trial_banner"

    partial = resolve_access("psi", [_row("psi", "trial", NOW + timedelta(days=3, seconds=1))], now=NOW)
    assert partial.trial_days_remaining == 4


def test_trial_at_or_past_expiry_denied_as_expired():
    for expires in (NOW, NOW - timedelta(hours=1)):
        access = resolve_access("psi", [_row("psi", "trial", expires)], now=NOW)
        assert access.has_access is False
        assert access.trial_days_remaining is None
        assert access.status == "expired"


def test_trial_without_expiry_is_open_ended():
    access = resolve_access("psi", [_row("psi", "trial", None)], now=NOW)
    assert access.has_access is True
    assert access.is_trial is True
    assert access.trial_days_remaining is None
    assert access.status == "trial"
    assert gate_decision(access) == "trial_banner"


def test_trial_days_remaining_never_negative():
    assert trial_days_remaining(NOW, NOW) == 0
    assert trial_days_remaining(NOW - timedelta(days=2), NOW) == 0
    assert trial_days_remaining(NOW + timedelta(seconds=1), NOW) == 1
    assert trial_days_remaining(NOW + timedelta(days=14), NOW) == 14


def test_past_due_and_canceled_denied():
    for status in ("past_due", "canceled", "expired"):
        access = resolve_access("psi", [_row("psi", status)], now=NOW)
        assert access.has_access is False
        assert access.status == status


# ---------- Services ----------
def test_expire_trials_reconciles_lapsed_rows(app):
    oid = org_id(app)
    with session_scope(app) as s:
        s.add_all(
            [
                OrganizationModule(organization_id=oid, module_key="psi", status="trial",
                                   trial_started_at=NOW - timedelta(days=20), trial_expires_at=NOW - timedelta(days=6)),
                OrganizationModule(organization_id=oid, module_key="instruire", status="trial",
                                   trial_started_at=NOW, trial_expires_at=NOW + timedelta(days=14)),
            ]
        )
    with session_scope(app) as s:
        expired = expire_trials(s, now=NOW)
        assert [r.module_key for r in expired] == ["psi"]
    with session_scope(app) as s:
        rows = {r.module_key: r.status for r in s.query(OrganizationModule).all()}
    assert rows == {"psi": "expired", "instruire": "trial"}


def test_apply_plan_activates_and_cancels(app):
    oid = org_id(app)
    with session_scope(app) as s:
        changes = apply_plan(s, oid, "professional", now=NOW)
        assert changes["echipamente"] == "active"
    with session_scope(app) as s:
        changes = apply_plan(s, oid, "starter", now=NOW)
        assert changes == {"echipamente": "canceled", "near_miss": "canceled", "reports": "canceled"}
    with session_scope(app) as s:
        statuses = {r.module_key: r.status for r in s.query(OrganizationModule).filter_by(organization_id=oid)}
    assert statuses["psi"] == "active"
    assert statuses["reports"] == "canceled"


# ---------- API ----------
def test_modules_list_shows_base_access(client):
    login(client)
    r = client.get("/api/modules")
    assert r.status_code == 200
    items = {m["key"]: m for m in r.json["items"]}
    assert items["ssm-core"]["access"]["has_access"] is True
    assert items["psi"]["access"]["has_access"] is False
    assert items["psi"]["row"] is None


def test_gate_denies_with_upsell_payload(client):
    login(client)
    r = client.get("/api/medical?lang=en")
    assert r.status_code == 403
    body = r.get_json()
    assert body["error"] == "module_locked"
    assert body["upsell"]["module_key"] == "medicina-muncii"
    assert body["upsell"]["can_start_trial"] is True
    assert body["upsell"]["pricing_url"].endswith("/pricing")


def test_trial_start_unlocks_module_with_header(app, client):
    token = login(client)
    r = client.post("/api/modules/medicina-muncii/trial", headers={"X-CSRF-Token": token})
    assert r.status_code == 201
    assert r.json["access"]["is_trial"] is True
    assert r.json["access"]["trial_days_remaining"] == 14

    r = client.get("/api/medical")
    assert r.status_code == 200
    assert r.headers["X-Module-Trial-Days-Remaining"] == "14"

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "module.trial_start").count() == 1


def test_trial_only_once_per_module(client):
    token = login(client)
    assert client.post("/api/modules/psi/trial", headers={"X-CSRF-Token": token}).status_code == 201
    r = client.post("/api/modules/psi/trial", headers={"X-CSRF-Token": token})
    assert r.status_code == 400
    assert r.json["error"] == "trial_already_used"

    assert client.post("/api/modules/psi/cancel", headers={"X-CSRF-Token": token}).status_code == 200
    r = client.post("/api/modules/psi/trial", headers={"X-CSRF-Token": token})
    assert r.json["error"] == "trial_already_used"


def test_trial_rejections(app, client):
    token = login(client)
    r = client.post("/api/modules/ssm-core/trial", headers={"X-CSRF-Token": token})
    assert r.status_code == 400
    assert r.json["error"] == "module_is_base"

    r = client.post("/api/modules/unknown-module/trial", headers={"X-CSRF-Token": token})
    assert r.status_code == 404
    assert r.json["error"] == "module_unknown"

    r = client.post("/api/modules/nis2/trial", headers={"X-CSRF-Token": token})
    assert r.status_code == 400
    assert r.json["error"] == "module_missing_dependencies"

    assert client.post("/api/modules/gdpr/trial", headers={"X-CSRF-Token": token}).status_code == 201
    assert client.post("/api/modules/nis2/trial", headers={"X-CSRF-Token": token}).status_code == 201

    grant(app, org_id(app), "psi")
    r = client.post("/api/modules/psi/trial", headers={"X-CSRF-Token": token})
    assert r.json["error"] == "module_already_active"


def test_cancel_relocks_module(app, client):
    grant(app, org_id(app), "instruire")
    token = login(client)
    assert client.get("/api/trainings").status_code == 200

    r = client.post("/api/modules/instruire/cancel", headers={"X-CSRF-Token": token})
    assert r.status_code == 200
    assert r.json["row"]["status"] == "canceled"

    r = client.get("/api/trainings")
    assert r.status_code == 403
    assert r.json["upsell"]["status"] == "canceled"
    assert r.json["upsell"]["can_start_trial"] is False


def test_lapsed_trial_row_denied_before_scan(app, client):
    grant(app, org_id(app), "psi", status="trial", trial_days=-1)
    login(client)
    r = client.get("/api/equipment")
    assert r.status_code == 403
    assert r.json["upsell"]["status"] == "expired"


def test_open_ended_trial_passes_gate_without_days_header(app, client):
    grant(app, org_id(app), "psi", status="trial")
    login(client)
    r = client.get("/api/equipment")
    assert r.status_code == 200
    assert "X-Module-Trial-Days-Remaining" not in r.headers


def test_module_state_is_per_tenant(app, client):
    grant(app, org_id(app), "psi")
    login(client, "other@example.com")
    r = client.get("/api/equipment")
    assert r.status_code == 403

    r = client.get("/api/modules/psi/access")
    assert r.json["has_access"] is False
    assert org_id(app, OTHER_ORG_NAME) != org_id(app)


def test_consultant_cannot_manage_modules(client):
    token = login(client, "consultant@example.com")
    r = client.post("/api/modules/psi/trial", headers={"X-CSRF-Token": token})
    assert r.status_code == 403
    assert r.json["missing_permission"] == "modules.manage"

    assert client.get("/api/modules").status_code == 200

from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.ssm import auth, create_app
from app.ssm.db import session_scope
from app.ssm.models import Base, Organization, User
from app.ssm.modules.employees.models import Employee
from app.ssm.modules.entitlements.models import OrganizationModule
from scripts.init_db import seed_roles

ORG_NAME = "Acme Construct SRL"
OTHER_ORG_NAME = "Beta Logistic SRL"

_CLEARED_ENV = (
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "RESEND_API_KEY",
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_FROM_NUMBER",
    "PUSH_GATEWAY_URL",
    "PUSH_GATEWAY_TOKEN",
    "CRON_SECRET",
    "TRIAL_DAYS",
    "ALERT_WARNING_DAYS",
)


@pytest.fixture(autouse=True)
def _reset_login_rate_limit():
    auth._login_attempts.clear()
    yield
    auth._login_attempts.clear()


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in _CLEARED_ENV:
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        roles = seed_roles(s)
        org = Organization(name=ORG_NAME, cui="RO123456", contact_email="ssm@acme.ro", contact_phone="+40700000001")
        other = Organization(name=OTHER_ORG_NAME, contact_email="office@beta.ro")
        s.add_all([org, other])
        s.flush()

        for email, org_id, role_key in (
            ("admin@example.com", org.id, "admin"),
            ("consultant@example.com", org.id, "consultant"),
            ("other@example.com", other.id, "admin"),
        ):
            u = User(
                email=email,
                password_hash=generate_password_hash("pw"),
                organization_id=org_id,
                is_active=True,
            )
            u.roles.append(roles[role_key])
            s.add(u)

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def org_id(app, name: str = ORG_NAME) -> int:
    with session_scope(app) as s:
        return s.query(Organization).filter(Organization.name == name).one().id


def login(client, email: str = "admin@example.com", password: str = "pw") -> str:
    """Log in and return the CSRF token to send as X-CSRF-Token."""
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.get_json()
    return r.get_json()["csrf_token"]


def grant(app, organization_id: int, module_key: str, *, status: str = "active", trial_days: int | None = None) -> None:
    """Insert an organization_modules row directly."""
    now = datetime.utcnow()
    with session_scope(app) as s:
        row = OrganizationModule(organization_id=organization_id, module_key=module_key, status=status, created_at=now)
        if status == "active":
            row.activated_at = now
        if trial_days is not None:
            row.trial_started_at = now - timedelta(days=1)
            row.trial_expires_at = now + timedelta(days=trial_days)
        s.add(row)


def add_employee(app, organization_id: int, first_name: str = "Ion", last_name: str = "Popescu", **kw) -> int:
    now = datetime.utcnow()
    with session_scope(app) as s:
        emp = Employee(
            organization_id=organization_id,
            first_name=first_name,
            last_name=last_name,
            created_at=now,
            updated_at=now,
            **kw,
        )
        s.add(emp)
        s.flush()
        return emp.id

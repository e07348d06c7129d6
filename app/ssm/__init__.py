import logging
import os
from datetime import timedelta

from flask import Flask, g, request, session
from dotenv import load_dotenv
from sqlalchemy import inspect as sa_inspect
from werkzeug.exceptions import HTTPException

from app.ssm.config import load_config
from app.ssm.db import init_db, teardown_db_session
from app.ssm.messages import error_response
from app.ssm.routes import bp as routes_bp
from app.ssm.auth import bp as auth_bp, load_current_user
from app.ssm.modules.entitlements.admin import bp as entitlements_bp
from app.ssm.modules.billing.admin import bp as billing_bp
from app.ssm.modules.employees.admin import bp as employees_bp
from app.ssm.modules.compliance.admin import bp as compliance_bp
from app.ssm.modules.alerts.admin import bp as alerts_bp

REQUIRED_TABLES = (
    "organizations",
    "users",
    "organization_modules",
    "subscriptions",
    "webhook_events_log",
    "employees",
    "medical_exams",
    "safety_equipment",
    "trainings",
    "alerts",
    "notification_log",
)

_STATUS_KEYS = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    413: "payload_too_large",
}


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.json.ensure_ascii = False

    from app.ssm.security import ensure_csrf_token, is_csrf_exempt, validate_csrf

    @app.before_request
    def _load_user_wrapper():
        if request.path.startswith(("/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/health", "/healthz")):
            return None
        if is_csrf_exempt(request):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if not validate_csrf(request):
                return error_response("csrf_invalid", 400)
        return None

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if not app.config.get("STRIPE_WEBHOOK_SECRET"):
            app.logger.warning("STRIPE_WEBHOOK_SECRET not set; billing webhooks will be rejected.")
        if not app.config.get("CRON_SECRET"):
            app.logger.warning("CRON_SECRET not set; /api/cron/check-expiries will answer 503.")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(entitlements_bp, url_prefix="/api")
    app.register_blueprint(billing_bp, url_prefix="/api")
    app.register_blueprint(employees_bp, url_prefix="/api/v1")
    app.register_blueprint(compliance_bp, url_prefix="/api")
    app.register_blueprint(alerts_bp, url_prefix="/api")

    app.teardown_appcontext(teardown_db_session)

    # Migration health (lean): detect drift between code expectations and DB schema.
    app.config.setdefault("_schema_health_ok", True)
    app.config.setdefault("_schema_health_missing", [])

    def _run_schema_health_check() -> None:
        missing: list[str] = []
        try:
            engine = app.extensions.get("sqlalchemy_engine")
            if engine is None:
                raise RuntimeError("sqlalchemy_engine not initialized")
            insp = sa_inspect(engine)
            for table in REQUIRED_TABLES:
                if not insp.has_table(table):
                    missing.append(f"{table} (table)")
            if insp.has_table("users"):
                cols = {c["name"] for c in insp.get_columns("users")}
                if "organization_id" not in cols:
                    missing.append("users.organization_id")
        except Exception as e:
            app.logger.exception("Schema health check failed: %s", e)

        app.config["_schema_health_missing"] = missing
        app.config["_schema_health_ok"] = not missing
        if missing:
            app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))

    _run_schema_health_check()

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        key = _STATUS_KEYS.get(e.code or 500)
        if key is None:
            return e
        if e.code == 403:
            missing = getattr(g, "missing_permission", None)
            if missing:
                app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return error_response(key, e.code)

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return error_response("server_error", 500, request_id=rid)

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app

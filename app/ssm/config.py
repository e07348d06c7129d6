import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    db_pool_size: int
    db_max_overflow: int
    db_pool_recycle: int
    app_base_url: str

    stripe_secret_key: str
    stripe_webhook_secret: str

    resend_api_key: str
    email_from: str

    twilio_account_sid: str
    twilio_auth_token: str
    twilio_from_number: str

    push_gateway_url: str
    push_gateway_token: str

    cron_secret: str
    trial_days: int
    alert_warning_days: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///ssm.db"),
        db_pool_size=_getenv_int("DB_POOL_SIZE", 5),
        db_max_overflow=_getenv_int("DB_MAX_OVERFLOW", 10),
        db_pool_recycle=_getenv_int("DB_POOL_RECYCLE", 1800),
        app_base_url=_getenv("APP_BASE_URL", "https://app.s-s-m.ro"),
        stripe_secret_key=_getenv("STRIPE_SECRET_KEY", ""),
        stripe_webhook_secret=_getenv("STRIPE_WEBHOOK_SECRET", ""),
        resend_api_key=_getenv("RESEND_API_KEY", ""),
        email_from=_getenv("EMAIL_FROM", "Alerte SSM <alerte@s-s-m.ro>"),
        twilio_account_sid=_getenv("TWILIO_ACCOUNT_SID", ""),
        twilio_auth_token=_getenv("TWILIO_AUTH_TOKEN", ""),
        twilio_from_number=_getenv("TWILIO_FROM_NUMBER", ""),
        push_gateway_url=_getenv("PUSH_GATEWAY_URL", ""),
        push_gateway_token=_getenv("PUSH_GATEWAY_TOKEN", ""),
        cron_secret=_getenv("CRON_SECRET", ""),
        trial_days=_getenv_int("TRIAL_DAYS", 14),
        alert_warning_days=_getenv_int("ALERT_WARNING_DAYS", 30),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "DB_POOL_SIZE": s.db_pool_size,
        "DB_MAX_OVERFLOW": s.db_max_overflow,
        "DB_POOL_RECYCLE": s.db_pool_recycle,
        "APP_BASE_URL": s.app_base_url,
        "STRIPE_SECRET_KEY": s.stripe_secret_key,
        "STRIPE_WEBHOOK_SECRET": s.stripe_webhook_secret,
        "RESEND_API_KEY": s.resend_api_key,
        "EMAIL_FROM": s.email_from,
        "TWILIO_ACCOUNT_SID": s.twilio_account_sid,
        "TWILIO_AUTH_TOKEN": s.twilio_auth_token,
        "TWILIO_FROM_NUMBER": s.twilio_from_number,
        "PUSH_GATEWAY_URL": s.push_gateway_url,
        "PUSH_GATEWAY_TOKEN": s.push_gateway_token,
        "CRON_SECRET": s.cron_secret,
        "TRIAL_DAYS": s.trial_days,
        "ALERT_WARNING_DAYS": s.alert_warning_days,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # JSON bodies only; 2MB is plenty
        "MAX_CONTENT_LENGTH": 2 * 1024 * 1024,
    }

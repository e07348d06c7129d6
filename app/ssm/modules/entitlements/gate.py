from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import current_app, g, make_response

from app.ssm.db import db_session
from app.ssm.messages import current_locale, error_response
from app.ssm.modules.entitlements.catalog import display_name, get_module
from app.ssm.modules.entitlements.resolver import gate_decision
from app.ssm.modules.entitlements.service import get_access

TRIAL_HEADER = "X-Module-Trial-Days-Remaining"


def require_module(module_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Run the view only when the current organization may use `module_key`.
    Place below @require_permission so g.current_user is already known to be a tenant user.
    """
    if get_module(module_key) is None:
        raise ValueError(f"Unknown module key: {module_key}")

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = getattr(g, "current_user", None)
            if not user or user.organization_id is None:
                return error_response("unauthorized", 401)

            access = get_access(db_session(), user.organization_id, module_key)
            g.module_access = access
            decision = gate_decision(access)

            if decision == "upsell":
                current_app.logger.info(
                    "Module gate denied: org=%s module=%s status=%s",
                    user.organization_id,
                    module_key,
                    access.status,
                )
                locale = current_locale()
                return error_response(
                    "module_locked",
                    403,
                    params={"module": display_name(module_key, locale)},
                    upsell={
                        "module_key": module_key,
                        "module_name": display_name(module_key, locale),
                        "status": access.status,
                        "can_start_trial": access.status is None,
                        "pricing_url": f"{current_app.config.get('APP_BASE_URL', '').rstrip('/')}/pricing",
                    },
                )

            resp = make_response(fn(*args, **kwargs))
            if decision == "trial_banner" and access.trial_days_remaining is not None:
                resp.headers[TRIAL_HEADER] = str(access.trial_days_remaining)
            return resp

        return wrapped

    return decorator

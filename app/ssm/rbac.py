from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g

from app.ssm.messages import error_response
from app.ssm.models import User


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                return error_response("unauthorized", 401)
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                return error_response("forbidden", 403, missing_permission=permission_key)
            # Tenant-scoped API: a user without an organization has nothing to act on.
            if user.organization_id is None:
                return error_response("no_organization", 403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator

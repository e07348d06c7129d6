"""
Pure access resolution: module key + an organization's module rows -> ModuleAccess.

No database access here; service.py loads the rows and gate.py consumes the result.
All datetimes are naive UTC, like the rest of the schema.
"""
from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol

from app.ssm.modules.entitlements.catalog import BASE_MODULE_KEYS


class AccessState(str, Enum):
    GRANTED = "granted"
    TRIAL = "trial"
    DENIED = "denied"


class ModuleRow(Protocol):
    module_key: str
    status: str
    trial_expires_at: datetime | None


@dataclass(frozen=True)
class ModuleAccess:
    module_key: str
    has_access: bool
    is_trial: bool
    trial_days_remaining: int | None
    status: str | None

    @property
    def state(self) -> AccessState:
        if not self.has_access:
            return AccessState.DENIED
        return AccessState.TRIAL if self.is_trial else AccessState.GRANTED

    def to_dict(self) -> dict:
        return {
            "module_key": self.module_key,
            "has_access": self.has_access,
            "is_trial": self.is_trial,
            "trial_days_remaining": self.trial_days_remaining,
            "status": self.status,
            "state": self.state.value,
        }


def trial_days_remaining(expires_at: datetime, now: datetime) -> int:
    """Whole days left, rounded up; 0 at or after expiry."""
    seconds = (expires_at - now).total_seconds()
    if seconds <= 0:
        return 0
    return max(0, math.ceil(seconds / 86400))


def resolve_access(module_key: str, rows: Iterable[ModuleRow], now: datetime | None = None) -> ModuleAccess:
    now = now or datetime.utcnow()

    if module_key in BASE_MODULE_KEYS:
        return ModuleAccess(module_key, has_access=True, is_trial=False, trial_days_remaining=None, status="active")

    row = next((r for r in rows if r.module_key == module_key), None)
    if row is None:
        return ModuleAccess(module_key, has_access=False, is_trial=False, trial_days_remaining=None, status=None)

    if row.status == "active":
        return ModuleAccess(module_key, has_access=True, is_trial=False, trial_days_remaining=None, status="active")

    if row.status == "trial":
        if row.trial_expires_at is None:
            # Open-ended trial.
            return ModuleAccess(module_key, has_access=True, is_trial=True, trial_days_remaining=None, status="trial")
        if now < row.trial_expires_at:
            return ModuleAccess(
                module_key,
                has_access=True,
                is_trial=True,
                trial_days_remaining=trial_days_remaining(row.trial_expires_at, now),
                status="trial",
            )
        # Lapsed trial that the expiry scan has not reconciled yet.
        return ModuleAccess(module_key, has_access=False, is_trial=False, trial_days_remaining=None, status="expired")

    return ModuleAccess(module_key, has_access=False, is_trial=False, trial_days_remaining=None, status=row.status)


def gate_decision(access: ModuleAccess) -> str:
    """'render' for full access, 'trial_banner' for trial access, 'upsell' when denied."""
    state = access.state
    if state is AccessState.GRANTED:
        return "render"
    if state is AccessState.TRIAL:
        return "trial_banner"
    return "upsell"

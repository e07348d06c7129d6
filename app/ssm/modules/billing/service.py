"""
Stripe webhook processing: a flat dispatch from event type to a handler that
upserts the local subscription mirror and recomputes organization module rows.

Handlers never commit; the webhook view owns the transaction.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from app.ssm.modules.billing.models import Subscription, WebhookEventLog
from app.ssm.modules.entitlements.catalog import PLAN_ENTERPRISE, PLAN_MODULES, PLAN_PROFESSIONAL, PLAN_STARTER
from app.ssm.modules.entitlements.service import apply_plan, set_paid_modules_status

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

GRACE_PERIOD_DAYS = 3

# Unit amounts are in bani (RON minor units).
ENTERPRISE_MIN_AMOUNT = 199000
PROFESSIONAL_MIN_AMOUNT = 79000


class WebhookProcessingError(ValueError):
    pass


@dataclass
class HandledEvent:
    event_id: str | None
    event_type: str
    handled: bool
    organization_id: int | None = None
    plan_id: str | None = None
    subscription_status: str | None = None
    module_changes: dict[str, str] = field(default_factory=dict)

    @property
    def changes_subscription(self) -> bool:
        return self.handled and self.subscription_status is not None


def _obj(event: dict[str, Any]) -> dict[str, Any]:
    data = event.get("data") or {}
    obj = data.get("object") if isinstance(data, dict) else None
    return obj if isinstance(obj, dict) else {}


def _metadata(obj: dict[str, Any]) -> dict[str, Any]:
    md = obj.get("metadata")
    return md if isinstance(md, dict) else {}


def _ts(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)
    except (TypeError, ValueError, OverflowError):
        return None


def _first_unit_amount(obj: dict[str, Any]) -> int | None:
    items = obj.get("items")
    data = items.get("data") if isinstance(items, dict) else None
    if isinstance(data, list) and data:
        item = data[0] if isinstance(data[0], dict) else {}
        price = item.get("price") if isinstance(item.get("price"), dict) else {}
        plan = item.get("plan") if isinstance(item.get("plan"), dict) else {}
        amount = price.get("unit_amount") if price.get("unit_amount") is not None else plan.get("amount")
        if amount is not None:
            return int(amount)
    if obj.get("amount_total") is not None:
        return int(obj["amount_total"])
    return None


def extract_plan(obj: dict[str, Any]) -> str | None:
    """
    Plan id from metadata.plan_id, else from the first item's unit amount.
    None when neither is present (the stored plan is kept).
    """
    plan_id = (str(_metadata(obj).get("plan_id") or "")).strip().lower()
    if plan_id in PLAN_MODULES:
        return plan_id
    amount = _first_unit_amount(obj)
    if amount is None:
        return None
    if amount >= ENTERPRISE_MIN_AMOUNT:
        return PLAN_ENTERPRISE
    if amount >= PROFESSIONAL_MIN_AMOUNT:
        return PLAN_PROFESSIONAL
    return PLAN_STARTER


def map_subscription_status(stripe_status: str | None) -> str:
    status = (stripe_status or "").strip().lower()
    if status == "trialing":
        return "trial"
    if status == "canceled":
        return "canceled"
    if status in ("past_due", "unpaid"):
        return "past_due"
    return "active"


def _subscription_for(s: "Session", organization_id: int) -> Subscription:
    sub = s.query(Subscription).filter(Subscription.organization_id == organization_id).one_or_none()
    if sub is None:
        sub = Subscription(organization_id=organization_id, status="active")
        s.add(sub)
    return sub


def _resolve_organization_id(
    s: "Session",
    obj: dict[str, Any],
    *,
    subscription_id: str | None,
    customer_id: str | None,
) -> int:
    raw = _metadata(obj).get("organization_id")
    if raw not in (None, ""):
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise WebhookProcessingError(f"Invalid organization_id in metadata: {raw!r}")

    q = s.query(Subscription)
    if subscription_id:
        sub = q.filter(Subscription.stripe_subscription_id == subscription_id).one_or_none()
        if sub:
            return sub.organization_id
    if customer_id:
        sub = q.filter(Subscription.stripe_customer_id == customer_id).first()
        if sub:
            return sub.organization_id
    raise WebhookProcessingError("Cannot resolve organization for event")


def handle_checkout_completed(s: "Session", event: dict[str, Any], now: datetime) -> HandledEvent:
    obj = _obj(event)
    subscription_id = obj.get("subscription") if isinstance(obj.get("subscription"), str) else None
    customer_id = obj.get("customer") if isinstance(obj.get("customer"), str) else None
    org_id = _resolve_organization_id(s, obj, subscription_id=subscription_id, customer_id=customer_id)

    sub = _subscription_for(s, org_id)
    plan_id = extract_plan(obj) or sub.plan_id
    sub.stripe_customer_id = customer_id or sub.stripe_customer_id
    sub.stripe_subscription_id = subscription_id or sub.stripe_subscription_id
    sub.plan_id = plan_id
    sub.status = "active"
    sub.grace_period_ends_at = None
    sub.canceled_at = None
    sub.updated_at = now

    changes = apply_plan(s, org_id, plan_id, now=now)
    return HandledEvent(event.get("id"), event["type"], True, org_id, plan_id, "active", changes)


def handle_subscription_upsert(s: "Session", event: dict[str, Any], now: datetime) -> HandledEvent:
    obj = _obj(event)
    subscription_id = obj.get("id") if isinstance(obj.get("id"), str) else None
    customer_id = obj.get("customer") if isinstance(obj.get("customer"), str) else None
    org_id = _resolve_organization_id(s, obj, subscription_id=subscription_id, customer_id=customer_id)

    sub = _subscription_for(s, org_id)
    status = map_subscription_status(obj.get("status"))
    plan_id = extract_plan(obj) or sub.plan_id

    sub.stripe_customer_id = customer_id or sub.stripe_customer_id
    sub.stripe_subscription_id = subscription_id or sub.stripe_subscription_id
    sub.plan_id = plan_id
    sub.status = status
    sub.current_period_start = _ts(obj.get("current_period_start")) or sub.current_period_start
    sub.current_period_end = _ts(obj.get("current_period_end")) or sub.current_period_end
    sub.updated_at = now
    if status != "past_due":
        sub.grace_period_ends_at = None

    if status == "canceled":
        sub.canceled_at = now
        set_paid_modules_status(s, org_id, "canceled", now=now)
        changes = {"*": "canceled"}
    elif status == "past_due":
        set_paid_modules_status(s, org_id, "past_due", now=now)
        changes = {"*": "past_due"}
    else:
        sub.canceled_at = None
        changes = apply_plan(s, org_id, plan_id, now=now)

    return HandledEvent(event.get("id"), event["type"], True, org_id, plan_id, status, changes)


def handle_subscription_deleted(s: "Session", event: dict[str, Any], now: datetime) -> HandledEvent:
    obj = _obj(event)
    subscription_id = obj.get("id") if isinstance(obj.get("id"), str) else None
    customer_id = obj.get("customer") if isinstance(obj.get("customer"), str) else None
    org_id = _resolve_organization_id(s, obj, subscription_id=subscription_id, customer_id=customer_id)

    sub = _subscription_for(s, org_id)
    sub.status = "canceled"
    sub.plan_id = None
    sub.canceled_at = now
    sub.grace_period_ends_at = None
    sub.updated_at = now

    changed = set_paid_modules_status(s, org_id, "canceled", now=now)
    logger.info("Subscription deleted for organization %s; %s module row(s) canceled", org_id, changed)
    return HandledEvent(event.get("id"), event["type"], True, org_id, None, "canceled", {"*": "canceled"})


def handle_payment_failed(s: "Session", event: dict[str, Any], now: datetime) -> HandledEvent:
    obj = _obj(event)
    subscription_id = obj.get("subscription") if isinstance(obj.get("subscription"), str) else None
    customer_id = obj.get("customer") if isinstance(obj.get("customer"), str) else None
    org_id = _resolve_organization_id(s, obj, subscription_id=subscription_id, customer_id=customer_id)

    sub = _subscription_for(s, org_id)
    sub.status = "past_due"
    sub.grace_period_ends_at = now + timedelta(days=GRACE_PERIOD_DAYS)
    sub.updated_at = now

    set_paid_modules_status(s, org_id, "past_due", now=now)
    return HandledEvent(event.get("id"), event["type"], True, org_id, sub.plan_id, "past_due", {"*": "past_due"})


def handle_payment_succeeded(s: "Session", event: dict[str, Any], now: datetime) -> HandledEvent:
    obj = _obj(event)
    subscription_id = obj.get("subscription") if isinstance(obj.get("subscription"), str) else None
    customer_id = obj.get("customer") if isinstance(obj.get("customer"), str) else None
    try:
        org_id: int | None = _resolve_organization_id(s, obj, subscription_id=subscription_id, customer_id=customer_id)
    except WebhookProcessingError:
        org_id = None
    logger.info("Invoice paid (organization=%s, amount=%s)", org_id, obj.get("amount_paid"))
    return HandledEvent(event.get("id"), event["type"], True, org_id)


EVENT_HANDLERS: dict[str, Callable[["Session", dict[str, Any], datetime], HandledEvent]] = {
    "checkout.session.completed": handle_checkout_completed,
    "customer.subscription.created": handle_subscription_upsert,
    "customer.subscription.updated": handle_subscription_upsert,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_failed": handle_payment_failed,
    "invoice.payment_succeeded": handle_payment_succeeded,
}


def handle_event(s: "Session", event: dict[str, Any], *, now: datetime | None = None) -> HandledEvent:
    """
    Dispatch a verified Stripe event. Unknown types are logged and left alone: no row is written.
    Handler errors propagate; the caller rolls back and records the failure.
    """
    now = now or datetime.utcnow()
    event_type = str(event.get("type") or "")
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info("Ignoring unhandled Stripe event type=%s id=%s", event_type, event.get("id"))
        return HandledEvent(event.get("id"), event_type, False)

    result = handler(s, {**event, "type": event_type}, now)
    s.add(
        WebhookEventLog(
            event_id=result.event_id,
            event_type=event_type,
            organization_id=result.organization_id,
            status="success",
            created_at=now,
        )
    )
    s.flush()
    return result


def log_failed_event(s: "Session", event: dict[str, Any], error: str) -> None:
    s.add(
        WebhookEventLog(
            event_id=event.get("id"),
            event_type=str(event.get("type") or "unknown"),
            status="failed",
            error_message=error[:2000],
        )
    )

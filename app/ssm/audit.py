import json
import logging
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.ssm.models import AuditEvent, User

logger = logging.getLogger(__name__)


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
    organization_id: int | None = None,
) -> AuditEvent:
    """
    Append-only audit event helper.

    organization_id defaults to the actor's tenant; webhook and cron callers have no actor and pass it explicitly.
    """
    in_request = has_request_context()
    rid = request_id or (getattr(g, "request_id", None) if in_request else None)
    if organization_id is None and actor is not None:
        organization_id = actor.organization_id
    ev = AuditEvent(
        request_id=rid,
        organization_id=organization_id,
        actor_user_id=actor.id if actor else None,
        actor_user_email=actor.email if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
        client_ip=request.remote_addr if in_request else None,
    )
    s.add(ev)
    return ev


def safe_record_event(s: Session, **kwargs: Any) -> AuditEvent | None:
    """
    Record and commit an audit event on its own, after the primary change is committed.
    A failure is logged and rolled back instead of breaking the caller.
    """
    try:
        ev = record_event(s, **kwargs)
        s.commit()
        return ev
    except Exception:
        s.rollback()
        logger.exception("Audit event failed (action=%s)", kwargs.get("action"))
        return None

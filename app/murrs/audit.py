"""Append-only audit trail. Callers add the event to their session; it commits with the change it records."""
import json
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.murrs.models import AuditEvent, User

_REASON_MAX = 512


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditEvent:
    """
    `action` is dotted, `<entity>.<verb>` (e.g. `paper.review`, `auth.login_failed`).
    `reason` holds free text such as review comments and is clipped to the column size.
    """
    in_request = has_request_context()
    if reason and len(reason) > _REASON_MAX:
        reason = reason[: _REASON_MAX - 1] + "…"
    ev = AuditEvent(
        request_id=getattr(g, "request_id", None) if in_request else None,
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


def events_for(s: Session, entity_type: str, entity_id: str | int) -> list[AuditEvent]:
    """History of one entity, oldest first."""
    return (
        s.query(AuditEvent)
        .filter(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == str(entity_id))
        .order_by(AuditEvent.id.asc())
        .all()
    )

"""
Append-only audit trail.

Every state change in the dealership (logins, inventory edits, bookings, sales,
review moderation) is recorded through `record_event` inside the same transaction
as the change itself, so an event exists only if the change committed.
"""
import json
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any

from flask import g, has_app_context, has_request_context, request
from sqlalchemy.orm import Session

from app.dealership.models import AuditEvent, User

AUDIT_PAGE_LIMIT = 200


def _clip(value: str | None, column) -> str | None:
    # free-text identifiers (a typed email on a failed login) must fit the column
    limit = column.type.length
    if value is None or limit is None:
        return value
    return value[:limit]


@dataclass(frozen=True)
class AuditFilter:
    action: str = ""
    actor_email: str = ""
    date_from: date | None = None
    date_to: date | None = None


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
    rid = g.get("request_id") if has_app_context() else None
    ev = AuditEvent(
        request_id=rid,
        actor_user_id=actor.id if actor else None,
        actor_user_email=actor.email if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=_clip(entity_id, AuditEvent.__table__.c.entity_id),
        reason=_clip(reason, AuditEvent.__table__.c.reason),
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
        client_ip=request.remote_addr if has_request_context() else None,
    )
    s.add(ev)
    return ev


def list_events(s: Session, flt: AuditFilter, *, limit: int = AUDIT_PAGE_LIMIT) -> list[AuditEvent]:
    """Newest first. Text filters are substring matches; the date range is inclusive of whole days."""
    q = s.query(AuditEvent)
    if flt.action:
        q = q.filter(AuditEvent.action.like(f"%{flt.action}%"))
    if flt.actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{flt.actor_email.lower()}%"))
    if flt.date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(flt.date_from, time.min))
    if flt.date_to:
        q = q.filter(AuditEvent.created_at < datetime.combine(flt.date_to + timedelta(days=1), time.min))
    return q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(limit).all()


def event_metadata(ev: AuditEvent) -> dict[str, Any]:
    if not ev.metadata_json:
        return {}
    try:
        data = json.loads(ev.metadata_json)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}

# Overview: Append-only audit log for table, order and invoice events.

from __future__ import annotations

from ..extensions import db
from ..models import AuditEvent
from criollo.time_utils import utcnow
"""
Audit Ledger Invariants (authoritative)

- Append-only log of cross-cutting domain events.
- No domain/business logic in the ledger itself.
- Events are written inside the same DB transaction as the domain event they
  record, so a rolled-back operation leaves no event behind.
"""


def append_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor: str | None = None,
    note: str | None = None,
    payload: str | None = None,
) -> AuditEvent:
    """
    Append one audit event.

    - No deletes/updates of existing events.
    - Flushes so the event id is assigned without committing.
    """
    ev = AuditEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor=actor,
        note=note,
        payload=payload,
        occurred_at=utcnow(),
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_events(entity_type: str, entity_id: int) -> list[AuditEvent]:
    return (
        db.session.query(AuditEvent)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(AuditEvent.id)
        .all()
    )

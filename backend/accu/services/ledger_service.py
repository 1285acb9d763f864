# Overview: Append-only audit ledger; records lifecycle events inside the caller's transaction.

from __future__ import annotations

import json
from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import LedgerEvent
"""
Audit Ledger Invariants

- Append-only log of lifecycle events. No updates, no deletes.
- No domain/business logic in the ledger itself.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back change leaves no event behind.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_ledger_event(
    *,
    event_type: str,
    subject_type: str,
    subject_id: int,
    entity_id: int | None = None,
    actor_user_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> LedgerEvent:
    """
    Append one ledger event. Flushes, never commits.
    """
    ev = LedgerEvent(
        entity_id=entity_id,
        event_type=event_type,
        subject_type=subject_type,
        subject_id=subject_id,
        actor_user_id=actor_user_id,
        occurred_at=occurred_at,  # if None, db default applies
        note=note[:255] if note else None,
        payload=json.dumps(payload, sort_keys=True, default=str) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_ledger_events(
    *,
    entity_id: int | None = None,
    subject_type: str | None = None,
    subject_id: int | None = None,
    event_type: str | None = None,
    limit: int = 100,
) -> list[LedgerEvent]:
    """Newest first. limit is clamped to 1..500."""
    query = db.session.query(LedgerEvent)
    if entity_id is not None:
        query = query.filter(LedgerEvent.entity_id == entity_id)
    if subject_type is not None:
        query = query.filter(LedgerEvent.subject_type == subject_type)
    if subject_id is not None:
        query = query.filter(LedgerEvent.subject_id == subject_id)
    if event_type is not None:
        query = query.filter(LedgerEvent.event_type == event_type)

    limit = max(1, min(limit, 500))
    return query.order_by(LedgerEvent.id.desc()).limit(limit).all()

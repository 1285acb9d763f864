from __future__ import annotations

from ..extensions import db
from accu.time_utils import to_utc_z


class LedgerEvent(db.Model):
    """
    Append-only audit spine for lifecycle changes.

    - One row per domain event (batch.created, loan.repaid, reclassification.approved, ...)
    - Written in the same DB transaction as the change it records
    - occurred_at is business time; created_at is system time (db default)
    - subject_type/subject_id are not foreign keys so events outlive deleted rows
    """
    __tablename__ = "ledger_events"
    __table_args__ = (
        db.Index("ix_ledger_events_subject", "subject_type", "subject_id"),
        db.Index("ix_ledger_events_entity_occurred", "entity_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_id = db.Column(db.Integer, db.ForeignKey("entities.id"), nullable=True, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)
    subject_type = db.Column(db.String(32), nullable=False)
    subject_id = db.Column(db.Integer, nullable=False)

    actor_user_id = db.Column(db.Integer, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_id": self.entity_id,
            "event_type": self.event_type,
            "subject_type": self.subject_type,
            "subject_id": self.subject_id,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": self.payload,
        }

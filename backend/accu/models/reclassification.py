from __future__ import annotations

from ..extensions import db
from accu.time_utils import to_utc_z
from .base import in_clause
from .batches import CLASSIFICATIONS

RECLASS_STATUS_PENDING = "pending"
RECLASS_STATUS_APPROVED = "approved"
RECLASS_STATUS_REJECTED = "rejected"
RECLASS_STATUSES = (RECLASS_STATUS_PENDING, RECLASS_STATUS_APPROVED, RECLASS_STATUS_REJECTED)


class ReclassificationRequest(db.Model):
    """
    Request to move a batch to another accounting classification.

    LIFECYCLE:
        pending -> approved   (batch.classification becomes to_class, same transaction)
        pending -> rejected   (batch unchanged)
    approved and rejected are terminal.

    from_class records the batch classification at submission time and must
    match it for the request to be accepted.
    """
    __tablename__ = "reclassification_requests"
    __table_args__ = (
        db.CheckConstraint(in_clause("from_class", CLASSIFICATIONS), name="ck_reclass_from_class"),
        db.CheckConstraint(in_clause("to_class", CLASSIFICATIONS), name="ck_reclass_to_class"),
        db.CheckConstraint("from_class <> to_class", name="ck_reclass_classes_differ"),
        db.CheckConstraint(in_clause("status", RECLASS_STATUSES), name="ck_reclass_status"),
        db.Index("ix_reclass_batch_status", "batch_id", "status"),
        db.Index("ix_reclass_entity_status", "entity_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("accu_batches.id"), nullable=False, index=True)

    from_class = db.Column(db.String(16), nullable=False)
    to_class = db.Column(db.String(16), nullable=False)

    # Business justification, e.g. "NRV below cost"
    reason = db.Column(db.Text, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=RECLASS_STATUS_PENDING, index=True)

    submitted_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    entity_id = db.Column(db.Integer, db.ForeignKey("entities.id"), nullable=False, index=True)

    decided_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decision_note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    batch = db.relationship(
        "AccuBatch",
        backref=db.backref("reclassification_requests", lazy=True, cascade="all, delete-orphan"),
    )
    submitter = db.relationship("User", foreign_keys=[submitted_by])
    decider = db.relationship("User", foreign_keys=[decided_by])

    def __repr__(self) -> str:
        return (
            f"<ReclassificationRequest id={self.id} batch_id={self.batch_id} "
            f"{self.from_class}->{self.to_class} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "from_class": self.from_class,
            "to_class": self.to_class,
            "reason": self.reason,
            "status": self.status,
            "submitted_by": self.submitted_by,
            "entity_id": self.entity_id,
            "decided_by": self.decided_by,
            "decided_at": to_utc_z(self.decided_at) if self.decided_at else None,
            "decision_note": self.decision_note,
            "created_at": to_utc_z(self.created_at),
        }

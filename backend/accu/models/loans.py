from __future__ import annotations

from ..extensions import db
from accu.time_utils import to_utc_z, to_iso_date
from accu.numeric_utils import to_decimal_str
from .base import in_clause

LOAN_STATUS_ACTIVE = "active"
LOAN_STATUS_REPAID = "repaid"
LOAN_STATUS_DEFAULTED = "defaulted"
LOAN_STATUSES = (LOAN_STATUS_ACTIVE, LOAN_STATUS_REPAID, LOAN_STATUS_DEFAULTED)


class Loan(db.Model):
    """
    Borrowing collateralized by units of an ACCU batch.

    LIFECYCLE:
        active -> repaid      (buyback completed)
        active -> defaulted   (borrower failed to buy back)
    repaid and defaulted are terminal.

    COLLATERAL INVARIANT:
    For every batch, the sum of quantity over its active loans never exceeds
    batch.quantity. Enforced in loan_service under a row lock on the batch.
    """
    __tablename__ = "loans"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_loans_quantity_positive"),
        db.CheckConstraint(in_clause("status", LOAN_STATUSES), name="ck_loans_status"),
        db.Index("ix_loans_batch_status", "batch_id", "status"),
        db.Index("ix_loans_entity_status", "entity_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("accu_batches.id"), nullable=False, index=True)
    creditor_id = db.Column(db.Integer, db.ForeignKey("creditors.id"), nullable=False, index=True)

    # Units of the batch pledged as collateral
    quantity = db.Column(db.Integer, nullable=False)

    loan_amount = db.Column(db.Numeric(14, 2), nullable=False)
    # Percentage, e.g. 7.2500
    buyback_rate = db.Column(db.Numeric(7, 4), nullable=False, default=0)
    buyback_date = db.Column(db.Date, nullable=False)
    collateral_value = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    entity_id = db.Column(db.Integer, db.ForeignKey("entities.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=LOAN_STATUS_ACTIVE, index=True)
    repaid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    defaulted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    batch = db.relationship("AccuBatch", backref=db.backref("loans", lazy=True))
    creditor = db.relationship("Creditor", backref=db.backref("loans", lazy=True))
    entity = db.relationship("Entity", backref=db.backref("loans", lazy=True))

    def __repr__(self) -> str:
        return f"<Loan id={self.id} batch_id={self.batch_id} quantity={self.quantity} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "creditor_id": self.creditor_id,
            "quantity": self.quantity,
            "loan_amount": to_decimal_str(self.loan_amount),
            "buyback_rate": to_decimal_str(self.buyback_rate),
            "buyback_date": to_iso_date(self.buyback_date),
            "collateral_value": to_decimal_str(self.collateral_value),
            "entity_id": self.entity_id,
            "status": self.status,
            "repaid_at": to_utc_z(self.repaid_at) if self.repaid_at else None,
            "defaulted_at": to_utc_z(self.defaulted_at) if self.defaulted_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

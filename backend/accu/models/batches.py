from __future__ import annotations

from ..extensions import db
from accu.time_utils import to_utc_z, to_iso_date
from accu.numeric_utils import to_decimal_str
from .base import in_clause

# Accounting treatment of a batch (mutually exclusive)
CLASSIFICATIONS = ("inventory", "intangible", "fvtpl")

BATCH_STATUS_ACTIVE = "active"
BATCH_STATUS_IMPAIRED = "impaired"
BATCH_STATUS_RECLASSIFIED = "reclassified"
BATCH_STATUS_ON_LOAN = "on_loan"
BATCH_STATUSES = (
    BATCH_STATUS_ACTIVE,
    BATCH_STATUS_IMPAIRED,
    BATCH_STATUS_RECLASSIFIED,
    BATCH_STATUS_ON_LOAN,
)


class AccuBatch(db.Model):
    """
    ACCU batch: the central inventory record.

    SERIAL RANGE INVARIANT:
    serial_range_start and serial_range_end are digit strings describing a
    contiguous block of registry serials. When present,
        int(serial_range_end) - int(serial_range_start) + 1 == quantity
    Serials are stored as strings because registry serials can carry leading
    zeros and exceed 64-bit range.

    STATUS:
    status is maintained by the server only:
    - active:       resting state after acquisition
    - on_loan:      at least one active Loan pledges units of this batch
    - reclassified: an approved ReclassificationRequest changed classification
    - impaired:     the latest ValuationLog shows NRV below carrying amount
    Loan and reclassification services write it inside their own transaction.

    CLASSIFICATION:
    Changes through an approved ReclassificationRequest. Direct edits are
    refused while a request for the batch is pending.
    """
    __tablename__ = "accu_batches"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_accu_batches_quantity_positive"),
        db.CheckConstraint(in_clause("classification", CLASSIFICATIONS), name="ck_accu_batches_classification"),
        db.CheckConstraint(in_clause("status", BATCH_STATUSES), name="ck_accu_batches_status"),
        db.Index("ix_accu_batches_entity_status", "entity_id", "status"),
        db.Index("ix_accu_batches_entity_classification", "entity_id", "classification"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable code, e.g. ACCU-202301-007
    batch_number = db.Column(db.String(64), nullable=False, unique=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)

    # Cost per unit
    acquisition_cost = db.Column(db.Numeric(14, 2), nullable=False)

    classification = db.Column(db.String(16), nullable=False, default="inventory")

    acquisition_date = db.Column(db.Date, nullable=False)
    issuance_date = db.Column(db.Date, nullable=True)

    vintage = db.Column(db.String(4), nullable=True)
    location = db.Column(db.String(255), nullable=True)
    category = db.Column(db.String(64), nullable=True)

    serial_range_start = db.Column(db.String(32), nullable=True)
    serial_range_end = db.Column(db.String(32), nullable=True)

    entity_id = db.Column(db.Integer, db.ForeignKey("entities.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=BATCH_STATUS_ACTIVE, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    entity = db.relationship("Entity", backref=db.backref("batches", lazy=True))
    user = db.relationship("User", backref=db.backref("batches", lazy=True))
    project = db.relationship("Project", backref=db.backref("batches", lazy=True))
    valuations = db.relationship(
        "ValuationLog",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="ValuationLog.valuation_date",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<AccuBatch id={self.id} batch_number={self.batch_number!r} "
            f"quantity={self.quantity} classification={self.classification} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_number": self.batch_number,
            "quantity": self.quantity,
            "acquisition_cost": to_decimal_str(self.acquisition_cost),
            "classification": self.classification,
            "acquisition_date": to_iso_date(self.acquisition_date),
            "issuance_date": to_iso_date(self.issuance_date),
            "vintage": self.vintage,
            "location": self.location,
            "category": self.category,
            "serial_range_start": self.serial_range_start,
            "serial_range_end": self.serial_range_end,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "project_id": self.project_id,
            "status": self.status,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ValuationLog(db.Model):
    """
    Append-only record of an externally computed valuation of a batch.

    Amounts are per unit except impairment_amount, which is the total
    write-down for the batch: max(0, carrying_amount - net_realizable_value) * quantity.
    """
    __tablename__ = "valuation_logs"
    __table_args__ = (
        db.Index("ix_valuation_logs_batch_date", "batch_id", "valuation_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("accu_batches.id"), nullable=False, index=True)

    valuation_date = db.Column(db.Date, nullable=False)
    carrying_amount = db.Column(db.Numeric(14, 2), nullable=False)
    net_realizable_value = db.Column(db.Numeric(14, 2), nullable=False)
    impairment_amount = db.Column(db.Numeric(16, 2), nullable=False, default=0)

    source = db.Column(db.String(128), nullable=True)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    batch = db.relationship("AccuBatch", back_populates="valuations")

    @property
    def is_impaired(self) -> bool:
        return self.impairment_amount is not None and self.impairment_amount > 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "valuation_date": to_iso_date(self.valuation_date),
            "carrying_amount": to_decimal_str(self.carrying_amount),
            "net_realizable_value": to_decimal_str(self.net_realizable_value),
            "impairment_amount": to_decimal_str(self.impairment_amount),
            "is_impaired": self.is_impaired,
            "source": self.source,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }


class BatchNumberSequence(db.Model):
    """
    Per-month counters for generated batch numbers (ACCU-YYYYMM-NNN).

    A single UPDATE ... SET next_number = next_number + 1 allocates numbers,
    so two concurrent creates never receive the same code.
    """
    __tablename__ = "batch_number_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    period = db.Column(db.String(6), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

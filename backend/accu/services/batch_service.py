# backend/accu/services/batch_service.py
"""
ACCU Batch Ledger Service

================================================================================
PURPOSE: Create, read, update and delete ACCU batches while holding the
inventory invariants that the loan and reclassification workflows rely on.
================================================================================

INVARIANTS:
1. quantity > 0
2. serial_range_end - serial_range_start + 1 == quantity (when serials present)
3. batch_number is unique; generated as ACCU-YYYYMM-NNN when not supplied
4. status is server-maintained (never taken from a client payload)
5. quantity never drops below the units pledged to active loans
6. classification is not edited directly while a reclassification is pending
7. a batch referenced by any loan or a pending reclassification cannot be deleted

RESTING STATUS:
When no active loan pledges a batch, its status is derived from history:
    impaired      latest valuation shows NRV below carrying amount
    reclassified  an approved reclassification exists
    active        otherwise
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    AccuBatch, BatchNumberSequence, ValuationLog, Loan, ReclassificationRequest,
    BATCH_STATUS_ACTIVE, BATCH_STATUS_IMPAIRED, BATCH_STATUS_RECLASSIFIED, BATCH_STATUS_ON_LOAN,
    LOAN_STATUS_ACTIVE, RECLASS_STATUS_APPROVED, RECLASS_STATUS_PENDING,
)
from ..models import Entity, User, Project
from ..numeric_utils import quantize_money
from ..validation import (
    ConflictError,
    InsufficientCollateral,
    check_serial_range,
)
from .concurrency import lock_batch, run_with_retry
from .ledger_service import append_ledger_event
from .query_utils import get_or_404, paginated_result
from accu.time_utils import today

BATCH_MUTABLE_FIELDS = {
    "batch_number",
    "quantity",
    "acquisition_cost",
    "classification",
    "acquisition_date",
    "issuance_date",
    "vintage",
    "location",
    "category",
    "serial_range_start",
    "serial_range_end",
    "project_id",
}

BATCH_CREATE_FIELDS = BATCH_MUTABLE_FIELDS | {"entity_id", "user_id"}

BATCH_NUMBER_PREFIX = "ACCU"


def apply_batch_patch(batch: AccuBatch, patch: dict, allowed: set[str] = BATCH_MUTABLE_FIELDS) -> None:
    for k, v in patch.items():
        if k not in allowed:
            continue
        setattr(batch, k, v)


# =============================================================================
# READS
# =============================================================================

def get_batch(batch_id: int) -> AccuBatch:
    return get_or_404(AccuBatch, batch_id, "Batch")


def list_batches(
    *,
    entity_id: int | None = None,
    classification: str | None = None,
    status: str | None = None,
    project_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    List batches, newest acquisition first, with optional filters and pagination.
    """
    query = db.session.query(AccuBatch)
    if entity_id is not None:
        query = query.filter(AccuBatch.entity_id == entity_id)
    if classification is not None:
        query = query.filter(AccuBatch.classification == classification)
    if status is not None:
        query = query.filter(AccuBatch.status == status)
    if project_id is not None:
        query = query.filter(AccuBatch.project_id == project_id)

    query = query.order_by(AccuBatch.acquisition_date.desc(), AccuBatch.id.desc())
    return paginated_result(query, page=page, per_page=per_page)


def pledged_quantity(batch_id: int, *, exclude_loan_id: int | None = None) -> int:
    """Sum of quantity over active loans on the batch."""
    query = db.session.query(func.coalesce(func.sum(Loan.quantity), 0)).filter(
        Loan.batch_id == batch_id,
        Loan.status == LOAN_STATUS_ACTIVE,
    )
    if exclude_loan_id is not None:
        query = query.filter(Loan.id != exclude_loan_id)
    return int(query.scalar())


def get_availability(batch_id: int) -> dict:
    batch = get_batch(batch_id)
    pledged = pledged_quantity(batch.id)
    return {
        "batch_id": batch.id,
        "quantity": batch.quantity,
        "pledged_quantity": pledged,
        "available_quantity": batch.quantity - pledged,
        "status": batch.status,
    }


def has_pending_reclassification(batch_id: int) -> bool:
    return db.session.query(
        db.session.query(ReclassificationRequest)
        .filter_by(batch_id=batch_id, status=RECLASS_STATUS_PENDING)
        .exists()
    ).scalar()


def latest_valuation(batch_id: int) -> ValuationLog | None:
    return (
        db.session.query(ValuationLog)
        .filter(ValuationLog.batch_id == batch_id)
        .order_by(ValuationLog.valuation_date.desc(), ValuationLog.id.desc())
        .first()
    )


def resting_status(batch: AccuBatch) -> str:
    """Status a batch returns to once no active loan pledges it."""
    valuation = latest_valuation(batch.id)
    if valuation is not None and valuation.is_impaired:
        return BATCH_STATUS_IMPAIRED

    reclassified = db.session.query(
        db.session.query(ReclassificationRequest)
        .filter_by(batch_id=batch.id, status=RECLASS_STATUS_APPROVED)
        .exists()
    ).scalar()
    if reclassified:
        return BATCH_STATUS_RECLASSIFIED

    return BATCH_STATUS_ACTIVE


def refresh_batch_status(batch: AccuBatch) -> str:
    """
    Recompute status from loans and history. Caller holds the batch lock.
    """
    if pledged_quantity(batch.id) > 0:
        batch.status = BATCH_STATUS_ON_LOAN
    else:
        batch.status = resting_status(batch)
    return batch.status


# =============================================================================
# BATCH NUMBERS
# =============================================================================

def next_batch_number(period: str) -> str:
    """
    Allocate the next ACCU-<period>-NNN number for a YYYYMM period.

    Numbers already taken by a manually supplied batch_number are skipped.
    """
    while True:
        stmt = (
            update(BatchNumberSequence)
            .where(BatchNumberSequence.period == period)
            .values(next_number=BatchNumberSequence.next_number + 1)
        )
        result = db.session.execute(stmt)
        if result.rowcount:
            current = (
                db.session.query(BatchNumberSequence.next_number)
                .filter_by(period=period)
                .scalar()
            )
            next_num = current - 1
        else:
            db.session.add(BatchNumberSequence(period=period, next_number=2))
            db.session.flush()
            next_num = 1

        candidate = f"{BATCH_NUMBER_PREFIX}-{period}-{next_num:03d}"
        taken = db.session.query(AccuBatch.id).filter_by(batch_number=candidate).first()
        if taken is None:
            return candidate


def _check_batch_number_free(batch_number: str, exclude_batch_id: int | None = None) -> None:
    query = db.session.query(AccuBatch).filter(AccuBatch.batch_number == batch_number)
    if exclude_batch_id is not None:
        query = query.filter(AccuBatch.id != exclude_batch_id)
    if query.first() is not None:
        raise ConflictError(f"Batch number {batch_number} already exists")


def _check_references(patch: dict) -> None:
    if patch.get("entity_id") is not None:
        get_or_404(Entity, patch["entity_id"], "Entity")
    if patch.get("user_id") is not None:
        get_or_404(User, patch["user_id"], "User")
    if patch.get("project_id") is not None:
        get_or_404(Project, patch["project_id"], "Project")


# =============================================================================
# WRITES
# =============================================================================

def create_batch(*, patch: dict, actor_user_id: int | None = None) -> AccuBatch:
    """
    Create a batch from a validated patch dict (status: active).

    Raises:
        ValidationError: serial range does not match quantity
        NotFoundError: entity/user/project reference unknown
        ConflictError: batch_number already used
    """
    def _op():
        check_serial_range(patch.get("serial_range_start"), patch.get("serial_range_end"), patch["quantity"])
        _check_references(patch)

        batch_number = patch.get("batch_number")
        if batch_number:
            _check_batch_number_free(batch_number)
        else:
            batch_number = next_batch_number(patch["acquisition_date"].strftime("%Y%m"))

        batch = AccuBatch(status=BATCH_STATUS_ACTIVE)
        apply_batch_patch(batch, patch, BATCH_CREATE_FIELDS)
        batch.batch_number = batch_number

        db.session.add(batch)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"Batch number {batch_number} already exists")

        append_ledger_event(
            event_type="batch.created",
            subject_type="batch",
            subject_id=batch.id,
            entity_id=batch.entity_id,
            actor_user_id=actor_user_id or batch.user_id,
            note=f"Created batch {batch.batch_number} quantity={batch.quantity}",
        )
        current_app.logger.info("Created batch %s (%s units)", batch.batch_number, batch.quantity)
        return batch

    return run_with_retry(_op)


def update_batch(batch_id: int, *, patch: dict, actor_user_id: int | None = None) -> AccuBatch:
    """
    Apply a validated partial update.

    Raises:
        NotFoundError: unknown batch or reference
        ConflictError: duplicate batch_number, or classification edit while a
            reclassification request is pending
        ValidationError: merged record breaks the serial range invariant
        InsufficientCollateral: quantity below the units pledged to active loans
    """
    def _op():
        batch = lock_batch(batch_id)
        if batch is None:
            get_batch(batch_id)  # raises NotFoundError

        if "classification" in patch and patch["classification"] != batch.classification:
            if has_pending_reclassification(batch.id):
                raise ConflictError(
                    f"Batch {batch.batch_number} has a pending reclassification request; "
                    "approve or reject it before changing classification"
                )

        if patch.get("batch_number") and patch["batch_number"] != batch.batch_number:
            _check_batch_number_free(patch["batch_number"], exclude_batch_id=batch.id)

        _check_references(patch)

        quantity = patch.get("quantity", batch.quantity)
        check_serial_range(
            patch.get("serial_range_start", batch.serial_range_start),
            patch.get("serial_range_end", batch.serial_range_end),
            quantity,
        )

        if quantity < batch.quantity:
            pledged = pledged_quantity(batch.id)
            if quantity < pledged:
                raise InsufficientCollateral(
                    f"Cannot reduce batch {batch.batch_number} to {quantity} units: "
                    f"{pledged} units are pledged to active loans"
                )

        changed = sorted(k for k, v in patch.items() if k in BATCH_MUTABLE_FIELDS and getattr(batch, k) != v)
        apply_batch_patch(batch, patch)
        db.session.flush()

        if changed:
            append_ledger_event(
                event_type="batch.updated",
                subject_type="batch",
                subject_id=batch.id,
                entity_id=batch.entity_id,
                actor_user_id=actor_user_id,
                note=f"Updated {', '.join(changed)}",
            )
        return batch

    return run_with_retry(_op)


def delete_batch(batch_id: int, *, actor_user_id: int | None = None) -> None:
    """
    Delete a batch with its valuation history and decided reclassification requests.

    Raises:
        NotFoundError: unknown batch
        ConflictError: any loan, or a pending reclassification, references the batch
    """
    batch = get_batch(batch_id)

    loan_count = db.session.query(Loan).filter(Loan.batch_id == batch.id).count()
    if loan_count:
        raise ConflictError(f"Batch {batch.batch_number} is referenced by {loan_count} loan(s)")
    if has_pending_reclassification(batch.id):
        raise ConflictError(f"Batch {batch.batch_number} has a pending reclassification request")

    append_ledger_event(
        event_type="batch.deleted",
        subject_type="batch",
        subject_id=batch.id,
        entity_id=batch.entity_id,
        actor_user_id=actor_user_id,
        note=f"Deleted batch {batch.batch_number}",
    )
    db.session.delete(batch)
    db.session.flush()


# =============================================================================
# VALUATIONS
# =============================================================================

def list_valuations(batch_id: int) -> list[ValuationLog]:
    get_batch(batch_id)
    return (
        db.session.query(ValuationLog)
        .filter(ValuationLog.batch_id == batch_id)
        .order_by(ValuationLog.valuation_date.desc(), ValuationLog.id.desc())
        .all()
    )


def record_valuation(batch_id: int, *, patch: dict, actor_user_id: int | None = None) -> ValuationLog:
    """
    Record an externally computed valuation.

    carrying_amount defaults to the batch's acquisition cost. If NRV is below
    carrying amount the batch is impaired; a later valuation at or above
    carrying amount reverses that. An on_loan batch keeps on_loan until its
    loans close.
    """
    def _op():
        batch = lock_batch(batch_id)
        if batch is None:
            get_batch(batch_id)  # raises NotFoundError

        carrying = patch.get("carrying_amount")
        if carrying is None:
            carrying = batch.acquisition_cost
        nrv = patch["net_realizable_value"]

        shortfall = max(Decimal("0"), Decimal(carrying) - nrv)
        impairment = quantize_money(shortfall * batch.quantity)

        valuation = ValuationLog(
            batch_id=batch.id,
            valuation_date=patch.get("valuation_date") or today(),
            carrying_amount=carrying,
            net_realizable_value=nrv,
            impairment_amount=impairment,
            source=patch.get("source"),
            note=patch.get("note"),
        )
        db.session.add(valuation)
        db.session.flush()

        previous_status = batch.status
        refresh_batch_status(batch)

        append_ledger_event(
            event_type="batch.valued",
            subject_type="batch",
            subject_id=batch.id,
            entity_id=batch.entity_id,
            actor_user_id=actor_user_id,
            note=f"NRV {nrv} vs carrying {carrying}",
            payload={
                "valuation_id": valuation.id,
                "impairment_amount": str(impairment),
                "status_before": previous_status,
                "status_after": batch.status,
            },
        )
        if batch.status != previous_status:
            current_app.logger.info(
                "Batch %s status %s -> %s after valuation", batch.batch_number, previous_status, batch.status
            )
        return valuation

    return run_with_retry(_op)

# backend/accu/services/loan_service.py
"""
Loan Ledger Service

Loans pledge units of a batch as collateral.

LIFECYCLE:
1. Create (active)  - batch moves to on_loan
2. Repay (repaid)   - buyback completed
3. Default          - borrower failed to buy back
Repaid and defaulted loans are terminal. When the last active loan on a batch
closes, the batch returns to its resting status (see batch_service).

COLLATERAL CHECK:
    quantity <= batch.quantity - sum(quantity of active loans on the batch)
The read of the active-loan sum and the insert happen in one transaction
holding the batch row lock. Every pledge also bumps the batch version
(touch_batch), so on databases without row locks the second of two racing
loans fails its flush and re-runs the check. Two concurrent loans cannot
jointly over-pledge a batch.
"""
from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..models import (
    Loan, Creditor, Entity,
    BATCH_STATUS_ON_LOAN,
    LOAN_STATUS_ACTIVE, LOAN_STATUS_REPAID, LOAN_STATUS_DEFAULTED,
)
from ..validation import InsufficientCollateral, InvalidStateTransition, ConflictError
from .batch_service import get_batch, pledged_quantity, refresh_batch_status
from .concurrency import lock_batch, lock_for_update, run_with_retry, touch_batch
from .ledger_service import append_ledger_event
from .query_utils import get_or_404, paginated_result
from accu.time_utils import utcnow, today

LOAN_MUTABLE_FIELDS = {"creditor_id", "quantity", "loan_amount", "buyback_rate", "buyback_date", "collateral_value"}
LOAN_CREATE_FIELDS = LOAN_MUTABLE_FIELDS | {"batch_id", "entity_id"}


def apply_loan_patch(loan: Loan, patch: dict, allowed: set[str] = LOAN_MUTABLE_FIELDS) -> None:
    for k, v in patch.items():
        if k not in allowed:
            continue
        setattr(loan, k, v)


def get_loan(loan_id: int) -> Loan:
    return get_or_404(Loan, loan_id, "Loan")


def list_loans(
    *,
    entity_id: int | None = None,
    batch_id: int | None = None,
    creditor_id: int | None = None,
    status: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Loan)
    if entity_id is not None:
        query = query.filter(Loan.entity_id == entity_id)
    if batch_id is not None:
        query = query.filter(Loan.batch_id == batch_id)
    if creditor_id is not None:
        query = query.filter(Loan.creditor_id == creditor_id)
    if status is not None:
        query = query.filter(Loan.status == status)

    query = query.order_by(Loan.buyback_date.asc(), Loan.id.asc())
    return paginated_result(query, page=page, per_page=per_page)


def list_overdue_loans(*, as_of: date | None = None, entity_id: int | None = None) -> list[Loan]:
    """
    Active loans whose buyback date has passed.

    Read-only: nothing is defaulted automatically.
    """
    as_of = as_of or today()
    query = db.session.query(Loan).filter(
        Loan.status == LOAN_STATUS_ACTIVE,
        Loan.buyback_date < as_of,
    )
    if entity_id is not None:
        query = query.filter(Loan.entity_id == entity_id)
    return query.order_by(Loan.buyback_date.asc(), Loan.id.asc()).all()


def _require_available(batch, quantity: int, *, exclude_loan_id: int | None = None) -> None:
    pledged = pledged_quantity(batch.id, exclude_loan_id=exclude_loan_id)
    available = batch.quantity - pledged
    if quantity > available:
        raise InsufficientCollateral(
            f"Batch {batch.batch_number} has {available} of {batch.quantity} units available; "
            f"{quantity} requested"
        )


def create_loan(*, patch: dict, actor_user_id: int | None = None) -> Loan:
    """
    Create an active loan against a batch.

    Raises:
        NotFoundError: batch or creditor unknown
        InsufficientCollateral: quantity exceeds the batch's unpledged units
    """
    def _op():
        batch = lock_batch(patch["batch_id"])
        if batch is None:
            get_batch(patch["batch_id"])  # raises NotFoundError
        get_or_404(Creditor, patch["creditor_id"], "Creditor")
        if patch.get("entity_id") is not None:
            get_or_404(Entity, patch["entity_id"], "Entity")

        _require_available(batch, patch["quantity"])

        loan = Loan(status=LOAN_STATUS_ACTIVE)
        apply_loan_patch(loan, patch, LOAN_CREATE_FIELDS)
        if loan.entity_id is None:
            loan.entity_id = batch.entity_id

        previous_status = batch.status
        batch.status = BATCH_STATUS_ON_LOAN
        touch_batch(batch)

        db.session.add(loan)
        db.session.flush()

        append_ledger_event(
            event_type="loan.created",
            subject_type="loan",
            subject_id=loan.id,
            entity_id=loan.entity_id,
            actor_user_id=actor_user_id,
            note=f"Pledged {loan.quantity} units of {batch.batch_number}",
            payload={"batch_id": batch.id, "batch_status_before": previous_status},
        )
        current_app.logger.info(
            "Loan %s pledges %s units of batch %s", loan.id, loan.quantity, batch.batch_number
        )
        return loan

    return run_with_retry(_op)


def update_loan(loan_id: int, *, patch: dict, actor_user_id: int | None = None) -> Loan:
    """
    Update commercial terms. A quantity change on an active loan is
    re-checked against the batch's availability.

    Raises:
        NotFoundError: loan or creditor unknown
        InvalidStateTransition: quantity change on a closed loan
        InsufficientCollateral: new quantity exceeds availability
    """
    def _op():
        loan = get_loan(loan_id)
        if patch.get("creditor_id") is not None:
            get_or_404(Creditor, patch["creditor_id"], "Creditor")

        if "quantity" in patch and patch["quantity"] != loan.quantity:
            if loan.status != LOAN_STATUS_ACTIVE:
                raise InvalidStateTransition(
                    f"Cannot change quantity of loan {loan.id}: status is '{loan.status}'"
                )
            batch = lock_batch(loan.batch_id)
            _require_available(batch, patch["quantity"], exclude_loan_id=loan.id)
            touch_batch(batch)

        apply_loan_patch(loan, patch)
        db.session.flush()

        append_ledger_event(
            event_type="loan.updated",
            subject_type="loan",
            subject_id=loan.id,
            entity_id=loan.entity_id,
            actor_user_id=actor_user_id,
            note=f"Updated {', '.join(sorted(k for k in patch if k in LOAN_MUTABLE_FIELDS))}",
        )
        return loan

    return run_with_retry(_op)


def _close_loan(loan_id: int, *, to_status: str, actor_user_id: int | None) -> Loan:
    def _op():
        loan = lock_for_update(db.session.query(Loan).filter_by(id=loan_id)).first()
        if loan is None:
            get_loan(loan_id)  # raises NotFoundError

        if loan.status != LOAN_STATUS_ACTIVE:
            raise InvalidStateTransition(
                f"Cannot mark loan {loan.id} {to_status}: current status is '{loan.status}', must be 'active'"
            )

        batch = lock_batch(loan.batch_id)

        loan.status = to_status
        if to_status == LOAN_STATUS_REPAID:
            loan.repaid_at = utcnow()
        else:
            loan.defaulted_at = utcnow()
        db.session.flush()

        previous_status = batch.status
        refresh_batch_status(batch)

        append_ledger_event(
            event_type=f"loan.{to_status}",
            subject_type="loan",
            subject_id=loan.id,
            entity_id=loan.entity_id,
            actor_user_id=actor_user_id,
            note=f"Released {loan.quantity} units of {batch.batch_number}",
            payload={"batch_id": batch.id, "batch_status_before": previous_status, "batch_status_after": batch.status},
        )
        current_app.logger.info(
            "Loan %s %s; batch %s now %s", loan.id, to_status, batch.batch_number, batch.status
        )
        return loan

    return run_with_retry(_op)


def repay_loan(loan_id: int, *, actor_user_id: int | None = None) -> Loan:
    """active -> repaid. Releases the pledged units."""
    return _close_loan(loan_id, to_status=LOAN_STATUS_REPAID, actor_user_id=actor_user_id)


def default_loan(loan_id: int, *, actor_user_id: int | None = None) -> Loan:
    """active -> defaulted. Releases the pledge like a repayment."""
    return _close_loan(loan_id, to_status=LOAN_STATUS_DEFAULTED, actor_user_id=actor_user_id)


def delete_loan(loan_id: int, *, actor_user_id: int | None = None) -> None:
    """Closed loans only; an active loan must be repaid or defaulted first."""
    loan = get_loan(loan_id)
    if loan.status == LOAN_STATUS_ACTIVE:
        raise ConflictError(f"Loan {loan.id} is active; repay or default it before deleting")

    append_ledger_event(
        event_type="loan.deleted",
        subject_type="loan",
        subject_id=loan.id,
        entity_id=loan.entity_id,
        actor_user_id=actor_user_id,
    )
    db.session.delete(loan)
    db.session.flush()

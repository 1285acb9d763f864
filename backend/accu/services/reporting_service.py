# Overview: Read-only portfolio aggregates for the dashboard.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func

from accu.extensions import db
from accu.models import (
    AccuBatch,
    Loan,
    ReclassificationRequest,
    CLASSIFICATIONS,
    BATCH_STATUS_IMPAIRED,
    LOAN_STATUS_ACTIVE,
    RECLASS_STATUS_PENDING,
)
from accu.numeric_utils import quantize_money, to_decimal_str
from accu.services.market_service import latest_price
from accu.time_utils import to_iso_date


def portfolio_summary(*, entity_id: int | None = None, commodity_type: str | None = None) -> dict:
    """
    Holdings, impairment, pending reclassifications and loan exposure.

    Amounts are summed as Decimal in Python: SQLite would aggregate NUMERIC
    columns as binary floats.
    """
    batch_query = db.session.query(
        AccuBatch.quantity, AccuBatch.acquisition_cost, AccuBatch.classification, AccuBatch.status,
    )
    if entity_id is not None:
        batch_query = batch_query.filter(AccuBatch.entity_id == entity_id)

    batch_count = 0
    total_quantity = 0
    impaired_quantity = 0
    cost_basis = Decimal("0")
    by_classification = {c: {"batches": 0, "quantity": 0} for c in CLASSIFICATIONS}

    for quantity, acquisition_cost, classification, status in batch_query.all():
        batch_count += 1
        total_quantity += quantity
        cost_basis += Decimal(acquisition_cost) * quantity
        if status == BATCH_STATUS_IMPAIRED:
            impaired_quantity += quantity
        bucket = by_classification.setdefault(classification, {"batches": 0, "quantity": 0})
        bucket["batches"] += 1
        bucket["quantity"] += quantity

    pending_query = db.session.query(func.count(ReclassificationRequest.id)).filter(
        ReclassificationRequest.status == RECLASS_STATUS_PENDING
    )
    loan_query = db.session.query(Loan.loan_amount, Loan.quantity).filter(Loan.status == LOAN_STATUS_ACTIVE)
    if entity_id is not None:
        pending_query = pending_query.filter(ReclassificationRequest.entity_id == entity_id)
        loan_query = loan_query.filter(Loan.entity_id == entity_id)

    outstanding = Decimal("0")
    pledged_quantity = 0
    active_loans = 0
    for loan_amount, quantity in loan_query.all():
        active_loans += 1
        outstanding += Decimal(loan_amount)
        pledged_quantity += quantity

    price = latest_price(commodity_type=commodity_type)
    market_value = quantize_money(price.price * total_quantity) if price is not None else None

    impaired_share = (
        round(impaired_quantity / total_quantity * 100, 2) if total_quantity else 0.0
    )

    return {
        "entity_id": entity_id,
        "batch_count": batch_count,
        "total_quantity": total_quantity,
        "cost_basis": to_decimal_str(quantize_money(cost_basis)),
        "by_classification": by_classification,
        "impaired_quantity": impaired_quantity,
        "impaired_share_pct": impaired_share,
        "pending_reclassifications": pending_query.scalar() or 0,
        "active_loans": active_loans,
        "pledged_quantity": pledged_quantity,
        "outstanding_loan_amount": to_decimal_str(quantize_money(outstanding)),
        "latest_market_price": (
            {
                "price": to_decimal_str(price.price),
                "date": to_iso_date(price.date),
                "source": price.source,
                "commodity_type": price.commodity_type,
            }
            if price is not None else None
        ),
        "market_value": to_decimal_str(market_value),
    }

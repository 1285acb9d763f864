# Overview: Flask API routes for loans; parses input and returns JSON responses.

# backend/accu/routes/loans.py
"""
Loan routes.

Lifecycle changes go through /repay and /default; status is not writable.
"""
from flask import Blueprint, request

from ..decorators import transactional
from ..models import Loan, LOAN_STATUSES
from ..services import loan_service
from accu.time_utils import parse_iso_date
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_loan,
    ValidationError,
)

LOAN_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "batch_id", "creditor_id", "quantity", "loan_amount", "buyback_rate",
        "buyback_date", "collateral_value", "entity_id",
    },
    required_on_create={"batch_id", "creditor_id", "quantity", "loan_amount", "buyback_date"},
)

LOAN_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"creditor_id", "quantity", "loan_amount", "buyback_rate", "buyback_date", "collateral_value"},
)

loans_bp = Blueprint("loans", __name__, url_prefix="/api/loans")


@loans_bp.get("")
@transactional("list loans")
def list_loans():
    """
    List loans, earliest buyback first.

    Query params: entity_id, batch_id, creditor_id, status, page, per_page
    """
    status = request.args.get("status")
    if status is not None and status not in LOAN_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(LOAN_STATUSES)}")

    return loan_service.list_loans(
        entity_id=request.args.get("entity_id", type=int),
        batch_id=request.args.get("batch_id", type=int),
        creditor_id=request.args.get("creditor_id", type=int),
        status=status,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@loans_bp.get("/overdue")
@transactional("list overdue loans")
def list_overdue_loans():
    """
    Active loans past their buyback date.

    Query params:
    - as_of: YYYY-MM-DD (optional, default today)
    - entity_id: int (optional)
    """
    raw_as_of = request.args.get("as_of")
    try:
        as_of = parse_iso_date(raw_as_of) if raw_as_of else None
    except ValueError:
        raise ValidationError("as_of must be an ISO-8601 date (YYYY-MM-DD)")

    loans = loan_service.list_overdue_loans(as_of=as_of, entity_id=request.args.get("entity_id", type=int))
    return {"items": [loan.to_dict() for loan in loans], "count": len(loans)}


@loans_bp.get("/<int:loan_id>")
@transactional("load loan")
def get_loan(loan_id: int):
    return loan_service.get_loan(loan_id).to_dict()


@loans_bp.post("")
@transactional("create loan")
def create_loan():
    """
    Create an active loan pledging units of a batch.

    Returns:
        201: loan created, batch is on_loan
        400: validation error
        404: batch or creditor not found
        409: InsufficientCollateral - quantity exceeds the batch's unpledged units
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Loan, payload=payload, policy=LOAN_CREATE_POLICY, partial=False)
    enforce_rules_loan(patch)

    loan = loan_service.create_loan(patch=patch)
    return loan.to_dict(), 201


@loans_bp.put("/<int:loan_id>")
@transactional("update loan")
def update_loan(loan_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Loan, payload=payload, policy=LOAN_UPDATE_POLICY, partial=True)
    enforce_rules_loan(patch)

    loan = loan_service.update_loan(loan_id, patch=patch)
    return loan.to_dict(), 200


@loans_bp.post("/<int:loan_id>/repay")
@transactional("repay loan")
def repay_loan(loan_id: int):
    """
    Record buyback/repayment (active -> repaid).

    Returns:
        200: loan repaid; batch returns to its resting status if no other loan is active
        404: loan not found
        409: InvalidStateTransition - loan is not active
    """
    loan = loan_service.repay_loan(loan_id)
    return {"loan": loan.to_dict(), "batch": loan.batch.to_dict()}, 200


@loans_bp.post("/<int:loan_id>/default")
@transactional("default loan")
def default_loan(loan_id: int):
    """Record a default (active -> defaulted)."""
    loan = loan_service.default_loan(loan_id)
    return {"loan": loan.to_dict(), "batch": loan.batch.to_dict()}, 200


@loans_bp.delete("/<int:loan_id>")
@transactional("delete loan")
def delete_loan(loan_id: int):
    loan_service.delete_loan(loan_id)
    return {"ok": True}, 200

# Overview: Flask API routes for ACCU batches; parses input and returns JSON responses.

# backend/accu/routes/batches.py
"""
ACCU batch routes.

status is never accepted from clients; it is maintained by the loan,
reclassification and valuation workflows.
"""
from flask import Blueprint, request

from ..decorators import transactional
from ..models import AccuBatch, ValuationLog, CLASSIFICATIONS, BATCH_STATUSES
from ..services import batch_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_batch,
    ValidationError,
)

BATCH_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "batch_number", "quantity", "acquisition_cost", "classification",
        "acquisition_date", "issuance_date", "vintage", "location", "category",
        "serial_range_start", "serial_range_end",
        "entity_id", "user_id", "project_id",
    },
    required_on_create={"quantity", "acquisition_cost", "classification", "acquisition_date", "entity_id"},
)

BATCH_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "batch_number", "quantity", "acquisition_cost", "classification",
        "acquisition_date", "issuance_date", "vintage", "location", "category",
        "serial_range_start", "serial_range_end", "project_id",
    },
)

VALUATION_POLICY = ModelValidationPolicy(
    writable_fields={"valuation_date", "carrying_amount", "net_realizable_value", "source", "note"},
    required_on_create={"net_realizable_value"},
)

batches_bp = Blueprint("batches", __name__, url_prefix="/api/batches")


def _choice_arg(name: str, choices: tuple[str, ...]) -> str | None:
    value = request.args.get(name)
    if value is not None and value not in choices:
        raise ValidationError(f"{name} must be one of: {', '.join(choices)}")
    return value


@batches_bp.get("")
@transactional("list batches")
def list_batches():
    """
    List batches.

    Query params:
    - entity_id, project_id: int (optional)
    - classification: inventory | intangible | fvtpl (optional)
    - status: active | impaired | reclassified | on_loan (optional)
    - page, per_page: int (optional) - pagination; all rows when page is omitted
    """
    return batch_service.list_batches(
        entity_id=request.args.get("entity_id", type=int),
        classification=_choice_arg("classification", CLASSIFICATIONS),
        status=_choice_arg("status", BATCH_STATUSES),
        project_id=request.args.get("project_id", type=int),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@batches_bp.get("/<int:batch_id>")
@transactional("load batch")
def get_batch(batch_id: int):
    return batch_service.get_batch(batch_id).to_dict()


@batches_bp.post("")
@transactional("create batch")
def create_batch():
    """
    Create a batch. batch_number is generated (ACCU-YYYYMM-NNN) when omitted.

    Returns:
        201: batch created
        400: validation error (including serial range / quantity mismatch)
        404: entity, user or project not found
        409: batch_number already exists
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=AccuBatch, payload=payload, policy=BATCH_CREATE_POLICY, partial=False)
    enforce_rules_batch(patch)

    batch = batch_service.create_batch(patch=patch)
    return batch.to_dict(), 201


@batches_bp.put("/<int:batch_id>")
@transactional("update batch")
def update_batch(batch_id: int):
    """
    Update a batch.

    Returns:
        200: updated batch
        400: validation error
        404: batch not found
        409: duplicate batch_number, classification edit while a request is
             pending, or quantity below the pledged units
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=AccuBatch, payload=payload, policy=BATCH_UPDATE_POLICY, partial=True)
    enforce_rules_batch(patch)

    batch = batch_service.update_batch(batch_id, patch=patch)
    return batch.to_dict(), 200


@batches_bp.delete("/<int:batch_id>")
@transactional("delete batch")
def delete_batch(batch_id: int):
    """
    Delete a batch.

    Returns:
        200: deleted
        404: batch not found
        409: referenced by a loan or a pending reclassification request
    """
    batch_service.delete_batch(batch_id)
    return {"ok": True}, 200


@batches_bp.get("/<int:batch_id>/availability")
@transactional("load batch availability")
def batch_availability(batch_id: int):
    """Quantity, units pledged to active loans, and units still available to pledge."""
    return batch_service.get_availability(batch_id)


@batches_bp.get("/<int:batch_id>/valuations")
@transactional("list valuations")
def list_valuations(batch_id: int):
    valuations = batch_service.list_valuations(batch_id)
    return {"items": [v.to_dict() for v in valuations], "count": len(valuations)}


@batches_bp.post("/<int:batch_id>/valuations")
@transactional("record valuation")
def record_valuation(batch_id: int):
    """
    Record an externally computed valuation.

    Request body:
    {
        "net_realizable_value": "24.10",   (per unit, required)
        "carrying_amount": "27.50",        (per unit, defaults to acquisition_cost)
        "valuation_date": "2024-06-30",    (defaults to today)
        "source": "Year-end NRV review",
        "note": "..."
    }
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=ValuationLog, payload=payload, policy=VALUATION_POLICY, partial=False)
    for field in ("net_realizable_value", "carrying_amount"):
        if patch.get(field) is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")

    valuation = batch_service.record_valuation(batch_id, patch=patch)
    return {
        "valuation": valuation.to_dict(),
        "batch": batch_service.get_batch(batch_id).to_dict(),
    }, 201

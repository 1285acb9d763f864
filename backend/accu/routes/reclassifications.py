# Overview: Flask API routes for reclassification requests; submit, approve, reject.

# backend/accu/routes/reclassifications.py
from flask import Blueprint, request

from ..decorators import transactional
from ..models import ReclassificationRequest, RECLASS_STATUSES
from ..services import reclassification_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_reclassification,
    ValidationError,
)

RECLASSIFICATION_POLICY = ModelValidationPolicy(
    writable_fields={"batch_id", "from_class", "to_class", "reason", "submitted_by", "entity_id"},
    required_on_create={"batch_id", "from_class", "to_class", "reason"},
)

reclassifications_bp = Blueprint("reclassifications", __name__, url_prefix="/api/reclassifications")


def _decision_args() -> dict:
    """Optional body for approve/reject: {"decided_by": int, "decision_note": str}."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    decided_by = data.get("decided_by")
    if decided_by is not None and (not isinstance(decided_by, int) or isinstance(decided_by, bool)):
        raise ValidationError("decided_by must be an integer")

    note = data.get("decision_note")
    if note is not None:
        note = str(note).strip() or None
    return {"decided_by": decided_by, "decision_note": note}


@reclassifications_bp.get("")
@transactional("list reclassification requests")
def list_requests():
    """
    Query params: status (pending | approved | rejected), batch_id, entity_id, page, per_page
    """
    status = request.args.get("status")
    if status is not None and status not in RECLASS_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(RECLASS_STATUSES)}")

    return reclassification_service.list_requests(
        status=status,
        batch_id=request.args.get("batch_id", type=int),
        entity_id=request.args.get("entity_id", type=int),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@reclassifications_bp.get("/<int:request_id>")
@transactional("load reclassification request")
def get_request(request_id: int):
    return reclassification_service.get_request(request_id).to_dict()


@reclassifications_bp.post("")
@transactional("submit reclassification request")
def submit_request():
    """
    Submit a request (status: pending).

    Returns:
        201: request created
        400: ClassificationMismatch - from_class is not the batch's current classification
        404: batch not found
        409: a request for the batch is already pending
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(
        model=ReclassificationRequest, payload=payload, policy=RECLASSIFICATION_POLICY, partial=False,
    )
    enforce_rules_reclassification(patch)

    req = reclassification_service.submit_request(patch=patch)
    return req.to_dict(), 201


@reclassifications_bp.post("/<int:request_id>/approve")
@transactional("approve reclassification request")
def approve_request(request_id: int):
    """
    Approve (pending -> approved); the batch is reclassified in the same transaction.

    Returns:
        200: {"request": ..., "batch": ...}
        404: request not found
        409: InvalidStateTransition - request already decided
    """
    req = reclassification_service.approve_request(request_id, **_decision_args())
    return {"request": req.to_dict(), "batch": req.batch.to_dict()}, 200


@reclassifications_bp.post("/<int:request_id>/reject")
@transactional("reject reclassification request")
def reject_request(request_id: int):
    """Reject (pending -> rejected); the batch is unchanged."""
    req = reclassification_service.reject_request(request_id, **_decision_args())
    return {"request": req.to_dict(), "batch": req.batch.to_dict()}, 200

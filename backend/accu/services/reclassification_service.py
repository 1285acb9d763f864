# backend/accu/services/reclassification_service.py
"""
Reclassification Request Workflow

STATE MACHINE:
    pending -> approved | rejected

    pending:  submitted, batch classification unchanged
    approved: TERMINAL, batch.classification == to_class
    rejected: TERMINAL, batch unchanged

RULES:
1. from_class must equal the batch's classification when the request is submitted
2. At most one pending request per batch
3. Approval changes the request status and the batch classification in the
   same transaction; if either fails neither is visible
4. Terminal requests accept no further transitions
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import (
    ReclassificationRequest, User, Entity,
    BATCH_STATUS_ACTIVE, BATCH_STATUS_RECLASSIFIED,
    RECLASS_STATUS_PENDING, RECLASS_STATUS_APPROVED, RECLASS_STATUS_REJECTED,
)
from ..validation import ClassificationMismatch, ConflictError, InvalidStateTransition
from .batch_service import get_batch, has_pending_reclassification
from .concurrency import lock_batch, lock_for_update, run_with_retry, touch_batch
from .ledger_service import append_ledger_event
from .query_utils import get_or_404, paginated_result
from accu.time_utils import utcnow


def get_request(request_id: int) -> ReclassificationRequest:
    return get_or_404(ReclassificationRequest, request_id, "Reclassification request")


def list_requests(
    *,
    status: str | None = None,
    batch_id: int | None = None,
    entity_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(ReclassificationRequest)
    if status is not None:
        query = query.filter(ReclassificationRequest.status == status)
    if batch_id is not None:
        query = query.filter(ReclassificationRequest.batch_id == batch_id)
    if entity_id is not None:
        query = query.filter(ReclassificationRequest.entity_id == entity_id)

    query = query.order_by(ReclassificationRequest.created_at.desc(), ReclassificationRequest.id.desc())
    return paginated_result(query, page=page, per_page=per_page)


def submit_request(*, patch: dict) -> ReclassificationRequest:
    """
    Submit a reclassification request (status: pending).

    Raises:
        NotFoundError: batch, submitter or entity unknown
        ClassificationMismatch: from_class differs from the batch's classification
        ConflictError: another request for the batch is already pending
    """
    def _op():
        batch = lock_batch(patch["batch_id"])
        if batch is None:
            get_batch(patch["batch_id"])  # raises NotFoundError

        if patch.get("submitted_by") is not None:
            get_or_404(User, patch["submitted_by"], "User")
        if patch.get("entity_id") is not None:
            get_or_404(Entity, patch["entity_id"], "Entity")

        if patch["from_class"] != batch.classification:
            raise ClassificationMismatch(
                f"Batch {batch.batch_number} is classified as '{batch.classification}', "
                f"not '{patch['from_class']}'"
            )

        if has_pending_reclassification(batch.id):
            raise ConflictError(f"Batch {batch.batch_number} already has a pending reclassification request")

        request = ReclassificationRequest(
            batch_id=batch.id,
            from_class=patch["from_class"],
            to_class=patch["to_class"],
            reason=patch["reason"],
            status=RECLASS_STATUS_PENDING,
            submitted_by=patch.get("submitted_by"),
            entity_id=patch.get("entity_id") or batch.entity_id,
        )
        touch_batch(batch)
        db.session.add(request)
        db.session.flush()

        append_ledger_event(
            event_type="reclassification.submitted",
            subject_type="reclassification_request",
            subject_id=request.id,
            entity_id=request.entity_id,
            actor_user_id=request.submitted_by,
            note=f"{batch.batch_number}: {request.from_class} -> {request.to_class}",
        )
        return request

    return run_with_retry(_op)


def _load_pending(request_id: int, action: str) -> ReclassificationRequest:
    request = lock_for_update(
        db.session.query(ReclassificationRequest).filter_by(id=request_id)
    ).first()
    if request is None:
        get_request(request_id)  # raises NotFoundError

    if request.status != RECLASS_STATUS_PENDING:
        raise InvalidStateTransition(
            f"Cannot {action} reclassification request {request_id}: "
            f"current status is '{request.status}', must be 'pending'"
        )
    return request


def approve_request(
    request_id: int,
    *,
    decided_by: int | None = None,
    decision_note: str | None = None,
) -> ReclassificationRequest:
    """
    Approve a pending request (pending -> approved) and reclassify the batch.

    The batch keeps on_loan/impaired status; an active batch becomes reclassified.

    Raises:
        NotFoundError: request or decider unknown
        InvalidStateTransition: request is not pending
        ClassificationMismatch: batch classification changed since submission
    """
    def _op():
        request = _load_pending(request_id, "approve")
        if decided_by is not None:
            get_or_404(User, decided_by, "User")

        batch = lock_batch(request.batch_id)
        if batch.classification != request.from_class:
            raise ClassificationMismatch(
                f"Batch {batch.batch_number} is now classified as '{batch.classification}', "
                f"request expects '{request.from_class}'"
            )

        batch.classification = request.to_class
        if batch.status == BATCH_STATUS_ACTIVE:
            batch.status = BATCH_STATUS_RECLASSIFIED

        request.status = RECLASS_STATUS_APPROVED
        request.decided_by = decided_by
        request.decided_at = utcnow()
        request.decision_note = decision_note
        db.session.flush()

        append_ledger_event(
            event_type="reclassification.approved",
            subject_type="reclassification_request",
            subject_id=request.id,
            entity_id=request.entity_id,
            actor_user_id=decided_by,
            note=f"{batch.batch_number}: {request.from_class} -> {request.to_class}",
            payload={"batch_id": batch.id, "batch_status": batch.status},
        )
        current_app.logger.info(
            "Reclassified batch %s from %s to %s (request %s)",
            batch.batch_number, request.from_class, request.to_class, request.id,
        )
        return request

    return run_with_retry(_op)


def reject_request(
    request_id: int,
    *,
    decided_by: int | None = None,
    decision_note: str | None = None,
) -> ReclassificationRequest:
    """
    Reject a pending request (pending -> rejected). The batch is untouched.

    Raises:
        NotFoundError: request or decider unknown
        InvalidStateTransition: request is not pending
    """
    def _op():
        request = _load_pending(request_id, "reject")
        if decided_by is not None:
            get_or_404(User, decided_by, "User")

        request.status = RECLASS_STATUS_REJECTED
        request.decided_by = decided_by
        request.decided_at = utcnow()
        request.decision_note = decision_note
        db.session.flush()

        append_ledger_event(
            event_type="reclassification.rejected",
            subject_type="reclassification_request",
            subject_id=request.id,
            entity_id=request.entity_id,
            actor_user_id=decided_by,
            note=decision_note,
        )
        return request

    return run_with_retry(_op)

# Overview: Flask API route for the audit ledger; read-only.

from flask import Blueprint, request

from ..decorators import transactional
from ..services.ledger_service import list_ledger_events

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("")
@transactional("list ledger events")
def list_ledger_events_route():
    """
    Newest first.

    Query params: entity_id, subject_type, subject_id, event_type, limit (1-500, default 100)
    """
    limit = max(1, min(request.args.get("limit", default=100, type=int), 500))
    events = list_ledger_events(
        entity_id=request.args.get("entity_id", type=int),
        subject_type=request.args.get("subject_type"),
        subject_id=request.args.get("subject_id", type=int),
        event_type=request.args.get("event_type"),
        limit=limit,
    )
    return {"items": [e.to_dict() for e in events], "count": len(events), "limit": limit}

# Overview: Shared lookup and pagination helpers for service-layer list/get operations.

from __future__ import annotations

from ..extensions import db
from ..validation import NotFoundError


def get_or_404(model, object_id: int, label: str):
    """Fetch a row by primary key or raise NotFoundError naming the resource."""
    obj = db.session.get(model, object_id)
    if obj is None:
        raise NotFoundError(f"{label} {object_id} not found")
    return obj


def paginated_result(base_query, *, page: int | None = None, per_page: int | None = None) -> dict:
    """
    Serialize a query as {"items", "count"} with optional pagination.

    If page is None, all rows are returned. Otherwise per_page defaults to 20
    (max 100) and a "pagination" block is added.
    """
    if page is None:
        rows = base_query.all()
        return {
            "items": [row.to_dict() for row in rows],
            "count": len(rows),
        }

    per_page = max(1, min(per_page or 20, 100))  # Default 20, clamp to 1..100
    page = max(page, 1)  # Ensure page >= 1

    total = base_query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [row.to_dict() for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }

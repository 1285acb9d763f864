# Overview: Flask API route for the portfolio dashboard summary.

from flask import Blueprint, request

from ..decorators import transactional
from ..services import reporting_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/summary")
@transactional("load dashboard summary")
def summary():
    """
    Query params:
    - entity_id: int (optional) - restrict to one entity
    - commodity_type: str (optional, default ACCU) - price series used for market_value
    """
    return reporting_service.portfolio_summary(
        entity_id=request.args.get("entity_id", type=int),
        commodity_type=request.args.get("commodity_type"),
    )
